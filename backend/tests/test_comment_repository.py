"""
Codemmunity Backend: Comment Repository Tests
===============================================

What:  Tests for CommentRepository against a real (SQLite) database.

What we test:
    ✅ Comments on posts and replies to comments
    ✅ Missing parents and deleted parents are refused
    ✅ Thread listing order, depth and ordering switch
    ✅ Editing by the author only
    ✅ Tombstoning: hidden from direct reads, replies survive
    ✅ Corrupted rows surface as ThreadIntegrityError
"""

import uuid

import pytest
import pytest_asyncio
from sqlalchemy import update

from codemmunity.entities import CommentOrdering, CommentParent, PostParent
from codemmunity.exceptions import (
    AuthorizationError,
    NotFoundError,
    ThreadIntegrityError,
    ValidationError,
)
from codemmunity.models import COMMENT_MAX_LENGTH, CommentRow


@pytest_asyncio.fixture
async def post(post_repo):
    return await post_repo.create_post("u1", "Hello", "print('hello')")


class TestCreateComment:

    @pytest.mark.asyncio
    async def test_comment_on_post(self, comment_repo, post):
        comment = await comment_repo.create_comment("u2", PostParent(post.id), "nice!")

        assert comment.post_id == post.id
        assert comment.parent == PostParent(post.id)
        assert comment.parent_id is None
        assert comment.author_name == "Linus"
        assert comment.is_deleted is False
        assert await comment_repo.get_comment(comment.id) == comment

    @pytest.mark.asyncio
    async def test_reply_inherits_the_post(self, comment_repo, post):
        top = await comment_repo.create_comment("u2", PostParent(post.id), "nice!")

        reply = await comment_repo.create_comment("u1", CommentParent(top.id), "thanks")

        assert reply.post_id == post.id
        assert reply.parent_id == top.id

    @pytest.mark.asyncio
    async def test_comment_on_missing_post_is_refused(self, comment_repo):
        with pytest.raises(NotFoundError) as exc_info:
            await comment_repo.create_comment("u2", PostParent(uuid.uuid4()), "hello?")

        assert exc_info.value.resource == "post"

    @pytest.mark.asyncio
    async def test_reply_to_missing_comment_is_refused(self, comment_repo, post):
        with pytest.raises(NotFoundError) as exc_info:
            await comment_repo.create_comment("u2", CommentParent(uuid.uuid4()), "hello?")

        assert exc_info.value.resource == "comment"

    @pytest.mark.asyncio
    async def test_reply_to_deleted_comment_is_refused(self, comment_repo, post):
        top = await comment_repo.create_comment("u2", PostParent(post.id), "nice!")
        await comment_repo.delete_comment(top.id, "u2")

        with pytest.raises(NotFoundError):
            await comment_repo.create_comment("u1", CommentParent(top.id), "too late")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", ["", "  \n ", "x" * (COMMENT_MAX_LENGTH + 1)])
    async def test_invalid_body_is_rejected(self, comment_repo, post, body):
        with pytest.raises(ValidationError):
            await comment_repo.create_comment("u2", PostParent(post.id), body)


class TestListComments:

    @pytest.mark.asyncio
    async def test_thread_order_and_depth(self, comment_repo, post):
        first = await comment_repo.create_comment("u2", PostParent(post.id), "first")
        second = await comment_repo.create_comment("u1", PostParent(post.id), "second")
        reply = await comment_repo.create_comment("u1", CommentParent(first.id), "reply")

        thread = await comment_repo.list_comments(post.id)

        assert [(c.comment.id, c.depth) for c in thread] == [
            (first.id, 0),
            (reply.id, 1),
            (second.id, 0),
        ]

    @pytest.mark.asyncio
    async def test_newest_first(self, comment_repo, post):
        first = await comment_repo.create_comment("u2", PostParent(post.id), "first")
        second = await comment_repo.create_comment("u1", PostParent(post.id), "second")

        thread = await comment_repo.list_comments(post.id, CommentOrdering.NEWEST_FIRST)

        assert [c.comment.id for c in thread] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_listing_unknown_post_raises_not_found(self, comment_repo):
        with pytest.raises(NotFoundError):
            await comment_repo.list_comments(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_post_without_comments_has_empty_thread(self, comment_repo, post):
        thread = await comment_repo.list_comments(post.id)

        assert list(thread) == []

    @pytest.mark.asyncio
    async def test_corrupted_parent_link_raises_thread_integrity_error(
        self, db, comment_repo, post_repo, post
    ):
        other = await post_repo.create_post("u2", "Other", "code")
        foreign = await comment_repo.create_comment("u1", PostParent(other.id), "elsewhere")
        victim = await comment_repo.create_comment("u2", PostParent(post.id), "moved")

        # point the reply at a comment that lives under another post
        async with db.transaction() as session:
            await session.execute(
                update(CommentRow).where(CommentRow.id == victim.id).values(parent_id=foreign.id)
            )

        with pytest.raises(ThreadIntegrityError) as exc_info:
            await comment_repo.list_comments(post.id)

        assert exc_info.value.comment_ids == [str(victim.id)]


class TestUpdateComment:

    @pytest.mark.asyncio
    async def test_author_can_edit(self, comment_repo, post):
        comment = await comment_repo.create_comment("u2", PostParent(post.id), "nice!")

        updated = await comment_repo.update_comment(comment.id, "u2", "very nice!")

        assert updated.body == "very nice!"
        assert updated.created_at == comment.created_at
        assert updated.updated_at > comment.created_at

    @pytest.mark.asyncio
    async def test_other_user_cannot_edit(self, comment_repo, post):
        comment = await comment_repo.create_comment("u2", PostParent(post.id), "nice!")

        with pytest.raises(AuthorizationError):
            await comment_repo.update_comment(comment.id, "u1", "edited")

    @pytest.mark.asyncio
    async def test_deleted_comment_cannot_be_edited(self, comment_repo, post):
        comment = await comment_repo.create_comment("u2", PostParent(post.id), "nice!")
        await comment_repo.delete_comment(comment.id, "u2")

        with pytest.raises(NotFoundError):
            await comment_repo.update_comment(comment.id, "u2", "resurrected")


class TestDeleteComment:

    @pytest.mark.asyncio
    async def test_deleted_comment_is_not_found(self, comment_repo, post):
        comment = await comment_repo.create_comment("u2", PostParent(post.id), "nice!")

        await comment_repo.delete_comment(comment.id, "u2")

        with pytest.raises(NotFoundError):
            await comment_repo.get_comment(comment.id)
        assert list(await comment_repo.list_comments(post.id)) == []

    @pytest.mark.asyncio
    async def test_replies_survive_under_a_placeholder(self, comment_repo, post):
        top = await comment_repo.create_comment("u2", PostParent(post.id), "nice!")
        reply = await comment_repo.create_comment("u1", CommentParent(top.id), "thanks")

        await comment_repo.delete_comment(top.id, "u2")

        items = list(await comment_repo.list_comments(post.id))
        assert [c.comment.id for c in items] == [top.id, reply.id]
        placeholder = items[0].comment
        assert placeholder.is_deleted is True
        assert placeholder.body is None
        assert placeholder.author_id is None
        assert await comment_repo.get_comment(reply.id) == reply

    @pytest.mark.asyncio
    async def test_moderator_can_delete(self, comment_repo, post):
        comment = await comment_repo.create_comment("u2", PostParent(post.id), "spam")

        await comment_repo.delete_comment(comment.id, "mod", is_moderator=True)

        with pytest.raises(NotFoundError):
            await comment_repo.get_comment(comment.id)

    @pytest.mark.asyncio
    async def test_other_user_cannot_delete(self, comment_repo, post):
        comment = await comment_repo.create_comment("u2", PostParent(post.id), "mine")

        with pytest.raises(AuthorizationError):
            await comment_repo.delete_comment(comment.id, "u1")

        assert (await comment_repo.get_comment(comment.id)).body == "mine"

    @pytest.mark.asyncio
    async def test_second_delete_raises_not_found(self, comment_repo, post):
        comment = await comment_repo.create_comment("u2", PostParent(post.id), "once")
        await comment_repo.delete_comment(comment.id, "u2")

        with pytest.raises(NotFoundError):
            await comment_repo.delete_comment(comment.id, "u2")
