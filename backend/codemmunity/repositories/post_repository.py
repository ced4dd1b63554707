"""
Codemmunity Backend: Post Repository
======================================

What:  Create/read/update/delete, paging and likes for posts.
Who:   Called by the /api/posts route handlers.

Transaction Discipline:
    Every operation runs in its own transaction from the ConnectionManager.
    Writes lock the post row first (SELECT ... FOR UPDATE), so:

    - update_post / adjust_likes read and write the row under the same lock,
      so concurrent like clicks never lose an increment
    - delete_post excludes concurrent comment creation, which takes a shared
      lock on the same row (see CommentRepository.create_comment); a comment
      is either committed before the delete and removed with it, or sees the
      post gone and fails with NotFoundError

    On any failure the transaction rolls back as a whole and the original
    error propagates unchanged.

Ordering:
    list_posts sorts by (created_at DESC, id DESC). The id tie-breaker makes
    the order total, so the same page is returned for unchanged data.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from codemmunity.entities import Post, PostPage, post_from_row
from codemmunity.exceptions import AuthorizationError, NotFoundError, ValidationError
from codemmunity.models import (
    BODY_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    CommentRow,
    PostRow,
    UserRow,
)
from codemmunity.repositories.base import Repository

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class PostRepository(Repository):
    """Query and transaction logic for the `posts` table."""

    # ── CREATE ────────────────────────────────────────────────────────────

    async def create_post(self, author_id: str, title: str, body: str) -> Post:
        """
        Publish a new post.

        Raises:
            ValidationError: title or body empty / too long.
            NotFoundError: the author account does not exist.
        """
        title = self._require_text(title, "title", TITLE_MAX_LENGTH)
        body = self._require_text(body, "body", BODY_MAX_LENGTH)

        async with self._db.transaction() as session:
            author = await self._require_user(session, author_id)
            now = self._clock()
            row = PostRow(
                id=uuid.uuid4(),
                author_id=author.id,
                title=title,
                body=body,
                likes=0,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            await self._db.flush(session)
            post = post_from_row(row, author.name)

        logger.info("Post %s created by %s", post.id, author_id)
        return post

    # ── READ ──────────────────────────────────────────────────────────────

    async def get_post(self, post_id: uuid.UUID) -> Post:
        """
        Raises:
            NotFoundError: no post with this id.
        """
        async with self._db.session() as session:
            post = await self._fetch(session, post_id)
        if post is None:
            raise NotFoundError(resource="post", resource_id=str(post_id))
        return post

    async def list_posts(self, page: int = 1, page_size: int = 20) -> PostPage:
        """
        One page of posts, newest first.

        Pages are 1-based. The page and the total count are read in the same
        transaction so they agree with each other.

        Raises:
            ValidationError: page < 1 or page_size outside 1..100.
        """
        if page < 1:
            raise ValidationError(message="page must be 1 or greater", field="page")
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValidationError(
                message=f"page_size must be between 1 and {MAX_PAGE_SIZE}",
                field="page_size",
            )

        query = (
            select(PostRow, UserRow.name)
            .outerjoin(UserRow, UserRow.id == PostRow.author_id)
            .order_by(PostRow.created_at.desc(), PostRow.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        count_query = select(func.count()).select_from(PostRow)

        async with self._db.transaction() as session:
            result = await self._db.execute(session, query)
            items = tuple(post_from_row(row, name) for row, name in result.all())
            count_result = await self._db.execute(session, count_query)
            total_count = count_result.scalar() or 0

        return PostPage(items=items, page=page, page_size=page_size, total_count=total_count)

    # ── UPDATE ────────────────────────────────────────────────────────────

    async def update_post(
        self,
        post_id: uuid.UUID,
        actor_id: str,
        title: Optional[str] = None,
        body: Optional[str] = None,
    ) -> Post:
        """
        Edit title and/or body. Only the author may edit.

        Raises:
            ValidationError: nothing to change, or a field is empty / too long.
            NotFoundError: the post does not exist.
            AuthorizationError: actor is not the author.
        """
        if title is None and body is None:
            raise ValidationError(message="Provide a title or a body to update")
        if title is not None:
            title = self._require_text(title, "title", TITLE_MAX_LENGTH)
        if body is not None:
            body = self._require_text(body, "body", BODY_MAX_LENGTH)

        async with self._db.transaction() as session:
            row = await self._lock(session, post_id)
            if row.author_id != actor_id:
                raise AuthorizationError(action="edit", resource="post", resource_id=str(post_id))
            if title is not None:
                row.title = title
            if body is not None:
                row.body = body
            row.updated_at = max(self._clock(), row.created_at)
            await self._db.flush(session)
            post = post_from_row(row, await self._user_name(session, row.author_id))

        logger.info("Post %s updated by %s", post_id, actor_id)
        return post

    async def adjust_likes(self, post_id: uuid.UUID, delta: int) -> Post:
        """
        Add `delta` to the like counter, clamping at zero.

        Raises:
            ValidationError: delta is 0.
            NotFoundError: the post does not exist.
        """
        if delta == 0:
            raise ValidationError(message="delta must not be zero", field="delta")

        async with self._db.transaction() as session:
            row = await self._lock(session, post_id)
            row.likes = max(0, row.likes + delta)
            await self._db.flush(session)
            post = post_from_row(row, await self._user_name(session, row.author_id))

        logger.debug("Post %s likes adjusted by %d to %d", post_id, delta, post.likes)
        return post

    # ── DELETE ────────────────────────────────────────────────────────────

    async def delete_post(
        self,
        post_id: uuid.UUID,
        actor_id: str,
        is_moderator: bool = False,
    ) -> int:
        """
        Delete a post and every comment in its thread, atomically.

        Returns:
            Number of comment rows removed (tombstones included).

        Raises:
            NotFoundError: the post does not exist.
            AuthorizationError: actor is neither the author nor a moderator.
        """
        async with self._db.transaction() as session:
            row = await self._lock(session, post_id)
            if row.author_id != actor_id and not is_moderator:
                raise AuthorizationError(action="delete", resource="post", resource_id=str(post_id))

            # Detach replies first so the bulk delete never walks the
            # self-referencing parent_id cascade.
            await self._db.execute(
                session,
                update(CommentRow)
                .where(CommentRow.post_id == post_id, CommentRow.parent_id.is_not(None))
                .values(parent_id=None)
                .execution_options(synchronize_session=False),
            )
            result = await self._db.execute(
                session,
                delete(CommentRow)
                .where(CommentRow.post_id == post_id)
                .execution_options(synchronize_session=False),
            )
            removed = result.rowcount or 0
            await self._db.execute(
                session,
                delete(PostRow)
                .where(PostRow.id == post_id)
                .execution_options(synchronize_session=False),
            )

        logger.info(
            "Post %s deleted by %s%s (%d comments removed)",
            post_id,
            actor_id,
            " (moderator)" if is_moderator and row.author_id != actor_id else "",
            removed,
        )
        return removed

    # ── Helpers ───────────────────────────────────────────────────────────

    async def _fetch(self, session: AsyncSession, post_id: uuid.UUID) -> Optional[Post]:
        result = await self._db.execute(
            session,
            select(PostRow, UserRow.name)
            .outerjoin(UserRow, UserRow.id == PostRow.author_id)
            .where(PostRow.id == post_id),
        )
        found = result.one_or_none()
        if found is None:
            return None
        row, name = found
        return post_from_row(row, name)

    async def _lock(self, session: AsyncSession, post_id: uuid.UUID) -> PostRow:
        result = await self._db.execute(
            session,
            select(PostRow).where(PostRow.id == post_id).with_for_update(),
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(resource="post", resource_id=str(post_id))
        return row
