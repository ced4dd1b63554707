"""
Codemmunity Backend: Comment Repository
=========================================

What:  Create/read/update/tombstone comments and list a post's thread.
Who:   Called by the /api/comments and /api/posts/{id}/comments handlers.

Locking Order (always post → comment):
    create_comment   post FOR SHARE, then parent comment FOR SHARE
    delete_comment   comment FOR UPDATE
    delete_post      post FOR UPDATE (PostRepository)

    A reply therefore cannot commit against a post that is being deleted,
    nor against a parent that is being tombstoned. Whichever transaction
    takes the lock second sees the committed outcome of the first.

Deletion Policy:
    Comments are tombstoned, never removed: body cleared, is_deleted set,
    row kept so replies keep their place. Tombstones are invisible to direct
    reads and cannot be edited, deleted again or replied to. They disappear
    physically only when their post is deleted.
"""

import logging
import uuid
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from codemmunity.entities import (
    Comment,
    CommentOrdering,
    CommentParent,
    ParentRef,
    PostParent,
    comment_from_row,
)
from codemmunity.exceptions import AuthorizationError, NotFoundError
from codemmunity.models import COMMENT_MAX_LENGTH, CommentRow, PostRow, UserRow
from codemmunity.repositories.base import Repository
from codemmunity.repositories.thread import CommentThread

logger = logging.getLogger(__name__)


class CommentRepository(Repository):
    """Query and transaction logic for the `comments` table."""

    # ── CREATE ────────────────────────────────────────────────────────────

    async def create_comment(self, author_id: str, parent: ParentRef, body: str) -> Comment:
        """
        Attach a comment to a post or reply to an existing comment.

        Raises:
            ValidationError: body empty / too long.
            NotFoundError: author missing, or the parent post/comment does not
                exist or has been deleted.
        """
        body = self._require_text(body, "body", COMMENT_MAX_LENGTH)

        async with self._db.transaction() as session:
            author = await self._require_user(session, author_id)
            post_id, parent_id = await self._lock_parent(session, parent)

            row = CommentRow(
                id=uuid.uuid4(),
                post_id=post_id,
                parent_id=parent_id,
                author_id=author.id,
                body=body,
                is_deleted=False,
                created_at=self._clock(),
                updated_at=None,
            )
            session.add(row)
            await self._db.flush(session)
            comment = comment_from_row(row, author.name)

        logger.info(
            "Comment %s created by %s on post %s (parent=%s)",
            comment.id,
            author_id,
            post_id,
            parent_id or "post",
        )
        return comment

    async def _lock_parent(
        self, session: AsyncSession, parent: ParentRef
    ) -> Tuple[uuid.UUID, Optional[uuid.UUID]]:
        """Share-lock the parent post (and parent comment); return (post_id, parent_id)."""
        if isinstance(parent, PostParent):
            await self._share_lock_post(session, parent.post_id)
            return parent.post_id, None

        if not isinstance(parent, CommentParent):
            raise TypeError(f"Unsupported parent reference: {parent!r}")

        # Learn the post first so locks are taken post → comment
        result = await self._db.execute(
            session,
            select(CommentRow.post_id).where(CommentRow.id == parent.comment_id),
        )
        post_id = result.scalar_one_or_none()
        if post_id is None:
            raise NotFoundError(resource="comment", resource_id=str(parent.comment_id))

        await self._share_lock_post(session, post_id)
        result = await self._db.execute(
            session,
            select(CommentRow)
            .where(CommentRow.id == parent.comment_id)
            .with_for_update(read=True),
        )
        parent_row = result.scalar_one_or_none()
        if parent_row is None or parent_row.is_deleted:
            raise NotFoundError(resource="comment", resource_id=str(parent.comment_id))
        return parent_row.post_id, parent_row.id

    async def _share_lock_post(self, session: AsyncSession, post_id: uuid.UUID) -> None:
        result = await self._db.execute(
            session,
            select(PostRow.id).where(PostRow.id == post_id).with_for_update(read=True),
        )
        if result.scalar_one_or_none() is None:
            raise NotFoundError(resource="post", resource_id=str(post_id))

    # ── READ ──────────────────────────────────────────────────────────────

    async def get_comment(self, comment_id: uuid.UUID) -> Comment:
        """
        Raises:
            NotFoundError: no such comment, or it has been deleted.
        """
        async with self._db.session() as session:
            result = await self._db.execute(
                session,
                select(CommentRow, UserRow.name)
                .outerjoin(UserRow, UserRow.id == CommentRow.author_id)
                .where(CommentRow.id == comment_id),
            )
            found = result.one_or_none()

        if found is None or found[0].is_deleted:
            raise NotFoundError(resource="comment", resource_id=str(comment_id))
        row, name = found
        return comment_from_row(row, name)

    async def list_comments(
        self,
        post_id: uuid.UUID,
        ordering: CommentOrdering = CommentOrdering.OLDEST_FIRST,
    ) -> CommentThread:
        """
        The post's comments in thread order.

        The rows are loaded in one transaction (bounded by the thread size);
        the returned CommentThread walks them lazily and can be iterated again.

        Raises:
            NotFoundError: the post does not exist.
            ThreadIntegrityError: stored parent links do not form a tree.
        """
        async with self._db.transaction() as session:
            result = await self._db.execute(
                session, select(PostRow.id).where(PostRow.id == post_id)
            )
            if result.scalar_one_or_none() is None:
                raise NotFoundError(resource="post", resource_id=str(post_id))

            result = await self._db.execute(
                session,
                select(CommentRow, UserRow.name)
                .outerjoin(UserRow, UserRow.id == CommentRow.author_id)
                .where(CommentRow.post_id == post_id),
            )
            comments = [comment_from_row(row, name) for row, name in result.all()]

        return CommentThread(post_id, comments, ordering)

    # ── UPDATE ────────────────────────────────────────────────────────────

    async def update_comment(self, comment_id: uuid.UUID, actor_id: str, body: str) -> Comment:
        """
        Replace the body of a comment. Only its author may edit.

        Raises:
            ValidationError: body empty / too long.
            NotFoundError: no such comment, or it has been deleted.
            AuthorizationError: actor is not the author.
        """
        body = self._require_text(body, "body", COMMENT_MAX_LENGTH)

        async with self._db.transaction() as session:
            row = await self._lock_live(session, comment_id)
            if row.author_id != actor_id:
                raise AuthorizationError(
                    action="edit", resource="comment", resource_id=str(comment_id)
                )
            row.body = body
            row.updated_at = max(self._clock(), row.created_at)
            await self._db.flush(session)
            comment = comment_from_row(row, await self._user_name(session, row.author_id))

        logger.info("Comment %s updated by %s", comment_id, actor_id)
        return comment

    # ── DELETE ────────────────────────────────────────────────────────────

    async def delete_comment(
        self,
        comment_id: uuid.UUID,
        actor_id: str,
        is_moderator: bool = False,
    ) -> None:
        """
        Tombstone a comment; its replies stay in place.

        Raises:
            NotFoundError: no such comment, or it was already deleted.
            AuthorizationError: actor is neither the author nor a moderator.
        """
        async with self._db.transaction() as session:
            row = await self._lock_live(session, comment_id)
            if row.author_id != actor_id and not is_moderator:
                raise AuthorizationError(
                    action="delete", resource="comment", resource_id=str(comment_id)
                )
            row.is_deleted = True
            row.body = None
            row.updated_at = max(self._clock(), row.created_at)
            await self._db.flush(session)

        logger.info("Comment %s tombstoned by %s", comment_id, actor_id)

    # ── Helpers ───────────────────────────────────────────────────────────

    async def _lock_live(self, session: AsyncSession, comment_id: uuid.UUID) -> CommentRow:
        result = await self._db.execute(
            session,
            select(CommentRow).where(CommentRow.id == comment_id).with_for_update(),
        )
        row = result.scalar_one_or_none()
        if row is None or row.is_deleted:
            raise NotFoundError(resource="comment", resource_id=str(comment_id))
        return row
