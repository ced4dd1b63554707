"""
Codemmunity Backend: Comment SQLAlchemy Model
===============================================

What:  ORM model representing the `comments` table.
Who:   Written only by CommentRepository (and bulk-deleted by PostRepository).

Threading:
    post_id    → the post at the root of the thread, set on every comment
    parent_id  → NULL for a direct reply to the post, otherwise the comment
                 being replied to (always on the same post)

    Keeping post_id on every row lets a whole thread load, or be deleted,
    with a single indexed predicate.

Tombstones:
    A deleted comment keeps its row with is_deleted = TRUE and body = NULL,
    so replies beneath it keep their position in the thread.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Index, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from codemmunity.database import Base
from codemmunity.models.types import UTCDateTime
from codemmunity.models.user import USER_ID_LENGTH

COMMENT_MAX_LENGTH = 4_000


class CommentRow(Base):
    """Feedback or a reply attached to a post or to another comment."""

    __tablename__ = "comments"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    post_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("posts.id", ondelete="CASCADE"),
        nullable=False,
        comment="Root post of the thread",
    )

    parent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("comments.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
        comment="Parent comment; NULL when replying to the post itself",
    )

    author_id: Mapped[str] = mapped_column(
        String(USER_ID_LENGTH),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    body: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Comment text; NULL once tombstoned",
    )

    is_deleted: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("0"),
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    updated_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
        comment="Last edit or tombstoning (UTC)",
    )

    def __repr__(self) -> str:
        return (
            f"<CommentRow(id={self.id}, post_id={self.post_id}, "
            f"parent_id={self.parent_id}, is_deleted={self.is_deleted})>"
        )


Index("idx_comments_post_created", CommentRow.post_id, CommentRow.created_at)
