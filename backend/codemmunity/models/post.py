"""
Codemmunity Backend: Post SQLAlchemy Model
============================================

What:  ORM model representing the `posts` table.
Who:   Written only by PostRepository; read by both repositories.

Table Design:
    - UUID primary key generated in Python at insert time
    - body: source code of any language, stored verbatim (no trimming)
    - likes: counter updated under the post row lock, never negative
    - created_at / updated_at: UTC, microsecond precision

    Composite index on (created_at DESC, id DESC):
        Serves the listing query exactly, including its tie-breaker, so a
        page is an index range scan.
"""

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from codemmunity.database import Base
from codemmunity.models.types import LongText, UTCDateTime
from codemmunity.models.user import USER_ID_LENGTH

TITLE_MAX_LENGTH = 200
BODY_MAX_LENGTH = 65_535


class PostRow(Base):
    """
    A top-level code submission.

    Lifecycle:
        1. Created by an authenticated author (created_at == updated_at)
        2. Title/body edited by the author only (updated_at moves forward)
        3. Deleted by the author or a moderator, together with every comment
    """

    __tablename__ = "posts"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        comment="Server-assigned identifier, immutable",
    )

    author_id: Mapped[str] = mapped_column(
        String(USER_ID_LENGTH),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Author account",
    )

    title: Mapped[str] = mapped_column(
        String(TITLE_MAX_LENGTH),
        nullable=False,
    )

    body: Mapped[str] = mapped_column(
        LongText,
        nullable=False,
        comment="Source code, language-agnostic",
    )

    likes: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        comment="When the post was created (UTC), never changes",
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        comment="Last title/body edit (UTC)",
    )

    def __repr__(self) -> str:
        return f"<PostRow(id={self.id}, author_id='{self.author_id}', created_at='{self.created_at}')>"


Index("idx_posts_created_at_id", PostRow.created_at.desc(), PostRow.id.desc())
