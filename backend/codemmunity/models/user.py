"""
Codemmunity Backend: User SQLAlchemy Model
============================================

What:  ORM model for the `users` table.
Who:   Read by the repositories for author existence checks and display
       names. Accounts are created and removed by the external account
       service; this backend never writes to the table.
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from codemmunity.database import Base

USER_ID_LENGTH = 128


class UserRow(Base):
    """A member account, referenced by posts and comments through `author_id`."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(USER_ID_LENGTH),
        primary_key=True,
        comment="Opaque account identifier issued by the auth service",
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Display name shown next to posts and comments",
    )

    def __repr__(self) -> str:
        return f"<UserRow(id='{self.id}', name='{self.name}')>"
