"""
Codemmunity Backend: Post Request/Response Schemas
====================================================

What:  Pydantic models defining the /api/posts contract.
How:   Request models enforce presence and size limits before a repository
       is called; response models are built from entities with
       `from_entity`, never from ORM rows.
"""

import enum
import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from codemmunity.entities import Post, PostPage
from codemmunity.models import BODY_MAX_LENGTH, TITLE_MAX_LENGTH


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class PostCreate(BaseModel):
    title: str = Field(min_length=1, max_length=TITLE_MAX_LENGTH, description="Post title")
    body: str = Field(
        min_length=1,
        max_length=BODY_MAX_LENGTH,
        description="Source code, stored verbatim",
    )


class PostUpdate(BaseModel):
    """At least one of title/body must be present."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=TITLE_MAX_LENGTH)
    body: Optional[str] = Field(default=None, min_length=1, max_length=BODY_MAX_LENGTH)

    @model_validator(mode="after")
    def require_change(self) -> "PostUpdate":
        if self.title is None and self.body is None:
            raise ValueError("Provide a title or a body to update")
        return self


class LikeMode(str, enum.Enum):
    INCREMENT = "increment"
    DECREMENT = "decrement"

    @property
    def delta(self) -> int:
        return 1 if self is LikeMode.INCREMENT else -1


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class PostResponse(BaseModel):
    id: uuid.UUID = Field(description="Unique post identifier (UUID)")
    author_id: str
    author_name: Optional[str] = None
    title: str
    body: str
    likes: int
    created_at: datetime = Field(description="Creation time (UTC ISO 8601), never changes")
    updated_at: datetime = Field(description="Last edit time (UTC ISO 8601)")

    @classmethod
    def from_entity(cls, post: Post) -> "PostResponse":
        return cls(
            id=post.id,
            author_id=post.author_id,
            author_name=post.author_name,
            title=post.title,
            body=post.body,
            likes=post.likes,
            created_at=post.created_at,
            updated_at=post.updated_at,
        )


class PostListResponse(BaseModel):
    """
    One page of posts, newest first.

    The same (page, page_size) returns the same items while the data is
    unchanged; `total_count` is also sent as the X-Total-Count header.
    """
    posts: List[PostResponse]
    page: int
    page_size: int
    total_count: int
    has_more: bool

    @classmethod
    def from_page(cls, page: PostPage) -> "PostListResponse":
        return cls(
            posts=[PostResponse.from_entity(post) for post in page.items],
            page=page.page,
            page_size=page.page_size,
            total_count=page.total_count,
            has_more=page.has_more,
        )
