"""
Codemmunity Backend: Comment Request/Response Schemas
=======================================================

What:  Pydantic models defining the /api/comments contract and the thread
       listing returned by /api/posts/{id}/comments.

Creating a comment names exactly one parent:
    {"post_id": "...", "body": "nice!"}        → reply to the post
    {"parent_id": "...", "body": "agreed"}     → reply to a comment
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from codemmunity.entities import (
    Comment,
    CommentOrdering,
    CommentParent,
    ParentRef,
    PostParent,
    ThreadedComment,
)
from codemmunity.models import COMMENT_MAX_LENGTH
from codemmunity.repositories.thread import CommentThread


class CommentCreate(BaseModel):
    post_id: Optional[uuid.UUID] = Field(default=None, description="Post being replied to")
    parent_id: Optional[uuid.UUID] = Field(default=None, description="Comment being replied to")
    body: str = Field(min_length=1, max_length=COMMENT_MAX_LENGTH)

    @model_validator(mode="after")
    def require_single_parent(self) -> "CommentCreate":
        if (self.post_id is None) == (self.parent_id is None):
            raise ValueError("Exactly one of post_id or parent_id is required")
        return self

    def parent(self) -> ParentRef:
        if self.parent_id is not None:
            return CommentParent(comment_id=self.parent_id)
        return PostParent(post_id=self.post_id)


class CommentUpdate(BaseModel):
    body: str = Field(min_length=1, max_length=COMMENT_MAX_LENGTH)


class CommentResponse(BaseModel):
    """
    A comment. For deleted placeholders inside a thread `is_deleted` is true
    and `body`, `author_id` and `author_name` are null.
    """
    id: uuid.UUID
    post_id: uuid.UUID
    parent_id: Optional[uuid.UUID] = Field(
        default=None, description="Parent comment, null for a direct reply to the post"
    )
    author_id: Optional[str] = None
    author_name: Optional[str] = None
    body: Optional[str] = None
    is_deleted: bool = False
    created_at: datetime
    updated_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, comment: Comment) -> "CommentResponse":
        return cls(
            id=comment.id,
            post_id=comment.post_id,
            parent_id=comment.parent_id,
            author_id=comment.author_id,
            author_name=comment.author_name,
            body=comment.body,
            is_deleted=comment.is_deleted,
            created_at=comment.created_at,
            updated_at=comment.updated_at,
        )


class ThreadedCommentResponse(CommentResponse):
    depth: int = Field(ge=0, description="0 for direct replies to the post")

    @classmethod
    def from_threaded(cls, item: ThreadedComment) -> "ThreadedCommentResponse":
        base = CommentResponse.from_entity(item.comment)
        return cls(**base.model_dump(), depth=item.depth)


class CommentThreadResponse(BaseModel):
    """
    Flattened thread: every comment appears after its parent, siblings in the
    requested order, with `depth` for indentation.
    """
    post_id: uuid.UUID
    ordering: CommentOrdering
    count: int
    comments: List[ThreadedCommentResponse]

    @classmethod
    def from_thread(cls, thread: CommentThread) -> "CommentThreadResponse":
        comments = [ThreadedCommentResponse.from_threaded(item) for item in thread]
        return cls(
            post_id=thread.post_id,
            ordering=thread.ordering,
            count=len(comments),
            comments=comments,
        )
