"""
Codemmunity Backend: Entity Model
===================================

What:  Immutable value types passed between the repositories and the API
       adapter, plus the explicit functions mapping ORM rows onto them.
How:   Frozen dataclasses. Each mapping function names every field it reads,
       so a schema/model mismatch fails when the entity is built rather than
       at some later attribute access.

Parent references are a tagged variant: a comment replies either to the post
(`PostParent`) or to another comment (`CommentParent`), never both.
"""

import enum
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple, Union

from codemmunity.models import CommentRow, PostRow


@dataclass(frozen=True)
class Post:
    id: uuid.UUID
    author_id: str
    author_name: Optional[str]
    title: str
    body: str
    likes: int
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class PostParent:
    """The comment replies directly to a post."""

    post_id: uuid.UUID


@dataclass(frozen=True)
class CommentParent:
    """The comment replies to another comment."""

    comment_id: uuid.UUID


ParentRef = Union[PostParent, CommentParent]


@dataclass(frozen=True)
class Comment:
    """
    A comment as seen by callers.

    For tombstones `body`, `author_id` and `author_name` are None and
    `is_deleted` is True; structure (`post_id`, `parent`) is preserved.
    """

    id: uuid.UUID
    post_id: uuid.UUID
    parent: ParentRef
    author_id: Optional[str]
    author_name: Optional[str]
    body: Optional[str]
    is_deleted: bool
    created_at: datetime
    updated_at: Optional[datetime]

    @property
    def parent_id(self) -> Optional[uuid.UUID]:
        """The parent comment id, or None for a top-level comment."""
        if isinstance(self.parent, CommentParent):
            return self.parent.comment_id
        return None


@dataclass(frozen=True)
class ThreadedComment:
    """A comment with its nesting depth (0 for direct replies to the post)."""

    comment: Comment
    depth: int


@dataclass(frozen=True)
class PostPage:
    items: Tuple[Post, ...]
    page: int
    page_size: int
    total_count: int

    @property
    def has_more(self) -> bool:
        return self.page * self.page_size < self.total_count


class CommentOrdering(str, enum.Enum):
    """Sibling order inside a thread. Parents always precede their replies."""

    OLDEST_FIRST = "oldest"
    NEWEST_FIRST = "newest"


# ══════════════════════════════════════════════════════════════════════════
# Row → Entity Mapping
# ══════════════════════════════════════════════════════════════════════════

def post_from_row(row: PostRow, author_name: Optional[str] = None) -> Post:
    return Post(
        id=row.id,
        author_id=row.author_id,
        author_name=author_name,
        title=row.title,
        body=row.body,
        likes=row.likes,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def parent_of(row: CommentRow) -> ParentRef:
    if row.parent_id is None:
        return PostParent(post_id=row.post_id)
    return CommentParent(comment_id=row.parent_id)


def comment_from_row(row: CommentRow, author_name: Optional[str] = None) -> Comment:
    """Map a comment row; tombstones lose their body and authorship."""
    if row.is_deleted:
        return Comment(
            id=row.id,
            post_id=row.post_id,
            parent=parent_of(row),
            author_id=None,
            author_name=None,
            body=None,
            is_deleted=True,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
    return Comment(
        id=row.id,
        post_id=row.post_id,
        parent=parent_of(row),
        author_id=row.author_id,
        author_name=author_name,
        body=row.body,
        is_deleted=False,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
