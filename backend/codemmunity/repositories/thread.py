"""
Codemmunity Backend: Comment Thread Reconstruction
====================================================

What:  Turns the flat list of a post's comments into depth-first,
       parent-before-child order.
How:   Comments are grouped by parent, each sibling group is sorted by
       (created_at, id), and a walk from the post collects every reachable
       comment. Any comment the walk cannot reach has a parent chain that
       does not end at the post (dangling parent, reply on another post, or a
       cycle) and the thread is refused with ThreadIntegrityError.

Tombstones:
    A tombstoned comment is kept only while something beneath it is still
    live. Dead subtrees are dropped from the output entirely.
"""

import uuid
from collections import defaultdict
from typing import Dict, Iterator, List, Optional, Sequence, Set

from codemmunity.entities import Comment, CommentOrdering, ThreadedComment
from codemmunity.exceptions import ThreadIntegrityError


class CommentThread:
    """
    Lazy, restartable view of one post's comment tree.

    Iterating yields `ThreadedComment` items on demand; each `iter()` starts
    a fresh walk, so the same thread can be consumed any number of times.
    Integrity is verified once, at construction.
    """

    def __init__(
        self,
        post_id: uuid.UUID,
        comments: Sequence[Comment],
        ordering: CommentOrdering = CommentOrdering.OLDEST_FIRST,
    ):
        self.post_id = post_id
        self.ordering = ordering

        children: Dict[Optional[uuid.UUID], List[Comment]] = defaultdict(list)
        stray: Set[uuid.UUID] = set()
        for comment in comments:
            if comment.post_id != post_id:
                stray.add(comment.id)
                continue
            children[comment.parent_id].append(comment)

        reverse = ordering is CommentOrdering.NEWEST_FIRST
        for siblings in children.values():
            siblings.sort(key=lambda c: (c.created_at, c.id), reverse=reverse)
        self._children = dict(children)

        reached = self._walk_from_post()
        unreachable = {c.id for c in comments} - {c.id for c in reached}
        if stray or unreachable:
            raise ThreadIntegrityError(
                post_id=str(post_id),
                comment_ids=[str(cid) for cid in stray | unreachable],
            )

        self._visible = self._visible_ids(reached)

    def _walk_from_post(self) -> List[Comment]:
        # Each comment sits in exactly one sibling list, so a walk from the
        # post can never revisit a node; cyclic chains are simply not reached.
        order: List[Comment] = []
        stack = list(reversed(self._children.get(None, [])))
        while stack:
            comment = stack.pop()
            order.append(comment)
            stack.extend(reversed(self._children.get(comment.id, [])))
        return order

    def _visible_ids(self, preorder: List[Comment]) -> Set[uuid.UUID]:
        visible: Set[uuid.UUID] = set()
        # reverse preorder visits every reply before its parent
        for comment in reversed(preorder):
            if not comment.is_deleted or any(
                child.id in visible for child in self._children.get(comment.id, [])
            ):
                visible.add(comment.id)
        return visible

    def __iter__(self) -> Iterator[ThreadedComment]:
        stack = [(c, 0) for c in reversed(self._children.get(None, []))]
        while stack:
            comment, depth = stack.pop()
            if comment.id not in self._visible:
                continue
            yield ThreadedComment(comment=comment, depth=depth)
            stack.extend(
                (child, depth + 1)
                for child in reversed(self._children.get(comment.id, []))
            )

    def __len__(self) -> int:
        return len(self._visible)

    def __repr__(self) -> str:
        return f"<CommentThread(post_id={self.post_id}, comments={len(self)}, ordering={self.ordering.value})>"
