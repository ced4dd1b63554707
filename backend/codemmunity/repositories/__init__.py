# Repositories package init
"""
Codemmunity Backend: Repository Layer
=======================================

What:  The only code that writes persisted state.
How:   Each repository receives the ConnectionManager at construction and
       opens one transaction per public operation.

Repository Inventory:
    - PostRepository:     posts CRUD, newest-first paging, likes
    - CommentRepository:  comments CRUD (tombstoning delete), thread listing
    - CommentThread:      lazy depth-first thread view with integrity checks
"""

from codemmunity.repositories.comment_repository import CommentRepository
from codemmunity.repositories.post_repository import PostRepository
from codemmunity.repositories.thread import CommentThread

__all__ = ["CommentRepository", "CommentThread", "PostRepository"]
