"""
Codemmunity Backend: Post Route Handlers
==========================================

What:  /api/posts: list, publish, read, edit, delete, likes, and the
       comment thread of a post.
How:   Extracts path/query/body, delegates to the repositories, returns JSON.
       Repository errors propagate to the global exception handlers.

Caching Strategy:
    - Writes: never cached
    - GET /api/posts and GET /api/posts/{id}: no-cache (likes and edits change them)
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response

from codemmunity.entities import CommentOrdering
from codemmunity.repositories import CommentRepository, PostRepository
from codemmunity.routes.deps import (
    Actor,
    get_actor,
    get_comment_repository,
    get_post_repository,
    run_until_disconnect,
)
from codemmunity.schemas.comment import CommentThreadResponse
from codemmunity.schemas.common import ErrorResponse
from codemmunity.schemas.post import (
    LikeMode,
    PostCreate,
    PostListResponse,
    PostResponse,
    PostUpdate,
)

logger = logging.getLogger(__name__)

# ── Router Configuration ──────────────────────────────────────────────────
router = APIRouter(prefix="/api", tags=["Posts"])

_ERRORS = {
    400: {"description": "Invalid input", "model": ErrorResponse},
    404: {"description": "Post not found", "model": ErrorResponse},
    503: {"description": "Database unavailable", "model": ErrorResponse},
}
_WRITE_ERRORS = {
    **_ERRORS,
    401: {"description": "Missing X-User-ID", "model": ErrorResponse},
    403: {"description": "Not allowed for this user", "model": ErrorResponse},
}


@router.get(
    "/posts",
    response_model=PostListResponse,
    responses={400: _ERRORS[400], 503: _ERRORS[503]},
    summary="List posts, newest first",
)
async def list_posts(
    request: Request,
    response: Response,
    page: int = Query(default=1, description="1-based page number"),
    page_size: int = Query(default=20, description="Items per page (1-100)"),
    posts: PostRepository = Depends(get_post_repository),
) -> PostListResponse:
    """
    Page through posts ordered by (created_at DESC, id DESC).

    Repeating a request returns the same page while no post is added or
    removed. The total is repeated in the X-Total-Count header.
    """
    result = await run_until_disconnect(request, posts.list_posts(page=page, page_size=page_size))
    response.headers["X-Total-Count"] = str(result.total_count)
    response.headers["Cache-Control"] = "no-cache"
    return PostListResponse.from_page(result)


@router.post(
    "/posts",
    response_model=PostResponse,
    status_code=201,
    responses=_WRITE_ERRORS,
    summary="Publish a post",
)
async def create_post(
    payload: PostCreate,
    request: Request,
    actor: Actor = Depends(get_actor),
    posts: PostRepository = Depends(get_post_repository),
) -> PostResponse:
    post = await run_until_disconnect(
        request, posts.create_post(actor.user_id, payload.title, payload.body)
    )
    return PostResponse.from_entity(post)


@router.get(
    "/posts/{post_id}",
    response_model=PostResponse,
    responses=_ERRORS,
    summary="Get a single post",
)
async def get_post(
    post_id: UUID,
    request: Request,
    response: Response,
    posts: PostRepository = Depends(get_post_repository),
) -> PostResponse:
    post = await run_until_disconnect(request, posts.get_post(post_id))
    response.headers["Cache-Control"] = "no-cache"
    return PostResponse.from_entity(post)


@router.patch(
    "/posts/{post_id}",
    response_model=PostResponse,
    responses=_WRITE_ERRORS,
    summary="Edit a post (author only)",
)
async def update_post(
    post_id: UUID,
    payload: PostUpdate,
    request: Request,
    actor: Actor = Depends(get_actor),
    posts: PostRepository = Depends(get_post_repository),
) -> PostResponse:
    post = await run_until_disconnect(
        request,
        posts.update_post(post_id, actor.user_id, title=payload.title, body=payload.body),
    )
    return PostResponse.from_entity(post)


@router.delete(
    "/posts/{post_id}",
    status_code=204,
    response_class=Response,
    responses=_WRITE_ERRORS,
    summary="Delete a post and its whole thread (author or moderator)",
)
async def delete_post(
    post_id: UUID,
    request: Request,
    actor: Actor = Depends(get_actor),
    posts: PostRepository = Depends(get_post_repository),
) -> Response:
    await run_until_disconnect(
        request,
        posts.delete_post(post_id, actor.user_id, is_moderator=actor.is_moderator),
    )
    return Response(status_code=204)


@router.patch(
    "/posts/{post_id}/likes",
    response_model=PostResponse,
    responses=_ERRORS,
    summary="Increment or decrement the like counter",
)
async def adjust_likes(
    post_id: UUID,
    request: Request,
    mode: LikeMode = Query(description="increment or decrement"),
    posts: PostRepository = Depends(get_post_repository),
) -> PostResponse:
    """The counter never drops below zero."""
    post = await run_until_disconnect(request, posts.adjust_likes(post_id, mode.delta))
    return PostResponse.from_entity(post)


@router.get(
    "/posts/{post_id}/comments",
    response_model=CommentThreadResponse,
    responses={**_ERRORS, 500: {"description": "Corrupted thread", "model": ErrorResponse}},
    summary="List a post's comments in thread order",
)
async def list_comments(
    post_id: UUID,
    request: Request,
    ordering: CommentOrdering = Query(
        default=CommentOrdering.OLDEST_FIRST,
        description="Sibling order: 'oldest' or 'newest' first",
    ),
    comments: CommentRepository = Depends(get_comment_repository),
) -> CommentThreadResponse:
    """
    Depth-first thread: each comment follows its parent, siblings sorted by
    creation time. Deleted comments appear as placeholders only while they
    still have visible replies.
    """
    thread = await run_until_disconnect(request, comments.list_comments(post_id, ordering))
    return CommentThreadResponse.from_thread(thread)
