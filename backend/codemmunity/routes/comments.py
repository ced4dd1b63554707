"""
Codemmunity Backend: Comment Route Handlers
=============================================

What:  /api/comments: reply to a post or a comment, read, edit, delete.
       The thread listing lives under /api/posts/{id}/comments.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response

from codemmunity.repositories import CommentRepository
from codemmunity.routes.deps import (
    Actor,
    get_actor,
    get_comment_repository,
    run_until_disconnect,
)
from codemmunity.schemas.comment import CommentCreate, CommentResponse, CommentUpdate
from codemmunity.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Comments"])

_ERRORS = {
    400: {"description": "Invalid input", "model": ErrorResponse},
    401: {"description": "Missing X-User-ID", "model": ErrorResponse},
    403: {"description": "Not allowed for this user", "model": ErrorResponse},
    404: {"description": "Comment, post or parent not found", "model": ErrorResponse},
    503: {"description": "Database unavailable", "model": ErrorResponse},
}


@router.post(
    "/comments",
    response_model=CommentResponse,
    status_code=201,
    responses=_ERRORS,
    summary="Comment on a post or reply to a comment",
)
async def create_comment(
    payload: CommentCreate,
    request: Request,
    actor: Actor = Depends(get_actor),
    comments: CommentRepository = Depends(get_comment_repository),
) -> CommentResponse:
    """
    Exactly one of `post_id` / `parent_id` must be given. Replying to a
    deleted comment, or to a post that is being deleted, returns 404.
    """
    comment = await run_until_disconnect(
        request, comments.create_comment(actor.user_id, payload.parent(), payload.body)
    )
    return CommentResponse.from_entity(comment)


@router.get(
    "/comments/{comment_id}",
    response_model=CommentResponse,
    responses={404: _ERRORS[404], 503: _ERRORS[503]},
    summary="Get a single comment",
)
async def get_comment(
    comment_id: UUID,
    request: Request,
    comments: CommentRepository = Depends(get_comment_repository),
) -> CommentResponse:
    comment = await run_until_disconnect(request, comments.get_comment(comment_id))
    return CommentResponse.from_entity(comment)


@router.patch(
    "/comments/{comment_id}",
    response_model=CommentResponse,
    responses=_ERRORS,
    summary="Edit a comment (author only)",
)
async def update_comment(
    comment_id: UUID,
    payload: CommentUpdate,
    request: Request,
    actor: Actor = Depends(get_actor),
    comments: CommentRepository = Depends(get_comment_repository),
) -> CommentResponse:
    comment = await run_until_disconnect(
        request, comments.update_comment(comment_id, actor.user_id, payload.body)
    )
    return CommentResponse.from_entity(comment)


@router.delete(
    "/comments/{comment_id}",
    status_code=204,
    response_class=Response,
    responses=_ERRORS,
    summary="Delete a comment (author or moderator)",
)
async def delete_comment(
    comment_id: UUID,
    request: Request,
    actor: Actor = Depends(get_actor),
    comments: CommentRepository = Depends(get_comment_repository),
) -> Response:
    """Replies stay visible under a placeholder."""
    await run_until_disconnect(
        request,
        comments.delete_comment(comment_id, actor.user_id, is_moderator=actor.is_moderator),
    )
    return Response(status_code=204)
