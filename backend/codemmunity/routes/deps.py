"""
Codemmunity Backend: Route Dependencies
=========================================

What:  FastAPI dependencies shared by the routers.

    get_connection_manager  → the ConnectionManager on app.state
    get_post_repository     → PostRepository bound to it
    get_comment_repository  → CommentRepository bound to it
    get_actor               → identity forwarded by the auth gateway

Also provides `run_until_disconnect`, which abandons a repository call (and
rolls back its transaction) when the client goes away mid-request.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Optional, TypeVar

from fastapi import Depends, Header, HTTPException, Request

from codemmunity.database import ConnectionManager
from codemmunity.models import USER_ID_LENGTH
from codemmunity.repositories import CommentRepository, PostRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

MODERATOR_ROLE = "moderator"
DISCONNECT_POLL_INTERVAL = 0.1


def get_connection_manager(request: Request) -> ConnectionManager:
    manager = getattr(request.app.state, "db", None)
    if manager is None:
        raise RuntimeError("Database connection manager is not initialized")
    return manager


def get_post_repository(
    db: ConnectionManager = Depends(get_connection_manager),
) -> PostRepository:
    return PostRepository(db)


def get_comment_repository(
    db: ConnectionManager = Depends(get_connection_manager),
) -> CommentRepository:
    return CommentRepository(db)


@dataclass(frozen=True)
class Actor:
    """The already-authenticated user issuing the request."""

    user_id: str
    is_moderator: bool = False


def get_actor(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-ID"),
    x_user_role: Optional[str] = Header(default=None, alias="X-User-Role"),
) -> Actor:
    """
    Read the caller identity set by the upstream auth gateway.

    The header value is trusted as-is; authentication happens before the
    request reaches this service.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="X-User-ID header is required")
    user_id = x_user_id.strip()
    if len(user_id) > USER_ID_LENGTH:
        raise HTTPException(status_code=401, detail="X-User-ID header is malformed")
    is_moderator = (x_user_role or "").strip().lower() == MODERATOR_ROLE
    return Actor(user_id=user_id, is_moderator=is_moderator)


class ClientDisconnected(Exception):
    """The client closed the connection before the operation finished."""


async def _wait_for_disconnect(request: Request) -> None:
    while not await request.is_disconnected():
        await asyncio.sleep(DISCONNECT_POLL_INTERVAL)


async def run_until_disconnect(request: Request, operation: Awaitable[T]) -> T:
    """
    Await `operation`, cancelling it if the client disconnects first.

    Cancellation propagates into the repository's transaction scope, which
    rolls the transaction back instead of letting it commit unobserved.
    The operation never outlives this call: if the caller itself is
    cancelled, the operation is cancelled and awaited before the
    CancelledError propagates.

    Raises:
        ClientDisconnected: the client went away; nobody reads the response.
    """
    task = asyncio.ensure_future(operation)
    watcher = asyncio.ensure_future(_wait_for_disconnect(request))
    try:
        await asyncio.wait({task, watcher}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        watcher.cancel()
        if not task.done():
            await _abort(task)

    if not task.cancelled():
        return task.result()

    logger.info("Client disconnected; %s %s aborted", request.method, request.url.path)
    raise ClientDisconnected()


async def _abort(task: asyncio.Future) -> None:
    task.cancel()
    # asyncio.wait never raises the task's own CancelledError
    await asyncio.wait({task})
