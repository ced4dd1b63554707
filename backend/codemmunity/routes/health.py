"""
Codemmunity Backend: Health Check Route
=========================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Runs a single SELECT 1 through the ConnectionManager.

    Status levels:
    - healthy:   database reachable (HTTP 200)
    - unhealthy: database unreachable (HTTP 503, stop routing traffic)

No retries here either: a failed probe is reported as-is and the next probe
tries again.
"""

import logging
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from codemmunity import __version__
from codemmunity.database import ConnectionManager
from codemmunity.exceptions import DatabaseConnectionError
from codemmunity.routes.deps import get_connection_manager
from codemmunity.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"description": "Database unreachable", "model": HealthResponse}},
    summary="Service health check",
)
async def health_check(db: ConnectionManager = Depends(get_connection_manager)):
    db_status = "connected"
    overall = "healthy"
    try:
        await db.ping()
    except DatabaseConnectionError as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unavailable (%s): %s", e.reason, e.message)

    body = HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        transport="encrypted" if db.config.is_encrypted else "plain",
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    if overall != "healthy":
        return JSONResponse(status_code=503, content=body.model_dump())
    return body
