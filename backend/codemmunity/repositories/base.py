"""
Shared plumbing for the repositories: clock, input checks, user lookups.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from codemmunity.database import ConnectionManager
from codemmunity.exceptions import NotFoundError, ValidationError
from codemmunity.models import UserRow

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Repository:
    """
    Base class for the repositories.

    Every public operation opens its own transaction through the
    ConnectionManager; repositories hold no session between calls and are
    safe to share across concurrent requests.
    """

    def __init__(self, db: ConnectionManager, clock: Clock = utcnow):
        self._db = db
        self._clock = clock

    @staticmethod
    def _require_text(value: Optional[str], field: str, max_length: int) -> str:
        if value is None or not value.strip():
            raise ValidationError(message=f"{field} must not be empty", field=field)
        if len(value) > max_length:
            raise ValidationError(
                message=f"{field} must be at most {max_length} characters",
                field=field,
                context={"max_length": max_length},
            )
        return value

    async def _require_user(self, session: AsyncSession, user_id: str) -> UserRow:
        result = await self._db.execute(session, select(UserRow).where(UserRow.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError(resource="user", resource_id=user_id)
        return user

    async def _user_name(self, session: AsyncSession, user_id: str) -> Optional[str]:
        result = await self._db.execute(session, select(UserRow.name).where(UserRow.id == user_id))
        return result.scalar_one_or_none()
