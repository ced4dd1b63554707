"""
Column types shared by the ORM models.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Text
from sqlalchemy.dialects import mysql
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC timestamp stored as a naive DATETIME.

    MySQL DATETIME has no zone and second precision by default, so the
    column is declared DATETIME(6) there and values are normalized to UTC
    on the way in and tagged as UTC on the way out. Naive datetimes are
    rejected at bind time.
    """

    impl = DateTime
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "mysql":
            return dialect.type_descriptor(mysql.DATETIME(fsp=6))
        return dialect.type_descriptor(DateTime())

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("UTCDateTime requires a timezone-aware datetime")
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


# Source code bodies can exceed MySQL TEXT's 64KB byte limit once encoded as utf8mb4
LongText = Text().with_variant(mysql.MEDIUMTEXT(), "mysql")
