"""
Declarative base, shared mixins and column types for all models.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """
    Stores naive UTC and always hands back timezone-aware UTC values.

    SQLite drops tzinfo on the way in; normalizing at the column keeps
    timestamps comparable across backends.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.replace(tzinfo=None)

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """Declarative base class."""


class BaseModel(Base):
    """Abstract base for all tables."""

    __abstract__ = True

    def to_dict(self) -> Dict[str, Any]:
        return {column.name: getattr(self, column.key) for column in self.__table__.columns}


class TimestampMixin:
    """Adds the time a row was written, independent of the record's own timestamp."""

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        server_default=func.now(),
        comment="When the row was inserted"
    )
