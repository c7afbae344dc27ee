"""
Database models.
"""

from .base import Base, BaseModel, TimestampMixin, UTCDateTime
from .event import EventRecord
from .health_check import HealthCheckRecord

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "UTCDateTime",
    "EventRecord",
    "HealthCheckRecord",
]
