"""
Ordered retrieval and statistics over persisted records.
"""

from typing import Any, Dict, List

import structlog

from chainwatch.core.exceptions import InvalidArgumentError
from .record_store import RecordStore
from .types import ContractEvent, HealthCheck, Record, RecordKind


logger = structlog.get_logger(__name__)


class RecordQueries:
    """Read side of the record store."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def get_recent(self, kind: RecordKind, limit: int) -> List[Record]:
        """Up to ``limit`` most recent records, newest first."""
        if limit <= 0:
            raise InvalidArgumentError("Limit must be positive", {"limit": limit})
        return await self.store.find(kind, limit=limit, descending=True)

    async def get_statistics(self, kind: RecordKind) -> Dict[str, int]:
        """
        Count every stored record of a kind by its discriminant.

        Runs over the full history with no time window, so the cost grows
        with the store.
        """
        return await self.store.aggregate_count(kind)

    async def get_recent_events(self, limit: int = 10) -> List[ContractEvent]:
        return await self.get_recent(RecordKind.EVENTS, limit)

    async def get_health_history(self, limit: int = 10) -> List[HealthCheck]:
        return await self.get_recent(RecordKind.HEALTH_CHECKS, limit)

    async def get_event_statistics(self) -> Dict[str, int]:
        return await self.get_statistics(RecordKind.EVENTS)

    async def get_event_statistics_detailed(self) -> Dict[str, Dict[str, Any]]:
        """Count and last occurrence per event type."""
        return await self.store.aggregate_last_occurrence(RecordKind.EVENTS)

    async def count_events(self) -> int:
        return await self.store.count(RecordKind.EVENTS)
