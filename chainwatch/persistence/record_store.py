"""
Record store client over async SQLAlchemy.

Every call is a single awaited round trip. Driver and connection failures
surface as ``TransientStoreError``; a bulk insert that lands only part of
its rows raises ``BulkWriteError`` naming the rows that made it.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Type

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, SQLAlchemyError

from chainwatch.core.database import Database
from chainwatch.core.exceptions import (
    BulkWriteError,
    InvalidArgumentError,
    StoreConnectionError,
    TransientStoreError,
)
from chainwatch.models.base import BaseModel
from chainwatch.models.event import EventRecord
from chainwatch.models.health_check import HealthCheckRecord
from .types import Record, RecordKind


logger = structlog.get_logger(__name__)


_MODELS: Dict[RecordKind, Type[BaseModel]] = {
    RecordKind.EVENTS: EventRecord,
    RecordKind.HEALTH_CHECKS: HealthCheckRecord,
}


def _is_connection_failure(error: BaseException) -> bool:
    if isinstance(error, (OperationalError, InterfaceError, OSError)):
        return True
    return isinstance(error, DBAPIError) and bool(error.connection_invalidated)


class RecordStore:
    """Durable, queryable store of contract events and health checks."""

    def __init__(self, database: Database):
        self.database = database
        self.logger = logger.bind(service="record_store")

    async def connect(self) -> None:
        """Connect if not already connected. Raises ``StoreConnectionError``."""
        await self.database.connect()

    async def disconnect(self) -> None:
        await self.database.disconnect()

    async def ping(self) -> bool:
        return await self.database.health_check()

    def model_for(self, kind: RecordKind) -> Type[BaseModel]:
        return _MODELS[kind]

    async def insert_one(self, kind: RecordKind, record: Record) -> None:
        """Insert a single record in its own transaction."""
        model = self.model_for(kind)
        try:
            async with self.database.session() as session:
                session.add(model.from_record(record))
        except StoreConnectionError as e:
            raise TransientStoreError(e.message, e.details) from e
        except (SQLAlchemyError, OSError) as e:
            raise TransientStoreError(
                f"Failed to insert into {kind.value}: {e}",
                {"kind": kind.value, "error_type": type(e).__name__}
            ) from e

    async def insert_many(self, kind: RecordKind, records: Sequence[Record], ordered: bool) -> int:
        """
        Insert records, returning how many were written.

        The whole batch is tried in one transaction first. When that fails
        for a row-level reason the rows are replayed one by one: ordered
        mode stops at the first failing row, unordered mode skips it and
        keeps going. Either way a partial result raises ``BulkWriteError``.
        A connection-level failure raises ``TransientStoreError`` with
        nothing written.
        """
        if not records:
            return 0

        model = self.model_for(kind)
        try:
            async with self.database.session() as session:
                session.add_all([model.from_record(record) for record in records])
            return len(records)
        except StoreConnectionError as e:
            raise TransientStoreError(e.message, e.details) from e
        except (SQLAlchemyError, OSError) as e:
            if _is_connection_failure(e):
                raise TransientStoreError(
                    f"Bulk insert into {kind.value} failed: {e}",
                    {"kind": kind.value, "error_type": type(e).__name__}
                ) from e
            self.logger.warning(
                "Bulk insert rejected, replaying rows individually",
                kind=kind.value,
                count=len(records),
                ordered=ordered,
                error=str(e)
            )

        inserted: List[int] = []
        failed: List[int] = []
        for index, record in enumerate(records):
            try:
                await self.insert_one(kind, record)
                inserted.append(index)
            except TransientStoreError:
                failed.append(index)
                if ordered:
                    failed.extend(range(index + 1, len(records)))
                    break

        if failed:
            raise BulkWriteError(
                f"Bulk insert into {kind.value} wrote {len(inserted)} of {len(records)} records",
                inserted=inserted,
                failed=failed,
                details={"kind": kind.value, "ordered": ordered}
            )
        return len(inserted)

    async def find(
        self,
        kind: RecordKind,
        discriminants: Optional[Iterable[str]] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: Optional[int] = None,
        descending: bool = True,
    ) -> List[Record]:
        """Fetch records ordered by timestamp (newest first by default)."""
        model = self.model_for(kind)
        stmt = select(model)

        if discriminants is not None:
            stmt = stmt.where(getattr(model, kind.discriminant).in_(list(discriminants)))
        if since is not None:
            stmt = stmt.where(model.timestamp >= since)
        if until is not None:
            stmt = stmt.where(model.timestamp <= until)

        if descending:
            stmt = stmt.order_by(model.timestamp.desc(), model.id.desc())
        else:
            stmt = stmt.order_by(model.timestamp.asc(), model.id.asc())

        if limit is not None:
            stmt = stmt.limit(limit)

        try:
            async with self.database.session() as session:
                result = await session.execute(stmt)
                rows = result.scalars().all()
        except StoreConnectionError as e:
            raise TransientStoreError(e.message, e.details) from e
        except (SQLAlchemyError, OSError) as e:
            raise TransientStoreError(
                f"Query on {kind.value} failed: {e}",
                {"kind": kind.value, "error_type": type(e).__name__}
            ) from e

        return [row.to_record() for row in rows]

    async def aggregate_count(self, kind: RecordKind, group_by: Optional[str] = None) -> Dict[str, int]:
        """Count records grouped by a column (the discriminant by default)."""
        model = self.model_for(kind)
        field_name = group_by or kind.discriminant
        if field_name not in model.__table__.columns:
            raise InvalidArgumentError(
                f"Cannot group {kind.value} by '{field_name}'",
                {"kind": kind.value, "group_by": field_name}
            )

        column = getattr(model, field_name)
        stmt = select(column, func.count()).group_by(column)
        rows = await self._execute_rows(kind, stmt)
        return {str(key): count for key, count in rows}

    async def aggregate_last_occurrence(self, kind: RecordKind) -> Dict[str, Dict[str, Any]]:
        """Count and latest timestamp per discriminant value."""
        model = self.model_for(kind)
        column = getattr(model, kind.discriminant)
        stmt = select(column, func.count(), func.max(model.timestamp)).group_by(column)
        rows = await self._execute_rows(kind, stmt)

        summary = {}
        for key, count, last in rows:
            # func.max bypasses the column type, so sqlite may hand back a string
            if isinstance(last, str):
                last = datetime.fromisoformat(last)
            summary[str(key)] = {
                "count": count,
                "last_occurrence": model.timestamp.type.process_result_value(last, None),
            }
        return summary

    async def count(self, kind: RecordKind) -> int:
        model = self.model_for(kind)
        rows = await self._execute_rows(kind, select(func.count()).select_from(model))
        return rows[0][0] if rows else 0

    async def delete_all(self, kind: RecordKind) -> int:
        """Remove every record of a kind. Used by tests and the reset command."""
        model = self.model_for(kind)
        try:
            async with self.database.session() as session:
                result = await session.execute(delete(model))
                deleted = result.rowcount or 0
        except StoreConnectionError as e:
            raise TransientStoreError(e.message, e.details) from e
        except (SQLAlchemyError, OSError) as e:
            raise TransientStoreError(
                f"Delete on {kind.value} failed: {e}",
                {"kind": kind.value, "error_type": type(e).__name__}
            ) from e
        self.logger.info("Records deleted", kind=kind.value, count=deleted)
        return deleted

    async def _execute_rows(self, kind: RecordKind, stmt) -> List[Any]:
        try:
            async with self.database.session() as session:
                result = await session.execute(stmt)
                return list(result.all())
        except StoreConnectionError as e:
            raise TransientStoreError(e.message, e.details) from e
        except (SQLAlchemyError, OSError) as e:
            raise TransientStoreError(
                f"Aggregation on {kind.value} failed: {e}",
                {"kind": kind.value, "error_type": type(e).__name__}
            ) from e
