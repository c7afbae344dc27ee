"""
Resilient batch writer for contract events and health checks.

A batch goes through four steps:
1. validation partition: discriminant present, known status, non-negative
   block number and a timestamp that coerces to aware UTC (invalid records
   never reach the store, their count and reasons are always logged)
2. timestamp normalization of the valid records
3. bulk insert with exponential backoff, shrinking the pending set by
   whatever a partial bulk failure reports as written
4. reconciliation once retries are exhausted: look up which pending records
   the store already has and save the rest one at a time

Reconciliation matches on (discriminant, timestamp) inside the time window
the batch spans. Two concurrent batches holding records with identical
discriminant and timestamp can therefore mistake each other's rows for
their own; there is no client-side idempotency key.
"""

import asyncio
from collections import Counter
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, TypeVar

import structlog

from chainwatch.core.config import settings, Settings
from chainwatch.core.exceptions import (
    BulkWriteError,
    NoValidRecordsError,
    ReconciliationGap,
    StoreError,
    ValidationError,
)
from .record_store import RecordStore
from .types import (
    BatchOutcome,
    ContractEvent,
    HealthCheck,
    Record,
    RecordKind,
    discriminant_of,
    normalize_timestamp,
    validate_record,
)


logger = structlog.get_logger(__name__)

T = TypeVar("T")


class BatchWriter:
    """Writes record batches best-effort and reports what did not make it."""

    def __init__(
        self,
        store: RecordStore,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        ordered_by_kind: Optional[dict] = None,
        reconcile_window: Optional[float] = None,
        config: Optional[Settings] = None,
    ):
        config = config or settings
        self.store = store
        self.max_attempts = max_attempts if max_attempts is not None else config.writer_max_attempts
        self.base_delay = base_delay if base_delay is not None else config.writer_base_delay
        # Events tolerate independent failures; health checks are a time series
        self.ordered_by_kind = ordered_by_kind or {
            RecordKind.EVENTS: config.writer_events_ordered,
            RecordKind.HEALTH_CHECKS: config.writer_health_checks_ordered,
        }
        self.reconcile_window = timedelta(
            seconds=reconcile_window if reconcile_window is not None else config.reconcile_window_seconds
        )
        self.logger = logger.bind(service="batch_writer")

    async def save_events(self, events: Sequence[ContractEvent]) -> BatchOutcome:
        return await self.save_batch(RecordKind.EVENTS, events)

    async def save_health_checks(self, checks: Sequence[HealthCheck]) -> BatchOutcome:
        return await self.save_batch(RecordKind.HEALTH_CHECKS, checks)

    async def save_one(self, kind: RecordKind, record: Record) -> None:
        """Validate, normalize and insert a single record with retries."""
        try:
            timestamp = validate_record(kind, record)
        except ValidationError as e:
            self.logger.warning("Rejected invalid record", kind=kind.value, reason=e.message)
            raise NoValidRecordsError(kind.label, 1) from e
        await self.store.connect()
        record.timestamp = timestamp
        await self._retry_with_backoff(
            lambda: self.store.insert_one(kind, record),
            name=f"insert_one:{kind.value}",
        )

    async def save_batch(
        self,
        kind: RecordKind,
        records: Sequence[Record],
        ordered: Optional[bool] = None,
    ) -> BatchOutcome:
        """
        Save a batch of records of one kind.

        Returns a ``BatchOutcome`` describing the partition. Raises
        ``NoValidRecordsError`` when nothing in the batch is valid and
        ``StoreConnectionError`` when the store cannot be reached at all;
        partial failures are logged and reported, never raised.
        """
        if ordered is None:
            ordered = self.ordered_by_kind.get(kind, False)

        outcome = BatchOutcome(kind=kind)
        timestamps: List[datetime] = []
        reasons = Counter()
        for record in records:
            try:
                timestamps.append(validate_record(kind, record))
                outcome.valid.append(record)
            except ValidationError as e:
                outcome.invalid.append(record)
                reasons[e.message] += 1

        if outcome.invalid:
            self.logger.warning(
                f"Failed to save {outcome.invalid_count} invalid {kind.label}",
                kind=kind.value,
                invalid=outcome.invalid_count,
                reasons=dict(reasons)
            )

        if not outcome.valid:
            raise NoValidRecordsError(kind.label, outcome.invalid_count)

        await self.store.connect()

        for record, timestamp in zip(outcome.valid, timestamps):
            record.timestamp = timestamp

        pending: List[Record] = list(outcome.valid)
        written: List[Record] = []
        last_error: Optional[Exception] = None

        for attempt in range(self.max_attempts):
            outcome.attempts = attempt + 1
            try:
                await self.store.insert_many(kind, pending, ordered=ordered)
                written.extend(pending)
                pending = []
                break
            except BulkWriteError as e:
                written.extend(pending[i] for i in e.inserted)
                pending = [pending[i] for i in e.failed]
                last_error = e
            except StoreError as e:
                last_error = e

            if attempt < self.max_attempts - 1:
                delay = self.base_delay * (2 ** attempt)
                self.logger.warning(
                    f"Retry attempt {attempt + 1} failed. Retrying in {int(delay * 1000)}ms...",
                    kind=kind.value,
                    pending=len(pending),
                    error=str(last_error)
                )
                await asyncio.sleep(delay)

        outcome.confirmed_saved.extend(written)

        if pending:
            self.logger.error(
                f"Failed to save {kind.label} after all retry attempts: {last_error}",
                kind=kind.value,
                pending=len(pending),
                attempts=outcome.attempts
            )
            saved, unsaved = await self._reconcile(kind, pending)
            outcome.reconciled = True
            outcome.confirmed_saved.extend(saved)
            outcome.unconfirmed_saved.extend(unsaved)

        self.logger.info(
            "Batch saved",
            kind=kind.value,
            valid=len(outcome.valid),
            invalid=outcome.invalid_count,
            saved=outcome.saved_count,
            failed=outcome.failed_count,
            attempts=outcome.attempts,
            reconciled=outcome.reconciled
        )
        return outcome

    async def reconcile(self, kind: RecordKind, records: Sequence[Record]) -> Tuple[List[Record], List[Record]]:
        """
        Make sure each record is in the store exactly once.

        Records already present are left alone, the rest are inserted one
        by one. Returns ``(saved, unsaved)``; records that fail validation are
        never written and come back as unsaved. Running it again over the
        same records writes nothing new.
        """
        valid: List[Record] = []
        rejected: List[Record] = []
        for record in records:
            try:
                record.timestamp = validate_record(kind, record)
                valid.append(record)
            except ValidationError as e:
                self.logger.warning("Rejected invalid record", kind=kind.value, reason=e.message)
                rejected.append(record)
        if not valid:
            return [], rejected
        saved, unsaved = await self._reconcile(kind, valid)
        return saved, unsaved + rejected

    async def _reconcile(self, kind: RecordKind, pending: List[Record]) -> Tuple[List[Record], List[Record]]:
        already_saved, missing = await self._partition_by_presence(kind, pending)

        self.logger.info(
            "Reconciling unsaved records",
            kind=kind.value,
            found=len(already_saved),
            missing=len(missing)
        )

        saved = list(already_saved)
        unsaved: List[Record] = []
        for record in missing:
            try:
                await self._retry_with_backoff(
                    lambda record=record: self.store.insert_one(kind, record),
                    name=f"insert_one:{kind.value}",
                )
                saved.append(record)
            except StoreError as e:
                gap = ReconciliationGap(
                    f"Failed to save individual {kind.label[:-1]}: {e.message}",
                    {
                        "kind": kind.value,
                        kind.discriminant: discriminant_of(kind, record),
                        "timestamp": record.timestamp.isoformat(),
                    }
                )
                self.logger.error(gap.message, **gap.details)
                unsaved.append(record)

        return saved, unsaved

    async def _partition_by_presence(
        self, kind: RecordKind, pending: List[Record]
    ) -> Tuple[List[Record], List[Record]]:
        timestamps = [record.timestamp for record in pending]
        try:
            stored = await self.store.find(
                kind,
                discriminants={discriminant_of(kind, record) for record in pending},
                since=min(timestamps) - self.reconcile_window,
                until=max(timestamps) + self.reconcile_window,
            )
        except StoreError as e:
            self.logger.error(
                "Could not verify saved records, treating all as unsaved",
                kind=kind.value,
                count=len(pending),
                error=str(e)
            )
            return [], list(pending)

        available = Counter(self._match_key(kind, record) for record in stored)
        present: List[Record] = []
        missing: List[Record] = []
        for record in pending:
            key = self._match_key(kind, record)
            if available[key] > 0:
                available[key] -= 1
                present.append(record)
            else:
                missing.append(record)
        return present, missing

    @staticmethod
    def _match_key(kind: RecordKind, record: Record) -> Tuple[str, str]:
        timestamp = normalize_timestamp(record.timestamp)
        return discriminant_of(kind, record), timestamp.isoformat(timespec="milliseconds")

    async def _retry_with_backoff(self, func: Callable[[], Awaitable[T]], name: str) -> T:
        last_error: Optional[StoreError] = None

        for attempt in range(self.max_attempts):
            try:
                return await func()
            except StoreError as e:
                last_error = e
                if attempt < self.max_attempts - 1:
                    delay = self.base_delay * (2 ** attempt)
                    self.logger.warning(
                        f"Retry attempt {attempt + 1} failed. Retrying in {int(delay * 1000)}ms...",
                        operation=name,
                        error=str(e)
                    )
                    await asyncio.sleep(delay)

        raise last_error
