"""
Test resilient batch persistence: validation, retries, partial writes and
reconciliation.
"""

from datetime import datetime, timedelta, timezone

import pytest

from chainwatch.core.exceptions import NoValidRecordsError, StoreConnectionError
from chainwatch.core.database import Database
from chainwatch.persistence.batch_writer import BatchWriter
from chainwatch.persistence.record_store import RecordStore
from chainwatch.persistence.types import ContractEvent, RecordKind

from tests.conftest import make_events, make_health_check


async def test_mixed_batch_persists_only_valid_records(writer, queries):
    events = make_events(5)
    events.append(ContractEvent(event_type=None, data={"broken": True}))

    outcome = await writer.save_events(events)

    assert outcome.invalid_count == 1
    assert outcome.saved_count == 5
    assert outcome.complete
    assert outcome.attempts == 1
    assert await queries.count_events() == 5


async def test_empty_discriminant_counts_as_invalid(writer, queries):
    events = make_events(2) + [ContractEvent(event_type="")]

    outcome = await writer.save_events(events)

    assert outcome.invalid_count == 1
    assert await queries.count_events() == 2


async def test_unparseable_timestamp_rejects_only_that_record(writer, queries):
    events = make_events(4) + [ContractEvent(event_type="LimitChanged", timestamp="not-a-date")]

    outcome = await writer.save_events(events)

    assert outcome.invalid_count == 1
    assert outcome.invalid[0].timestamp == "not-a-date"
    assert outcome.saved_count == 4
    assert await queries.count_events() == 4


async def test_unknown_status_and_negative_block_are_invalid(writer, queries):
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    checks = [make_health_check("healthy", start), make_health_check("bogus", start)]

    outcome = await writer.save_health_checks(checks)

    assert outcome.invalid_count == 1
    assert [check.status for check in await queries.get_health_history()] == ["healthy"]

    events = make_events(2) + [ContractEvent(event_type="LimitChanged", block_number=-1)]
    outcome = await writer.save_events(events)

    assert outcome.invalid_count == 1
    assert await queries.count_events() == 2


async def test_batch_without_valid_records_raises(writer, store):
    with pytest.raises(NoValidRecordsError) as exc_info:
        await writer.save_events([ContractEvent(event_type=None), ContractEvent(event_type=None)])

    assert exc_info.value.details == {"kind": "events", "invalid": 2}
    assert await store.count(RecordKind.EVENTS) == 0


async def test_timestamps_are_normalized_to_utc(writer, queries):
    naive = datetime(2024, 5, 1, 12, 0, 0)
    events = [
        ContractEvent(event_type="ApiKeyUpdated", timestamp=naive),
        ContractEvent(event_type="LimitChanged", timestamp="2024-05-01T12:00:01Z"),
        ContractEvent(event_type="UsersBatchUpdated", timestamp=None),
    ]

    await writer.save_events(events)
    stored = await queries.get_recent_events(3)

    assert all(event.timestamp.tzinfo is not None for event in stored)
    assert events[0].timestamp == datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
    assert events[1].timestamp == datetime(2024, 5, 1, 12, 0, 1, tzinfo=timezone.utc)
    assert events[2].timestamp.tzinfo is not None


async def test_bulk_insert_retries_then_succeeds(flaky_store, flaky_writer, queries):
    flaky_store.insert_many_failures = 2

    outcome = await flaky_writer.save_events(make_events(4))

    assert outcome.attempts == 3
    assert outcome.saved_count == 4
    assert not outcome.reconciled
    assert flaky_store.insert_many_calls == 3
    assert await queries.count_events() == 4


async def test_partial_bulk_write_never_duplicates(flaky_store, flaky_writer, queries):
    flaky_store.partial_first = True

    outcome = await flaky_writer.save_events(make_events(6))

    assert outcome.attempts == 2
    assert outcome.saved_count == 6
    assert await queries.count_events() == 6


async def test_lost_acknowledgements_are_reconciled_without_duplicates(flaky_store, flaky_writer, queries):
    flaky_store.lose_acks = True

    outcome = await flaky_writer.save_events(make_events(5))

    assert outcome.reconciled
    assert outcome.saved_count == 5
    assert outcome.failed_count == 0
    # Every record was found by reconciliation, none re-inserted
    assert flaky_store.insert_one_calls == 0
    assert await queries.count_events() == 5


async def test_store_down_for_whole_batch(flaky_store, flaky_writer, queries):
    flaky_store.down = True
    events = make_events(50)

    outcome = await flaky_writer.save_events(events)

    assert outcome.attempts == flaky_writer.max_attempts
    assert outcome.reconciled
    assert outcome.saved_count == 0
    assert outcome.failed_count == 50
    assert not outcome.complete
    # Each record is retried on its own after the bulk attempts fail
    assert len({id(record) for record in flaky_store.attempted}) == 50
    assert flaky_store.insert_one_calls == 50 * flaky_writer.max_attempts
    assert await queries.get_recent_events(50) == []


async def test_reconcile_is_idempotent(writer, store, queries):
    events = make_events(3)
    await writer.save_events(events[:2])

    saved, unsaved = await writer.reconcile(RecordKind.EVENTS, events)
    assert len(saved) == 3
    assert unsaved == []
    assert await queries.count_events() == 3

    saved, unsaved = await writer.reconcile(RecordKind.EVENTS, events)
    assert len(saved) == 3
    assert await queries.count_events() == 3
    assert await queries.get_event_statistics() == {"ApiKeyUpdated": 3}


async def test_reconcile_matches_duplicates_as_a_multiset(writer, queries):
    timestamp = datetime(2024, 1, 1, tzinfo=timezone.utc)
    twins = [ContractEvent(event_type="LimitChanged", timestamp=timestamp) for _ in range(2)]
    await writer.save_events(twins[:1])

    saved, unsaved = await writer.reconcile(RecordKind.EVENTS, twins)

    assert len(saved) == 2
    assert await queries.count_events() == 2


async def test_reconcile_reports_invalid_records_as_unsaved(writer, queries):
    broken = ContractEvent(event_type="LimitChanged", timestamp=object())
    events = make_events(2) + [broken]

    saved, unsaved = await writer.reconcile(RecordKind.EVENTS, events)

    assert len(saved) == 2
    assert unsaved == [broken]
    assert await queries.count_events() == 2


async def test_backoff_delays_double(flaky_store, config, monkeypatch):
    delays = []

    async def fake_sleep(delay):
        delays.append(delay)

    monkeypatch.setattr("chainwatch.persistence.batch_writer.asyncio.sleep", fake_sleep)
    writer = BatchWriter(flaky_store, base_delay=1.0, config=config)
    flaky_store.insert_many_failures = 3
    flaky_store.down = False

    outcome = await writer.save_events(make_events(1))

    # No sleep after the last bulk attempt
    assert delays == [1.0, 2.0]
    assert outcome.reconciled
    assert outcome.saved_count == 1


async def test_health_checks_persist_in_order(writer, queries):
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    checks = [make_health_check(status, start + timedelta(minutes=i))
              for i, status in enumerate(["healthy", "degraded", "healthy"])]

    outcome = await writer.save_health_checks(checks)

    assert outcome.saved_count == 3
    history = await queries.get_health_history(3)
    assert [check.status for check in history] == ["healthy", "degraded", "healthy"]
    assert history[0].timestamp == start + timedelta(minutes=2)


async def test_ordered_mode_defaults_per_kind(writer):
    assert writer.ordered_by_kind[RecordKind.EVENTS] is False
    assert writer.ordered_by_kind[RecordKind.HEALTH_CHECKS] is True


async def test_save_one_validates_and_inserts(writer, queries):
    with pytest.raises(NoValidRecordsError):
        await writer.save_one(RecordKind.HEALTH_CHECKS, make_health_check(None, datetime.now(timezone.utc)))

    with pytest.raises(NoValidRecordsError):
        await writer.save_one(RecordKind.HEALTH_CHECKS, make_health_check("healthy", "yesterday"))

    await writer.save_one(RecordKind.HEALTH_CHECKS, make_health_check("healthy", None))

    history = await queries.get_health_history(5)
    assert len(history) == 1
    assert history[0].timestamp.tzinfo is not None


async def test_unreachable_store_is_a_hard_error(tmp_path, config):
    unreachable = config.model_copy(
        update={"database_url": f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'nested' / 'db.sqlite'}"}
    )
    writer = BatchWriter(RecordStore(Database(unreachable)), config=unreachable)

    with pytest.raises(StoreConnectionError):
        await writer.save_events(make_events(1))
