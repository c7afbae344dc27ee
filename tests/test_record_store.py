"""
Test the SQLAlchemy record store and its connection handling.
"""

from datetime import datetime, timedelta, timezone

import pytest

from chainwatch.core.database import Database
from chainwatch.core.exceptions import (
    BulkWriteError,
    ConfigurationError,
    InvalidArgumentError,
    StoreConnectionError,
    TransientStoreError,
)
from chainwatch.core.config import Settings
from chainwatch.persistence.record_store import RecordStore
from chainwatch.persistence.types import RecordKind

from tests.conftest import make_events, make_health_check


async def test_database_requires_url():
    with pytest.raises(ConfigurationError):
        Database(Settings(database_url=None))


async def test_connect_is_lazy_and_reusable(database, store):
    await database.disconnect()
    assert not database.is_connected

    assert await store.ping()
    assert database.is_connected

    engine = database.engine
    await store.connect()
    assert database.engine is engine


async def test_connect_failure_raises_connection_error(tmp_path, config):
    broken = config.model_copy(
        update={"database_url": f"sqlite+aiosqlite:///{tmp_path / 'nope' / 'x' / 'db.sqlite'}"}
    )
    database = Database(broken)

    with pytest.raises(StoreConnectionError):
        await database.connect()
    assert not database.is_connected
    assert await database.health_check() is False


async def test_insert_and_find_round_trip(store):
    events = make_events(3)
    assert await store.insert_many(RecordKind.EVENTS, events, ordered=False) == 3

    found = await store.find(RecordKind.EVENTS, limit=2)
    assert [event.transaction_hash for event in found] == ["0xtx2", "0xtx1"]
    assert found[0].data == {"index": 2}
    assert found[0].timestamp.tzinfo is not None

    oldest_first = await store.find(RecordKind.EVENTS, descending=False)
    assert [event.block_number for event in oldest_first] == [1000, 1001, 1002]


async def test_find_filters_by_discriminant_and_window(store):
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    await store.insert_many(RecordKind.EVENTS, make_events(3, "ApiKeyUpdated", start), ordered=False)
    await store.insert_many(RecordKind.EVENTS, make_events(2, "LimitChanged", start), ordered=False)

    limits = await store.find(RecordKind.EVENTS, discriminants={"LimitChanged"})
    assert {event.event_type for event in limits} == {"LimitChanged"}
    assert len(limits) == 2

    windowed = await store.find(
        RecordKind.EVENTS,
        since=start + timedelta(seconds=1),
        until=start + timedelta(seconds=1),
    )
    assert len(windowed) == 2


async def test_aggregations(store):
    await store.insert_many(RecordKind.EVENTS, make_events(2, "ApiKeyUpdated"), ordered=False)
    await store.insert_many(RecordKind.EVENTS, make_events(1, "LimitChanged"), ordered=False)

    assert await store.aggregate_count(RecordKind.EVENTS) == {"ApiKeyUpdated": 2, "LimitChanged": 1}
    assert await store.count(RecordKind.EVENTS) == 3

    summary = await store.aggregate_last_occurrence(RecordKind.EVENTS)
    assert summary["ApiKeyUpdated"]["count"] == 2
    assert summary["ApiKeyUpdated"]["last_occurrence"] == datetime(2024, 1, 1, 0, 0, 1, tzinfo=timezone.utc)

    with pytest.raises(InvalidArgumentError):
        await store.aggregate_count(RecordKind.EVENTS, group_by="not_a_column")


async def test_health_check_details_survive_storage(store):
    check = make_health_check("degraded", datetime(2024, 2, 1, tzinfo=timezone.utc))
    await store.insert_one(RecordKind.HEALTH_CHECKS, check)

    [stored] = await store.find(RecordKind.HEALTH_CHECKS)
    assert stored.status == "degraded"
    assert stored.details.user_count == 5
    assert stored.details.last_block == 100


async def test_delete_all(store):
    await store.insert_many(RecordKind.EVENTS, make_events(4), ordered=False)

    assert await store.delete_all(RecordKind.EVENTS) == 4
    assert await store.count(RecordKind.EVENTS) == 0


async def test_delete_all_maps_connection_failure(tmp_path, config):
    broken = config.model_copy(
        update={"database_url": f"sqlite+aiosqlite:///{tmp_path / 'nope' / 'x' / 'db.sqlite'}"}
    )
    store = RecordStore(Database(broken))

    with pytest.raises(TransientStoreError):
        await store.delete_all(RecordKind.EVENTS)


def _events_with_bad_middle_row():
    events = make_events(3)
    events[1].event_type = None
    return events


async def test_ordered_insert_stops_at_first_bad_row(store):
    with pytest.raises(BulkWriteError) as exc_info:
        await store.insert_many(RecordKind.EVENTS, _events_with_bad_middle_row(), ordered=True)

    assert exc_info.value.inserted == [0]
    assert exc_info.value.failed == [1, 2]
    assert [event.transaction_hash for event in await store.find(RecordKind.EVENTS)] == ["0xtx0"]


async def test_unordered_insert_skips_bad_row(store):
    with pytest.raises(BulkWriteError) as exc_info:
        await store.insert_many(RecordKind.EVENTS, _events_with_bad_middle_row(), ordered=False)

    assert exc_info.value.inserted == [0, 2]
    assert exc_info.value.failed == [1]
    assert await store.count(RecordKind.EVENTS) == 2
