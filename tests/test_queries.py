"""
Test ordered retrieval and statistics.
"""

from datetime import datetime, timedelta, timezone

import pytest

from chainwatch.core.exceptions import InvalidArgumentError
from chainwatch.persistence.types import ContractEvent, RecordKind

from tests.conftest import make_events, make_health_check


async def test_recent_returns_newest_first(writer, queries):
    start = datetime(2024, 3, 1, tzinfo=timezone.utc)
    events = [
        ContractEvent(event_type=name, timestamp=start + timedelta(seconds=i))
        for i, name in enumerate(["A", "B", "C"])
    ]
    await writer.save_events(events)

    recent = await queries.get_recent(RecordKind.EVENTS, 2)

    assert [event.event_type for event in recent] == ["C", "B"]


async def test_recent_never_exceeds_limit(writer, queries):
    await writer.save_events(make_events(12))

    assert len(await queries.get_recent_events(5)) == 5
    assert len(await queries.get_recent_events(50)) == 12
    # Default page size
    assert len(await queries.get_recent_events()) == 10


@pytest.mark.parametrize("limit", [0, -1])
async def test_non_positive_limit_is_rejected(queries, limit):
    with pytest.raises(InvalidArgumentError) as exc_info:
        await queries.get_recent(RecordKind.EVENTS, limit)

    assert exc_info.value.code == "INVALID_ARGUMENT"


async def test_health_statistics_by_status(writer, queries):
    start = datetime(2024, 3, 1, tzinfo=timezone.utc)
    checks = [
        make_health_check(status, start + timedelta(minutes=i))
        for i, status in enumerate(["healthy", "degraded", "healthy"])
    ]
    await writer.save_health_checks(checks)

    assert await queries.get_statistics(RecordKind.HEALTH_CHECKS) == {"healthy": 2, "degraded": 1}


async def test_event_statistics(writer, queries):
    await writer.save_events(make_events(3, "ApiKeyUpdated") + make_events(2, "LimitChanged"))

    assert await queries.get_event_statistics() == {"ApiKeyUpdated": 3, "LimitChanged": 2}
    assert await queries.count_events() == 5

    detailed = await queries.get_event_statistics_detailed()
    assert detailed["LimitChanged"]["count"] == 2
    assert detailed["LimitChanged"]["last_occurrence"].tzinfo is not None


async def test_empty_store(queries):
    assert await queries.get_recent_events(5) == []
    assert await queries.get_event_statistics() == {}
    assert await queries.get_health_history(5) == []
