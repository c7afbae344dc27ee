"""
Shared fixtures: a temporary SQLite record store, a scriptable chain client
and a record store that fails on demand.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional, Sequence

import pytest
import pytest_asyncio

from chainwatch.core.config import Settings
from chainwatch.core.database import Database
from chainwatch.core.exceptions import BulkWriteError, ChainClientError, TransientStoreError
from chainwatch.persistence.batch_writer import BatchWriter
from chainwatch.persistence.queries import RecordQueries
from chainwatch.persistence.record_store import RecordStore
from chainwatch.persistence.types import ContractEvent, HealthCheck, HealthCheckDetails
from chainwatch.services.chain_client import ChainHead, RawChainEvent


CONTRACT = "Contract1111111111111111111111111111111111"


class FakeChainClient:
    """In-memory chain with switchable failures."""

    def __init__(
        self,
        head: ChainHead = ChainHead(block_number=100, block_hash="hash100"),
        events: Optional[List[RawChainEvent]] = None,
        user_count: int = 7,
    ):
        self.head = head
        self.events = list(events or [])
        self.user_count = user_count
        self.fail_head = False
        self.fail_events = False
        self.fail_user_count = False
        self.head_delay = 0.0
        self.event_calls: List[tuple] = []
        self.closed = False

    async def get_head(self) -> ChainHead:
        if self.head_delay:
            await asyncio.sleep(self.head_delay)
        if self.fail_head:
            raise ChainClientError("RPC unreachable")
        return self.head

    async def get_events(
        self,
        address: str,
        key_filter: Optional[Sequence[str]],
        from_block: int,
        to_block: Optional[int],
        page_size: int,
    ) -> List[RawChainEvent]:
        self.event_calls.append((address, from_block, to_block, page_size))
        if self.fail_events:
            raise ChainClientError("RPC unreachable")
        selected = [
            event for event in self.events
            if event.block_number >= from_block and (to_block is None or event.block_number <= to_block)
        ]
        return selected[:page_size]

    async def get_user_count(self, address: str) -> int:
        if self.fail_user_count:
            raise ChainClientError("RPC unreachable")
        return self.user_count

    async def close(self) -> None:
        self.closed = True


class FlakyStore(RecordStore):
    """
    Record store that injects failures.

    ``down`` fails every call. ``insert_many_failures`` fails that many
    bulk inserts. ``lose_acks`` writes the next bulk insert, reports it as
    failed and fails every bulk insert after it. ``partial_first`` writes
    half of the first bulk insert and raises ``BulkWriteError`` for the
    rest.
    """

    def __init__(self, database: Database):
        super().__init__(database)
        self.down = False
        self.insert_many_failures = 0
        self.lose_acks = False
        self.acks_lost = False
        self.partial_first = False
        self.insert_many_calls = 0
        self.insert_one_calls = 0
        self.attempted: List[object] = []

    async def insert_many(self, kind, records, ordered):
        self.insert_many_calls += 1
        if self.down:
            raise TransientStoreError("store down")
        if self.acks_lost:
            raise TransientStoreError("injected bulk failure")
        if self.insert_many_failures > 0:
            self.insert_many_failures -= 1
            raise TransientStoreError("injected bulk failure")
        if self.partial_first:
            self.partial_first = False
            half = len(records) // 2
            await super().insert_many(kind, records[:half], ordered)
            raise BulkWriteError(
                "injected partial write",
                inserted=list(range(half)),
                failed=list(range(half, len(records))),
            )
        written = await super().insert_many(kind, records, ordered)
        if self.lose_acks:
            self.acks_lost = True
            raise TransientStoreError("acknowledgement lost")
        return written

    async def insert_one(self, kind, record):
        self.insert_one_calls += 1
        self.attempted.append(record)
        if self.down:
            raise TransientStoreError("store down")
        return await super().insert_one(kind, record)

    async def find(self, kind, *args, **kwargs):
        if self.down:
            raise TransientStoreError("store down")
        return await super().find(kind, *args, **kwargs)


@pytest.fixture
def config(tmp_path: Path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'chainwatch.db'}",
        contract_address=CONTRACT,
        writer_base_delay_ms=0,
        health_cache_max_age=300,
        indexer_batch_size=10,
        indexer_poll_interval=0,
        log_format="console",
    )


@pytest_asyncio.fixture
async def database(config: Settings):
    db = Database(config)
    await db.create_tables()
    yield db
    await db.disconnect()


@pytest.fixture
def store(database: Database) -> RecordStore:
    return RecordStore(database)


@pytest.fixture
def flaky_store(database: Database) -> FlakyStore:
    return FlakyStore(database)


@pytest.fixture
def writer(store: RecordStore, config: Settings) -> BatchWriter:
    return BatchWriter(store, config=config)


@pytest.fixture
def flaky_writer(flaky_store: FlakyStore, config: Settings) -> BatchWriter:
    return BatchWriter(flaky_store, config=config)


@pytest.fixture
def queries(store: RecordStore) -> RecordQueries:
    return RecordQueries(store)


@pytest.fixture
def chain() -> FakeChainClient:
    return FakeChainClient()


def make_events(count: int, event_type: str = "ApiKeyUpdated", start: Optional[datetime] = None) -> List[ContractEvent]:
    """Events one second apart, oldest first."""
    start = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
    return [
        ContractEvent(
            event_type=event_type,
            contract_address=CONTRACT,
            block_number=1000 + i,
            transaction_hash=f"0xtx{i}",
            data={"index": i},
            timestamp=start + timedelta(seconds=i),
        )
        for i in range(count)
    ]


def make_health_check(status: Optional[str], timestamp: datetime) -> HealthCheck:
    return HealthCheck(
        status=status,
        timestamp=timestamp,
        details=HealthCheckDetails(
            contract_status="healthy",
            network_status="healthy",
            last_block=100,
            user_count=5,
        ),
    )


def raw_event(block: int, tx: str, name: Optional[str] = "ApiKeyUpdated", keys=None, data=None) -> RawChainEvent:
    return RawChainEvent(
        block_number=block,
        transaction_hash=tx,
        keys=list(keys) if keys is not None else ["0x1"],
        name=name,
        data=data if data is not None else {"newKey": "k"},
        from_address=CONTRACT,
    )
