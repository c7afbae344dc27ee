"""
Event ingestion loop: polls the chain, normalizes events and hands them to
the batch writer in batches.
"""

import asyncio
from datetime import datetime, timezone
from dataclasses import asdict
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

import structlog

from chainwatch.core.config import settings, Settings, ChainConfig
from chainwatch.core.exceptions import IndexerError, NoValidRecordsError, StoreConnectionError
from chainwatch.health.aggregator import HealthAggregator
from chainwatch.persistence.batch_writer import BatchWriter
from chainwatch.persistence.types import BatchOutcome, ContractEvent, normalize_timestamp
from chainwatch.services.chain_client import ChainClient, RawChainEvent, event_payload

from .core.types import IndexerStatus, ProcessingStats


logger = structlog.get_logger(__name__)


def resolve_event_type(raw: RawChainEvent) -> Optional[str]:
    """Event name from the raw event, falling back to its first key."""
    if raw.name:
        return raw.name
    if raw.keys:
        key = raw.keys[0]
        return ChainConfig.EVENT_KEYS.get(key, key)
    return None


def normalize_event(
    raw: RawChainEvent,
    contract_address: str,
    observed_at: Optional[datetime] = None,
) -> ContractEvent:
    """Turn a raw chain event into a ContractEvent stamped at ingestion time."""
    return ContractEvent(
        event_type=resolve_event_type(raw),
        contract_address=raw.from_address or contract_address,
        block_number=max(int(raw.block_number or 0), 0),
        transaction_hash=raw.transaction_hash or "",
        data=event_payload(raw),
        timestamp=normalize_timestamp(observed_at),
    )


class EventIndexer:
    """
    Polling event indexer for the monitored contract.

    Each observed event is normalized, buffered and counted on the health
    aggregator; the buffer goes to the batch writer when it reaches the
    batch size and at the end of every poll cycle.
    """

    def __init__(
        self,
        chain: ChainClient,
        writer: BatchWriter,
        aggregator: HealthAggregator,
        contract_address: str,
        key_filter: Optional[Sequence[str]] = None,
        batch_size: Optional[int] = None,
        page_size: Optional[int] = None,
        poll_interval: Optional[float] = None,
        config: Optional[Settings] = None,
    ):
        config = config or settings
        self.logger = logger.bind(service="event_indexer")
        self.status = IndexerStatus.STOPPED
        self.stats = ProcessingStats()

        self.chain = chain
        self.writer = writer
        self.aggregator = aggregator
        self.contract_address = contract_address
        self.key_filter = list(key_filter) if key_filter is not None else list(config.event_key_filter)
        self.batch_size = batch_size or config.indexer_batch_size
        self.page_size = page_size or config.indexer_page_size
        self.poll_interval = poll_interval if poll_interval is not None else config.indexer_poll_interval
        self.max_buffer = self.batch_size * 10

        self._buffer: List[ContractEvent] = []
        self._flush_lock = asyncio.Lock()
        # Events already ingested from the last processed block
        self._boundary_seen: Set[Tuple[str, Optional[str]]] = set()

        self._running = False
        self._poll_task: Optional[asyncio.Task] = None

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    async def on_chain_event(self, raw: RawChainEvent) -> ContractEvent:
        """Ingestion entry point for one raw chain event."""
        observed_at = datetime.now(timezone.utc)
        event = normalize_event(raw, self.contract_address, observed_at)

        self._buffer.append(event)
        self.stats.events_received += 1
        self.aggregator.update_event_stats(observed_at, event.event_type)

        self.logger.debug(
            "Event observed",
            event_type=event.event_type,
            block=event.block_number,
            transaction=event.transaction_hash
        )

        if len(self._buffer) >= self.batch_size:
            await self.flush()
        return event

    async def flush(self) -> Optional[BatchOutcome]:
        """Hand the buffered events to the batch writer."""
        async with self._flush_lock:
            if not self._buffer:
                return None
            batch, self._buffer = self._buffer, []

            try:
                outcome = await self.writer.save_events(batch)
            except NoValidRecordsError as e:
                self.stats.events_invalid += len(batch)
                self.logger.warning("Dropped batch without valid events", **e.details)
                return None
            except StoreConnectionError as e:
                self.stats.errors += 1
                self._requeue(batch)
                self.logger.error("Store unreachable, events kept for next flush", error=e.message, buffered=len(self._buffer))
                return None

            self.stats.batches_flushed += 1
            self.stats.events_saved += outcome.saved_count
            self.stats.events_invalid += outcome.invalid_count
            self.stats.events_failed += outcome.failed_count
            return outcome

    def _requeue(self, batch: List[ContractEvent]) -> None:
        self._buffer = batch + self._buffer
        overflow = len(self._buffer) - self.max_buffer
        if overflow > 0:
            self.stats.events_failed += overflow
            self.logger.error("Event buffer full, dropping oldest events", dropped=overflow)
            self._buffer = self._buffer[overflow:]

    async def poll_once(self) -> int:
        """Fetch one page of new events, ingest them and flush. Returns events ingested."""
        head = await self.chain.get_head()
        from_block = self.stats.last_processed_block or 0
        # The boundary block is read again, so widen the page by what was already seen there
        raw_events = await self.chain.get_events(
            self.contract_address,
            self.key_filter,
            from_block,
            head.block_number,
            self.page_size + len(self._boundary_seen),
        )

        ingested = 0
        for raw in raw_events:
            key = (raw.transaction_hash, resolve_event_type(raw))
            if raw.block_number == self.stats.last_processed_block and key in self._boundary_seen:
                continue
            if raw.block_number != self.stats.last_processed_block:
                self.stats.last_processed_block = raw.block_number
                self._boundary_seen = set()
            self._boundary_seen.add(key)

            await self.on_chain_event(raw)
            ingested += 1

        self.stats.poll_cycles += 1
        await self.flush()

        if ingested:
            self.logger.info(
                "Poll cycle ingested events",
                count=ingested,
                last_block=self.stats.last_processed_block,
                head=head.block_number
            )
        return ingested

    async def run(self) -> None:
        """Poll until stopped."""
        while self._running:
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.stats.errors += 1
                self.logger.error("Error fetching events", error=str(e))
            await asyncio.sleep(self.poll_interval)

    async def start(self) -> None:
        """Start polling in a background task."""
        if self.status == IndexerStatus.RUNNING:
            self.logger.warning("Event indexer already running")
            return

        try:
            self.status = IndexerStatus.STARTING
            self._running = True
            self.stats.start_time = datetime.now(timezone.utc)
            self._poll_task = asyncio.create_task(self.run())
            self.status = IndexerStatus.RUNNING
            self.logger.info("Event indexer started", contract=self.contract_address)
        except Exception as e:
            self.status = IndexerStatus.ERROR
            self._running = False
            self.logger.error("Failed to start event indexer", error=str(e))
            raise IndexerError(f"Failed to start event indexer: {e}") from e

    async def stop(self) -> None:
        """Stop polling and drain the buffer."""
        if self.status == IndexerStatus.STOPPED:
            return

        self.status = IndexerStatus.STOPPING
        self.logger.info("Stopping event indexer")
        self._running = False

        if self._poll_task and not self._poll_task.done():
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass

        await self.flush()
        self.status = IndexerStatus.STOPPED
        self.logger.info("Event indexer stopped", buffered=len(self._buffer))

    def get_status(self) -> Dict[str, Any]:
        """Current indexer status and statistics."""
        return {
            "status": self.status.value,
            "running": self._running,
            "buffered": len(self._buffer),
            "stats": asdict(self.stats),
            "uptime": (
                (datetime.now(timezone.utc) - self.stats.start_time).total_seconds()
                if self.stats.start_time else None
            ),
        }
