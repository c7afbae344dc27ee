"""
Health aggregator: runs the probe set, composes one status and keeps the
last successful result.
"""

import asyncio
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

import structlog

from chainwatch.core.config import settings, Settings
from chainwatch.core.exceptions import AggregationError, StoreError
from chainwatch.persistence.queries import RecordQueries
from chainwatch.persistence.types import HealthCheck, HealthCheckDetails, normalize_timestamp
from chainwatch.services.chain_client import ChainClient
from .probes import check_contract, check_credential, check_indexer, check_network
from .types import AtomicCounter, HealthStatus, worst_of


logger = structlog.get_logger(__name__)


class HealthAggregator:
    """
    Composite health monitor for the indexed contract.

    Network and contract probes hit the chain and run concurrently; the
    indexer and credential probes only read local counters. The events
    counter is bumped by the ingestion loop through ``update_event_stats``
    and read here without locking the rest of the status.
    """

    def __init__(
        self,
        chain: ChainClient,
        contract_address: str,
        queries: Optional[RecordQueries] = None,
        key_filter: Optional[Sequence[str]] = None,
        latency_threshold_ms: Optional[int] = None,
        credential_event_types: Optional[Iterable[str]] = None,
        cache_max_age: Optional[float] = None,
        config: Optional[Settings] = None,
    ):
        config = config or settings
        self.chain = chain
        self.contract_address = contract_address
        self.queries = queries
        self.key_filter = list(key_filter) if key_filter is not None else list(config.event_key_filter)
        self.latency_threshold_ms = (
            latency_threshold_ms if latency_threshold_ms is not None
            else config.health_latency_threshold_ms
        )
        self.credential_event_types = set(
            credential_event_types if credential_event_types is not None
            else config.credential_event_types
        )
        self.cache_max_age = cache_max_age if cache_max_age is not None else config.health_cache_max_age

        self._events_processed = AtomicCounter()
        self._last_credential_update: Optional[datetime] = None
        self._last_health_check: Optional[HealthStatus] = None
        self.logger = logger.bind(service="health_aggregator")

    @property
    def events_processed(self) -> int:
        return self._events_processed.value

    @property
    def last_credential_update(self) -> Optional[datetime]:
        return self._last_credential_update

    def update_event_stats(
        self,
        observed_at=None,
        event_type: Optional[str] = None,
        rotation: bool = False,
    ) -> None:
        """
        Count one observed event.

        The credential timestamp moves only for event types listed in
        ``credential_event_types`` or when ``rotation`` is set explicitly.
        """
        self._events_processed.increment()
        if rotation or event_type in self.credential_event_types:
            self._last_credential_update = normalize_timestamp(observed_at)

    async def check_health(self) -> HealthStatus:
        """Run every probe and cache the composed result."""
        try:
            network, contract = await asyncio.gather(
                check_network(self.chain, self.latency_threshold_ms),
                check_contract(self.chain, self.contract_address, self.key_filter),
            )
            now = datetime.now(timezone.utc)
            indexer = check_indexer(self.events_processed, await self._events_persisted(), now)
            credential = check_credential(self._last_credential_update)

            health = HealthStatus(
                timestamp=now,
                status=worst_of(network.status, contract.status, indexer.status, credential.status),
                network=network,
                contract=contract,
                indexer=indexer,
                credential=credential,
            )
        except Exception as e:
            self.logger.error("Health aggregation failed", error=str(e))
            raise AggregationError(f"Failed to get health status: {e}") from e

        self._last_health_check = health
        self.logger.info(
            "Health status computed",
            status=health.status.value,
            network=network.status.value,
            contract=contract.status.value,
            indexer=indexer.status.value,
            credential=credential.status.value,
            latency_ms=network.latency_ms
        )
        return health

    def get_last_health_check(self) -> Optional[HealthStatus]:
        """Cached status, or ``None`` if no cycle has completed yet."""
        return self._last_health_check

    def last_health_age(self, now: Optional[datetime] = None) -> Optional[float]:
        if self._last_health_check is None:
            return None
        now = now or datetime.now(timezone.utc)
        return (now - self._last_health_check.timestamp).total_seconds()

    def is_stale(self, now: Optional[datetime] = None) -> bool:
        """True once the cached status is older than the cache max age."""
        age = self.last_health_age(now)
        return age is not None and age > self.cache_max_age

    async def get_user_count(self) -> int:
        """User count from the chain; 0 when the chain cannot say."""
        try:
            return await self.chain.get_user_count(self.contract_address)
        except Exception as e:
            self.logger.warning("Could not read user count", error=str(e))
            return 0

    def to_health_check(self, health: HealthStatus, user_count: int = 0) -> HealthCheck:
        """Flatten a composite status into the persisted snapshot."""
        return HealthCheck(
            status=health.status.value,
            timestamp=health.timestamp,
            details=HealthCheckDetails(
                contract_status=health.contract.status.value,
                network_status=health.network.status.value,
                last_block=health.network.last_block,
                user_count=user_count,
            ),
        )

    async def _events_persisted(self) -> Optional[int]:
        if self.queries is None:
            return None
        try:
            return await self.queries.count_events()
        except StoreError as e:
            self.logger.warning("Could not read persisted event count", error=str(e))
            return None
