"""
Independent health probes.

Each probe contains its own failures: a remote call that raises turns into
an unhealthy sub-status instead of propagating.
"""

import time
from datetime import datetime, timezone
from typing import Optional, Sequence

import structlog

from chainwatch.core.exceptions import ProbeFailure
from chainwatch.persistence.types import HealthState
from chainwatch.services.chain_client import ChainClient
from .types import ContractStatus, CredentialStatus, IndexerHealth, NetworkStatus


logger = structlog.get_logger(__name__)

UNAVAILABLE = -1


async def check_network(chain: ChainClient, latency_threshold_ms: int = 1000) -> NetworkStatus:
    """Fetch the chain head and grade the round trip."""
    start = time.perf_counter()
    try:
        head = await chain.get_head()
    except Exception as e:
        failure = ProbeFailure("network", f"Network probe failed: {e}", {"error_type": type(e).__name__})
        logger.warning(failure.message, **failure.details)
        return NetworkStatus(
            status=HealthState.UNHEALTHY,
            latency_ms=UNAVAILABLE,
            last_block=UNAVAILABLE,
        )

    latency_ms = int(round((time.perf_counter() - start) * 1000))
    return NetworkStatus(
        status=HealthState.HEALTHY if latency_ms < latency_threshold_ms else HealthState.DEGRADED,
        latency_ms=latency_ms,
        last_block=head.block_number,
        block_hash=head.block_hash,
    )


async def check_contract(
    chain: ChainClient,
    address: str,
    key_filter: Optional[Sequence[str]] = None,
) -> ContractStatus:
    """Read one page of size 1 of the contract's events as a liveness signal."""
    try:
        events = await chain.get_events(address, key_filter, 0, None, 1)
    except Exception as e:
        failure = ProbeFailure(
            "contract",
            f"Contract probe failed: {e}",
            {"address": address, "error_type": type(e).__name__}
        )
        logger.warning(failure.message, **failure.details)
        return ContractStatus(status=HealthState.UNHEALTHY, address=address)

    return ContractStatus(
        status=HealthState.HEALTHY,
        address=address,
        last_event=events[0].transaction_hash if events else None,
    )


def check_indexer(
    events_processed: int,
    events_persisted: Optional[int] = None,
    now: Optional[datetime] = None,
) -> IndexerHealth:
    # Local state only, so never unhealthy
    return IndexerHealth(
        status=HealthState.HEALTHY if events_processed > 0 else HealthState.DEGRADED,
        last_poll=now or datetime.now(timezone.utc),
        events_processed=events_processed,
        events_persisted=events_persisted,
    )


def check_credential(last_update: Optional[datetime]) -> CredentialStatus:
    """A rotation that was never observed counts as unhealthy."""
    return CredentialStatus(
        status=HealthState.HEALTHY if last_update is not None else HealthState.UNHEALTHY,
        last_update=last_update,
    )
