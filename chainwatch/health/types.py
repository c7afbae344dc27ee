"""
Composite health status types.
"""

import threading
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, Optional

from chainwatch.persistence.types import HealthState


_SEVERITY = {
    HealthState.HEALTHY: 0,
    HealthState.DEGRADED: 1,
    HealthState.UNHEALTHY: 2,
}


def worst_of(*states: HealthState) -> HealthState:
    """Unhealthy beats degraded beats healthy."""
    return max(states, key=_SEVERITY.__getitem__, default=HealthState.HEALTHY)


@dataclass(frozen=True)
class NetworkStatus:
    status: HealthState
    latency_ms: int
    last_block: int
    block_hash: Optional[str] = None


@dataclass(frozen=True)
class ContractStatus:
    status: HealthState
    address: str
    last_event: Optional[str] = None


@dataclass(frozen=True)
class IndexerHealth:
    status: HealthState
    last_poll: datetime
    events_processed: int
    events_persisted: Optional[int] = None


@dataclass(frozen=True)
class CredentialStatus:
    status: HealthState
    last_update: Optional[datetime] = None


@dataclass(frozen=True)
class HealthStatus:
    """One aggregation cycle's result. Immutable once built."""
    timestamp: datetime
    status: HealthState
    network: NetworkStatus
    contract: ContractStatus
    indexer: IndexerHealth
    credential: CredentialStatus

    def to_dict(self) -> Dict[str, Any]:
        return _jsonable(asdict(self))


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, HealthState):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class AtomicCounter:
    """Monotonic integer counter safe to bump from any thread or task."""

    def __init__(self, initial: int = 0):
        self._value = initial
        self._lock = threading.Lock()

    def increment(self, amount: int = 1) -> int:
        if amount < 0:
            raise ValueError("AtomicCounter only moves forward")
        with self._lock:
            self._value += amount
            return self._value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value
