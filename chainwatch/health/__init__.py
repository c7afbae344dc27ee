"""
Health probes and the composite health aggregator.
"""

from .types import (
    AtomicCounter,
    ContractStatus,
    CredentialStatus,
    HealthStatus,
    IndexerHealth,
    NetworkStatus,
    worst_of,
)
from .aggregator import HealthAggregator

__all__ = [
    "AtomicCounter",
    "ContractStatus",
    "CredentialStatus",
    "HealthStatus",
    "IndexerHealth",
    "NetworkStatus",
    "worst_of",
    "HealthAggregator",
]
