"""
Persistence layer: record store client, resilient batch writer and queries.

Submodules are imported explicitly (``chainwatch.persistence.record_store``
and friends) so that the ORM models can depend on ``types`` without a cycle.
"""

from .types import (
    RecordKind,
    HealthState,
    ContractEvent,
    HealthCheck,
    HealthCheckDetails,
    BatchOutcome,
    normalize_timestamp,
    validate_record,
)

__all__ = [
    "RecordKind",
    "HealthState",
    "ContractEvent",
    "HealthCheck",
    "HealthCheckDetails",
    "BatchOutcome",
    "normalize_timestamp",
    "validate_record",
]
