"""
Record types handled by the persistence layer.
"""

from datetime import datetime, timezone
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from chainwatch.core.exceptions import ValidationError


class RecordKind(Enum):
    """Logical record collections."""
    EVENTS = "contract_events"
    HEALTH_CHECKS = "health_checks"

    @property
    def discriminant(self) -> str:
        """Field whose presence makes a record of this kind valid."""
        return "event_type" if self is RecordKind.EVENTS else "status"

    @property
    def label(self) -> str:
        return "events" if self is RecordKind.EVENTS else "health checks"


class HealthState(str, Enum):
    """Status values shared by health checks and health sub-statuses."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class ContractEvent:
    """One normalized on-chain occurrence."""
    event_type: Optional[str]
    contract_address: str = ""
    block_number: int = 0
    transaction_hash: str = ""
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: Any = None


@dataclass
class HealthCheckDetails:
    contract_status: str = ""
    network_status: str = ""
    last_block: int = -1
    user_count: int = 0


@dataclass
class HealthCheck:
    """One persisted health snapshot."""
    status: Optional[str]
    timestamp: Any = None
    details: HealthCheckDetails = field(default_factory=HealthCheckDetails)


Record = Union[ContractEvent, HealthCheck]

_HEALTH_STATES = frozenset(state.value for state in HealthState)


def discriminant_of(kind: RecordKind, record: Record) -> Optional[str]:
    value = getattr(record, kind.discriminant, None)
    if isinstance(value, Enum):
        value = value.value
    return value


def normalize_timestamp(value: Any) -> datetime:
    """
    Coerce a timestamp into an aware UTC datetime.

    Accepts datetimes (naive ones are taken as UTC), ISO-8601 strings and
    epoch numbers; values above 1e11 are read as milliseconds. ``None``
    means "now".
    """
    if value is None:
        return datetime.now(timezone.utc)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, bool):
        raise TypeError(f"Unsupported timestamp value: {value!r}")
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > 1e11 else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return normalize_timestamp(datetime.fromisoformat(text))
    raise TypeError(f"Unsupported timestamp value: {value!r}")


def validate_record(kind: RecordKind, record: Record) -> datetime:
    """
    Check one record before it is written and return its UTC timestamp.

    Raises ``ValidationError`` with the reason when the discriminant is
    missing, a health status is unknown, a block number is negative or the
    timestamp cannot be coerced. The record itself is left untouched.
    """
    value = discriminant_of(kind, record)
    if not value:
        raise ValidationError(
            f"Missing {kind.discriminant}",
            {"kind": kind.value, "field": kind.discriminant}
        )

    if kind is RecordKind.HEALTH_CHECKS and value not in _HEALTH_STATES:
        raise ValidationError(
            f"Unknown status '{value}'",
            {"kind": kind.value, "field": "status"}
        )

    if kind is RecordKind.EVENTS:
        block = record.block_number
        if not isinstance(block, int) or isinstance(block, bool) or block < 0:
            raise ValidationError(
                f"Invalid block number {block!r}",
                {"kind": kind.value, "field": "block_number"}
            )

    try:
        return normalize_timestamp(record.timestamp)
    except (TypeError, ValueError, OverflowError, OSError) as e:
        raise ValidationError(
            f"Unparseable timestamp {record.timestamp!r}",
            {"kind": kind.value, "field": "timestamp", "error": str(e)}
        ) from e


@dataclass
class BatchOutcome:
    """Result of one ``save_batch`` call. Never persisted."""
    kind: RecordKind
    valid: List[Record] = field(default_factory=list)
    invalid: List[Record] = field(default_factory=list)
    confirmed_saved: List[Record] = field(default_factory=list)
    unconfirmed_saved: List[Record] = field(default_factory=list)
    attempts: int = 0
    reconciled: bool = False

    @property
    def invalid_count(self) -> int:
        return len(self.invalid)

    @property
    def saved_count(self) -> int:
        return len(self.confirmed_saved)

    @property
    def failed_count(self) -> int:
        return len(self.unconfirmed_saved)

    @property
    def complete(self) -> bool:
        return not self.unconfirmed_saved
