"""
Schemas for persisted records and health snapshots.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class EventResponse(BaseModel):
    """One stored contract event."""
    model_config = ConfigDict(from_attributes=True)

    event_type: str
    contract_address: str = ""
    block_number: int = 0
    transaction_hash: str = ""
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime


class HealthCheckDetailsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    contract_status: str
    network_status: str
    last_block: int
    user_count: int


class HealthCheckResponse(BaseModel):
    """One persisted health snapshot."""
    model_config = ConfigDict(from_attributes=True)

    status: str
    timestamp: datetime
    details: HealthCheckDetailsResponse


class CachedHealthResponse(BaseModel):
    """Last computed health status with its age."""
    health: Dict[str, Any]
    age_seconds: float
    stale: bool


class EventStatsEntry(BaseModel):
    count: int
    last_occurrence: Optional[datetime] = None
