"""
Health check model - stores aggregated health snapshots.
"""

from datetime import datetime

from sqlalchemy import String, Integer, BigInteger, Index
from sqlalchemy.orm import Mapped, mapped_column

from chainwatch.persistence.types import HealthCheck, HealthCheckDetails
from .base import BaseModel, TimestampMixin, UTCDateTime


class HealthCheckRecord(BaseModel, TimestampMixin):
    """Row holding one health snapshot."""

    __tablename__ = "health_checks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    timestamp: Mapped[datetime] = mapped_column(UTCDateTime, comment="Snapshot time")

    status: Mapped[str] = mapped_column(
        String(16),
        comment="healthy, degraded or unhealthy"
    )

    contract_status: Mapped[str] = mapped_column(String(255), default="")
    network_status: Mapped[str] = mapped_column(String(255), default="")
    last_block: Mapped[int] = mapped_column(BigInteger, default=-1)
    user_count: Mapped[int] = mapped_column(Integer, default=0)

    __table_args__ = (
        Index("idx_health_timestamp", "timestamp"),
        Index("idx_health_status_timestamp", "status", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<HealthCheckRecord(id={self.id}, status={self.status}, timestamp={self.timestamp})>"

    @classmethod
    def from_record(cls, check: HealthCheck) -> "HealthCheckRecord":
        details = check.details or HealthCheckDetails()
        return cls(
            timestamp=check.timestamp,
            status=check.status,
            contract_status=details.contract_status,
            network_status=details.network_status,
            last_block=details.last_block,
            user_count=details.user_count,
        )

    def to_record(self) -> HealthCheck:
        return HealthCheck(
            status=self.status,
            timestamp=self.timestamp,
            details=HealthCheckDetails(
                contract_status=self.contract_status,
                network_status=self.network_status,
                last_block=self.last_block,
                user_count=self.user_count,
            ),
        )
