"""
Event model - stores indexed contract events.
"""

from datetime import datetime
from typing import Dict, Any

from sqlalchemy import String, Integer, BigInteger, Index, JSON
from sqlalchemy.orm import Mapped, mapped_column

from chainwatch.persistence.types import ContractEvent
from .base import BaseModel, TimestampMixin, UTCDateTime


class EventRecord(BaseModel, TimestampMixin):
    """Row holding one normalized contract event."""

    __tablename__ = "contract_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    event_type: Mapped[str] = mapped_column(
        String(128),
        comment="Event name emitted by the contract"
    )

    contract_address: Mapped[str] = mapped_column(
        String(128),
        default="",
        comment="Emitting contract"
    )

    block_number: Mapped[int] = mapped_column(
        BigInteger,
        default=0,
        comment="Block (slot) the event was included in"
    )

    transaction_hash: Mapped[str] = mapped_column(
        String(128),
        default="",
        comment="Transaction hash or signature"
    )

    data: Mapped[Dict[str, Any]] = mapped_column(
        JSON,
        default=dict,
        comment="Event payload"
    )

    timestamp: Mapped[datetime] = mapped_column(
        UTCDateTime,
        comment="Event time, assigned at ingestion when absent"
    )

    __table_args__ = (
        Index("idx_event_timestamp", "timestamp"),
        Index("idx_event_type_timestamp", "event_type", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<EventRecord(id={self.id}, type={self.event_type}, block={self.block_number})>"

    @classmethod
    def from_record(cls, event: ContractEvent) -> "EventRecord":
        return cls(
            event_type=event.event_type,
            contract_address=event.contract_address,
            block_number=event.block_number,
            transaction_hash=event.transaction_hash,
            data=event.data,
            timestamp=event.timestamp,
        )

    def to_record(self) -> ContractEvent:
        return ContractEvent(
            event_type=self.event_type,
            contract_address=self.contract_address,
            block_number=self.block_number,
            transaction_hash=self.transaction_hash,
            data=self.data or {},
            timestamp=self.timestamp,
        )
