"""
Chain client interface consumed by the indexer and the health probes.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence


@dataclass(frozen=True)
class ChainHead:
    """Current chain head."""
    block_number: int
    block_hash: str


@dataclass
class RawChainEvent:
    """An event as delivered by the chain, before normalization."""
    block_number: int
    transaction_hash: str
    keys: List[str] = field(default_factory=list)
    name: Optional[str] = None
    data: Any = None
    from_address: Optional[str] = None


class ChainClient(Protocol):
    """Narrow RPC interface; every method may raise ``ChainClientError``."""

    async def get_head(self) -> ChainHead:
        """Latest block number and hash."""
        ...

    async def get_events(
        self,
        address: str,
        key_filter: Optional[Sequence[str]],
        from_block: int,
        to_block: Optional[int],
        page_size: int,
    ) -> List[RawChainEvent]:
        """Events emitted by ``address`` in the block range, oldest first."""
        ...

    async def get_user_count(self, address: str) -> int:
        """Number of user accounts held by the contract."""
        ...

    async def close(self) -> None:
        ...


def event_payload(raw: RawChainEvent) -> Dict[str, Any]:
    """Normalize a raw event's data into a dict."""
    if raw.data is None:
        return {}
    if isinstance(raw.data, dict):
        return dict(raw.data)
    if isinstance(raw.data, (list, tuple)):
        return {"values": list(raw.data)}
    return {"raw": raw.data}
