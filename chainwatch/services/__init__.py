"""Chain clients."""

from .chain_client import ChainClient, ChainHead, RawChainEvent, event_payload

__all__ = ["ChainClient", "ChainHead", "RawChainEvent", "event_payload"]
