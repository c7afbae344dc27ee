"""
Solana RPC adapter implementing the chain client interface.

Head queries map to the current slot plus the latest blockhash. Events are
read from program log lines of the form ``Program log: <EventName>: {json}``
in the transactions that mention the contract address.
"""

import json
from typing import Any, List, Optional, Sequence

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.models import DataSliceOpts
from solders.pubkey import Pubkey
from solders.signature import Signature
import structlog

from chainwatch.core.config import settings, Settings, ChainConfig
from chainwatch.core.exceptions import ChainClientError
from .chain_client import ChainHead, RawChainEvent


logger = structlog.get_logger(__name__)

LOG_PREFIX = "Program log:"


class SolanaChainClient:
    """Async Solana RPC client for the indexer and health probes."""

    def __init__(self, config: Optional[Settings] = None, client: Optional[AsyncClient] = None):
        config = config or settings
        self.rpc_config = ChainConfig.get_rpc_config(config)
        self.client = client or AsyncClient(
            endpoint=self.rpc_config["endpoint"],
            commitment=Commitment(self.rpc_config["commitment"]),
            timeout=self.rpc_config["timeout"]
        )
        self.logger = logger.bind(service="solana_client")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        """Close the RPC client connection."""
        await self.client.close()

    async def get_head(self) -> ChainHead:
        try:
            slot = await self.client.get_slot()
            blockhash = await self.client.get_latest_blockhash()
        except Exception as e:
            self.logger.error("Failed to get chain head", error=str(e))
            raise ChainClientError(f"Failed to get chain head: {e}") from e

        return ChainHead(block_number=slot.value, block_hash=str(blockhash.value.blockhash))

    async def get_events(
        self,
        address: str,
        key_filter: Optional[Sequence[str]],
        from_block: int,
        to_block: Optional[int],
        page_size: int,
    ) -> List[RawChainEvent]:
        wanted = self._wanted_names(key_filter)
        try:
            pubkey = Pubkey.from_string(address)
            response = await self.client.get_signatures_for_address(pubkey, limit=page_size)
        except Exception as e:
            self.logger.error("Failed to get signatures", address=address, error=str(e))
            raise ChainClientError(f"Failed to get signatures for address: {e}", {"address": address}) from e

        events: List[RawChainEvent] = []
        # Signatures come newest first
        for sig_info in reversed(response.value):
            if sig_info.err is not None or sig_info.slot < from_block:
                continue
            if to_block is not None and sig_info.slot > to_block:
                continue

            logs = await self._get_logs(str(sig_info.signature))
            for name, data in self._parse_events_from_logs(logs):
                if wanted is not None and name not in wanted:
                    continue
                events.append(RawChainEvent(
                    block_number=sig_info.slot,
                    transaction_hash=str(sig_info.signature),
                    keys=[self._key_for(name)],
                    name=name,
                    data=data,
                    from_address=address,
                ))
                if len(events) >= page_size:
                    return events

        return events

    async def get_user_count(self, address: str) -> int:
        """Count accounts owned by the program, fetching no account data."""
        try:
            response = await self.client.get_program_accounts(
                Pubkey.from_string(address),
                encoding="base64",
                data_slice=DataSliceOpts(offset=0, length=0)
            )
        except Exception as e:
            self.logger.error("Failed to get program accounts", address=address, error=str(e))
            raise ChainClientError(f"Failed to get program accounts: {e}", {"address": address}) from e
        return len(response.value)

    async def _get_logs(self, signature: str) -> List[str]:
        try:
            response = await self.client.get_transaction(
                Signature.from_string(signature),
                encoding="json",
                max_supported_transaction_version=0
            )
        except Exception as e:
            raise ChainClientError(f"Failed to get transaction: {e}", {"signature": signature}) from e

        if not response.value or not response.value.transaction.meta:
            return []
        return list(response.value.transaction.meta.log_messages or [])

    def _parse_events_from_logs(self, logs: List[str]) -> List[tuple]:
        events = []
        for log in logs:
            if LOG_PREFIX not in log:
                continue
            content = log.split(LOG_PREFIX, 1)[1].strip()
            name, sep, payload = content.partition(":")
            if not sep or name not in ChainConfig.EVENT_KEYS.values():
                continue
            payload = payload.strip()
            try:
                data: Any = json.loads(payload)
            except json.JSONDecodeError:
                data = {"raw": payload}
            events.append((name, data))
        return events

    @staticmethod
    def _wanted_names(key_filter: Optional[Sequence[str]]) -> Optional[set]:
        if not key_filter:
            return None
        return {ChainConfig.EVENT_KEYS.get(key, key) for key in key_filter}

    @staticmethod
    def _key_for(name: str) -> str:
        for key, event_name in ChainConfig.EVENT_KEYS.items():
            if event_name == name:
                return key
        return name
