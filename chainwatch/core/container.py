"""
Wiring of the long-lived service objects.

One ``Services`` instance is built per process and handed to whatever
needs it: the indexer coordinator holds it directly, the API keeps it on
``app.state``.
"""

from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING

import structlog

from .config import settings, Settings, ChainConfig
from .database import Database

if TYPE_CHECKING:
    from chainwatch.health.aggregator import HealthAggregator
    from chainwatch.indexer.event_indexer import EventIndexer
    from chainwatch.persistence.batch_writer import BatchWriter
    from chainwatch.persistence.queries import RecordQueries
    from chainwatch.persistence.record_store import RecordStore
    from chainwatch.services.chain_client import ChainClient


logger = structlog.get_logger(__name__)


@dataclass
class Services:
    config: Settings
    database: Database
    store: "RecordStore"
    writer: "BatchWriter"
    queries: "RecordQueries"
    chain: "ChainClient"
    aggregator: "HealthAggregator"
    indexer: "EventIndexer"

    @classmethod
    def build(
        cls,
        config: Optional[Settings] = None,
        chain: Optional["ChainClient"] = None,
        database: Optional[Database] = None,
    ) -> "Services":
        """
        Construct every service from settings.

        Raises ``ConfigurationError`` when the store URL or the contract
        address is missing. Nothing connects here.
        """
        from chainwatch.health.aggregator import HealthAggregator
        from chainwatch.indexer.event_indexer import EventIndexer
        from chainwatch.persistence.batch_writer import BatchWriter
        from chainwatch.persistence.queries import RecordQueries
        from chainwatch.persistence.record_store import RecordStore
        from chainwatch.services.solana_client import SolanaChainClient

        config = config or settings
        contract_address = ChainConfig.require_contract_address(config)

        database = database or Database(config)
        store = RecordStore(database)
        writer = BatchWriter(store, config=config)
        queries = RecordQueries(store)
        chain = chain or SolanaChainClient(config)
        aggregator = HealthAggregator(chain, contract_address, queries=queries, config=config)
        indexer = EventIndexer(chain, writer, aggregator, contract_address, config=config)

        logger.info(
            "Services built",
            contract=contract_address,
            stage=config.deployment_stage,
            network=config.stage.network
        )
        return cls(
            config=config,
            database=database,
            store=store,
            writer=writer,
            queries=queries,
            chain=chain,
            aggregator=aggregator,
            indexer=indexer,
        )

    async def close(self) -> None:
        """Stop the indexer and release chain and store connections."""
        await self.indexer.stop()
        await self.chain.close()
        await self.store.disconnect()
