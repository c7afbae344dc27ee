"""
Main entry point for the indexer service.

Runs the event polling loop and the periodic health loop side by side and
drains buffered events on shutdown.
"""

import asyncio
import signal
from typing import List, Optional

import structlog

from chainwatch.core.config import settings, Settings
from chainwatch.core.container import Services
from chainwatch.core.exceptions import ChainwatchException
from chainwatch.core.logging import setup_logging
from chainwatch.persistence.types import RecordKind


logger = structlog.get_logger(__name__)


class IndexerMain:
    """
    Indexer service coordinator.

    - EventIndexer polls the contract and feeds the batch writer
    - HealthAggregator runs every ``health_check_interval`` seconds and
      each result is persisted as a health check
    """

    def __init__(self, config: Optional[Settings] = None, services: Optional[Services] = None):
        self.config = config or settings
        self.services = services
        self.running = False
        self.tasks: List[asyncio.Task] = []
        self.shutdown_task: Optional[asyncio.Task] = None
        self._stopped = asyncio.Event()

    async def initialize(self) -> None:
        """Build services, connect the store and make sure tables exist."""
        try:
            logger.info("Initializing indexer service")
            if self.services is None:
                self.services = Services.build(self.config)
            await self.services.store.connect()
            await self.services.database.create_tables()
            logger.info("Indexer service initialized")
        except Exception as e:
            logger.error("Failed to initialize indexer", error=str(e))
            raise

    async def start(self) -> None:
        """Start both loops and block until stopped."""
        logger.info("Starting indexer service")
        self.running = True

        await self.services.indexer.start()
        self.tasks.append(asyncio.create_task(self._periodic_health_check()))

        logger.info(
            "Indexer service started",
            poll_interval=self.services.indexer.poll_interval,
            health_interval=self.config.health_check_interval
        )
        await self._stopped.wait()

    async def stop(self) -> None:
        """Cancel the loops, drain buffered events and close connections."""
        if self._stopped.is_set():
            return
        logger.info("Stopping indexer service")
        self.running = False

        for task in self.tasks:
            if not task.done():
                task.cancel()
        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)
        self.tasks.clear()

        if self.services:
            await self.services.close()

        self._stopped.set()
        logger.info("Indexer service stopped")

    def request_stop(self) -> asyncio.Task:
        """Schedule ``stop()`` from a signal handler, once."""
        if self.shutdown_task is None:
            self.shutdown_task = asyncio.create_task(self.stop())
        return self.shutdown_task

    async def run_health_cycle(self) -> None:
        """One health cycle: aggregate, log and persist the snapshot."""
        aggregator = self.services.aggregator
        health = await aggregator.check_health()
        user_count = await aggregator.get_user_count()
        await self.services.writer.save_one(
            RecordKind.HEALTH_CHECKS,
            aggregator.to_health_check(health, user_count)
        )
        logger.info(
            "Health check saved",
            status=health.status.value,
            user_count=user_count,
            indexer=self.services.indexer.get_status()["stats"]
        )

    async def _periodic_health_check(self) -> None:
        while self.running:
            try:
                await self.run_health_cycle()
            except asyncio.CancelledError:
                break
            except ChainwatchException as e:
                logger.error("Health check error", error=e.message, code=e.code)
            except Exception as e:
                logger.error("Health check error", error=str(e))

            await asyncio.sleep(self.config.health_check_interval)


async def main() -> None:
    """Main function to run the indexer service."""
    setup_logging()

    indexer = IndexerMain()

    def signal_handler(signum: signal.Signals) -> None:
        logger.info(f"Received signal {signum.name}, shutting down...")
        indexer.request_stop()

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, signal_handler, signum)

    try:
        await indexer.initialize()
        await indexer.start()
    except Exception as e:
        logger.error("Indexer service failed", error=str(e))
        raise
    finally:
        if indexer.shutdown_task is not None:
            await indexer.shutdown_task
        else:
            await indexer.stop()


if __name__ == "__main__":
    asyncio.run(main())
