#!/usr/bin/env python3
"""
Record store management script for chainwatch.
"""

import asyncio
import json
import sys
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from chainwatch.core.config import settings, Settings
from chainwatch.core.database import Database
from chainwatch.core.exceptions import ChainwatchException, StoreError
from chainwatch.core.logging import setup_logging, get_logger
from chainwatch.persistence.batch_writer import BatchWriter
from chainwatch.persistence.queries import RecordQueries
from chainwatch.persistence.record_store import RecordStore
from chainwatch.persistence.types import (
    ContractEvent,
    HealthCheck,
    HealthCheckDetails,
    RecordKind,
)

console = Console()
logger = get_logger(__name__)
app = typer.Typer(help="Record store management commands")

DatabaseUrlOption = typer.Option(None, "--database-url", help="Override DATABASE_URL")


def _config(database_url: Optional[str]) -> Settings:
    if database_url:
        return settings.model_copy(update={"database_url": database_url})
    return settings


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except ChainwatchException as e:
        console.print(f"❌ {e.message}")
        raise typer.Exit(code=1)


def sample_events(contract_address: str = "0x123...abc") -> List[ContractEvent]:
    """One event of each known type."""
    now = datetime.now(timezone.utc)
    return [
        ContractEvent(
            event_type="ApiKeyUpdated",
            contract_address=contract_address,
            block_number=1000,
            transaction_hash="0xabc...123",
            data={"oldKey": "old_key_123", "newKey": "new_key_456"},
            timestamp=now,
        ),
        ContractEvent(
            event_type="UsersBatchUpdated",
            contract_address=contract_address,
            block_number=1001,
            transaction_hash="0xdef...456",
            data={"batchId": 1, "addedUsers": ["0x111", "0x222"], "removedUsers": []},
            timestamp=now,
        ),
        ContractEvent(
            event_type="LimitChanged",
            contract_address=contract_address,
            block_number=1002,
            transaction_hash="0xghi...789",
            data={"oldLimit": 100, "newLimit": 200},
            timestamp=now,
        ),
    ]


def sample_health_checks() -> List[HealthCheck]:
    """A current and an hour-old healthy snapshot."""
    now = datetime.now(timezone.utc)
    return [
        HealthCheck(
            status="healthy",
            timestamp=now,
            details=HealthCheckDetails(
                contract_status="operational",
                network_status="connected",
                last_block=1000,
                user_count=50,
            ),
        ),
        HealthCheck(
            status="healthy",
            timestamp=now - timedelta(hours=1),
            details=HealthCheckDetails(
                contract_status="operational",
                network_status="connected",
                last_block=999,
                user_count=48,
            ),
        ),
    ]


def _print_json(title: str, payload) -> None:
    console.print(f"\n[bold]{title}[/bold]")
    console.print_json(json.dumps(payload, default=str))


@app.command()
def init(database_url: Optional[str] = DatabaseUrlOption):
    """Initialize the record store with tables."""
    async def _init():
        config = _config(database_url)
        setup_logging(config=config)
        database = Database(config)
        await database.create_tables()
        await database.disconnect()
        console.print("✅ Database initialized successfully!")

    _run(_init())


@app.command()
def reset(
    database_url: Optional[str] = DatabaseUrlOption,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Reset the record store (drop all tables)."""
    if not yes and not typer.confirm("Are you sure you want to drop all tables?"):
        console.print("❌ Operation cancelled")
        return

    async def _reset():
        config = _config(database_url)
        setup_logging(config=config)
        database = Database(config)
        await database.drop_tables()
        await database.disconnect()
        console.print("🗑️ All tables dropped!")

    _run(_reset())


@app.command()
def health(database_url: Optional[str] = DatabaseUrlOption):
    """Check record store connectivity."""
    async def _health() -> bool:
        config = _config(database_url)
        setup_logging(config=config)
        database = Database(config)
        is_healthy = await database.health_check()
        await database.disconnect()
        return is_healthy

    is_healthy = False
    try:
        is_healthy = asyncio.run(_health())
    except ChainwatchException as e:
        console.print(f"❌ {e.message}")

    if is_healthy:
        console.print("✅ Database is healthy!")
    else:
        console.print("❌ Database health check failed!")
        sys.exit(1)


@app.command()
def seed(database_url: Optional[str] = DatabaseUrlOption):
    """Seed the record store with sample events and health checks."""
    console.print("🌱 Seeding database with sample data...")

    async def _seed():
        config = _config(database_url)
        setup_logging(config=config)
        database = Database(config)
        await database.create_tables()

        store = RecordStore(database)
        writer = BatchWriter(store, config=config)
        queries = RecordQueries(store)

        events = await writer.save_events(sample_events())
        console.print(f"✅ {events.saved_count} contract events inserted")
        checks = await writer.save_health_checks(sample_health_checks())
        console.print(f"✅ {checks.saved_count} health checks inserted")

        recent = await queries.get_recent_events(5)
        _print_json("Recent events", [vars(event) for event in recent])

        history = await queries.get_health_history(5)
        _print_json(
            "Health history",
            [{**vars(check), "details": vars(check.details)} for check in history]
        )

        _print_json("Event statistics", await queries.get_event_statistics())

        await database.disconnect()
        console.print("\n✅ Database seeded successfully!")

    _run(_seed())


@app.command()
def status(database_url: Optional[str] = DatabaseUrlOption):
    """Show record store status."""
    table = Table(title="Database Status")
    table.add_column("Component", style="cyan")
    table.add_column("Status", style="green")

    async def _status():
        config = _config(database_url)
        setup_logging(config=config)
        database = Database(config)
        store = RecordStore(database)

        is_healthy = await database.health_check()
        table.add_row("Database", "✅ Connected" if is_healthy else "❌ Disconnected")

        if is_healthy:
            for kind in RecordKind:
                try:
                    table.add_row(kind.value, f"{await store.count(kind)} rows")
                except StoreError:
                    table.add_row(kind.value, "❌ Not initialized")

        console.print(table)
        await database.disconnect()

    _run(_status())


if __name__ == "__main__":
    app()
