"""API routes package."""

from . import events, health, stats

__all__ = ["events", "health", "stats"]
