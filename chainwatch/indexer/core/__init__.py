"""
Core indexer components.
"""

from .types import IndexerStatus, ProcessingStats

__all__ = [
    "IndexerStatus",
    "ProcessingStats",
]
