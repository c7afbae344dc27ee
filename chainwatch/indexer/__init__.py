"""
Event indexer service.
"""

from .core import IndexerStatus, ProcessingStats

__all__ = [
    "IndexerStatus",
    "ProcessingStats",
]
