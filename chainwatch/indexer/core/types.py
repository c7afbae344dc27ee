"""
Core types for event indexing.
"""

from datetime import datetime
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class IndexerStatus(Enum):
    """Status of the event indexer."""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class ProcessingStats:
    """Statistics for event processing."""
    events_received: int = 0
    events_saved: int = 0
    events_invalid: int = 0
    events_failed: int = 0
    batches_flushed: int = 0
    poll_cycles: int = 0
    errors: int = 0
    last_processed_block: Optional[int] = None
    start_time: Optional[datetime] = None
