"""
Custom exception classes for the application.
Provides structured error handling across all modules.
"""

from typing import Any, Optional, Dict, List


class ChainwatchException(Exception):
    """Base exception class for the chainwatch service."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(ChainwatchException):
    """Raised when required configuration is missing or invalid."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIGURATION_ERROR", details)


class ValidationError(ChainwatchException):
    """Raised when a record fails validation before it is written."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "VALIDATION_ERROR", details)


class InvalidArgumentError(ChainwatchException):
    """Raised when a caller passes an argument outside its allowed range."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "INVALID_ARGUMENT", details)


class StoreError(ChainwatchException):
    """Base class for record store failures."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        code: str = "STORE_ERROR"
    ):
        super().__init__(message, code, details)


class StoreConnectionError(StoreError):
    """Raised when the record store cannot be reached at all."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, "STORE_CONNECTION_ERROR")


class TransientStoreError(StoreError):
    """Raised when a single store call fails; callers may retry."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, "TRANSIENT_STORE_ERROR")


class BulkWriteError(TransientStoreError):
    """Raised when a bulk insert was only partially applied."""

    def __init__(
        self,
        message: str,
        inserted: List[int],
        failed: List[int],
        details: Optional[Dict[str, Any]] = None
    ):
        self.inserted = inserted
        self.failed = failed
        details = dict(details or {})
        details.update({"inserted": len(inserted), "failed": len(failed)})
        super().__init__(message, details)
        self.code = "BULK_WRITE_ERROR"


class NoValidRecordsError(ChainwatchException):
    """Raised when a batch contains no record that passes validation."""

    def __init__(self, kind: str, invalid_count: int):
        super().__init__(
            f"No valid {kind} to save",
            "NO_VALID_RECORDS",
            {"kind": kind, "invalid": invalid_count}
        )


class ReconciliationGap(ChainwatchException):
    """A valid record the store does not reflect after reconciliation."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "RECONCILIATION_GAP", details)


class ChainClientError(ChainwatchException):
    """Raised when a chain RPC call fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CHAIN_CLIENT_ERROR", details)


class ProbeFailure(ChainwatchException):
    """A health probe's remote call failed."""

    def __init__(self, probe: str, message: str, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        details["probe"] = probe
        super().__init__(message, "PROBE_FAILURE", details)


class AggregationError(ChainwatchException):
    """Raised when a health status could not be composed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "AGGREGATION_ERROR", details)


class IndexerError(ChainwatchException):
    """Raised when there's an event indexer error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "INDEXER_ERROR", details)
