"""
API dependencies for FastAPI endpoints.

Service objects live on ``app.state.services``; these helpers hand the
pieces to route functions.
"""

from fastapi import HTTPException, Request, status

import structlog

from chainwatch.core.container import Services
from chainwatch.health.aggregator import HealthAggregator
from chainwatch.persistence.queries import RecordQueries


logger = structlog.get_logger(__name__)


def get_services(request: Request) -> Services:
    """Services attached to the running app."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        logger.error("Request received before services were initialized")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "SERVICE_UNAVAILABLE",
                "message": "Service is not initialized"
            }
        )
    return services


def get_queries(request: Request) -> RecordQueries:
    return get_services(request).queries


def get_aggregator(request: Request) -> HealthAggregator:
    return get_services(request).aggregator

