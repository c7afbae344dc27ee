"""
Statistics routes: record counts grouped by event type and by health status.
"""

from fastapi import APIRouter, Depends, HTTPException, status

import structlog

from chainwatch.api.dependencies import get_queries
from chainwatch.api.schemas.common import SuccessResponse, create_success_response
from chainwatch.api.schemas.records import EventStatsEntry
from chainwatch.core.exceptions import StoreError
from chainwatch.persistence.queries import RecordQueries
from chainwatch.persistence.types import RecordKind


logger = structlog.get_logger(__name__)

router = APIRouter()


def _unavailable(e: StoreError, what: str) -> HTTPException:
    logger.error(f"Error retrieving {what}", error=e.message)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={
            "error": e.code,
            "message": f"Failed to retrieve {what}"
        }
    )


@router.get(
    "",
    response_model=SuccessResponse,
    summary="Event Statistics",
    description="Count of stored events per event type"
)
async def get_event_stats(queries: RecordQueries = Depends(get_queries)):
    try:
        stats = await queries.get_event_statistics()
    except StoreError as e:
        raise _unavailable(e, "event statistics")
    return create_success_response(data=stats)


@router.get(
    "/detailed",
    response_model=SuccessResponse,
    summary="Detailed Event Statistics",
    description="Count and last occurrence per event type"
)
async def get_event_stats_detailed(queries: RecordQueries = Depends(get_queries)):
    try:
        stats = await queries.get_event_statistics_detailed()
    except StoreError as e:
        raise _unavailable(e, "event statistics")
    return create_success_response(data={
        event_type: EventStatsEntry(**entry).model_dump(mode="json")
        for event_type, entry in stats.items()
    })


@router.get(
    "/health",
    response_model=SuccessResponse,
    summary="Health Check Statistics",
    description="Count of stored health checks per status"
)
async def get_health_stats(queries: RecordQueries = Depends(get_queries)):
    try:
        stats = await queries.get_statistics(RecordKind.HEALTH_CHECKS)
    except StoreError as e:
        raise _unavailable(e, "health statistics")
    return create_success_response(data=stats)
