"""
Health routes: fresh composite status, the cached last result and the
persisted history.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

import structlog

from chainwatch.api.dependencies import get_aggregator, get_queries
from chainwatch.api.schemas.common import SuccessResponse, create_success_response
from chainwatch.api.schemas.records import CachedHealthResponse, HealthCheckResponse
from chainwatch.core.exceptions import AggregationError, InvalidArgumentError, StoreError
from chainwatch.health.aggregator import HealthAggregator
from chainwatch.persistence.queries import RecordQueries


logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get(
    "",
    response_model=SuccessResponse,
    summary="Health Status",
    description="Run every health probe and return the composite status"
)
async def get_health(aggregator: HealthAggregator = Depends(get_aggregator)):
    try:
        health = await aggregator.check_health()
    except AggregationError as e:
        logger.error("Error getting health status", error=e.message)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": e.code,
                "message": "Failed to get health status"
            }
        )
    return create_success_response(data=health.to_dict(), message=f"Status: {health.status.value}")


@router.get(
    "/last",
    response_model=SuccessResponse,
    summary="Last Health Status",
    description="Most recent composite status without running the probes"
)
async def get_last_health(aggregator: HealthAggregator = Depends(get_aggregator)):
    health = aggregator.get_last_health_check()
    if health is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": "NO_HEALTH_DATA",
                "message": "No health check data available"
            }
        )
    cached = CachedHealthResponse(
        health=health.to_dict(),
        age_seconds=aggregator.last_health_age(),
        stale=aggregator.is_stale(),
    )
    return create_success_response(data=cached.model_dump())


@router.get(
    "/history",
    response_model=SuccessResponse,
    summary="Health History",
    description="Persisted health checks, newest first"
)
async def get_health_history(
    limit: int = Query(10, description="Number of health checks to return"),
    queries: RecordQueries = Depends(get_queries),
):
    try:
        checks = await queries.get_health_history(limit)
    except InvalidArgumentError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": e.code, "message": e.message}
        )
    except StoreError as e:
        logger.error("Error retrieving health history", error=e.message)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": e.code, "message": "Failed to retrieve health history"}
        )

    return create_success_response(
        data=[HealthCheckResponse.model_validate(check).model_dump(mode="json") for check in checks]
    )
