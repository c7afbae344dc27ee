"""
Event routes.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

import structlog

from chainwatch.api.dependencies import get_queries
from chainwatch.api.schemas.common import SuccessResponse, create_success_response
from chainwatch.api.schemas.records import EventResponse
from chainwatch.core.exceptions import InvalidArgumentError, StoreError
from chainwatch.persistence.queries import RecordQueries


logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get(
    "",
    response_model=SuccessResponse,
    summary="Recent Events",
    description="Most recent contract events, newest first"
)
async def get_events(
    limit: int = Query(100, description="Number of events to return"),
    queries: RecordQueries = Depends(get_queries),
):
    try:
        events = await queries.get_recent_events(limit)
    except InvalidArgumentError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": e.code, "message": e.message}
        )
    except StoreError as e:
        logger.error("Error retrieving events", error=e.message)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": e.code, "message": "Failed to fetch events"}
        )

    return create_success_response(
        data=[EventResponse.model_validate(event).model_dump(mode="json") for event in events],
        message=f"{len(events)} events"
    )
