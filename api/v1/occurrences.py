"""Class occurrence API endpoints: ad hoc sessions and schedule views."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_class_capacity, get_clock
from app.schemas.class_occurrence import (
    OccurrenceCreate,
    OccurrenceDetailResponse,
    OccurrenceListResponse,
    OccurrenceResponse,
    OccurrenceUpdate,
)
from app.services.occurrence_service import OccurrenceService, OccurrenceWithCount
from app.utils.clock import Clock
from core.db import get_db
from core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/occurrences", tags=["Occurrences"])


def occurrence_to_detail(item: OccurrenceWithCount) -> OccurrenceDetailResponse:
    """Convert an occurrence and its head count to a response."""
    base = OccurrenceResponse.model_validate(item.occurrence)
    return OccurrenceDetailResponse(
        **base.model_dump(),
        enrolled_count=item.enrolled_count,
        capacity=item.capacity,
        available_spots=item.available_spots,
    )


@router.post("", response_model=OccurrenceResponse, status_code=status.HTTP_201_CREATED)
async def create_occurrence(
    data: OccurrenceCreate,
    db_session: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> OccurrenceResponse:
    """Create a one-off class. Date and time are in the studio timezone."""
    occurrence = await OccurrenceService(db_session, clock).create_occurrence(data)
    return OccurrenceResponse.model_validate(occurrence)


@router.get("", response_model=OccurrenceListResponse)
async def list_occurrences(
    start: datetime = Query(..., description="Range start (inclusive)"),
    end: datetime = Query(..., description="Range end (exclusive)"),
    db_session: AsyncSession = Depends(get_db),
    capacity: int = Depends(get_class_capacity),
) -> OccurrenceListResponse:
    """List occurrences in a time range with their enrollment counts."""
    items = await OccurrenceService(db_session, capacity=capacity).list_occurrences(
        start, end
    )
    return OccurrenceListResponse(
        items=[occurrence_to_detail(item) for item in items],
        total=len(items),
    )


@router.get("/{occurrence_id}", response_model=OccurrenceDetailResponse)
async def get_occurrence(
    occurrence_id: str,
    db_session: AsyncSession = Depends(get_db),
    capacity: int = Depends(get_class_capacity),
) -> OccurrenceDetailResponse:
    item = await OccurrenceService(
        db_session, capacity=capacity
    ).get_occurrence_with_count(occurrence_id)
    return occurrence_to_detail(item)


@router.patch("/{occurrence_id}", response_model=OccurrenceResponse)
async def update_occurrence(
    occurrence_id: str,
    data: OccurrenceUpdate,
    db_session: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> OccurrenceResponse:
    occurrence = await OccurrenceService(db_session, clock).update_occurrence(
        occurrence_id, data
    )
    return OccurrenceResponse.model_validate(occurrence)


@router.delete("/{occurrence_id}")
async def delete_occurrence(
    occurrence_id: str,
    db_session: AsyncSession = Depends(get_db),
) -> dict:
    """Delete an occurrence and every enrollment in it."""
    removed = await OccurrenceService(db_session).delete_occurrence(occurrence_id)
    return {
        "message": "Occurrence deleted successfully",
        "occurrence_id": occurrence_id,
        "enrollments_removed": removed,
    }
