"""Enrollment API endpoints: seating, displacement and removal."""

from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_class_capacity, get_clock
from app.models.enrollment import Enrollment
from app.schemas.enrollment import (
    ConfirmDisplacementRequest,
    EnrollmentDecisionResponse,
    EnrollmentListResponse,
    EnrollmentResponse,
    EnrollRequest,
)
from app.services.enrollment_service import EnrollmentOutcome, EnrollmentService
from app.utils.clock import Clock
from core.db import get_db
from core.exceptions.base import CapacityExceededException
from core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["Enrollments"])


def enrollment_to_response(enrollment: Optional[Enrollment]) -> Optional[EnrollmentResponse]:
    """Convert Enrollment model to response with the student's name and tier."""
    if enrollment is None:
        return None
    student = enrollment.student
    return EnrollmentResponse(
        id=enrollment.id,
        occurrence_id=enrollment.occurrence_id,
        student_id=enrollment.student_id,
        status=enrollment.status,
        enrolled_at=enrollment.enrolled_at,
        created_at=enrollment.created_at,
        updated_at=enrollment.updated_at,
        student_name=student.name if student else None,
        enrollment_tier=student.enrollment_tier if student else None,
    )


@router.get(
    "/occurrences/{occurrence_id}/enrollments",
    response_model=EnrollmentListResponse,
)
async def list_enrollments(
    occurrence_id: str,
    db_session: AsyncSession = Depends(get_db),
    capacity: int = Depends(get_class_capacity),
) -> EnrollmentListResponse:
    """Roster of an occurrence, oldest enrollment first."""
    roster = await EnrollmentService(db_session, capacity=capacity).list_enrollments(
        occurrence_id
    )
    return EnrollmentListResponse(
        occurrence_id=occurrence_id,
        items=[enrollment_to_response(e) for e in roster],
        total=len(roster),
        capacity=capacity,
    )


@router.post(
    "/occurrences/{occurrence_id}/enrollments",
    response_model=EnrollmentDecisionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def enroll(
    occurrence_id: str,
    data: EnrollRequest,
    response: Response,
    db_session: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    capacity: int = Depends(get_class_capacity),
) -> EnrollmentDecisionResponse:
    """
    Seat a student in an occurrence.

    Returns 201 when enrolled. When the class is full a pay-per-session
    client gets 200 with a displacement proposal to confirm; anyone else
    gets 409 CAPACITY_EXCEEDED.
    """
    decision = await EnrollmentService(db_session, clock, capacity).try_enroll(
        occurrence_id, data.student_id
    )

    if decision.outcome == EnrollmentOutcome.REJECTED:
        raise CapacityExceededException(
            message=decision.reason,
            data={"occurrence_id": occurrence_id, "student_id": data.student_id},
        )
    if decision.outcome == EnrollmentOutcome.DISPLACEMENT_PROPOSED:
        response.status_code = status.HTTP_200_OK

    return EnrollmentDecisionResponse(
        outcome=decision.outcome.value,
        enrollment=enrollment_to_response(decision.enrollment),
        victim=enrollment_to_response(decision.victim),
        reason=decision.reason,
    )


@router.post(
    "/occurrences/{occurrence_id}/enrollments/confirm-displacement",
    response_model=EnrollmentDecisionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def confirm_displacement(
    occurrence_id: str,
    data: ConfirmDisplacementRequest,
    db_session: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    capacity: int = Depends(get_class_capacity),
) -> EnrollmentDecisionResponse:
    """Carry out a displacement proposed by a previous enrollment attempt."""
    decision = await EnrollmentService(db_session, clock, capacity).confirm_displacement(
        occurrence_id, data.victim_enrollment_id, data.student_id
    )
    return EnrollmentDecisionResponse(
        outcome=decision.outcome.value,
        enrollment=enrollment_to_response(decision.enrollment),
        displaced=enrollment_to_response(decision.displaced),
    )


@router.delete("/enrollments/{enrollment_id}")
async def remove_enrollment(
    enrollment_id: str,
    db_session: AsyncSession = Depends(get_db),
) -> dict:
    """Remove an enrollment; its seat is free immediately."""
    await EnrollmentService(db_session).remove_enrollment(enrollment_id)
    return {"message": "Enrollment removed successfully", "enrollment_id": enrollment_id}
