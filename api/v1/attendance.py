"""Attendance API endpoints for marking and reviewing attendance."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.v1.enrollments import enrollment_to_response
from app.schemas.enrollment import (
    AttendanceHistoryItem,
    AttendanceHistoryResponse,
    AttendanceMarkBulk,
    AttendanceUpdate,
    EnrollmentResponse,
)
from app.services.attendance_service import AttendanceService
from core.db import get_db
from core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["Attendance"])


@router.patch("/enrollments/{enrollment_id}/attendance", response_model=EnrollmentResponse)
async def update_attendance(
    enrollment_id: str,
    data: AttendanceUpdate,
    db_session: AsyncSession = Depends(get_db),
) -> EnrollmentResponse:
    """Set the attendance status of an enrollment. Any status may replace any other."""
    enrollment = await AttendanceService(db_session).update_attendance(
        enrollment_id, data.status
    )
    return enrollment_to_response(enrollment)


@router.post("/occurrences/{occurrence_id}/attendance")
async def mark_attendance(
    occurrence_id: str,
    data: AttendanceMarkBulk,
    db_session: AsyncSession = Depends(get_db),
) -> dict:
    """Mark attendance for several students of one class."""
    logger.info(
        f"Marking attendance for {len(data.records)} students "
        f"in occurrence {occurrence_id}"
    )
    updated = await AttendanceService(db_session).bulk_update_attendance(
        occurrence_id, data.records
    )
    return {
        "message": "Attendance marked successfully",
        "items": [enrollment_to_response(e) for e in updated],
    }


@router.get("/students/{student_id}/attendance", response_model=AttendanceHistoryResponse)
async def get_student_attendance(
    student_id: str,
    db_session: AsyncSession = Depends(get_db),
) -> AttendanceHistoryResponse:
    """Attendance history of a student, newest session first."""
    history = await AttendanceService(db_session).get_student_attendance_history(student_id)
    return AttendanceHistoryResponse(
        student_id=student_id,
        items=[
            AttendanceHistoryItem(
                enrollment_id=e.id,
                occurrence_id=e.occurrence_id,
                occurrence_title=e.occurrence.title,
                start_at=e.occurrence.start_at,
                status=e.status,
            )
            for e in history.enrollments
        ],
        sessions_present=history.sessions_present,
        sessions_absent=history.sessions_absent,
        sessions_scheduled=history.sessions_scheduled,
        attendance_rate=history.attendance_rate,
        current_streak=history.current_streak,
    )
