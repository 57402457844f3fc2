"""Attendance service: per-enrollment status and student history."""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enrollment import AttendanceStatus, Enrollment
from app.models.student import Student
from app.schemas.enrollment import AttendanceMarkRecord
from core.exceptions.base import NotFoundException, ValidationException
from core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class AttendanceHistory:
    student_id: str
    enrollments: Sequence[Enrollment] = field(default_factory=list)
    sessions_present: int = 0
    sessions_absent: int = 0
    sessions_scheduled: int = 0
    current_streak: int = 0

    @property
    def attendance_rate(self) -> float:
        """Percentage present over sessions already marked."""
        marked = self.sessions_present + self.sessions_absent
        if marked == 0:
            return 0.0
        return round(self.sessions_present / marked * 100, 2)


def current_streak(enrollments: Sequence[Enrollment]) -> int:
    """
    Count consecutive PRESENT statuses from the most recent marked session.

    Expects enrollments newest first; unmarked sessions are skipped.
    """
    streak = 0
    for enrollment in enrollments:
        if enrollment.status == AttendanceStatus.SCHEDULED:
            continue
        if enrollment.status != AttendanceStatus.PRESENT:
            break  # Streak broken
        streak += 1
    return streak


class AttendanceService:
    """Service for marking attendance on enrollments.

    Status changes are plain overwrites: any status may be set from any
    other, so staff can correct a mistaken mark. Capacity is unaffected.
    """

    def __init__(self, db_session: AsyncSession):
        self.db_session = db_session

    async def update_attendance(
        self, enrollment_id: str, status: AttendanceStatus
    ) -> Enrollment:
        status = self._coerce_status(status)
        enrollment = await Enrollment.get_by_id(self.db_session, enrollment_id)
        if not enrollment:
            raise NotFoundException(message="Enrollment not found")

        previous = enrollment.status
        enrollment.status = status
        try:
            await self.db_session.commit()
        except Exception:
            await self.db_session.rollback()
            raise

        logger.info(
            f"Attendance for enrollment {enrollment_id}: "
            f"{previous.value} -> {status.value}"
        )
        return enrollment

    async def bulk_update_attendance(
        self, occurrence_id: str, records: List[AttendanceMarkRecord]
    ) -> Sequence[Enrollment]:
        """
        Mark attendance for several enrollments of one occurrence.

        Either every record is applied or none is.

        Raises:
            NotFoundException: A record names an enrollment outside the occurrence
        """
        roster = await Enrollment.get_by_occurrence(self.db_session, occurrence_id)
        by_id: Dict[str, Enrollment] = {e.id: e for e in roster}

        missing = [r.enrollment_id for r in records if r.enrollment_id not in by_id]
        if missing:
            raise NotFoundException(
                message="Enrollment not found in this class",
                data={"occurrence_id": occurrence_id, "enrollment_ids": missing},
            )

        try:
            for record in records:
                by_id[record.enrollment_id].status = self._coerce_status(record.status)
            await self.db_session.commit()
        except Exception:
            await self.db_session.rollback()
            raise

        logger.info(
            f"Marked attendance for {len(records)} enrollments in occurrence {occurrence_id}"
        )
        return [by_id[r.enrollment_id] for r in records]

    async def get_student_attendance_history(self, student_id: str) -> AttendanceHistory:
        """Sessions of a student, newest first, with attendance totals."""
        student = await Student.get_by_id(self.db_session, student_id)
        if not student:
            raise NotFoundException(message="Student not found")

        enrollments = await Enrollment.get_by_student(self.db_session, student_id)
        history = AttendanceHistory(student_id=student_id, enrollments=enrollments)
        for enrollment in enrollments:
            if enrollment.status == AttendanceStatus.PRESENT:
                history.sessions_present += 1
            elif enrollment.status == AttendanceStatus.ABSENT:
                history.sessions_absent += 1
            else:
                history.sessions_scheduled += 1
        history.current_streak = current_streak(enrollments)
        return history

    @staticmethod
    def _coerce_status(status) -> AttendanceStatus:
        try:
            return AttendanceStatus(status)
        except ValueError:
            raise ValidationException(
                message=f"Unknown attendance status: {status}",
                data={"allowed": [s.value for s in AttendanceStatus]},
            )
