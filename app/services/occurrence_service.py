"""Occurrence service for ad hoc sessions and schedule views."""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.class_occurrence import ClassOccurrence
from app.models.enrollment import Enrollment
from app.models.student import Student
from app.schemas.class_occurrence import OccurrenceCreate, OccurrenceUpdate
from app.utils.clock import Clock, as_utc, default_clock
from core.config import config
from core.exceptions.base import ConflictException, NotFoundException, ValidationException
from core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class OccurrenceWithCount:
    """Occurrence plus its head count against the studio capacity."""

    occurrence: ClassOccurrence
    enrolled_count: int
    capacity: int

    @property
    def available_spots(self) -> int:
        return max(self.capacity - self.enrolled_count, 0)


def occurrence_title(student: Optional[Student], title: Optional[str]) -> str:
    if student is not None:
        return f"Session with {student.name}"
    if not (title and title.strip()):
        raise ValidationException(message="title is required when no student is linked")
    return title


class OccurrenceService:
    """Service for managing individual class occurrences."""

    def __init__(
        self,
        db_session: AsyncSession,
        clock: Optional[Clock] = None,
        capacity: Optional[int] = None,
    ):
        self.db_session = db_session
        self.clock = clock or default_clock
        self.capacity = capacity or config.CLASS_CAPACITY

    async def _get_student(self, student_id: Optional[str]) -> Optional[Student]:
        if not student_id:
            return None
        student = await Student.get_by_id(self.db_session, student_id)
        if not student:
            raise NotFoundException(message=f"Student {student_id} not found")
        return student

    async def get_occurrence(self, occurrence_id: str) -> ClassOccurrence:
        occurrence = await ClassOccurrence.get_by_id(self.db_session, occurrence_id)
        if not occurrence:
            raise NotFoundException(message="Occurrence not found")
        return occurrence

    async def get_occurrence_with_count(self, occurrence_id: str) -> OccurrenceWithCount:
        occurrence = await self.get_occurrence(occurrence_id)
        counts = await ClassOccurrence.count_enrollments(self.db_session, [occurrence.id])
        return OccurrenceWithCount(occurrence, counts[occurrence.id], self.capacity)

    async def list_occurrences(
        self, start: datetime, end: datetime
    ) -> List[OccurrenceWithCount]:
        """
        Occurrences starting in [start, end) with their enrollment counts.

        Backs the daily and weekly schedule views.
        """
        start, end = as_utc(start), as_utc(end)
        if end <= start:
            raise ValidationException(
                message="end must be after start",
                data={"start": start.isoformat(), "end": end.isoformat()},
            )

        occurrences = await ClassOccurrence.get_in_range(self.db_session, start, end)
        counts = await ClassOccurrence.count_enrollments(
            self.db_session, [o.id for o in occurrences]
        )
        return [
            OccurrenceWithCount(o, counts[o.id], self.capacity) for o in occurrences
        ]

    async def create_occurrence(self, data: OccurrenceCreate) -> ClassOccurrence:
        """Create a one-off occurrence from a studio-local date and time."""
        student = await self._get_student(data.student_id)
        occurrence = ClassOccurrence(
            title=occurrence_title(student, data.title),
            start_at=self.clock.to_utc(data.start_date, data.start_time),
            duration_minutes=data.duration_minutes,
            student_id=student.id if student else None,
            notes=data.notes,
        )
        self.db_session.add(occurrence)
        await self.db_session.commit()

        logger.info(
            f"Occurrence created: {occurrence.id} '{occurrence.title}' at "
            f"{occurrence.start_at.isoformat()}"
        )
        return await self.get_occurrence(occurrence.id)

    async def update_occurrence(
        self, occurrence_id: str, data: OccurrenceUpdate
    ) -> ClassOccurrence:
        """
        Edit an occurrence.

        A generated occurrence that is moved stays linked to its template and
        keeps the slot it was generated for, so expansion does not fill that
        slot again.

        Raises:
            NotFoundException: Occurrence or student not found
            ConflictException: Template already has an occurrence at the new start
        """
        occurrence = await self.get_occurrence(occurrence_id)
        patch = data.model_dump(exclude_unset=True)

        try:
            student = occurrence.student
            if "student_id" in patch:
                student = await self._get_student(patch["student_id"])
            occurrence.title = occurrence_title(
                student, patch.get("title", occurrence.title)
            )
            occurrence.student = student
            occurrence.student_id = student.id if student else None

            if patch.get("start_date") is not None:
                start_at = self.clock.to_utc(patch["start_date"], patch["start_time"])
                if occurrence.template_id is not None and start_at != occurrence.start_at:
                    slot_at = occurrence.template_slot_at or occurrence.start_at
                    occurrence.template_slot_at = None if start_at == slot_at else slot_at
                occurrence.start_at = start_at
            if patch.get("duration_minutes") is not None:
                occurrence.duration_minutes = patch["duration_minutes"]
            if "notes" in patch:
                occurrence.notes = patch["notes"]

            await self.db_session.commit()
        except IntegrityError:
            await self.db_session.rollback()
            raise ConflictException(
                message="The template already has a class at that time",
                data={"occurrence_id": occurrence_id},
            )
        except Exception:
            await self.db_session.rollback()
            raise

        logger.info(f"Occurrence updated: {occurrence_id}")
        return occurrence

    async def delete_occurrence(self, occurrence_id: str) -> int:
        """
        Delete an occurrence together with its enrollments.

        Returns:
            Number of enrollments removed
        """
        await self.get_occurrence(occurrence_id)
        try:
            result = await self.db_session.execute(
                delete(Enrollment).where(Enrollment.occurrence_id == occurrence_id)
            )
            removed = result.rowcount
            await self.db_session.execute(
                delete(ClassOccurrence).where(ClassOccurrence.id == occurrence_id)
            )
            await self.db_session.commit()
        except Exception:
            await self.db_session.rollback()
            raise

        logger.info(
            f"Occurrence deleted: {occurrence_id} ({removed} enrollments removed)"
        )
        return removed
