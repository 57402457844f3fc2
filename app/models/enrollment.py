"""Enrollment model linking a student to a class occurrence."""

import enum
from datetime import datetime
from typing import TYPE_CHECKING, Optional, Sequence
from uuid import uuid4

from sqlalchemy import (
    Enum,
    ForeignKey,
    String,
    UniqueConstraint,
    func,
    select,
)
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column, relationship, selectinload

from core.db import Base, TimestampMixin, UTCDateTime

if TYPE_CHECKING:
    from app.models.class_occurrence import ClassOccurrence
    from app.models.student import Student


class AttendanceStatus(str, enum.Enum):
    """Attendance status of an enrollment."""

    SCHEDULED = "scheduled"  # Initial status on enrollment
    PRESENT = "present"
    ABSENT = "absent"


class Enrollment(Base, TimestampMixin):
    """Seat held by a student in one occurrence.

    A removed enrollment is a deleted row; the occurrence head count is the
    number of rows.
    """

    __tablename__ = "enrollments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    occurrence_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("class_occurrences.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    student_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("students.id"), nullable=False, index=True
    )
    status: Mapped[AttendanceStatus] = mapped_column(
        Enum(AttendanceStatus, native_enum=False, values_callable=lambda x: [e.value for e in x]),
        default=AttendanceStatus.SCHEDULED,
        nullable=False,
    )
    enrolled_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "occurrence_id",
            "student_id",
            name="uq_enrollment_occurrence_student",
        ),
    )

    occurrence: Mapped["ClassOccurrence"] = relationship("ClassOccurrence")
    student: Mapped["Student"] = relationship("Student", lazy="selectin")

    @classmethod
    async def get_by_id(
        cls, db_session: AsyncSession, id: str
    ) -> Optional["Enrollment"]:
        """Get enrollment by ID."""
        result = await db_session.execute(
            select(cls).options(selectinload(cls.student)).where(cls.id == id)
        )
        return result.scalars().first()

    @classmethod
    async def get_by_occurrence(
        cls, db_session: AsyncSession, occurrence_id: str
    ) -> Sequence["Enrollment"]:
        """Roster of an occurrence, oldest enrollment first."""
        result = await db_session.execute(
            select(cls)
            .options(selectinload(cls.student))
            .where(cls.occurrence_id == occurrence_id)
            .order_by(cls.enrolled_at, cls.id)
        )
        return result.scalars().all()

    @classmethod
    async def get_by_occurrence_and_student(
        cls, db_session: AsyncSession, occurrence_id: str, student_id: str
    ) -> Optional["Enrollment"]:
        """Check if a student already holds a seat in an occurrence."""
        result = await db_session.execute(
            select(cls).where(
                cls.occurrence_id == occurrence_id,
                cls.student_id == student_id,
            )
        )
        return result.scalars().first()

    @classmethod
    async def count_by_occurrence(
        cls, db_session: AsyncSession, occurrence_id: str
    ) -> int:
        result = await db_session.execute(
            select(func.count(cls.id)).where(cls.occurrence_id == occurrence_id)
        )
        return result.scalar() or 0

    @classmethod
    async def get_by_student(
        cls, db_session: AsyncSession, student_id: str
    ) -> Sequence["Enrollment"]:
        """Enrollments of a student with their occurrences, newest session first."""
        from app.models.class_occurrence import ClassOccurrence

        result = await db_session.execute(
            select(cls)
            .join(ClassOccurrence, ClassOccurrence.id == cls.occurrence_id)
            .options(selectinload(cls.occurrence))
            .where(cls.student_id == student_id)
            .order_by(ClassOccurrence.start_at.desc(), cls.id)
        )
        return result.scalars().all()
