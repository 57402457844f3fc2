"""Recurring class template model."""

import enum
from datetime import date, time
from typing import TYPE_CHECKING, List, Optional, Sequence
from uuid import uuid4

from sqlalchemy import JSON, Date, ForeignKey, Integer, String, Text, Time, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column, relationship, selectinload

from core.db import Base, TimestampMixin

if TYPE_CHECKING:
    from app.models.student import Student


class Weekday(str, enum.Enum):
    """Days of the week."""

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def from_date(cls, value: date) -> "Weekday":
        return WEEKDAY_ORDER[value.weekday()]


WEEKDAY_ORDER = [
    Weekday.MONDAY,
    Weekday.TUESDAY,
    Weekday.WEDNESDAY,
    Weekday.THURSDAY,
    Weekday.FRIDAY,
    Weekday.SATURDAY,
    Weekday.SUNDAY,
]


class ClassTemplate(Base, TimestampMixin):
    """Recurrence rule that generates class occurrences."""

    __tablename__ = "class_templates"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    title: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    student_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("students.id"), nullable=True, index=True
    )  # Single-student template

    # Schedule
    start_time_of_day: Mapped[time] = mapped_column(Time, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, default=60, nullable=False)
    weekdays: Mapped[List[str]] = mapped_column(JSON, nullable=False)  # ["monday", "wednesday"]
    recurrence_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    recurrence_end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    student: Mapped[Optional["Student"]] = relationship("Student", lazy="selectin")

    @property
    def weekday_set(self) -> set[Weekday]:
        return {Weekday(day) for day in self.weekdays}

    @property
    def display_title(self) -> str:
        """Title given to generated occurrences."""
        if self.student is not None:
            return f"Session with {self.student.name}"
        return self.title or ""

    def runs_on(self, day: date) -> bool:
        """Check whether the rule produces an occurrence on the given date."""
        if day < self.recurrence_start_date:
            return False
        if self.recurrence_end_date and day > self.recurrence_end_date:
            return False
        return Weekday.from_date(day) in self.weekday_set

    @classmethod
    async def get_by_id(
        cls, db_session: AsyncSession, id: str
    ) -> Optional["ClassTemplate"]:
        """Get template by ID."""
        result = await db_session.execute(
            select(cls).options(selectinload(cls.student)).where(cls.id == id)
        )
        return result.scalars().first()

    @classmethod
    async def get_all(cls, db_session: AsyncSession) -> Sequence["ClassTemplate"]:
        result = await db_session.execute(
            select(cls)
            .options(selectinload(cls.student))
            .order_by(cls.recurrence_start_date, cls.start_time_of_day, cls.id)
        )
        return result.scalars().all()
