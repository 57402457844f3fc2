"""Class occurrence model: one dated, timed session."""

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Dict, Optional, Sequence
from uuid import uuid4

from sqlalchemy import (
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    or_,
    select,
)
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column, relationship, selectinload

from core.db import Base, TimestampMixin, UTCDateTime

if TYPE_CHECKING:
    from app.models.class_template import ClassTemplate
    from app.models.student import Student


class ClassOccurrence(Base, TimestampMixin):
    """Concrete class session, created ad hoc or by template expansion."""

    __tablename__ = "class_occurrences"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    start_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    duration_minutes: Mapped[int] = mapped_column(Integer, default=60, nullable=False)
    student_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("students.id"), nullable=True, index=True
    )  # Single-student session
    template_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("class_templates.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )  # Set for occurrences generated from a template
    template_slot_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime, nullable=True
    )  # Generated slot of a rescheduled occurrence
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        # Expansion never materializes the same template slot twice
        UniqueConstraint("template_id", "start_at", name="uq_occurrence_template_start"),
    )

    student: Mapped[Optional["Student"]] = relationship("Student", lazy="selectin")
    template: Mapped[Optional["ClassTemplate"]] = relationship("ClassTemplate")

    @property
    def end_at(self) -> datetime:
        return self.start_at + timedelta(minutes=self.duration_minutes)

    def has_started(self, now: datetime) -> bool:
        return self.start_at <= now

    @classmethod
    async def get_by_id(
        cls, db_session: AsyncSession, id: str
    ) -> Optional["ClassOccurrence"]:
        """Get occurrence by ID."""
        result = await db_session.execute(
            select(cls).options(selectinload(cls.student)).where(cls.id == id)
        )
        return result.scalars().first()

    @classmethod
    async def get_for_update(
        cls, db_session: AsyncSession, id: str
    ) -> Optional["ClassOccurrence"]:
        """Load the occurrence row locked for the rest of the transaction.

        FOR UPDATE is ignored by SQLite; the in-process occurrence lock
        covers that backend.
        """
        result = await db_session.execute(
            select(cls).where(cls.id == id).with_for_update()
        )
        return result.scalars().first()

    @classmethod
    async def get_in_range(
        cls, db_session: AsyncSession, start: datetime, end: datetime
    ) -> Sequence["ClassOccurrence"]:
        """Occurrences starting in [start, end), ordered by start."""
        result = await db_session.execute(
            select(cls)
            .options(selectinload(cls.student))
            .where(cls.start_at >= start, cls.start_at < end)
            .order_by(cls.start_at, cls.id)
        )
        return result.scalars().all()

    @classmethod
    async def get_by_template(
        cls,
        db_session: AsyncSession,
        template_id: str,
        starting_after: Optional[datetime] = None,
    ) -> Sequence["ClassOccurrence"]:
        """Occurrences generated by a template, optionally only future ones."""
        conditions = [cls.template_id == template_id]
        if starting_after is not None:
            conditions.append(cls.start_at > starting_after)

        result = await db_session.execute(
            select(cls).where(*conditions).order_by(cls.start_at)
        )
        return result.scalars().all()

    @classmethod
    async def get_template_starts(
        cls,
        db_session: AsyncSession,
        template_id: str,
        start: datetime,
        end: datetime,
    ) -> set[datetime]:
        """Template slots in [start, end] that are already taken.

        A rescheduled occurrence holds both its new start and the slot it
        was generated for.
        """
        result = await db_session.execute(
            select(cls.start_at, cls.template_slot_at).where(
                cls.template_id == template_id,
                or_(
                    cls.start_at.between(start, end),
                    cls.template_slot_at.between(start, end),
                ),
            )
        )
        taken = set()
        for start_at, slot_at in result.all():
            taken.add(start_at)
            if slot_at is not None:
                taken.add(slot_at)
        return taken

    @classmethod
    async def count_enrollments(
        cls, db_session: AsyncSession, occurrence_ids: Sequence[str]
    ) -> Dict[str, int]:
        """Enrollment counts keyed by occurrence id (missing ids count 0)."""
        from app.models.enrollment import Enrollment

        counts = {occurrence_id: 0 for occurrence_id in occurrence_ids}
        if not occurrence_ids:
            return counts

        result = await db_session.execute(
            select(Enrollment.occurrence_id, func.count(Enrollment.id))
            .where(Enrollment.occurrence_id.in_(occurrence_ids))
            .group_by(Enrollment.occurrence_id)
        )
        counts.update(dict(result.all()))
        return counts
