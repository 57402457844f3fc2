"""Student model: the client directory record read by the scheduling core."""

import enum
from decimal import Decimal
from typing import Dict, Optional, Sequence
from uuid import uuid4

from sqlalchemy import Enum, Integer, Numeric, String, Text, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base, TimestampMixin
from core.exceptions.base import NotFoundException


class EnrollmentTier(str, enum.Enum):
    """Enrollment category of a client, used for displacement priority."""

    PAY_PER_SESSION = "pay_per_session"  # Highest priority, may displace others
    SUBSIDIZED_TIER_A = "subsidized_tier_a"
    SUBSIDIZED_TIER_B = "subsidized_tier_b"  # Lowest priority

    @property
    def rank(self) -> int:
        """Priority rank, 0 is highest."""
        return TIER_RANKS[self]

    @property
    def is_subsidized(self) -> bool:
        return self in (EnrollmentTier.SUBSIDIZED_TIER_A, EnrollmentTier.SUBSIDIZED_TIER_B)


TIER_RANKS = {
    EnrollmentTier.PAY_PER_SESSION: 0,
    EnrollmentTier.SUBSIDIZED_TIER_A: 1,
    EnrollmentTier.SUBSIDIZED_TIER_B: 2,
}


class Student(Base, TimestampMixin):
    """Client of the studio."""

    __tablename__ = "students"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    enrollment_tier: Mapped[EnrollmentTier] = mapped_column(
        Enum(EnrollmentTier, native_enum=False, values_callable=lambda x: [e.value for e in x]),
        default=EnrollmentTier.PAY_PER_SESSION,
        nullable=False,
    )

    # Billing
    monthly_fee: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2), nullable=True
    )
    due_day: Mapped[int] = mapped_column(Integer, default=5, nullable=False)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @classmethod
    async def get_by_id(
        cls, db_session: AsyncSession, id: str
    ) -> Optional["Student"]:
        """Get student by ID."""
        result = await db_session.execute(select(cls).where(cls.id == id))
        return result.scalars().first()

    @classmethod
    async def get_by_ids(
        cls, db_session: AsyncSession, ids: Sequence[str]
    ) -> Sequence["Student"]:
        if not ids:
            return []
        result = await db_session.execute(select(cls).where(cls.id.in_(ids)))
        return result.scalars().all()

    @classmethod
    async def get_enrollment_tier(
        cls, db_session: AsyncSession, student_id: str
    ) -> EnrollmentTier:
        """Resolve a client's current tier at decision time."""
        result = await db_session.execute(
            select(cls.enrollment_tier).where(cls.id == student_id)
        )
        tier = result.scalar_one_or_none()
        if tier is None:
            raise NotFoundException(message=f"Student {student_id} not found")
        return tier

    @classmethod
    async def get_tiers(
        cls, db_session: AsyncSession, ids: Sequence[str]
    ) -> Dict[str, EnrollmentTier]:
        """Current tiers keyed by student id, read straight from the table."""
        if not ids:
            return {}
        result = await db_session.execute(
            select(cls.id, cls.enrollment_tier).where(cls.id.in_(ids))
        )
        return dict(result.all())
