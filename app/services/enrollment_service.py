"""Enrollment service: capacity checks and priority displacement."""

import enum
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.class_occurrence import ClassOccurrence
from app.models.enrollment import AttendanceStatus, Enrollment
from app.models.student import EnrollmentTier, Student
from app.utils.clock import Clock, default_clock
from app.utils.locks import occurrence_locks
from core.config import config
from core.exceptions.base import (
    CapacityExceededException,
    ConflictException,
    NotFoundException,
)
from core.logging import get_logger

logger = get_logger(__name__)

REASON_CLASS_FULL = "class full"
REASON_TIER_CANNOT_DISPLACE = "class full; only pay-per-session clients may displace"


class EnrollmentOutcome(str, enum.Enum):
    ENROLLED = "enrolled"
    REJECTED = "rejected"
    DISPLACEMENT_PROPOSED = "displacement_proposed"


@dataclass
class EnrollmentDecision:
    """Result of an enrollment attempt.

    A proposal only names the victim; nothing is written until the caller
    confirms it.
    """

    outcome: EnrollmentOutcome
    enrollment: Optional[Enrollment] = None
    victim: Optional[Enrollment] = None
    displaced: Optional[Enrollment] = None
    reason: Optional[str] = None


def choose_victim(
    roster: Sequence[Enrollment], tiers: Dict[str, EnrollmentTier]
) -> Optional[Enrollment]:
    """
    Pick the enrollment a pay-per-session client would displace.

    Only subsidized enrollees qualify. Lowest priority tier goes first, then
    the earliest enrollment, then the id so the choice is stable.
    """
    candidates = [
        e for e in roster if tiers.get(e.student_id) and tiers[e.student_id].is_subsidized
    ]
    if not candidates:
        return None
    return min(
        candidates,
        key=lambda e: (-tiers[e.student_id].rank, e.enrolled_at, e.id),
    )


class EnrollmentService:
    """Service for seating students in class occurrences."""

    def __init__(
        self,
        db_session: AsyncSession,
        clock: Optional[Clock] = None,
        capacity: Optional[int] = None,
    ):
        self.db_session = db_session
        self.clock = clock or default_clock
        self.capacity = capacity or config.CLASS_CAPACITY

    async def _lock_occurrence(self, occurrence_id: str) -> ClassOccurrence:
        occurrence = await ClassOccurrence.get_for_update(self.db_session, occurrence_id)
        if not occurrence:
            raise NotFoundException(message="Occurrence not found")
        return occurrence

    async def _ensure_not_enrolled(self, occurrence_id: str, student_id: str) -> None:
        existing = await Enrollment.get_by_occurrence_and_student(
            self.db_session, occurrence_id, student_id
        )
        if existing:
            raise ConflictException(
                message="Student is already enrolled in this class",
                data={"occurrence_id": occurrence_id, "student_id": student_id},
            )

    def _new_enrollment(self, occurrence_id: str, student_id: str) -> Enrollment:
        enrollment = Enrollment(
            occurrence_id=occurrence_id,
            student_id=student_id,
            status=AttendanceStatus.SCHEDULED,
            enrolled_at=self.clock.now(),
        )
        self.db_session.add(enrollment)
        return enrollment

    async def _commit_enrollment(self, occurrence_id: str, student_id: str) -> None:
        try:
            await self.db_session.commit()
        except IntegrityError:
            await self.db_session.rollback()
            raise ConflictException(
                message="Student is already enrolled in this class",
                data={"occurrence_id": occurrence_id, "student_id": student_id},
            )

    async def try_enroll(self, occurrence_id: str, student_id: str) -> EnrollmentDecision:
        """
        Attempt to seat a student in an occurrence.

        With a free slot the student is enrolled right away. When the class is
        full a pay-per-session client gets a displacement proposal naming a
        subsidized enrollee; everyone else is rejected.

        Raises:
            NotFoundException: Occurrence or student not found
            ConflictException: Student already enrolled
        """
        async with occurrence_locks.hold(occurrence_id):
            try:
                await self._lock_occurrence(occurrence_id)
                requester_tier = await Student.get_enrollment_tier(
                    self.db_session, student_id
                )
                await self._ensure_not_enrolled(occurrence_id, student_id)

                roster = await Enrollment.get_by_occurrence(self.db_session, occurrence_id)
                if len(roster) < self.capacity:
                    enrollment = self._new_enrollment(occurrence_id, student_id)
                    await self._commit_enrollment(occurrence_id, student_id)
                    logger.info(
                        f"Student {student_id} enrolled in occurrence {occurrence_id} "
                        f"({len(roster) + 1}/{self.capacity})"
                    )
                    enrollment = await Enrollment.get_by_id(self.db_session, enrollment.id)
                    return EnrollmentDecision(
                        outcome=EnrollmentOutcome.ENROLLED, enrollment=enrollment
                    )

                # Full: nothing to write, end the transaction to release the row lock
                await self.db_session.commit()

                # Over capacity (capacity was lowered): a swap would still not fit
                if len(roster) > self.capacity:
                    logger.warning(
                        f"Enrollment rejected for student {student_id} in occurrence "
                        f"{occurrence_id}: {REASON_CLASS_FULL} "
                        f"({len(roster)}/{self.capacity})"
                    )
                    return EnrollmentDecision(
                        outcome=EnrollmentOutcome.REJECTED, reason=REASON_CLASS_FULL
                    )

                if requester_tier != EnrollmentTier.PAY_PER_SESSION:
                    logger.warning(
                        f"Enrollment rejected for student {student_id} in occurrence "
                        f"{occurrence_id}: {REASON_TIER_CANNOT_DISPLACE}"
                    )
                    return EnrollmentDecision(
                        outcome=EnrollmentOutcome.REJECTED,
                        reason=REASON_TIER_CANNOT_DISPLACE,
                    )

                tiers = await Student.get_tiers(
                    self.db_session, [e.student_id for e in roster]
                )
                victim = choose_victim(roster, tiers)
                if victim is None:
                    logger.warning(
                        f"Enrollment rejected for student {student_id} in occurrence "
                        f"{occurrence_id}: {REASON_CLASS_FULL}"
                    )
                    return EnrollmentDecision(
                        outcome=EnrollmentOutcome.REJECTED, reason=REASON_CLASS_FULL
                    )

                logger.info(
                    f"Displacement proposed in occurrence {occurrence_id}: "
                    f"student {student_id} over enrollment {victim.id}"
                )
                return EnrollmentDecision(
                    outcome=EnrollmentOutcome.DISPLACEMENT_PROPOSED, victim=victim
                )
            except Exception:
                await self.db_session.rollback()
                raise

    async def confirm_displacement(
        self, occurrence_id: str, victim_enrollment_id: str, student_id: str
    ) -> EnrollmentDecision:
        """
        Carry out a proposed displacement after re-checking current state.

        The proposal may be stale by now. If a slot has opened up the
        requester is enrolled and nobody is displaced. Otherwise the victim's
        enrollment is deleted and the requester's inserted in one transaction.

        Raises:
            NotFoundException: Occurrence, student or victim enrollment gone
            ConflictException: Requester already enrolled
            CapacityExceededException: Displacement no longer allowed
        """
        async with occurrence_locks.hold(occurrence_id):
            try:
                await self._lock_occurrence(occurrence_id)
                requester_tier = await Student.get_enrollment_tier(
                    self.db_session, student_id
                )

                victim = await Enrollment.get_by_id(self.db_session, victim_enrollment_id)
                if not victim or victim.occurrence_id != occurrence_id:
                    raise NotFoundException(
                        message="Enrollment to displace is no longer in this class",
                        data={
                            "occurrence_id": occurrence_id,
                            "victim_enrollment_id": victim_enrollment_id,
                        },
                    )
                await self._ensure_not_enrolled(occurrence_id, student_id)

                count = await Enrollment.count_by_occurrence(self.db_session, occurrence_id)
                displaced = None
                if count >= self.capacity:
                    if requester_tier != EnrollmentTier.PAY_PER_SESSION:
                        raise CapacityExceededException(message=REASON_TIER_CANNOT_DISPLACE)

                    tiers = await Student.get_tiers(self.db_session, [victim.student_id])
                    victim_tier = tiers.get(victim.student_id)
                    if victim_tier is None or not victim_tier.is_subsidized:
                        raise CapacityExceededException(
                            message="class full; the selected enrollment can no longer be displaced",
                            data={"victim_enrollment_id": victim_enrollment_id},
                        )
                    if count > self.capacity:
                        raise CapacityExceededException(
                            message=REASON_CLASS_FULL,
                            data={"enrolled": count, "capacity": self.capacity},
                        )
                    await self.db_session.delete(victim)
                    displaced = victim

                enrollment = self._new_enrollment(occurrence_id, student_id)
                await self._commit_enrollment(occurrence_id, student_id)
            except Exception:
                await self.db_session.rollback()
                raise

        if displaced is not None:
            logger.info(
                f"Student {student_id} displaced enrollment {displaced.id} "
                f"(student {displaced.student_id}) in occurrence {occurrence_id}"
            )
        else:
            logger.info(
                f"Slot free on confirmation: student {student_id} enrolled in "
                f"occurrence {occurrence_id} without displacement"
            )

        enrollment = await Enrollment.get_by_id(self.db_session, enrollment.id)
        return EnrollmentDecision(
            outcome=EnrollmentOutcome.ENROLLED, enrollment=enrollment, displaced=displaced
        )

    async def remove_enrollment(self, enrollment_id: str) -> None:
        """Delete an enrollment, freeing its slot immediately."""
        enrollment = await Enrollment.get_by_id(self.db_session, enrollment_id)
        if not enrollment:
            raise NotFoundException(message="Enrollment not found")

        occurrence_id = enrollment.occurrence_id
        async with occurrence_locks.hold(occurrence_id):
            try:
                await self.db_session.delete(enrollment)
                await self.db_session.commit()
            except Exception:
                await self.db_session.rollback()
                raise

        logger.info(
            f"Enrollment removed: {enrollment_id} (student {enrollment.student_id}, "
            f"occurrence {occurrence_id})"
        )

    async def list_enrollments(self, occurrence_id: str) -> Sequence[Enrollment]:
        """Roster of an occurrence, oldest enrollment first."""
        occurrence = await ClassOccurrence.get_by_id(self.db_session, occurrence_id)
        if not occurrence:
            raise NotFoundException(message="Occurrence not found")
        return await Enrollment.get_by_occurrence(self.db_session, occurrence_id)

    async def get_occurrence_count(self, occurrence_id: str) -> int:
        occurrence = await ClassOccurrence.get_by_id(self.db_session, occurrence_id)
        if not occurrence:
            raise NotFoundException(message="Occurrence not found")
        return await Enrollment.count_by_occurrence(self.db_session, occurrence_id)
