"""Pro-rata calculation for the first billing period of a recurring plan."""

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.student import Student
from core.config import config
from core.exceptions.base import NotFoundException, ValidationException
from core.logging import get_logger

logger = get_logger(__name__)

CENTS = Decimal("0.01")


def round_money(value: Decimal) -> Decimal:
    """Round to cents, half-up."""
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def day_in_month(year: int, month: int, day: int) -> date:
    """Build a date, clamping the day to the last day of short months."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def next_cycle_start(payment_date: date, due_day: int) -> date:
    """First billing boundary on or after the payment date."""
    candidate = day_in_month(payment_date.year, payment_date.month, due_day)
    if candidate >= payment_date:
        return candidate
    if payment_date.month == 12:
        return day_in_month(payment_date.year + 1, 1, due_day)
    return day_in_month(payment_date.year, payment_date.month + 1, due_day)


@dataclass
class ProRataCalculation:
    """Amounts owed for the partial period plus the first full cycle."""

    fee: Decimal
    payment_date: date
    cycle_start: date
    cycle_end: date
    gap_days: int
    daily_rate: Decimal
    pro_rata_amount: Decimal
    total_due: Decimal
    waived: bool
    needs_review: bool = False
    review_reason: Optional[str] = None


class ProRataService:
    """Calculator for partial first charges. The calculation itself is pure."""

    def __init__(self, db_session: AsyncSession):
        self.db_session = db_session

    @staticmethod
    def _validate(fee: Decimal, validity_days: int) -> None:
        if validity_days is None or validity_days <= 0:
            raise ValidationException(
                message="validity_days must be greater than zero",
                data={"validity_days": validity_days},
            )
        if fee < 0:
            raise ValidationException(
                message="fee must not be negative", data={"fee": str(fee)}
            )

    @staticmethod
    def _calculate(
        fee: Decimal,
        payment_date: date,
        cycle_start: date,
        validity_days: int,
        waived: bool,
    ) -> ProRataCalculation:
        gap_days = (cycle_start - payment_date).days
        needs_review = False
        review_reason = None
        if gap_days < 0:
            # A boundary before the payment date is a configuration problem,
            # never a negative charge.
            needs_review = True
            review_reason = (
                f"cycle start {cycle_start.isoformat()} is before payment date "
                f"{payment_date.isoformat()}"
            )
            gap_days = 0

        daily_rate = fee / Decimal(validity_days)
        pro_rata_amount = round_money(fee * gap_days / Decimal(validity_days))
        if waived:
            pro_rata_amount = Decimal("0.00")

        return ProRataCalculation(
            fee=round_money(fee),
            payment_date=payment_date,
            cycle_start=cycle_start,
            cycle_end=cycle_start + timedelta(days=validity_days),
            gap_days=gap_days,
            daily_rate=round_money(daily_rate),
            pro_rata_amount=pro_rata_amount,
            total_due=round_money(pro_rata_amount + fee),
            waived=waived,
            needs_review=needs_review,
            review_reason=review_reason,
        )

    @staticmethod
    def compute_pro_rata(
        fee: Decimal,
        payment_date: date,
        due_day: int,
        validity_days: int,
        waived: bool = False,
    ) -> ProRataCalculation:
        """
        Calculate the charge covering payment_date up to the next due day.

        The partial period runs from the payment date to the first occurrence
        of due_day on or after it; the daily rate is fee / validity_days. The
        total is the partial amount plus one full fee, or just the fee when
        the partial amount is waived.

        Raises:
            ValidationException: due_day outside 1..31, non-positive
                validity_days or a negative fee
        """
        fee = Decimal(fee)
        ProRataService._validate(fee, validity_days)
        if not 1 <= due_day <= 31:
            raise ValidationException(
                message="due_day must be between 1 and 31", data={"due_day": due_day}
            )

        cycle_start = next_cycle_start(payment_date, due_day)
        return ProRataService._calculate(
            fee, payment_date, cycle_start, validity_days, waived
        )

    @staticmethod
    def compute_pro_rata_until(
        fee: Decimal,
        start_date: date,
        first_due_date: date,
        validity_days: int,
        waived: bool = False,
    ) -> ProRataCalculation:
        """Calculate the partial charge up to an explicitly chosen first due date.

        A due date before the start date yields a zero partial amount flagged
        for review.
        """
        fee = Decimal(fee)
        ProRataService._validate(fee, validity_days)
        return ProRataService._calculate(
            fee, start_date, first_due_date, validity_days, waived
        )

    async def preview_for_student(
        self,
        student_id: str,
        payment_date: date,
        validity_days: Optional[int] = None,
        waived: bool = False,
    ) -> ProRataCalculation:
        """Calculate the first charge from a student's own fee and due day."""
        student = await Student.get_by_id(self.db_session, student_id)
        if not student:
            raise NotFoundException(message="Student not found")
        if student.monthly_fee is None:
            raise ValidationException(
                message="Student has no monthly fee configured",
                data={"student_id": student_id},
            )

        calculation = self.compute_pro_rata(
            fee=student.monthly_fee,
            payment_date=payment_date,
            due_day=student.due_day or config.DEFAULT_DUE_DAY,
            validity_days=validity_days or config.DEFAULT_VALIDITY_DAYS,
            waived=waived,
        )
        if calculation.needs_review:
            logger.warning(
                f"Pro-rata for student {student_id} flagged for review: "
                f"{calculation.review_reason}"
            )
        return calculation
