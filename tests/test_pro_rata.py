from datetime import date
from decimal import Decimal

import pytest

from app.services.pro_rata_service import ProRataService, next_cycle_start
from core.exceptions.base import NotFoundException, ValidationException


class TestComputeProRata:
    """Tests for the partial first charge."""

    def test_payment_before_next_due_day(self):
        result = ProRataService.compute_pro_rata(
            Decimal("300"), date(2024, 1, 10), due_day=5, validity_days=30
        )

        assert result.cycle_start == date(2024, 2, 5)
        assert result.cycle_end == date(2024, 3, 6)
        assert result.gap_days == 26
        assert result.daily_rate == Decimal("10.00")
        assert result.pro_rata_amount == Decimal("260.00")
        assert result.total_due == Decimal("560.00")
        assert result.needs_review is False

    def test_payment_on_cycle_start(self):
        result = ProRataService.compute_pro_rata(
            Decimal("300"), date(2024, 2, 5), due_day=5, validity_days=30
        )

        assert result.cycle_start == date(2024, 2, 5)
        assert result.gap_days == 0
        assert result.pro_rata_amount == Decimal("0.00")
        assert result.total_due == Decimal("300.00")

    def test_waived_charges_only_the_fee(self):
        result = ProRataService.compute_pro_rata(
            Decimal("300"), date(2024, 1, 10), due_day=5, validity_days=30, waived=True
        )

        assert result.gap_days == 26
        assert result.pro_rata_amount == Decimal("0.00")
        assert result.total_due == Decimal("300.00")

    def test_rounds_half_up(self):
        # 0.25 / 2 days * 1 day = 0.125
        result = ProRataService.compute_pro_rata(
            Decimal("0.25"), date(2024, 1, 4), due_day=5, validity_days=2
        )

        assert result.pro_rata_amount == Decimal("0.13")
        assert result.total_due == Decimal("0.38")

    def test_due_day_clamps_to_short_month(self):
        result = ProRataService.compute_pro_rata(
            Decimal("300"), date(2024, 2, 10), due_day=31, validity_days=30
        )

        assert result.cycle_start == date(2024, 2, 29)
        assert result.gap_days == 19
        assert result.pro_rata_amount == Decimal("190.00")

    def test_december_rolls_into_january(self):
        assert next_cycle_start(date(2023, 12, 20), 5) == date(2024, 1, 5)

    @pytest.mark.parametrize(
        "fee, due_day, validity_days",
        [
            (Decimal("300"), 5, 0),
            (Decimal("300"), 5, -30),
            (Decimal("300"), 0, 30),
            (Decimal("300"), 32, 30),
            (Decimal("-1"), 5, 30),
        ],
    )
    def test_invalid_inputs(self, fee, due_day, validity_days):
        with pytest.raises(ValidationException):
            ProRataService.compute_pro_rata(
                fee, date(2024, 1, 10), due_day=due_day, validity_days=validity_days
            )


class TestComputeProRataUntil:
    """Tests for the calculator with an explicit first due date."""

    def test_explicit_due_date(self):
        result = ProRataService.compute_pro_rata_until(
            Decimal("300"), date(2024, 1, 10), date(2024, 1, 20), validity_days=30
        )

        assert result.gap_days == 10
        assert result.pro_rata_amount == Decimal("100.00")
        assert result.total_due == Decimal("400.00")

    def test_due_date_before_start_is_flagged_not_negative(self):
        result = ProRataService.compute_pro_rata_until(
            Decimal("300"), date(2024, 1, 10), date(2024, 1, 5), validity_days=30
        )

        assert result.gap_days == 0
        assert result.pro_rata_amount == Decimal("0.00")
        assert result.total_due == Decimal("300.00")
        assert result.needs_review is True
        assert result.review_reason


class TestStudentPreview:
    """Tests for pro-rata from a student's billing settings."""

    async def test_uses_student_fee_and_due_day(self, db_session, create_student):
        student = await create_student(monthly_fee=Decimal("150.00"), due_day=10)

        result = await ProRataService(db_session).preview_for_student(
            student.id, date(2024, 1, 1)
        )

        assert result.cycle_start == date(2024, 1, 10)
        assert result.gap_days == 9
        assert result.pro_rata_amount == Decimal("45.00")
        assert result.total_due == Decimal("195.00")

    async def test_student_without_fee(self, db_session, create_student):
        student = await create_student()

        with pytest.raises(ValidationException):
            await ProRataService(db_session).preview_for_student(student.id, date(2024, 1, 1))

    async def test_missing_student(self, db_session):
        with pytest.raises(NotFoundException):
            await ProRataService(db_session).preview_for_student("missing", date(2024, 1, 1))
