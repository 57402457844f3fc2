"""Billing API endpoints for pro-rata first charges."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.schemas.billing import ProRataRequest, ProRataResponse, ProRataUntilRequest
from app.services.pro_rata_service import ProRataCalculation, ProRataService
from core.db import get_db
from core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/billing", tags=["Billing"])


def calculation_to_response(calculation: ProRataCalculation) -> ProRataResponse:
    return ProRataResponse(
        fee=calculation.fee,
        payment_date=calculation.payment_date,
        cycle_start=calculation.cycle_start,
        cycle_end=calculation.cycle_end,
        gap_days=calculation.gap_days,
        daily_rate=calculation.daily_rate,
        pro_rata_amount=calculation.pro_rata_amount,
        total_due=calculation.total_due,
        waived=calculation.waived,
        needs_review=calculation.needs_review,
        review_reason=calculation.review_reason,
    )


@router.post("/pro-rata", response_model=ProRataResponse)
async def compute_pro_rata(data: ProRataRequest) -> ProRataResponse:
    """Charge for the days until the next due day plus the first full cycle."""
    calculation = ProRataService.compute_pro_rata(
        fee=data.fee,
        payment_date=data.payment_date,
        due_day=data.due_day,
        validity_days=data.validity_days,
        waived=data.waived,
    )
    return calculation_to_response(calculation)


@router.post("/pro-rata/until", response_model=ProRataResponse)
async def compute_pro_rata_until(data: ProRataUntilRequest) -> ProRataResponse:
    """Charge for the days until an explicit first due date."""
    calculation = ProRataService.compute_pro_rata_until(
        fee=data.fee,
        start_date=data.start_date,
        first_due_date=data.first_due_date,
        validity_days=data.validity_days,
        waived=data.waived,
    )
    if calculation.needs_review:
        logger.warning(f"Pro-rata flagged for review: {calculation.review_reason}")
    return calculation_to_response(calculation)


@router.get("/students/{student_id}/pro-rata", response_model=ProRataResponse)
async def preview_student_pro_rata(
    student_id: str,
    payment_date: date = Query(...),
    validity_days: Optional[int] = Query(None, gt=0),
    waived: bool = Query(False),
    db_session: AsyncSession = Depends(get_db),
) -> ProRataResponse:
    """First charge for a student using the fee and due day on file."""
    calculation = await ProRataService(db_session).preview_for_student(
        student_id, payment_date, validity_days=validity_days, waived=waived
    )
    return calculation_to_response(calculation)
