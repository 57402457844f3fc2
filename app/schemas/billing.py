"""Pro-rata billing schemas."""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import Field, field_validator

from app.schemas.base import BaseSchema


class ProRataRequest(BaseSchema):
    """Inputs for the first-period charge of a recurring plan."""

    fee: Decimal = Field(..., ge=0, description="Flat recurring fee of the plan")
    payment_date: date
    due_day: int = Field(5, ge=1, le=31)
    validity_days: int = Field(30, gt=0)
    waived: bool = False

    @field_validator("fee")
    @classmethod
    def validate_fee(cls, v: Decimal) -> Decimal:
        """Validate fee has at most 2 decimal places."""
        if v.as_tuple().exponent < -2:
            raise ValueError("fee can have at most 2 decimal places")
        return v


class ProRataUntilRequest(BaseSchema):
    """Inputs for a pro-rata charge up to an explicit first due date."""

    fee: Decimal = Field(..., ge=0)
    start_date: date
    first_due_date: date
    validity_days: int = Field(30, gt=0)
    waived: bool = False


class ProRataResponse(BaseSchema):
    """Pro-rata calculation result."""

    fee: Decimal
    payment_date: date
    cycle_start: date
    cycle_end: date
    gap_days: int
    daily_rate: Decimal
    pro_rata_amount: Decimal
    total_due: Decimal
    waived: bool
    needs_review: bool
    review_reason: Optional[str] = None
