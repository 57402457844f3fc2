"""Class occurrence schemas."""

from datetime import date, datetime, time
from typing import List, Optional

from pydantic import Field, model_validator

from app.schemas.base import BaseSchema
from core.config import config


class OccurrenceCreate(BaseSchema):
    """Schema for creating an ad hoc occurrence in studio-local time."""

    start_date: date
    start_time: time
    duration_minutes: int = Field(
        default_factory=lambda: config.DEFAULT_DURATION_MINUTES, gt=0, le=24 * 60
    )
    title: Optional[str] = Field(None, max_length=200)
    student_id: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_title_or_student(self):
        if not self.student_id and not (self.title and self.title.strip()):
            raise ValueError("title is required when no student is linked")
        return self


class OccurrenceUpdate(BaseSchema):
    """Schema for editing an occurrence. Date and time move together."""

    start_date: Optional[date] = None
    start_time: Optional[time] = None
    duration_minutes: Optional[int] = Field(None, gt=0, le=24 * 60)
    title: Optional[str] = Field(None, max_length=200)
    student_id: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_date_time_pair(self):
        if (self.start_date is None) != (self.start_time is None):
            raise ValueError("start_date and start_time must be provided together")
        return self


class OccurrenceResponse(BaseSchema):
    """Schema for occurrence response."""

    id: str
    title: str
    start_at: datetime
    end_at: datetime
    duration_minutes: int
    student_id: Optional[str]
    template_id: Optional[str]
    template_slot_at: Optional[datetime] = None
    notes: Optional[str]


class OccurrenceDetailResponse(OccurrenceResponse):
    """Occurrence with its current head count."""

    enrolled_count: int
    capacity: int
    available_spots: int


class OccurrenceListResponse(BaseSchema):
    items: List[OccurrenceDetailResponse]
    total: int
