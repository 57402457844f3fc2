"""Class template schemas."""

from datetime import date, datetime, time
from typing import List, Optional

from pydantic import Field, field_validator, model_validator

from app.models.class_template import Weekday
from app.schemas.base import BaseSchema
from app.schemas.class_occurrence import OccurrenceResponse
from core.config import config


class TemplateCreate(BaseSchema):
    """Schema for creating a recurring class template."""

    title: Optional[str] = Field(None, max_length=200)
    student_id: Optional[str] = None
    start_time_of_day: time
    duration_minutes: int = Field(
        default_factory=lambda: config.DEFAULT_DURATION_MINUTES, gt=0, le=24 * 60
    )
    weekdays: List[Weekday] = Field(..., min_length=1)
    recurrence_start_date: date
    recurrence_end_date: Optional[date] = None
    notes: Optional[str] = None

    @field_validator("weekdays")
    @classmethod
    def dedupe_weekdays(cls, v: List[Weekday]) -> List[Weekday]:
        return list(dict.fromkeys(v))

    @model_validator(mode="after")
    def validate_title_or_student(self):
        if not self.student_id and not (self.title and self.title.strip()):
            raise ValueError("title is required when no student is linked")
        return self


class TemplateUpdate(BaseSchema):
    """Schema for editing a template. Only sent fields change."""

    title: Optional[str] = Field(None, max_length=200)
    student_id: Optional[str] = None
    start_time_of_day: Optional[time] = None
    duration_minutes: Optional[int] = Field(None, gt=0, le=24 * 60)
    weekdays: Optional[List[Weekday]] = Field(None, min_length=1)
    recurrence_start_date: Optional[date] = None
    recurrence_end_date: Optional[date] = None
    notes: Optional[str] = None


class TemplateResponse(BaseSchema):
    """Schema for template response."""

    id: str
    title: Optional[str]
    display_title: str
    student_id: Optional[str]
    start_time_of_day: time
    duration_minutes: int
    weekdays: List[Weekday]
    recurrence_start_date: date
    recurrence_end_date: Optional[date]
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime


class TemplateListResponse(BaseSchema):
    items: List[TemplateResponse]
    total: int


class ExpansionWindow(BaseSchema):
    """Inclusive date window to materialize."""

    window_from: date
    window_to: date

    @field_validator("window_to")
    @classmethod
    def validate_window(cls, v: date, info) -> date:
        if "window_from" in info.data and v < info.data["window_from"]:
            raise ValueError("window_to must not be before window_from")
        return v


class ExpansionResponse(BaseSchema):
    """Result of expanding a template."""

    template_id: str
    created: List[OccurrenceResponse]
    created_count: int


class TemplateWithOccurrencesResponse(BaseSchema):
    template: TemplateResponse
    occurrences: List[OccurrenceResponse]


class TemplatePreviewRequest(TemplateCreate):
    window_from: date
    window_to: date


class PlannedOccurrence(BaseSchema):
    start_at: datetime
    duration_minutes: int
    title: str


class TemplatePreviewResponse(BaseSchema):
    items: List[PlannedOccurrence]
    total: int


class TemplateDeleteResponse(BaseSchema):
    template_id: str
    deleted_occurrences: int
    detached_occurrences: int
