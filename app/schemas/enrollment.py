"""Enrollment and attendance schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from app.models.enrollment import AttendanceStatus
from app.models.student import EnrollmentTier
from app.schemas.base import BaseSchema


class EnrollRequest(BaseSchema):
    """Request to seat a student in an occurrence."""

    student_id: str


class ConfirmDisplacementRequest(BaseSchema):
    """Second phase of a displacement: the caller accepted the proposal."""

    student_id: str
    victim_enrollment_id: str


class EnrollmentResponse(BaseSchema):
    """Enrollment response."""

    id: str
    occurrence_id: str
    student_id: str
    status: AttendanceStatus
    enrolled_at: datetime
    created_at: datetime
    updated_at: datetime
    # Related data
    student_name: Optional[str] = None
    enrollment_tier: Optional[EnrollmentTier] = None


class EnrollmentListResponse(BaseSchema):
    """Roster of an occurrence."""

    occurrence_id: str
    items: List[EnrollmentResponse]
    total: int
    capacity: int


class EnrollmentDecisionResponse(BaseSchema):
    """Outcome of an enrollment request."""

    outcome: str  # enrolled, rejected, displacement_proposed
    enrollment: Optional[EnrollmentResponse] = None
    victim: Optional[EnrollmentResponse] = None
    displaced: Optional[EnrollmentResponse] = None
    reason: Optional[str] = None


class AttendanceUpdate(BaseSchema):
    """Overwrite the attendance status of an enrollment."""

    status: AttendanceStatus


class AttendanceMarkRecord(BaseSchema):
    enrollment_id: str
    status: AttendanceStatus


class AttendanceMarkBulk(BaseSchema):
    """Schema for marking attendance for several enrollments of one occurrence."""

    records: List[AttendanceMarkRecord] = Field(..., min_length=1)


class AttendanceHistoryItem(BaseSchema):
    enrollment_id: str
    occurrence_id: str
    occurrence_title: str
    start_at: datetime
    status: AttendanceStatus


class AttendanceHistoryResponse(BaseSchema):
    """Attendance history and totals for a student."""

    student_id: str
    items: List[AttendanceHistoryItem]
    sessions_present: int
    sessions_absent: int
    sessions_scheduled: int
    attendance_rate: float  # 0-100, over marked sessions
    current_streak: int
