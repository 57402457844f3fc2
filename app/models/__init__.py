from app.models.class_occurrence import ClassOccurrence
from app.models.class_template import ClassTemplate, Weekday
from app.models.enrollment import AttendanceStatus, Enrollment
from app.models.student import EnrollmentTier, Student

__all__ = [
    # Client directory
    "Student",
    "EnrollmentTier",
    # Schedule
    "ClassTemplate",
    "Weekday",
    "ClassOccurrence",
    # Enrollment
    "Enrollment",
    "AttendanceStatus",
]
