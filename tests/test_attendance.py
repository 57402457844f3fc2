from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.class_occurrence import ClassOccurrence
from app.models.enrollment import AttendanceStatus, Enrollment
from app.schemas.enrollment import AttendanceMarkRecord
from app.services.attendance_service import AttendanceService
from app.services.enrollment_service import EnrollmentService
from core.exceptions.base import NotFoundException, ValidationException

pytestmark = pytest.mark.asyncio


async def add_occurrences(db_session: AsyncSession, count: int) -> list:
    """Weekly classes starting 2024-01-01 18:00 UTC, oldest first."""
    occurrences = [
        ClassOccurrence(
            title=f"Class {i + 1}",
            start_at=datetime(2024, 1, 1, 18, 0, tzinfo=timezone.utc) + timedelta(weeks=i),
            duration_minutes=60,
        )
        for i in range(count)
    ]
    db_session.add_all(occurrences)
    await db_session.commit()
    return [o.id for o in occurrences]


@pytest.fixture
async def enrollment_id(db_session, frozen_clock, create_student) -> str:
    (occurrence_id,) = await add_occurrences(db_session, 1)
    student = await create_student()
    decision = await EnrollmentService(db_session, frozen_clock, capacity=5).try_enroll(
        occurrence_id, student.id
    )
    return decision.enrollment.id


class TestUpdateAttendance:
    """Tests for setting an enrollment's status."""

    async def test_any_status_can_overwrite_any_other(self, db_session, enrollment_id):
        service = AttendanceService(db_session)

        for status in (
            AttendanceStatus.PRESENT,
            AttendanceStatus.ABSENT,
            AttendanceStatus.SCHEDULED,
            AttendanceStatus.PRESENT,
        ):
            enrollment = await service.update_attendance(enrollment_id, status)
            assert enrollment.status == status

    async def test_status_change_does_not_touch_capacity(self, db_session, enrollment_id):
        enrollment = await Enrollment.get_by_id(db_session, enrollment_id)
        occurrence_id = enrollment.occurrence_id

        await AttendanceService(db_session).update_attendance(
            enrollment_id, AttendanceStatus.ABSENT
        )

        assert await Enrollment.count_by_occurrence(db_session, occurrence_id) == 1

    async def test_unknown_status_is_rejected(self, db_session, enrollment_id):
        with pytest.raises(ValidationException):
            await AttendanceService(db_session).update_attendance(enrollment_id, "late")

    async def test_missing_enrollment(self, db_session):
        with pytest.raises(NotFoundException):
            await AttendanceService(db_session).update_attendance(
                "missing", AttendanceStatus.PRESENT
            )


class TestBulkAttendance:
    """Tests for marking a whole class at once."""

    async def test_marks_every_record(self, db_session, frozen_clock, create_student):
        (occurrence_id,) = await add_occurrences(db_session, 1)
        enrollment_service = EnrollmentService(db_session, frozen_clock, capacity=5)
        ids = []
        for name in ("Ana", "Bia"):
            student = await create_student(name=name)
            ids.append((await enrollment_service.try_enroll(occurrence_id, student.id)).enrollment.id)

        updated = await AttendanceService(db_session).bulk_update_attendance(
            occurrence_id,
            [
                AttendanceMarkRecord(enrollment_id=ids[0], status=AttendanceStatus.PRESENT),
                AttendanceMarkRecord(enrollment_id=ids[1], status=AttendanceStatus.ABSENT),
            ],
        )

        assert [e.status for e in updated] == [AttendanceStatus.PRESENT, AttendanceStatus.ABSENT]

    async def test_foreign_enrollment_rejects_the_whole_batch(
        self, db_session, frozen_clock, create_student
    ):
        first_id, second_id = await add_occurrences(db_session, 2)
        enrollment_service = EnrollmentService(db_session, frozen_clock, capacity=5)
        student = await create_student()
        own = (await enrollment_service.try_enroll(first_id, student.id)).enrollment.id
        foreign = (await enrollment_service.try_enroll(second_id, student.id)).enrollment.id

        with pytest.raises(NotFoundException):
            await AttendanceService(db_session).bulk_update_attendance(
                first_id,
                [
                    AttendanceMarkRecord(enrollment_id=own, status=AttendanceStatus.PRESENT),
                    AttendanceMarkRecord(enrollment_id=foreign, status=AttendanceStatus.PRESENT),
                ],
            )

        roster = await Enrollment.get_by_occurrence(db_session, first_id)
        assert [e.status for e in roster] == [AttendanceStatus.SCHEDULED]


class TestAttendanceHistory:
    """Tests for a student's attendance history."""

    async def test_history_counts_and_rate(self, db_session, frozen_clock, create_student):
        occurrence_ids = await add_occurrences(db_session, 4)
        student = await create_student()
        enrollment_service = EnrollmentService(db_session, frozen_clock, capacity=5)
        attendance = AttendanceService(db_session)

        statuses = [
            AttendanceStatus.ABSENT,
            AttendanceStatus.PRESENT,
            AttendanceStatus.PRESENT,
            AttendanceStatus.SCHEDULED,
        ]
        for occurrence_id, status in zip(occurrence_ids, statuses):
            decision = await enrollment_service.try_enroll(occurrence_id, student.id)
            await attendance.update_attendance(decision.enrollment.id, status)

        history = await attendance.get_student_attendance_history(student.id)

        assert [e.occurrence_id for e in history.enrollments] == list(reversed(occurrence_ids))
        assert history.sessions_present == 2
        assert history.sessions_absent == 1
        assert history.sessions_scheduled == 1
        assert history.attendance_rate == 66.67
        # Newest session is unmarked, then two presents before the absence
        assert history.current_streak == 2

    async def test_history_without_marked_sessions(self, db_session, create_student):
        student = await create_student()

        history = await AttendanceService(db_session).get_student_attendance_history(student.id)

        assert history.enrollments == []
        assert history.attendance_rate == 0.0
        assert history.current_streak == 0

    async def test_history_for_missing_student(self, db_session):
        with pytest.raises(NotFoundException):
            await AttendanceService(db_session).get_student_attendance_history("missing")
