import asyncio
from datetime import date, datetime, time, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.class_occurrence import ClassOccurrence
from app.models.class_template import ClassTemplate, Weekday
from app.models.enrollment import Enrollment
from app.models.student import EnrollmentTier
from app.schemas.class_template import TemplateCreate, TemplateUpdate
from app.services.enrollment_service import EnrollmentService
from app.services.template_service import TemplateService
from app.tasks.schedule_tasks import _expand_recurring_templates_async
from app.utils.clock import FrozenClock
from core.config import config
from core.exceptions.base import NotFoundException, ValidationException

pytestmark = pytest.mark.asyncio


async def add_template(db_session: AsyncSession, **overrides) -> ClassTemplate:
    """Store a template without expanding it."""
    fields = {
        "title": "Morning Pilates",
        "start_time_of_day": time(8, 0),
        "duration_minutes": 60,
        "weekdays": ["monday"],
        "recurrence_start_date": date(2024, 1, 1),
    }
    fields.update(overrides)
    template = ClassTemplate(**fields)
    db_session.add(template)
    await db_session.commit()
    return await ClassTemplate.get_by_id(db_session, template.id)


async def template_occurrences(db_session: AsyncSession, template_id: str):
    result = await db_session.execute(
        select(ClassOccurrence)
        .where(ClassOccurrence.template_id == template_id)
        .order_by(ClassOccurrence.start_at)
    )
    return result.scalars().all()


class TestExpandTemplate:
    """Tests for materializing a template over a window."""

    async def test_weekly_template_expands_to_each_matching_date(
        self, db_session: AsyncSession, frozen_clock: FrozenClock
    ):
        template = await add_template(db_session)
        service = TemplateService(db_session, frozen_clock)

        created = await service.expand_template(
            template, date(2024, 1, 1), date(2024, 1, 31)
        )

        local_dates = [frozen_clock.to_local(o.start_at).date() for o in created]
        assert local_dates == [
            date(2024, 1, 1),
            date(2024, 1, 8),
            date(2024, 1, 15),
            date(2024, 1, 22),
            date(2024, 1, 29),
        ]
        # 08:00 in Sao Paulo is 11:00 UTC
        assert created[0].start_at == datetime(2024, 1, 1, 11, 0, tzinfo=timezone.utc)
        assert all(o.duration_minutes == 60 for o in created)
        assert all(o.title == "Morning Pilates" for o in created)

    async def test_expansion_is_idempotent(
        self, db_session: AsyncSession, frozen_clock: FrozenClock
    ):
        template = await add_template(db_session)
        service = TemplateService(db_session, frozen_clock)

        first = await service.expand_template(template, date(2024, 1, 1), date(2024, 1, 31))
        second = await service.expand_template(template, date(2024, 1, 1), date(2024, 1, 31))

        assert len(first) == 5
        assert second == []
        assert len(await template_occurrences(db_session, template.id)) == 5

    async def test_overlapping_window_only_adds_missing_dates(
        self, db_session: AsyncSession, frozen_clock: FrozenClock
    ):
        template = await add_template(db_session)
        service = TemplateService(db_session, frozen_clock)

        await service.expand_template(template, date(2024, 1, 1), date(2024, 1, 15))
        created = await service.expand_template(template, date(2024, 1, 1), date(2024, 1, 31))

        assert [frozen_clock.to_local(o.start_at).day for o in created] == [22, 29]

    async def test_recurrence_bounds_clip_the_window(
        self, db_session: AsyncSession, frozen_clock: FrozenClock
    ):
        template = await add_template(
            db_session,
            weekdays=["monday", "wednesday", "friday"],
            recurrence_start_date=date(2024, 1, 10),
            recurrence_end_date=date(2024, 1, 20),
        )
        service = TemplateService(db_session, frozen_clock)

        created = await service.expand_template(template, date(2024, 1, 1), date(2024, 1, 31))

        assert [frozen_clock.to_local(o.start_at).day for o in created] == [10, 12, 15, 17, 19]

    async def test_student_template_titles_occurrences_after_student(
        self, db_session: AsyncSession, frozen_clock: FrozenClock, create_student
    ):
        student = await create_student(name="Ana Souza")
        template = await add_template(db_session, title=None, student_id=student.id)
        service = TemplateService(db_session, frozen_clock)

        created = await service.expand_template(template, date(2024, 1, 1), date(2024, 1, 7))

        assert len(created) == 1
        assert created[0].title == "Session with Ana Souza"
        assert created[0].student_id == student.id

    async def test_concurrent_expansion_creates_no_duplicates(
        self, db_session: AsyncSession, frozen_clock: FrozenClock, session_factory
    ):
        template = await add_template(db_session)

        async def expand():
            async with session_factory() as session:
                loaded = await ClassTemplate.get_by_id(session, template.id)
                return await TemplateService(session, frozen_clock).expand_template(
                    loaded, date(2024, 1, 1), date(2024, 1, 31)
                )

        results = await asyncio.gather(expand(), expand())

        assert sorted(len(r) for r in results) == [0, 5]
        assert len(await template_occurrences(db_session, template.id)) == 5

    async def test_reversed_window_is_rejected(
        self, db_session: AsyncSession, frozen_clock: FrozenClock
    ):
        template = await add_template(db_session)
        service = TemplateService(db_session, frozen_clock)

        with pytest.raises(ValidationException):
            await service.expand_template(template, date(2024, 1, 31), date(2024, 1, 1))


class TestCreateTemplate:
    """Tests for creating templates."""

    async def test_create_expands_over_horizon(
        self, db_session: AsyncSession, frozen_clock: FrozenClock
    ):
        service = TemplateService(db_session, frozen_clock)
        data = TemplateCreate(
            title="Wednesday Flow",
            start_time_of_day=time(8, 0),
            weekdays=[Weekday.WEDNESDAY],
            recurrence_start_date=date(2024, 1, 1),
        )

        template, created = await service.create_template(data)

        # Today's 08:00 slot has already passed at the frozen 09:00 local time
        assert template.display_title == "Wednesday Flow"
        assert [frozen_clock.to_local(o.start_at).date() for o in created] == [
            date(2024, 1, 17),
            date(2024, 1, 24),
            date(2024, 1, 31),
            date(2024, 2, 7),
            date(2024, 2, 14),
            date(2024, 2, 21),
            date(2024, 2, 28),
            date(2024, 3, 6),
        ]

    async def test_reversed_recurrence_range_is_rejected(
        self, db_session: AsyncSession, frozen_clock: FrozenClock
    ):
        service = TemplateService(db_session, frozen_clock)
        data = TemplateCreate(
            title="Broken",
            start_time_of_day=time(8, 0),
            weekdays=[Weekday.MONDAY],
            recurrence_start_date=date(2024, 2, 1),
            recurrence_end_date=date(2024, 1, 1),
        )

        with pytest.raises(ValidationException):
            await service.create_template(data)

        assert await service.list_templates() == []

    async def test_unknown_student_is_not_found(
        self, db_session: AsyncSession, frozen_clock: FrozenClock
    ):
        service = TemplateService(db_session, frozen_clock)
        data = TemplateCreate(
            student_id="missing",
            start_time_of_day=time(8, 0),
            weekdays=[Weekday.MONDAY],
            recurrence_start_date=date(2024, 1, 1),
        )

        with pytest.raises(NotFoundException):
            await service.create_template(data)

    async def test_preview_writes_nothing(
        self, db_session: AsyncSession, frozen_clock: FrozenClock
    ):
        service = TemplateService(db_session, frozen_clock)
        data = TemplateCreate(
            title="Preview",
            start_time_of_day=time(18, 30),
            weekdays=[Weekday.MONDAY],
            recurrence_start_date=date(2024, 1, 1),
        )

        planned = await service.preview_expansion(data, date(2024, 1, 1), date(2024, 1, 31))

        assert len(planned) == 5
        assert planned[0].start_at == datetime(2024, 1, 1, 21, 30, tzinfo=timezone.utc)
        assert await service.list_templates() == []


class TestUpdateTemplate:
    """Tests for editing templates."""

    async def test_schedule_change_only_touches_future_occurrences(
        self, db_session: AsyncSession, frozen_clock: FrozenClock, create_student
    ):
        template = await add_template(db_session)
        service = TemplateService(db_session, frozen_clock)
        created = await service.expand_template(template, date(2024, 1, 1), date(2024, 1, 31))
        past_ids = [o.id for o in created[:2]]  # Jan 1 and Jan 8
        future_monday = created[2]  # Jan 15

        student = await create_student(tier=EnrollmentTier.SUBSIDIZED_TIER_A)
        await EnrollmentService(db_session, frozen_clock, capacity=5).try_enroll(
            future_monday.id, student.id
        )

        updated, recreated = await service.update_template(
            template.id,
            TemplateUpdate(title="Tuesday Pilates", weekdays=[Weekday.TUESDAY]),
        )

        remaining = await template_occurrences(db_session, template.id)
        assert [o.id for o in remaining[:2]] == past_ids
        assert all(o.title == "Morning Pilates" for o in remaining[:2])

        future = remaining[2:]
        assert future
        assert all(
            Weekday.from_date(frozen_clock.to_local(o.start_at).date()) == Weekday.TUESDAY
            for o in future
        )
        assert all(o.title == "Tuesday Pilates" for o in future)
        assert len(recreated) == len(future)
        assert updated.weekdays == ["tuesday"]

        assert await ClassOccurrence.get_by_id(db_session, future_monday.id) is None
        assert await Enrollment.count_by_occurrence(db_session, future_monday.id) == 0

    async def test_title_change_keeps_future_occurrences(
        self, db_session: AsyncSession, frozen_clock: FrozenClock
    ):
        template = await add_template(db_session)
        service = TemplateService(db_session, frozen_clock)
        created = await service.expand_template(template, date(2024, 1, 1), date(2024, 1, 31))

        await service.update_template(
            template.id, TemplateUpdate(title="Renamed", duration_minutes=45)
        )

        remaining = await template_occurrences(db_session, template.id)
        january = [o for o in remaining if o.start_at < datetime(2024, 2, 1, tzinfo=timezone.utc)]
        assert [o.id for o in january] == [o.id for o in created]
        assert [o.title for o in january] == [
            "Morning Pilates",
            "Morning Pilates",
            "Renamed",
            "Renamed",
            "Renamed",
        ]
        assert [o.duration_minutes for o in january] == [60, 60, 45, 45, 45]

    async def test_update_rejects_reversed_range(
        self, db_session: AsyncSession, frozen_clock: FrozenClock
    ):
        template = await add_template(db_session)
        service = TemplateService(db_session, frozen_clock)

        with pytest.raises(ValidationException):
            await service.update_template(
                template.id, TemplateUpdate(recurrence_end_date=date(2023, 12, 1))
            )


class TestDeleteTemplate:
    """Tests for deleting templates."""

    async def test_delete_removes_future_and_keeps_past(
        self, db_session: AsyncSession, frozen_clock: FrozenClock, create_student
    ):
        template = await add_template(db_session)
        service = TemplateService(db_session, frozen_clock)
        created = await service.expand_template(template, date(2024, 1, 1), date(2024, 1, 31))
        past, future = created[:2], created[2:]

        student = await create_student()
        await EnrollmentService(db_session, frozen_clock, capacity=5).try_enroll(
            past[0].id, student.id
        )
        await EnrollmentService(db_session, frozen_clock, capacity=5).try_enroll(
            future[0].id, student.id
        )

        deleted, detached = await service.delete_template(template.id)

        assert (deleted, detached) == (3, 2)
        for occurrence in past:
            kept = await ClassOccurrence.get_by_id(db_session, occurrence.id)
            assert kept is not None
            assert kept.template_id is None
        for occurrence in future:
            assert await ClassOccurrence.get_by_id(db_session, occurrence.id) is None
        assert await Enrollment.count_by_occurrence(db_session, past[0].id) == 1
        assert await Enrollment.count_by_occurrence(db_session, future[0].id) == 0

        with pytest.raises(NotFoundException):
            await service.get_template(template.id)

    async def test_delete_missing_template(
        self, db_session: AsyncSession, frozen_clock: FrozenClock
    ):
        with pytest.raises(NotFoundException):
            await TemplateService(db_session, frozen_clock).delete_template("missing")


class TestExpandAllTemplates:
    """Tests for the rolling horizon expansion."""

    async def test_expand_all_is_repeatable(
        self, db_session: AsyncSession, frozen_clock: FrozenClock
    ):
        await add_template(db_session)
        await add_template(db_session, title="Evening", start_time_of_day=time(19, 0))
        service = TemplateService(db_session, frozen_clock)

        first = await service.expand_all_templates()
        second = await service.expand_all_templates()

        # Mondays Jan 15 .. Mar 4 for each template
        assert first == 16
        assert second == 0

        frozen_clock.advance(days=7)
        assert await service.expand_all_templates() == 2

    async def test_nightly_task_expands_ahead(self, db_session: AsyncSession):
        await add_template(db_session, weekdays=[w.value for w in Weekday])

        first = await _expand_recurring_templates_async()
        second = await _expand_recurring_templates_async()

        # Every day of the horizon, minus today's slot once it has passed
        assert first >= config.EXPANSION_HORIZON_DAYS
        assert second == 0
