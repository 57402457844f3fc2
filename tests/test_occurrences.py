from datetime import date, datetime, time, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.class_occurrence import ClassOccurrence
from app.models.class_template import ClassTemplate
from app.schemas.class_occurrence import OccurrenceCreate, OccurrenceUpdate
from app.services.occurrence_service import OccurrenceService
from app.services.template_service import TemplateService
from app.utils.clock import FrozenClock
from core.config import config
from core.exceptions.base import ConflictException

pytestmark = pytest.mark.asyncio


@pytest.fixture
async def generated_ids(db_session: AsyncSession, frozen_clock: FrozenClock) -> list:
    """Mondays 08:00 in January 2024, generated from one template."""
    template = ClassTemplate(
        title="Monday Strength",
        start_time_of_day=time(8, 0),
        duration_minutes=60,
        weekdays=["monday"],
        recurrence_start_date=date(2024, 1, 1),
    )
    db_session.add(template)
    await db_session.commit()
    created = await TemplateService(db_session, frozen_clock).expand_template(
        template, date(2024, 1, 1), date(2024, 1, 31)
    )
    return [o.id for o in created]


class TestRescheduleGeneratedOccurrence:
    """Tests for moving an occurrence that came from a template."""

    async def test_moving_onto_an_existing_template_slot_is_a_conflict(
        self, db_session, frozen_clock, generated_ids
    ):
        moved_id = generated_ids[3]  # Jan 22
        service = OccurrenceService(db_session, frozen_clock)

        with pytest.raises(ConflictException):
            await service.update_occurrence(
                moved_id,
                OccurrenceUpdate(start_date=date(2024, 1, 15), start_time=time(8, 0)),
            )

        occurrence = await service.get_occurrence(moved_id)
        assert occurrence.start_at == datetime(2024, 1, 22, 11, 0, tzinfo=timezone.utc)

    async def test_expansion_does_not_refill_the_vacated_slot(
        self, db_session, frozen_clock, generated_ids
    ):
        moved_id = generated_ids[3]
        service = OccurrenceService(db_session, frozen_clock)

        moved = await service.update_occurrence(
            moved_id,
            OccurrenceUpdate(start_date=date(2024, 1, 23), start_time=time(8, 0)),
        )
        assert moved.template_slot_at == datetime(2024, 1, 22, 11, 0, tzinfo=timezone.utc)

        template_service = TemplateService(db_session, frozen_clock)
        template = await template_service.get_template(moved.template_id)
        created = await template_service.expand_template(
            template, date(2024, 1, 1), date(2024, 1, 31)
        )

        assert created == []
        occurrences = await ClassOccurrence.get_by_template(db_session, template.id)
        assert len(occurrences) == 5

    async def test_moving_back_clears_the_remembered_slot(
        self, db_session, frozen_clock, generated_ids
    ):
        moved_id = generated_ids[3]
        service = OccurrenceService(db_session, frozen_clock)

        await service.update_occurrence(
            moved_id,
            OccurrenceUpdate(start_date=date(2024, 1, 23), start_time=time(8, 0)),
        )
        await service.update_occurrence(
            moved_id,
            OccurrenceUpdate(start_date=date(2024, 1, 24), start_time=time(8, 0)),
        )
        moved = await service.get_occurrence(moved_id)
        assert moved.template_slot_at == datetime(2024, 1, 22, 11, 0, tzinfo=timezone.utc)

        moved = await service.update_occurrence(
            moved_id,
            OccurrenceUpdate(start_date=date(2024, 1, 22), start_time=time(8, 0)),
        )

        assert moved.template_slot_at is None


class TestCreateOccurrence:
    """Tests for ad hoc occurrences."""

    async def test_duration_defaults_to_configured_value(
        self, db_session, frozen_clock, monkeypatch
    ):
        monkeypatch.setattr(config, "DEFAULT_DURATION_MINUTES", 50)

        occurrence = await OccurrenceService(db_session, frozen_clock).create_occurrence(
            OccurrenceCreate(
                start_date=date(2024, 1, 12), start_time=time(18, 0), title="Mat Class"
            )
        )

        assert occurrence.duration_minutes == 50
