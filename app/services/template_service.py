"""Recurring template service: validation, expansion, edits and deletion."""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.class_occurrence import ClassOccurrence
from app.models.class_template import ClassTemplate, Weekday
from app.models.enrollment import Enrollment
from app.models.student import Student
from app.schemas.class_template import TemplateCreate, TemplateUpdate
from app.utils.clock import Clock, default_clock
from app.utils.locks import template_locks
from core.config import config
from core.exceptions.base import ConflictException, NotFoundException, ValidationException
from core.logging import get_logger

logger = get_logger(__name__)

SCHEDULE_FIELDS = {
    "start_time_of_day",
    "weekdays",
    "recurrence_start_date",
    "recurrence_end_date",
}


@dataclass
class PlannedOccurrence:
    """Occurrence a template should produce, before it is stored."""

    start_at: datetime
    duration_minutes: int
    title: str


def validate_template_fields(
    recurrence_start_date: date,
    recurrence_end_date: Optional[date],
    weekdays: Sequence[str],
    duration_minutes: int,
    title: Optional[str],
    student_id: Optional[str],
) -> None:
    """Reject a malformed template before anything is expanded."""
    if recurrence_end_date is not None and recurrence_start_date > recurrence_end_date:
        raise ValidationException(
            message="recurrence_start_date must not be after recurrence_end_date",
            data={
                "recurrence_start_date": recurrence_start_date.isoformat(),
                "recurrence_end_date": recurrence_end_date.isoformat(),
            },
        )
    if not weekdays:
        raise ValidationException(message="At least one weekday is required")
    if duration_minutes is None or duration_minutes <= 0:
        raise ValidationException(message="duration_minutes must be greater than zero")
    if not student_id and not (title and title.strip()):
        raise ValidationException(message="title is required when no student is linked")


def iter_dates(window_from: date, window_to: date) -> Iterable[date]:
    day = window_from
    while day <= window_to:
        yield day
        day += timedelta(days=1)


class TemplateService:
    """Service for recurring class templates and their generated occurrences."""

    def __init__(self, db_session: AsyncSession, clock: Optional[Clock] = None):
        self.db_session = db_session
        self.clock = clock or default_clock

    def default_window(self) -> Tuple[date, date]:
        """Rolling window materialized ahead of today."""
        today = self.clock.today()
        return today, today + timedelta(days=config.EXPANSION_HORIZON_DAYS)

    async def get_template(self, template_id: str) -> ClassTemplate:
        template = await ClassTemplate.get_by_id(self.db_session, template_id)
        if not template:
            raise NotFoundException(message="Template not found")
        return template

    async def list_templates(self) -> Sequence[ClassTemplate]:
        return await ClassTemplate.get_all(self.db_session)

    async def _get_student(self, student_id: Optional[str]) -> Optional[Student]:
        if not student_id:
            return None
        student = await Student.get_by_id(self.db_session, student_id)
        if not student:
            raise NotFoundException(message=f"Student {student_id} not found")
        return student

    def plan_occurrences(
        self,
        template: ClassTemplate,
        window_from: date,
        window_to: date,
    ) -> List[PlannedOccurrence]:
        """
        Occurrences the template should produce in [window_from, window_to].

        Pure: reads only the template and the clock's timezone. Dates outside
        the recurrence range or on other weekdays are skipped.
        """
        if window_to < window_from:
            raise ValidationException(message="window_to must not be before window_from")

        start = max(window_from, template.recurrence_start_date)
        end = window_to
        if template.recurrence_end_date is not None:
            end = min(end, template.recurrence_end_date)

        title = template.display_title
        return [
            PlannedOccurrence(
                start_at=self.clock.to_utc(day, template.start_time_of_day),
                duration_minutes=template.duration_minutes,
                title=title,
            )
            for day in iter_dates(start, end)
            if template.runs_on(day)
        ]

    async def preview_expansion(
        self, data: TemplateCreate, window_from: date, window_to: date
    ) -> List[PlannedOccurrence]:
        """Plan occurrences for an unsaved template."""
        validate_template_fields(
            data.recurrence_start_date,
            data.recurrence_end_date,
            data.weekdays,
            data.duration_minutes,
            data.title,
            data.student_id,
        )
        template = ClassTemplate(
            title=data.title,
            student_id=data.student_id,
            start_time_of_day=data.start_time_of_day,
            duration_minutes=data.duration_minutes,
            weekdays=[w.value for w in data.weekdays],
            recurrence_start_date=data.recurrence_start_date,
            recurrence_end_date=data.recurrence_end_date,
        )
        template.student = await self._get_student(data.student_id)
        return self.plan_occurrences(template, window_from, window_to)

    async def create_template(
        self, data: TemplateCreate
    ) -> Tuple[ClassTemplate, List[ClassOccurrence]]:
        """Persist a template and materialize it over the default horizon."""
        validate_template_fields(
            data.recurrence_start_date,
            data.recurrence_end_date,
            data.weekdays,
            data.duration_minutes,
            data.title,
            data.student_id,
        )
        await self._get_student(data.student_id)

        template = ClassTemplate(
            title=data.title,
            student_id=data.student_id,
            start_time_of_day=data.start_time_of_day.replace(tzinfo=None),
            duration_minutes=data.duration_minutes,
            weekdays=[w.value for w in data.weekdays],
            recurrence_start_date=data.recurrence_start_date,
            recurrence_end_date=data.recurrence_end_date,
            notes=data.notes,
        )
        self.db_session.add(template)
        await self.db_session.commit()
        template_id = template.id
        template = await self.get_template(template_id)
        logger.info(f"Template created: {template_id} ({template.display_title})")

        window_from, window_to = self.default_window()
        created = await self.expand_template(
            template, window_from, window_to, not_before=self.clock.now()
        )
        # Re-read: a retried expansion rolls back and expires the template
        template = await self.get_template(template_id)
        return template, created

    async def expand_template(
        self,
        template: ClassTemplate,
        window_from: date,
        window_to: date,
        not_before: Optional[datetime] = None,
    ) -> List[ClassOccurrence]:
        """
        Materialize a template's occurrences for a date window.

        Occurrences already stored for the same (template, start) are skipped,
        so running this twice creates nothing the second time. With
        not_before, slots starting at or before that instant are skipped.

        Returns:
            Newly created occurrences ordered by start
        """
        template_id = template.id
        planned = self.plan_occurrences(template, window_from, window_to)
        if not_before is not None:
            planned = [p for p in planned if p.start_at > not_before]
        if not planned:
            return []

        fields = {
            "student_id": template.student_id,
            "notes": template.notes,
        }

        async with template_locks.hold(template_id):
            for attempt in range(2):
                existing = await ClassOccurrence.get_template_starts(
                    self.db_session,
                    template_id,
                    planned[0].start_at,
                    planned[-1].start_at,
                )
                created = [
                    ClassOccurrence(
                        title=p.title,
                        start_at=p.start_at,
                        duration_minutes=p.duration_minutes,
                        template_id=template_id,
                        **fields,
                    )
                    for p in planned
                    if p.start_at not in existing
                ]
                if not created:
                    return []

                self.db_session.add_all(created)
                try:
                    await self.db_session.commit()
                except IntegrityError:
                    await self.db_session.rollback()
                    logger.warning(
                        f"Concurrent expansion detected for template {template_id}, "
                        f"rechecking (attempt {attempt + 1})"
                    )
                    continue

                logger.info(
                    f"Expanded template {template_id}: {len(created)} new occurrences "
                    f"between {window_from.isoformat()} and {window_to.isoformat()}"
                )
                return created

        raise ConflictException(
            message="Template expansion kept conflicting with concurrent writes",
            data={"template_id": template_id},
        )

    async def expand_template_by_id(
        self, template_id: str, window_from: date, window_to: date
    ) -> List[ClassOccurrence]:
        template = await self.get_template(template_id)
        return await self.expand_template(template, window_from, window_to)

    async def expand_all_templates(self) -> int:
        """Materialize every template over the rolling horizon."""
        window_from, window_to = self.default_window()
        now = self.clock.now()
        total = 0
        template_ids = [t.id for t in await self.list_templates()]
        for template_id in template_ids:
            template = await self.get_template(template_id)
            created = await self.expand_template(
                template, window_from, window_to, not_before=now
            )
            total += len(created)
        logger.info(f"Rolling expansion created {total} occurrences")
        return total

    def _matches_schedule(self, template: ClassTemplate, occurrence: ClassOccurrence) -> bool:
        local_day = self.clock.to_local(occurrence.start_at).date()
        if not template.runs_on(local_day):
            return False
        return self.clock.to_utc(local_day, template.start_time_of_day) == occurrence.start_at

    async def _delete_occurrences(self, occurrence_ids: List[str]) -> None:
        if not occurrence_ids:
            return
        await self.db_session.execute(
            delete(Enrollment).where(Enrollment.occurrence_id.in_(occurrence_ids))
        )
        await self.db_session.execute(
            delete(ClassOccurrence).where(ClassOccurrence.id.in_(occurrence_ids))
        )

    async def update_template(
        self, template_id: str, data: TemplateUpdate
    ) -> Tuple[ClassTemplate, List[ClassOccurrence]]:
        """
        Edit a template and carry the change to occurrences not yet started.

        Future generated occurrences that no longer fit the schedule are
        deleted with their enrollments; the rest take the new title,
        duration, notes and student. Started or past occurrences are left
        untouched. The template is then re-expanded over the horizon.
        """
        template = await self.get_template(template_id)
        patch = data.model_dump(exclude_unset=True)
        if "weekdays" in patch and patch["weekdays"] is not None:
            patch["weekdays"] = list(dict.fromkeys(Weekday(w).value for w in patch["weekdays"]))
        if patch.get("start_time_of_day") is not None:
            patch["start_time_of_day"] = patch["start_time_of_day"].replace(tzinfo=None)

        merged = {
            "recurrence_start_date": template.recurrence_start_date,
            "recurrence_end_date": template.recurrence_end_date,
            "weekdays": template.weekdays,
            "duration_minutes": template.duration_minutes,
            "title": template.title,
            "student_id": template.student_id,
            "start_time_of_day": template.start_time_of_day,
        }
        merged.update({k: v for k, v in patch.items() if k in merged})
        for required in ("recurrence_start_date", "weekdays", "duration_minutes", "start_time_of_day"):
            if merged[required] is None:
                raise ValidationException(message=f"{required} cannot be cleared")
        validate_template_fields(
            merged["recurrence_start_date"],
            merged["recurrence_end_date"],
            merged["weekdays"],
            merged["duration_minutes"],
            merged["title"],
            merged["student_id"],
        )

        async with template_locks.hold(template_id):
            try:
                student = template.student
                if "student_id" in patch:
                    student = await self._get_student(patch["student_id"])
                for key, value in patch.items():
                    if key != "student_id":
                        setattr(template, key, value)
                template.student = student
                template.student_id = student.id if student else None

                now = self.clock.now()
                future = await ClassOccurrence.get_by_template(
                    self.db_session, template_id, starting_after=now
                )
                stale_ids = []
                title = template.display_title
                schedule_changed = bool(SCHEDULE_FIELDS & patch.keys())
                for occurrence in future:
                    if schedule_changed:
                        if not self._matches_schedule(template, occurrence):
                            stale_ids.append(occurrence.id)
                            continue
                        # Old slots mean nothing under the new schedule
                        occurrence.template_slot_at = None
                    occurrence.title = title
                    occurrence.duration_minutes = template.duration_minutes
                    occurrence.notes = template.notes
                    occurrence.student_id = template.student_id

                await self._delete_occurrences(stale_ids)
                await self.db_session.commit()
            except Exception:
                await self.db_session.rollback()
                raise

        logger.info(
            f"Template {template_id} updated: {len(future) - len(stale_ids)} future "
            f"occurrences refreshed, {len(stale_ids)} removed"
        )

        template = await self.get_template(template_id)
        window_from, window_to = self.default_window()
        created = await self.expand_template(
            template, window_from, window_to, not_before=now
        )
        # Re-read: a retried expansion rolls back and expires the template
        template = await self.get_template(template_id)
        return template, created

    async def delete_template(self, template_id: str) -> Tuple[int, int]:
        """
        Delete a template and its occurrences that have not started yet.

        Past occurrences stay as historical record, detached from the template.

        Returns:
            (deleted occurrence count, detached occurrence count)
        """
        await self.get_template(template_id)
        now = self.clock.now()

        async with template_locks.hold(template_id):
            try:
                future = await ClassOccurrence.get_by_template(
                    self.db_session, template_id, starting_after=now
                )
                future_ids = [o.id for o in future]
                await self._delete_occurrences(future_ids)

                result = await self.db_session.execute(
                    update(ClassOccurrence)
                    .where(ClassOccurrence.template_id == template_id)
                    .values(template_id=None)
                )
                detached = result.rowcount
                await self.db_session.execute(
                    delete(ClassTemplate).where(ClassTemplate.id == template_id)
                )
                await self.db_session.commit()
            except Exception:
                await self.db_session.rollback()
                raise

        logger.info(
            f"Template {template_id} deleted: {len(future_ids)} future occurrences removed, "
            f"{detached} past occurrences kept"
        )
        return len(future_ids), detached
