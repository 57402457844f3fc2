"""
Database seeding script to populate a demo studio schedule.

Usage:
    python scripts/seed_database.py
"""

import asyncio
from datetime import time
from decimal import Decimal

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.class_occurrence import ClassOccurrence
from app.models.class_template import ClassTemplate, Weekday
from app.models.enrollment import Enrollment
from app.models.student import EnrollmentTier, Student
from app.schemas.class_template import TemplateCreate
from app.services.enrollment_service import EnrollmentService
from app.services.template_service import TemplateService
from core.db import async_session_factory
from core.logging import get_logger, setup_logging

logger = get_logger(__name__)

STUDENTS = [
    ("Ana Souza", EnrollmentTier.PAY_PER_SESSION, Decimal("320.00"), 5),
    ("Bruno Lima", EnrollmentTier.PAY_PER_SESSION, Decimal("320.00"), 10),
    ("Carla Dias", EnrollmentTier.SUBSIDIZED_TIER_A, Decimal("160.00"), 5),
    ("Diego Rocha", EnrollmentTier.SUBSIDIZED_TIER_A, Decimal("160.00"), 15),
    ("Elisa Prado", EnrollmentTier.SUBSIDIZED_TIER_B, Decimal("80.00"), 5),
    ("Felipe Reis", EnrollmentTier.SUBSIDIZED_TIER_B, None, 5),
]


class DatabaseSeeder:
    """Database seeding utility."""

    def __init__(self):
        self.students = []

    async def clear_database(self, session: AsyncSession):
        """Clear all tables in reverse dependency order."""
        logger.info("Clearing existing data...")
        for model in (Enrollment, ClassOccurrence, ClassTemplate, Student):
            await session.execute(delete(model))
        await session.commit()
        logger.info("Database cleared successfully")

    async def seed_all(self):
        """Seed all tables with demo data."""
        async with async_session_factory() as session:
            logger.info("Starting database seeding...")

            await self.clear_database(session)
            await self.seed_students(session)
            occurrences = await self.seed_templates(session)
            await self.seed_enrollments(session, occurrences)

            logger.info("Database seeding completed successfully!")

    async def seed_students(self, session: AsyncSession):
        logger.info("Seeding students...")
        for name, tier, fee, due_day in STUDENTS:
            student = Student(
                name=name,
                enrollment_tier=tier,
                monthly_fee=fee,
                due_day=due_day,
            )
            session.add(student)
            self.students.append(student)
        await session.commit()
        logger.info(f"Created {len(self.students)} students")

    async def seed_templates(self, session: AsyncSession):
        """Create recurring classes and expand them over the horizon."""
        logger.info("Seeding templates...")
        service = TemplateService(session)
        today = service.default_window()[0]

        _, group = await service.create_template(
            TemplateCreate(
                title="Reformer Group",
                start_time_of_day=time(18, 0),
                weekdays=[Weekday.MONDAY, Weekday.WEDNESDAY, Weekday.FRIDAY],
                recurrence_start_date=today,
            )
        )
        _, private = await service.create_template(
            TemplateCreate(
                student_id=self.students[0].id,
                start_time_of_day=time(7, 30),
                duration_minutes=50,
                weekdays=[Weekday.TUESDAY],
                recurrence_start_date=today,
            )
        )
        logger.info(f"Created {len(group) + len(private)} occurrences")
        return group

    async def seed_enrollments(self, session: AsyncSession, occurrences):
        """Fill the first group classes with the subsidized students."""
        logger.info("Seeding enrollments...")
        service = EnrollmentService(session)
        count = 0
        for occurrence in occurrences[:4]:
            for student in self.students[2:]:
                decision = await service.try_enroll(occurrence.id, student.id)
                if decision.enrollment is not None:
                    count += 1
        logger.info(f"Created {count} enrollments")


async def main():
    """Main entry point for seeding."""
    setup_logging()
    seeder = DatabaseSeeder()
    await seeder.seed_all()


if __name__ == "__main__":
    asyncio.run(main())
