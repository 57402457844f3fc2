"""Background tasks keeping recurring classes materialized ahead of time."""

import asyncio

from celery import shared_task

from app.services.template_service import TemplateService
from core.db import async_session_factory, engine
from core.logging import get_logger

logger = get_logger(__name__)


@shared_task(name="expand_recurring_templates")
def expand_recurring_templates() -> int:
    """
    Expand every recurring template over the rolling horizon.

    Runs daily so the schedule always reaches EXPANSION_HORIZON_DAYS ahead.
    Occurrences that already exist are skipped, so reruns are harmless.
    """
    return asyncio.run(_expand_recurring_templates_async())


async def _expand_recurring_templates_async() -> int:
    """Async implementation of the rolling expansion."""
    try:
        async with async_session_factory() as db_session:
            logger.info("Expanding recurring templates")
            created = await TemplateService(db_session).expand_all_templates()
            logger.info(f"Recurring template expansion done: {created} occurrences created")
            return created
    finally:
        # Pooled connections are bound to this event loop
        await engine.dispose()
