"""Recurring class template API endpoints."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_clock
from app.schemas.class_occurrence import OccurrenceResponse
from app.schemas.class_template import (
    ExpansionResponse,
    ExpansionWindow,
    PlannedOccurrence,
    TemplateCreate,
    TemplateDeleteResponse,
    TemplateListResponse,
    TemplatePreviewRequest,
    TemplatePreviewResponse,
    TemplateResponse,
    TemplateUpdate,
    TemplateWithOccurrencesResponse,
)
from app.services.template_service import TemplateService
from app.utils.clock import Clock
from core.db import get_db
from core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/templates", tags=["Templates"])


@router.post(
    "",
    response_model=TemplateWithOccurrencesResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_template(
    data: TemplateCreate,
    db_session: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> TemplateWithOccurrencesResponse:
    """Create a recurring template and generate its upcoming occurrences."""
    template, occurrences = await TemplateService(db_session, clock).create_template(data)
    return TemplateWithOccurrencesResponse(
        template=TemplateResponse.model_validate(template),
        occurrences=[OccurrenceResponse.model_validate(o) for o in occurrences],
    )


@router.get("", response_model=TemplateListResponse)
async def list_templates(
    db_session: AsyncSession = Depends(get_db),
) -> TemplateListResponse:
    templates = await TemplateService(db_session).list_templates()
    return TemplateListResponse(
        items=[TemplateResponse.model_validate(t) for t in templates],
        total=len(templates),
    )


@router.post("/preview", response_model=TemplatePreviewResponse)
async def preview_template(
    data: TemplatePreviewRequest,
    db_session: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> TemplatePreviewResponse:
    """Show what a template would generate without saving anything."""
    planned = await TemplateService(db_session, clock).preview_expansion(
        data, data.window_from, data.window_to
    )
    return TemplatePreviewResponse(
        items=[
            PlannedOccurrence(
                start_at=p.start_at,
                duration_minutes=p.duration_minutes,
                title=p.title,
            )
            for p in planned
        ],
        total=len(planned),
    )


@router.get("/{template_id}", response_model=TemplateResponse)
async def get_template(
    template_id: str,
    db_session: AsyncSession = Depends(get_db),
) -> TemplateResponse:
    template = await TemplateService(db_session).get_template(template_id)
    return TemplateResponse.model_validate(template)


@router.patch("/{template_id}", response_model=TemplateWithOccurrencesResponse)
async def update_template(
    template_id: str,
    data: TemplateUpdate,
    db_session: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> TemplateWithOccurrencesResponse:
    """
    Edit a template.

    Only occurrences that have not started yet follow the change. The
    response lists occurrences created by re-expanding the template.
    """
    template, created = await TemplateService(db_session, clock).update_template(
        template_id, data
    )
    return TemplateWithOccurrencesResponse(
        template=TemplateResponse.model_validate(template),
        occurrences=[OccurrenceResponse.model_validate(o) for o in created],
    )


@router.delete("/{template_id}", response_model=TemplateDeleteResponse)
async def delete_template(
    template_id: str,
    db_session: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> TemplateDeleteResponse:
    deleted, detached = await TemplateService(db_session, clock).delete_template(
        template_id
    )
    return TemplateDeleteResponse(
        template_id=template_id,
        deleted_occurrences=deleted,
        detached_occurrences=detached,
    )


@router.post("/{template_id}/expand", response_model=ExpansionResponse)
async def expand_template(
    template_id: str,
    window: ExpansionWindow,
    db_session: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> ExpansionResponse:
    """Generate a template's occurrences for a date window, skipping existing ones."""
    logger.info(
        f"Expanding template {template_id} from {window.window_from} to {window.window_to}"
    )
    created = await TemplateService(db_session, clock).expand_template_by_id(
        template_id, window.window_from, window.window_to
    )
    return ExpansionResponse(
        template_id=template_id,
        created=[OccurrenceResponse.model_validate(o) for o in created],
        created_count=len(created),
    )
