"""Outbox event endpoints, polled by the notification layer."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from commissiondesk.auth.dependencies import require_manager
from commissiondesk.db import get_db
from commissiondesk.schemas.event import EventListResponse, EventResponse
from commissiondesk.services import events
from commissiondesk.services.tenancy import RequestContext

router = APIRouter(prefix="/events", tags=["Events"])


@router.get("", response_model=EventListResponse)
async def list_pending_events(
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(require_manager),
    event_type: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
):
    """Pending events, oldest first."""
    items = await events.list_pending(db, ctx, event_type=event_type, limit=limit)
    return EventListResponse(
        items=[EventResponse.model_validate(e) for e in items],
        total=len(items),
    )


@router.post("/{event_id}/dispatched", response_model=EventResponse)
async def mark_dispatched(
    event_id: int,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(require_manager),
):
    event = await events.mark_dispatched(db, ctx, event_id)
    return EventResponse.model_validate(event)
