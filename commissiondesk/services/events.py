"""
Domain event outbox.

Services call emit() in the same transaction as the change being announced.
The notification layer polls list_pending() and acknowledges with
mark_dispatched().
"""

import logging
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from commissiondesk.models.base import utcnow
from commissiondesk.models.event import CommissionEvent, EventStatus, EventType
from commissiondesk.services.errors import InvalidTransition
from commissiondesk.services.tenancy import RequestContext, get_scoped

logger = logging.getLogger(__name__)


async def emit(
    db: AsyncSession,
    ctx: RequestContext,
    event_type: EventType,
    subject_type: str,
    subject_id: int,
    payload: Optional[dict[str, Any]] = None,
) -> CommissionEvent:
    """Queue an event for the notification layer."""
    event = CommissionEvent(
        tenant_id=ctx.tenant_id,
        event_type=event_type.value,
        subject_type=subject_type,
        subject_id=subject_id,
        payload=payload,
        status=EventStatus.PENDING,
    )
    db.add(event)
    logger.debug(f"Queued {event_type.value} for {subject_type} {subject_id}")
    return event


async def list_pending(
    db: AsyncSession,
    ctx: RequestContext,
    event_type: Optional[str] = None,
    limit: int = 100,
) -> list[CommissionEvent]:
    """Oldest-first pending events of the caller's tenant."""
    query = select(CommissionEvent).where(
        CommissionEvent.tenant_id == ctx.tenant_id,
        CommissionEvent.status == EventStatus.PENDING,
    )
    if event_type:
        query = query.where(CommissionEvent.event_type == event_type)

    result = await db.execute(query.order_by(CommissionEvent.id).limit(limit))
    return list(result.scalars().all())


async def mark_dispatched(
    db: AsyncSession,
    ctx: RequestContext,
    event_id: int,
) -> CommissionEvent:
    """
    Acknowledge an event.

    Uses a conditional update so two consumers cannot both claim it.
    """
    event = await get_scoped(db, CommissionEvent, event_id, ctx, "Event")

    result = await db.execute(
        update(CommissionEvent)
        .where(
            CommissionEvent.id == event_id,
            CommissionEvent.status == EventStatus.PENDING,
        )
        .values(status=EventStatus.DISPATCHED, dispatched_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidTransition(f"Event {event_id} was already dispatched")

    await db.refresh(event)
    return event
