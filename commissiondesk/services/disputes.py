"""
Dispute workflow.

    submitted -> under_review -> escalated -> resolved | rejected -> closed
                 under_review ------------> resolved | rejected

Every transition appends exactly one history row; filing a dispute appends
none. A closed dispute accepts no further changes. Resolutions that change
the payout create an approved correction adjustment on the disputed
calculation, which shows up in its totals once adjustments are reprocessed.
"""

import logging
import re
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from commissiondesk.models import (
    AdjustmentType,
    AuditAction,
    CalculationStatus,
    CommissionCalculation,
    CommissionDispute,
    CommissionDisputeHistory,
    DisputePriority,
    DisputeStatus,
    EventType,
    ResolutionType,
)
from commissiondesk.models.base import utcnow
from commissiondesk.models.dispute import OPEN_DISPUTE_STATUSES
from commissiondesk.schemas.adjustment import AdjustmentCreate
from commissiondesk.schemas.dispute import DisputeCreate, DisputeUpdate
from commissiondesk.services import adjustments, events, settlement
from commissiondesk.services.errors import Forbidden, IncompleteResolution, InvalidTransition
from commissiondesk.services.tenancy import RequestContext, get_scoped
from commissiondesk.utils.audit import log_action
from commissiondesk.utils.money import to_money

logger = logging.getLogger(__name__)

TRANSITIONS = {
    DisputeStatus.SUBMITTED: {DisputeStatus.UNDER_REVIEW},
    DisputeStatus.UNDER_REVIEW: {
        DisputeStatus.ESCALATED,
        DisputeStatus.RESOLVED,
        DisputeStatus.REJECTED,
    },
    DisputeStatus.ESCALATED: {DisputeStatus.RESOLVED, DisputeStatus.REJECTED},
    DisputeStatus.RESOLVED: {DisputeStatus.CLOSED},
    DisputeStatus.REJECTED: {DisputeStatus.CLOSED},
    DisputeStatus.CLOSED: set(),
}

# Calculation statuses a dispute can be filed against
DISPUTABLE_STATUSES = (
    CalculationStatus.CALCULATED,
    CalculationStatus.APPROVED,
    CalculationStatus.DISPUTED,
    CalculationStatus.PAID,
)

# Calculation statuses a new dispute puts on hold
HOLDABLE_STATUSES = (CalculationStatus.CALCULATED, CalculationStatus.APPROVED)

_NUMBER_RE = re.compile(r"^DISP-(\d{4})-(\d+)$")


def can_transition(current: DisputeStatus, target: DisputeStatus) -> bool:
    return target in TRANSITIONS[current]


class DisputeHistoryRepository:
    """
    Append-only access to dispute history.

    Only append and list are offered. The model's mapper listeners
    refuse updates and deletes.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(
        self,
        dispute: CommissionDispute,
        action: str,
        actor_id: str,
        description: str,
        previous_status: Optional[DisputeStatus],
        new_status: Optional[DisputeStatus],
        metadata: Optional[dict[str, Any]] = None,
    ) -> CommissionDisputeHistory:
        entry = CommissionDisputeHistory(
            dispute_id=dispute.id,
            action=action,
            actor_id=actor_id,
            description=description,
            previous_status=previous_status,
            new_status=new_status,
            history_metadata=metadata,
        )
        self.db.add(entry)
        return entry

    async def list_for_dispute(self, dispute_id: int) -> list[CommissionDisputeHistory]:
        result = await self.db.execute(
            select(CommissionDisputeHistory)
            .where(CommissionDisputeHistory.dispute_id == dispute_id)
            .order_by(CommissionDisputeHistory.created_at, CommissionDisputeHistory.id)
        )
        return list(result.scalars().all())


async def next_dispute_number(db: AsyncSession, ctx: RequestContext, year: int) -> str:
    """DISP-<year>-<seq>, sequence restarting every year per tenant."""
    prefix = f"DISP-{year}-"
    result = await db.execute(
        select(CommissionDispute.dispute_number).where(
            CommissionDispute.tenant_id == ctx.tenant_id,
            CommissionDispute.dispute_number.like(f"{prefix}%"),
        )
    )
    seqs = []
    for (number,) in result.all():
        match = _NUMBER_RE.match(number)
        if match:
            seqs.append(int(match.group(2)))
    return f"{prefix}{max(seqs, default=0) + 1:03d}"


async def open_dispute(
    db: AsyncSession,
    ctx: RequestContext,
    data: DisputeCreate,
) -> CommissionDispute:
    """
    File a dispute against a calculation.

    Employees may only dispute their own calculations. A calculated or
    approved calculation is put on hold as disputed until its disputes
    are settled.
    """
    calculation = await get_scoped(db, CommissionCalculation, data.calculation_id, ctx, "Calculation")

    if not ctx.is_manager and calculation.employee_id != ctx.actor_id:
        raise Forbidden("Employees may only dispute their own calculations")

    if calculation.status not in DISPUTABLE_STATUSES:
        raise InvalidTransition(
            f"Calculation {calculation.id} is {calculation.status.value} and cannot be disputed"
        )

    await _hold_calculation(db, calculation)

    disputed_amount = data.disputed_amount
    if disputed_amount is None:
        disputed_amount = calculation.net_commission
    disputed_amount = to_money(disputed_amount)
    expected_amount = to_money(data.expected_amount)

    dispute = CommissionDispute(
        tenant_id=ctx.tenant_id,
        dispute_number=await next_dispute_number(db, ctx, utcnow().year),
        calculation=calculation,
        employee_id=calculation.employee_id,
        dispute_type=data.dispute_type,
        status=DisputeStatus.SUBMITTED,
        priority=data.priority,
        disputed_amount=disputed_amount,
        expected_amount=expected_amount,
        difference=expected_amount - disputed_amount,
        description=data.description,
        employee_comments=data.employee_comments,
        estimated_resolution=data.estimated_resolution,
        submitted_by=ctx.actor_id,
    )
    db.add(dispute)
    await db.flush()

    await events.emit(
        db,
        ctx,
        EventType.DISPUTE_OPENED,
        "dispute",
        dispute.id,
        {
            "dispute_number": dispute.dispute_number,
            "calculation_id": calculation.id,
            "employee_id": dispute.employee_id,
            "difference": str(dispute.difference),
        },
    )
    await log_action(
        db,
        ctx,
        AuditAction.OPEN_DISPUTE,
        target_type="dispute",
        target_id=dispute.id,
        action_metadata={"dispute_number": dispute.dispute_number, "calculation_id": calculation.id},
    )

    logger.info(f"Dispute {dispute.dispute_number} filed on calculation {calculation.id} by {ctx.actor_id}")
    return dispute


async def get_dispute(db: AsyncSession, ctx: RequestContext, dispute_id: int) -> CommissionDispute:
    dispute = await get_scoped(db, CommissionDispute, dispute_id, ctx, "Dispute")
    if not ctx.is_manager and dispute.employee_id != ctx.actor_id:
        raise Forbidden("Employees may only view their own disputes")
    return dispute


async def list_disputes(
    db: AsyncSession,
    ctx: RequestContext,
    status: Optional[DisputeStatus] = None,
    employee_id: Optional[str] = None,
    calculation_id: Optional[int] = None,
    assigned_to: Optional[str] = None,
    priority: Optional[DisputePriority] = None,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[CommissionDispute], int]:
    query = select(CommissionDispute).where(CommissionDispute.tenant_id == ctx.tenant_id)

    if not ctx.is_manager:
        employee_id = ctx.actor_id
    if employee_id:
        query = query.where(CommissionDispute.employee_id == employee_id)
    if status is not None:
        query = query.where(CommissionDispute.status == status)
    if calculation_id is not None:
        query = query.where(CommissionDispute.calculation_id == calculation_id)
    if assigned_to:
        query = query.where(CommissionDispute.assigned_to == assigned_to)
    if priority is not None:
        query = query.where(CommissionDispute.priority == priority)

    total = await db.scalar(select(func.count()).select_from(query.subquery()))

    query = query.order_by(CommissionDispute.id.desc())
    query = query.offset((page - 1) * per_page).limit(per_page)
    result = await db.execute(query)
    return list(result.scalars().all()), total or 0


async def update_dispute(
    db: AsyncSession,
    ctx: RequestContext,
    dispute_id: int,
    data: DisputeUpdate,
) -> CommissionDispute:
    """Change priority, comments or the estimated resolution date."""
    dispute = await get_dispute(db, ctx, dispute_id)
    if dispute.status == DisputeStatus.CLOSED:
        raise InvalidTransition(f"Dispute {dispute.dispute_number} is closed")

    changes = data.model_dump(exclude_unset=True)
    if not ctx.is_manager and set(changes) - {"employee_comments"}:
        raise Forbidden("Employees may only change their own comments")

    for name, value in changes.items():
        setattr(dispute, name, value)
    await db.flush()

    await log_action(
        db,
        ctx,
        AuditAction.UPDATE_DISPUTE,
        target_type="dispute",
        target_id=dispute.id,
        action_metadata={"fields": sorted(changes)},
    )
    return dispute


async def _transition(
    db: AsyncSession,
    ctx: RequestContext,
    dispute: CommissionDispute,
    target: DisputeStatus,
    action: str,
    description: str,
    metadata: Optional[dict[str, Any]] = None,
) -> CommissionDispute:
    previous = dispute.status
    dispute.status = target
    await db.flush()

    await DisputeHistoryRepository(db).append(
        dispute,
        action=action,
        actor_id=ctx.actor_id,
        description=description,
        previous_status=previous,
        new_status=target,
        metadata=metadata,
    )
    await events.emit(
        db,
        ctx,
        EventType.DISPUTE_STATUS_CHANGED,
        "dispute",
        dispute.id,
        {
            "dispute_number": dispute.dispute_number,
            "previous_status": previous.value,
            "new_status": target.value,
        },
    )
    await log_action(
        db,
        ctx,
        AuditAction.TRANSITION_DISPUTE,
        target_type="dispute",
        target_id=dispute.id,
        action_metadata={"from": previous.value, "to": target.value, **(metadata or {})},
    )
    await db.flush()

    logger.info(f"Dispute {dispute.dispute_number}: {previous.value} -> {target.value} by {ctx.actor_id}")
    return dispute


def _require(dispute: CommissionDispute, target: DisputeStatus) -> None:
    if not can_transition(dispute.status, target):
        raise InvalidTransition(
            f"Dispute {dispute.dispute_number} cannot move from "
            f"{dispute.status.value} to {target.value}"
        )


async def _hold_calculation(db: AsyncSession, calculation: CommissionCalculation) -> None:
    """
    Put a calculated or approved calculation on hold as disputed.

    If it was paid or put on hold meanwhile, the dispute is filed against it
    as it now stands; any other status change refuses the dispute.
    """
    if calculation.status not in HOLDABLE_STATUSES:
        return

    previous = calculation.status
    try:
        await settlement.compare_and_set(db, calculation, HOLDABLE_STATUSES, CalculationStatus.DISPUTED)
    except InvalidTransition:
        await db.refresh(calculation)
        if calculation.status not in (CalculationStatus.DISPUTED, CalculationStatus.PAID):
            raise
        logger.warning(
            f"Calculation {calculation.id} moved to {calculation.status.value} while a dispute "
            f"was being filed; keeping it {calculation.status.value}"
        )
        return

    logger.info(f"Calculation {calculation.id} put on hold ({previous.value} -> disputed)")


async def _release_calculation(db: AsyncSession, dispute: CommissionDispute) -> None:
    """Return a disputed calculation to calculated once none of its disputes is open."""
    calculation = dispute.calculation
    if calculation.status != CalculationStatus.DISPUTED:
        return

    still_open = await db.scalar(
        select(func.count())
        .select_from(CommissionDispute)
        .where(
            CommissionDispute.calculation_id == calculation.id,
            CommissionDispute.status.in_(OPEN_DISPUTE_STATUSES),
        )
    )
    if still_open:
        return

    await settlement.compare_and_set(
        db,
        calculation,
        (CalculationStatus.DISPUTED,),
        CalculationStatus.CALCULATED,
        approved_at=None,
        approved_by=None,
        payout_date=None,
    )
    logger.info(f"Calculation {calculation.id} released from dispute; it needs approval again")


async def start_review(
    db: AsyncSession,
    ctx: RequestContext,
    dispute_id: int,
    assigned_to: str,
    comments: Optional[str] = None,
) -> CommissionDispute:
    dispute = await get_dispute(db, ctx, dispute_id)
    _require(dispute, DisputeStatus.UNDER_REVIEW)

    dispute.assigned_to = assigned_to
    if comments:
        dispute.manager_comments = comments

    return await _transition(
        db,
        ctx,
        dispute,
        DisputeStatus.UNDER_REVIEW,
        action="review_started",
        description=f"Assigned to {assigned_to} for review",
        metadata={"assigned_to": assigned_to},
    )


async def escalate(
    db: AsyncSession,
    ctx: RequestContext,
    dispute_id: int,
    reason: str,
    assigned_to: Optional[str] = None,
) -> CommissionDispute:
    dispute = await get_dispute(db, ctx, dispute_id)
    _require(dispute, DisputeStatus.ESCALATED)

    if assigned_to:
        dispute.assigned_to = assigned_to

    return await _transition(
        db,
        ctx,
        dispute,
        DisputeStatus.ESCALATED,
        action="escalated",
        description=reason,
        metadata={"assigned_to": dispute.assigned_to},
    )


async def resolve(
    db: AsyncSession,
    ctx: RequestContext,
    dispute_id: int,
    resolution_type: ResolutionType,
    adjustment_amount: Optional[Decimal] = None,
    resolution_notes: Optional[str] = None,
) -> CommissionDispute:
    """
    Resolve a dispute.

    adjustment_approved and partial_adjustment need a non-zero
    adjustment_amount and create an approved correction adjustment on the
    calculation. Other resolution types must not carry an amount.
    """
    dispute = await get_dispute(db, ctx, dispute_id)
    _require(dispute, DisputeStatus.RESOLVED)

    amount = to_money(adjustment_amount) if adjustment_amount is not None else None
    if resolution_type.changes_payout:
        if not amount:
            raise IncompleteResolution(
                f"Resolution '{resolution_type.value}' requires a non-zero adjustment_amount"
            )
    elif amount:
        raise IncompleteResolution(
            f"Resolution '{resolution_type.value}' does not change the payout; "
            f"adjustment_amount must be empty"
        )

    if resolution_type.changes_payout:
        adjustment = await adjustments.create_adjustment(
            db,
            ctx,
            AdjustmentCreate(
                calculation_id=dispute.calculation_id,
                adjustment_type=AdjustmentType.CORRECTION,
                amount=amount,
                reason=f"Resolution of dispute {dispute.dispute_number}",
                description=resolution_notes,
                reference_type="dispute",
                reference_id=str(dispute.id),
                reference_name=dispute.dispute_number,
                requires_approval=False,
            ),
        )
        dispute.adjustment_id = adjustment.id

    dispute.resolution_type = resolution_type
    dispute.adjustment_amount = amount
    dispute.resolution_notes = resolution_notes
    dispute.resolved_by = ctx.actor_id
    dispute.actual_resolution = utcnow()

    await _transition(
        db,
        ctx,
        dispute,
        DisputeStatus.RESOLVED,
        action="resolved",
        description=resolution_notes or f"Resolved: {resolution_type.value}",
        metadata={
            "resolution_type": resolution_type.value,
            "adjustment_amount": str(amount) if amount is not None else None,
            "adjustment_id": dispute.adjustment_id,
        },
    )
    await _release_calculation(db, dispute)
    await db.flush()
    return dispute


async def reject(
    db: AsyncSession,
    ctx: RequestContext,
    dispute_id: int,
    resolution_notes: Optional[str],
) -> CommissionDispute:
    dispute = await get_dispute(db, ctx, dispute_id)
    _require(dispute, DisputeStatus.REJECTED)

    if not resolution_notes or not resolution_notes.strip():
        raise IncompleteResolution("Rejecting a dispute requires resolution_notes")

    dispute.resolution_notes = resolution_notes
    dispute.resolved_by = ctx.actor_id
    dispute.actual_resolution = utcnow()

    await _transition(
        db,
        ctx,
        dispute,
        DisputeStatus.REJECTED,
        action="rejected",
        description=resolution_notes,
    )
    await _release_calculation(db, dispute)
    await db.flush()
    return dispute


async def close(
    db: AsyncSession,
    ctx: RequestContext,
    dispute_id: int,
    comments: Optional[str] = None,
) -> CommissionDispute:
    dispute = await get_dispute(db, ctx, dispute_id)
    _require(dispute, DisputeStatus.CLOSED)

    return await _transition(
        db,
        ctx,
        dispute,
        DisputeStatus.CLOSED,
        action="closed",
        description=comments or "Dispute closed",
    )


async def get_history(
    db: AsyncSession,
    ctx: RequestContext,
    dispute_id: int,
) -> list[CommissionDisputeHistory]:
    dispute = await get_dispute(db, ctx, dispute_id)
    return await DisputeHistoryRepository(db).list_for_dispute(dispute.id)
