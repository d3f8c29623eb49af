"""
Commission adjustments.

Only approved adjustments count. An adjustment created with
requires_approval=False is approved by its creator on the spot.
"""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from commissiondesk.models import (
    AuditAction,
    CalculationStatus,
    CommissionAdjustment,
    CommissionCalculation,
)
from commissiondesk.models.base import utcnow
from commissiondesk.schemas.adjustment import AdjustmentCreate
from commissiondesk.services.errors import InvalidTransition
from commissiondesk.services.tenancy import RequestContext, get_scoped
from commissiondesk.utils.audit import log_action
from commissiondesk.utils.money import ZERO, to_money

logger = logging.getLogger(__name__)


async def create_adjustment(
    db: AsyncSession,
    ctx: RequestContext,
    data: AdjustmentCreate,
) -> CommissionAdjustment:
    calculation = None
    employee_id = data.employee_id
    effective_date = data.effective_date

    if data.calculation_id is not None:
        calculation = await get_scoped(db, CommissionCalculation, data.calculation_id, ctx, "Calculation")
        if calculation.status == CalculationStatus.CANCELLED:
            raise InvalidTransition(f"Calculation {calculation.id} is cancelled")
        if employee_id is not None and employee_id != calculation.employee_id:
            raise InvalidTransition(
                f"Calculation {calculation.id} belongs to employee {calculation.employee_id}, not {employee_id}"
            )
        employee_id = calculation.employee_id
        effective_date = effective_date or calculation.calculation_period_end

    now = utcnow()
    adjustment = CommissionAdjustment(
        tenant_id=ctx.tenant_id,
        calculation_id=data.calculation_id,
        employee_id=employee_id,
        adjustment_type=data.adjustment_type,
        amount=to_money(data.amount),
        reason=data.reason,
        description=data.description,
        effective_date=effective_date or now.date(),
        reference_type=data.reference_type,
        reference_id=data.reference_id,
        reference_name=data.reference_name,
        is_processed=False,
        requires_approval=data.requires_approval,
        approved_at=None if data.requires_approval else now,
        approved_by=None if data.requires_approval else ctx.actor_id,
        created_by=ctx.actor_id,
    )
    db.add(adjustment)
    await db.flush()

    await log_action(
        db,
        ctx,
        AuditAction.CREATE_ADJUSTMENT,
        target_type="adjustment",
        target_id=adjustment.id,
        action_metadata={
            "employee_id": employee_id,
            "calculation_id": data.calculation_id,
            "amount": str(adjustment.amount),
            "type": data.adjustment_type.value,
        },
    )

    logger.info(
        f"Adjustment {adjustment.id} ({data.adjustment_type.value}, {adjustment.amount}) "
        f"created for employee {employee_id}"
    )
    return adjustment


async def approve_adjustment(
    db: AsyncSession,
    ctx: RequestContext,
    adjustment_id: int,
) -> CommissionAdjustment:
    """Approve a pending adjustment. It counts from the next calculation or reprocess."""
    adjustment = await get_scoped(db, CommissionAdjustment, adjustment_id, ctx, "Adjustment")
    if adjustment.is_approved:
        raise InvalidTransition(f"Adjustment {adjustment.id} is already approved")

    adjustment.approved_at = utcnow()
    adjustment.approved_by = ctx.actor_id
    await db.flush()

    await log_action(
        db,
        ctx,
        AuditAction.APPROVE_ADJUSTMENT,
        target_type="adjustment",
        target_id=adjustment.id,
        action_metadata={"amount": str(adjustment.amount)},
    )
    return adjustment


async def apply_to_calculation(
    db: AsyncSession,
    ctx: RequestContext,
    calculation: CommissionCalculation,
) -> Decimal:
    """
    Fold approved adjustments into a calculation and return their sum.

    Takes adjustments already linked to the calculation plus standalone ones
    of the same employee whose effective_date falls in the period. Standalone
    ones become linked, so running this again returns the same total.
    """
    result = await db.execute(
        select(CommissionAdjustment).where(
            CommissionAdjustment.tenant_id == ctx.tenant_id,
            CommissionAdjustment.approved_at.is_not(None),
            or_(
                CommissionAdjustment.calculation_id == calculation.id,
                and_(
                    CommissionAdjustment.calculation_id.is_(None),
                    CommissionAdjustment.employee_id == calculation.employee_id,
                    CommissionAdjustment.effective_date >= calculation.calculation_period_start,
                    CommissionAdjustment.effective_date <= calculation.calculation_period_end,
                ),
            ),
        )
    )

    total = ZERO
    now = utcnow()
    for adjustment in result.scalars().all():
        if adjustment.calculation_id is None:
            adjustment.calculation_id = calculation.id
        if not adjustment.is_processed:
            adjustment.is_processed = True
            adjustment.processed_at = now
        total += adjustment.amount

    return to_money(total)


async def linked_total(db: AsyncSession, calculation: CommissionCalculation) -> Decimal:
    """
    Sum of approved adjustments already linked to the calculation.

    Marks them processed. Standalone adjustments are left for the
    calculation of their own period.
    """
    result = await db.execute(
        select(CommissionAdjustment).where(
            CommissionAdjustment.calculation_id == calculation.id,
            CommissionAdjustment.approved_at.is_not(None),
        )
    )

    total = ZERO
    now = utcnow()
    for adjustment in result.scalars().all():
        if not adjustment.is_processed:
            adjustment.is_processed = True
            adjustment.processed_at = now
        total += adjustment.amount

    return to_money(total)


async def list_adjustments(
    db: AsyncSession,
    ctx: RequestContext,
    employee_id: Optional[str] = None,
    calculation_id: Optional[int] = None,
    pending_only: bool = False,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[CommissionAdjustment], int]:
    query = select(CommissionAdjustment).where(CommissionAdjustment.tenant_id == ctx.tenant_id)

    if employee_id:
        query = query.where(CommissionAdjustment.employee_id == employee_id)
    if calculation_id is not None:
        query = query.where(CommissionAdjustment.calculation_id == calculation_id)
    if pending_only:
        query = query.where(CommissionAdjustment.approved_at.is_(None))

    total = await db.scalar(select(func.count()).select_from(query.subquery()))

    query = query.order_by(CommissionAdjustment.id.desc())
    query = query.offset((page - 1) * per_page).limit(per_page)
    result = await db.execute(query)
    return list(result.scalars().all()), total or 0
