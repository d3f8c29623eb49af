"""
Settlement driver: approve, pay and cancel calculations.

Each status change is a conditional UPDATE ... WHERE status IN (expected),
so two managers acting on the same calculation cannot both succeed; the
loser gets InvalidTransition.
"""

import logging
from datetime import date, timedelta
from typing import Optional, Sequence

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from commissiondesk.models import (
    AuditAction,
    CalculationStatus,
    CommissionCalculation,
    EventType,
)
from commissiondesk.models.base import utcnow
from commissiondesk.services import adjustments, events
from commissiondesk.services.errors import InvalidTransition
from commissiondesk.services.tenancy import RequestContext, get_scoped
from commissiondesk.utils.audit import log_action

logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = (CalculationStatus.DRAFT, CalculationStatus.CALCULATED)


async def compare_and_set(
    db: AsyncSession,
    calculation: CommissionCalculation,
    expected: Sequence[CalculationStatus],
    target: CalculationStatus,
    **values,
) -> None:
    """
    Move a calculation to target only if the database still holds one of
    the expected statuses. Raises InvalidTransition otherwise.
    """
    if calculation.status not in expected:
        raise InvalidTransition(
            f"Calculation {calculation.id} is {calculation.status.value}; "
            f"cannot move to {target.value}"
        )

    result = await db.execute(
        update(CommissionCalculation)
        .where(
            CommissionCalculation.id == calculation.id,
            CommissionCalculation.status.in_(expected),
        )
        .values(status=target, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidTransition(
            f"Calculation {calculation.id} changed status concurrently; "
            f"cannot move to {target.value}"
        )

    await db.refresh(calculation)


async def approve(
    db: AsyncSession,
    ctx: RequestContext,
    calculation_id: int,
) -> CommissionCalculation:
    """
    Approve a calculated commission for payment.

    The scheduled payout date is the period end plus the plan's payment delay.
    """
    calculation = await get_scoped(db, CommissionCalculation, calculation_id, ctx, "Calculation")
    payout_date = calculation.calculation_period_end + timedelta(days=calculation.plan.payment_delay)

    await compare_and_set(
        db,
        calculation,
        (CalculationStatus.CALCULATED,),
        CalculationStatus.APPROVED,
        approved_at=utcnow(),
        approved_by=ctx.actor_id,
        payout_date=payout_date,
    )

    if calculation.requires_review:
        logger.warning(f"Calculation {calculation.id} approved despite review flag: {calculation.review_reason}")

    await events.emit(
        db,
        ctx,
        EventType.CALCULATION_APPROVED,
        "calculation",
        calculation.id,
        {
            "employee_id": calculation.employee_id,
            "net_commission": str(calculation.net_commission),
            "payout_date": payout_date.isoformat(),
        },
    )
    await log_action(
        db,
        ctx,
        AuditAction.APPROVE_CALCULATION,
        target_type="calculation",
        target_id=calculation.id,
        action_metadata={"payout_date": payout_date.isoformat()},
    )

    logger.info(f"Calculation {calculation.id} approved by {ctx.actor_id}, payout on {payout_date}")
    return calculation


async def pay(
    db: AsyncSession,
    ctx: RequestContext,
    calculation_id: int,
    payout_date: Optional[date] = None,
) -> CommissionCalculation:
    """Record that an approved calculation was paid out."""
    calculation = await get_scoped(db, CommissionCalculation, calculation_id, ctx, "Calculation")
    payout_date = payout_date or utcnow().date()

    await compare_and_set(
        db,
        calculation,
        (CalculationStatus.APPROVED,),
        CalculationStatus.PAID,
        paid_at=utcnow(),
        paid_by=ctx.actor_id,
        payout_date=payout_date,
    )

    await events.emit(
        db,
        ctx,
        EventType.CALCULATION_PAID,
        "calculation",
        calculation.id,
        {
            "employee_id": calculation.employee_id,
            "net_commission": str(calculation.net_commission),
            "payout_date": payout_date.isoformat(),
        },
    )
    await log_action(
        db,
        ctx,
        AuditAction.PAY_CALCULATION,
        target_type="calculation",
        target_id=calculation.id,
        action_metadata={
            "net_commission": str(calculation.net_commission),
            "payout_date": payout_date.isoformat(),
        },
    )

    logger.info(f"Calculation {calculation.id} paid ({calculation.net_commission}) on {payout_date}")
    return calculation


async def cancel(
    db: AsyncSession,
    ctx: RequestContext,
    calculation_id: int,
    notes: Optional[str] = None,
) -> CommissionCalculation:
    """Cancel a draft or calculated calculation. A later run replaces it."""
    calculation = await get_scoped(db, CommissionCalculation, calculation_id, ctx, "Calculation")

    values = {"notes": notes} if notes else {}
    await compare_and_set(
        db,
        calculation,
        CANCELLABLE_STATUSES,
        CalculationStatus.CANCELLED,
        **values,
    )

    await events.emit(
        db,
        ctx,
        EventType.CALCULATION_CANCELLED,
        "calculation",
        calculation.id,
        {"employee_id": calculation.employee_id},
    )
    await log_action(
        db,
        ctx,
        AuditAction.CANCEL_CALCULATION,
        target_type="calculation",
        target_id=calculation.id,
        action_metadata={"notes": notes} if notes else None,
    )

    logger.info(f"Calculation {calculation.id} cancelled by {ctx.actor_id}")
    return calculation


async def reprocess_adjustments(
    db: AsyncSession,
    ctx: RequestContext,
    calculation_id: int,
) -> CommissionCalculation:
    """
    Recompute total_adjustments from the approved adjustments linked to the
    calculation and re-derive net_commission.

    Allowed in every status but cancelled; this is how a paid calculation
    picks up a dispute correction.
    """
    calculation = await get_scoped(db, CommissionCalculation, calculation_id, ctx, "Calculation")
    if calculation.status == CalculationStatus.CANCELLED:
        raise InvalidTransition(f"Calculation {calculation.id} is cancelled")

    previous = calculation.total_adjustments
    calculation.total_adjustments = await adjustments.linked_total(db, calculation)
    calculation.refresh_net()
    await db.flush()

    await log_action(
        db,
        ctx,
        AuditAction.REPROCESS_ADJUSTMENTS,
        target_type="calculation",
        target_id=calculation.id,
        action_metadata={
            "previous_total": str(previous),
            "total_adjustments": str(calculation.total_adjustments),
            "net_commission": str(calculation.net_commission),
        },
    )

    logger.info(
        f"Calculation {calculation.id} adjustments reprocessed: "
        f"{previous} -> {calculation.total_adjustments}, net {calculation.net_commission}"
    )
    return calculation
