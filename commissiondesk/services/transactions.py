"""
Transaction collector.

Records commissionable sales and hands the calculation engine the rows of an
employee's period.

Split rule: all rows of one sale (same transaction_type + transaction_id)
carry the full sale_amount, and each row's commissionable_amount is
sale_amount * split_percentage / 100. Across the non-charged-back rows of a
sale, split percentages may not exceed 100 and commissionable amounts may not
exceed the sale amount (both within settings.split_tolerance).
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from commissiondesk.config import settings
from commissiondesk.models import (
    AdjustmentType,
    AuditAction,
    CommissionAdjustment,
    CommissionCalculation,
    CommissionSalesTransaction,
    EventType,
    TransactionType,
)
from commissiondesk.models.base import utcnow
from commissiondesk.schemas.transaction import TransactionCreate
from commissiondesk.services import events
from commissiondesk.services.assignments import resolve_assignment
from commissiondesk.services.errors import (
    InvalidPeriod,
    InvalidTransition,
    SplitNotAllowed,
    SplitOverAllocation,
)
from commissiondesk.services.tenancy import RequestContext, get_scoped
from commissiondesk.utils.audit import log_action
from commissiondesk.utils.money import percent_of

logger = logging.getLogger(__name__)


@dataclass
class CollectedTransactions:
    """Rows of one employee's period, as seen by the calculation engine."""

    rows: list = field(default_factory=list)
    charged_back: list = field(default_factory=list)
    split_violations: list = field(default_factory=list)

    @property
    def total_sales(self) -> Decimal:
        return sum((r.commissionable_amount for r in self.rows), Decimal("0"))


def split_share(sale_amount: Decimal, split_percentage: Decimal) -> Decimal:
    """Commissionable share of a sale for one split row."""
    return percent_of(sale_amount, split_percentage)


def check_split_allocation(
    rows: Sequence,
    sale_amount: Decimal,
    tolerance: Optional[Decimal] = None,
) -> Optional[str]:
    """
    Validate the rows of one sale against the split rule.

    Returns a description of the violation, or None when the rows are fine.
    Charged-back rows do not count towards the allocation.
    """
    if tolerance is None:
        tolerance = settings.split_tolerance

    live = [r for r in rows if not r.is_charged_back]
    if any(r.sale_amount != sale_amount for r in live):
        return "rows of one sale carry different sale amounts"

    total_pct = sum((r.split_percentage for r in live), Decimal("0"))
    if total_pct > Decimal(100) + tolerance:
        return f"split percentages add up to {total_pct}%"

    total_share = sum((r.commissionable_amount for r in live), Decimal("0"))
    if total_share > sale_amount + tolerance:
        return f"commissionable amounts add up to {total_share} of a {sale_amount} sale"

    return None


async def _sale_rows(
    db: AsyncSession,
    ctx: RequestContext,
    transaction_type: TransactionType,
    transaction_id: str,
) -> list[CommissionSalesTransaction]:
    result = await db.execute(
        select(CommissionSalesTransaction).where(
            CommissionSalesTransaction.tenant_id == ctx.tenant_id,
            CommissionSalesTransaction.transaction_type == transaction_type,
            CommissionSalesTransaction.transaction_id == transaction_id,
        )
    )
    return list(result.scalars().all())


async def record_transaction(
    db: AsyncSession,
    ctx: RequestContext,
    data: TransactionCreate,
) -> CommissionSalesTransaction:
    """
    Record one employee's share of a sale.

    Raises:
        SplitNotAllowed: a split row for an employee whose plan forbids splits
        SplitOverAllocation: the sale would be allocated beyond its amount
    """
    if data.is_split_commission:
        assignment = await resolve_assignment(db, ctx, data.employee_id, data.transaction_date)
        if not assignment.plan.split_commission_allowed:
            raise SplitNotAllowed(
                f"Plan '{assignment.plan.plan_name}' does not allow split commissions"
            )

    row = CommissionSalesTransaction(
        tenant_id=ctx.tenant_id,
        employee_id=data.employee_id,
        transaction_type=data.transaction_type,
        transaction_id=data.transaction_id,
        transaction_number=data.transaction_number,
        transaction_date=data.transaction_date,
        customer_id=data.customer_id,
        customer_name=data.customer_name,
        sale_amount=data.sale_amount,
        commissionable_amount=split_share(data.sale_amount, data.split_percentage),
        category=data.category,
        is_split_commission=data.is_split_commission,
        split_percentage=data.split_percentage,
        primary_employee_id=data.primary_employee_id,
        is_processed=False,
        is_charged_back=False,
    )

    siblings = await _sale_rows(db, ctx, data.transaction_type, data.transaction_id)
    violation = check_split_allocation(siblings + [row], data.sale_amount)
    if violation:
        raise SplitOverAllocation(
            f"{data.transaction_type.value} {data.transaction_id}: {violation}"
        )

    db.add(row)
    await db.flush()

    await log_action(
        db,
        ctx,
        AuditAction.RECORD_TRANSACTION,
        target_type="transaction",
        target_id=row.id,
        action_metadata={
            "employee_id": row.employee_id,
            "sale": f"{row.transaction_type.value}:{row.transaction_id}",
            "commissionable_amount": str(row.commissionable_amount),
        },
    )
    return row


async def collect_transactions(
    db: AsyncSession,
    ctx: RequestContext,
    employee_id: str,
    period_start: date,
    period_end: date,
    calculation_id: Optional[int] = None,
) -> CollectedTransactions:
    """
    Rows of the employee dated within [period_start, period_end].

    Includes rows not yet processed plus rows already linked to
    calculation_id, so a recalculation sees the same input. Split rows are
    re-checked against their sibling rows; problems are reported in
    split_violations rather than raised.
    """
    if period_end < period_start:
        raise InvalidPeriod(f"Period end {period_end} is before period start {period_start}")

    unprocessed = CommissionSalesTransaction.is_processed == False
    if calculation_id is not None:
        unprocessed = or_(unprocessed, CommissionSalesTransaction.calculation_id == calculation_id)

    result = await db.execute(
        select(CommissionSalesTransaction)
        .where(
            CommissionSalesTransaction.tenant_id == ctx.tenant_id,
            CommissionSalesTransaction.employee_id == employee_id,
            CommissionSalesTransaction.transaction_date >= period_start,
            CommissionSalesTransaction.transaction_date <= period_end,
            unprocessed,
        )
        .order_by(CommissionSalesTransaction.transaction_date, CommissionSalesTransaction.id)
    )

    collected = CollectedTransactions()
    checked = set()
    for row in result.scalars().all():
        if row.is_charged_back:
            collected.charged_back.append(row)
            continue
        collected.rows.append(row)

        if row.is_split_commission and row.sale_key not in checked:
            checked.add(row.sale_key)
            siblings = await _sale_rows(db, ctx, row.transaction_type, row.transaction_id)
            violation = check_split_allocation(siblings, row.sale_amount)
            if violation:
                logger.warning(
                    f"Split violation on {row.transaction_type.value} {row.transaction_id}: {violation}"
                )
                collected.split_violations.append({
                    "transaction_type": row.transaction_type.value,
                    "transaction_id": row.transaction_id,
                    "message": violation,
                })

    return collected


async def charge_back_transaction(
    db: AsyncSession,
    ctx: RequestContext,
    transaction_id: int,
    reason: str,
    charged_back_on: Optional[date] = None,
) -> CommissionSalesTransaction:
    """
    Mark a transaction charged back.

    Only allowed when the plan enables chargebacks and the sale is within the
    plan's chargeback window. If the row was already settled in an approved or
    paid calculation, an approved standalone chargeback adjustment reverses
    the commission in the period containing charged_back_on.
    """
    row = await get_scoped(db, CommissionSalesTransaction, transaction_id, ctx, "Transaction")
    on_date = charged_back_on or utcnow().date()

    if row.is_charged_back:
        raise InvalidTransition(f"Transaction {row.id} is already charged back")

    calculation = None
    if row.calculation_id is not None:
        calculation = await get_scoped(db, CommissionCalculation, row.calculation_id, ctx, "Calculation")
        plan = calculation.plan
    else:
        plan = (await resolve_assignment(db, ctx, row.employee_id, row.transaction_date)).plan

    if not plan.chargeback_enabled:
        raise InvalidTransition(f"Plan '{plan.plan_name}' does not allow chargebacks")

    age = (on_date - row.transaction_date).days
    if age > plan.chargeback_period:
        raise InvalidTransition(
            f"Transaction {row.id} is {age} days old; the chargeback period is "
            f"{plan.chargeback_period} days"
        )

    row.is_charged_back = True
    row.charged_back_at = utcnow()
    row.chargeback_reason = reason

    adjustment = None
    if calculation is not None and calculation.is_finalized and row.commission_amount:
        adjustment = CommissionAdjustment(
            tenant_id=ctx.tenant_id,
            calculation_id=None,
            employee_id=row.employee_id,
            adjustment_type=AdjustmentType.CHARGEBACK,
            amount=-row.commission_amount,
            reason=reason,
            description=f"Chargeback of {row.transaction_type.value} {row.transaction_id}",
            effective_date=on_date,
            reference_type="transaction",
            reference_id=str(row.id),
            reference_name=row.transaction_number,
            requires_approval=False,
            approved_at=utcnow(),
            approved_by=ctx.actor_id,
            created_by=ctx.actor_id,
        )
        db.add(adjustment)

    await db.flush()

    await events.emit(
        db,
        ctx,
        EventType.TRANSACTION_CHARGED_BACK,
        "transaction",
        row.id,
        {
            "employee_id": row.employee_id,
            "calculation_id": row.calculation_id,
            "adjustment_id": adjustment.id if adjustment else None,
        },
    )
    await log_action(
        db,
        ctx,
        AuditAction.CHARGE_BACK,
        target_type="transaction",
        target_id=row.id,
        action_metadata={"reason": reason, "adjustment_id": adjustment.id if adjustment else None},
    )

    logger.info(f"Transaction {row.id} charged back by {ctx.actor_id}")
    return row


async def list_transactions(
    db: AsyncSession,
    ctx: RequestContext,
    employee_id: Optional[str] = None,
    period_start: Optional[date] = None,
    period_end: Optional[date] = None,
    calculation_id: Optional[int] = None,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[CommissionSalesTransaction], int]:
    query = select(CommissionSalesTransaction).where(
        CommissionSalesTransaction.tenant_id == ctx.tenant_id,
    )
    if employee_id:
        query = query.where(CommissionSalesTransaction.employee_id == employee_id)
    if period_start:
        query = query.where(CommissionSalesTransaction.transaction_date >= period_start)
    if period_end:
        query = query.where(CommissionSalesTransaction.transaction_date <= period_end)
    if calculation_id is not None:
        query = query.where(CommissionSalesTransaction.calculation_id == calculation_id)

    total = await db.scalar(select(func.count()).select_from(query.subquery()))

    query = query.order_by(CommissionSalesTransaction.transaction_date.desc(), CommissionSalesTransaction.id.desc())
    query = query.offset((page - 1) * per_page).limit(per_page)
    result = await db.execute(query)
    return list(result.scalars().all()), total or 0
