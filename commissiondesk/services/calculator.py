"""
Commission calculation engine.

calculate() turns one employee's transactions for a period into a
CommissionCalculation:

1. Resolve the assignment active on the period end date.
2. Refuse to touch an approved/paid (AlreadyFinalized) or disputed
   (InvalidTransition) calculation of the same employee and period, under
   any plan; rebuild anything else in place under the current plan.
3. Group commissionable amounts by product category and rate them, either
   per category (flat plans) or by the tier bracket total sales fall in
   (tiered plans). Each detail line is rounded to cents half-up and
   gross_commission is the sum of the lines.
4. Evaluate the matched tier's bonus and the plan's bonus rules.
5. Fold in approved adjustments.
6. net_commission = gross + bonuses + adjustments.

Recalculating an unchanged period yields the same numbers: transactions and
adjustments consumed by a calculation stay linked to it and are picked up
again on the next run.
"""

import calendar
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from commissiondesk.models import (
    AuditAction,
    CalculationMode,
    CalculationStatus,
    CommissionAdjustment,
    CommissionBonus,
    CommissionCalculation,
    CommissionCalculationDetail,
    CommissionPlan,
    CommissionPlanTier,
    CommissionSalesTransaction,
    EventType,
    ProductCategory,
)
from commissiondesk.models.base import utcnow
from commissiondesk.models.plan import CATEGORY_NAMES
from commissiondesk.services import adjustments, events, settlement
from commissiondesk.services.assignments import employees_with_assignment, resolve_assignment
from commissiondesk.services.errors import (
    AlreadyFinalized,
    CommissionError,
    ConcurrentCalculation,
    InvalidPeriod,
    InvalidTierSchedule,
    InvalidTransition,
)
from commissiondesk.services.plans import find_tier
from commissiondesk.services.rules import RateOverrides, parse_bonus_rules
from commissiondesk.services.tenancy import RequestContext, get_scoped
from commissiondesk.services.transactions import collect_transactions
from commissiondesk.utils.audit import log_action
from commissiondesk.utils.money import ZERO, percent_of, to_money

logger = logging.getLogger(__name__)

QUARTER_START_MONTHS = (1, 4, 7, 10)


@dataclass
class CategoryLine:
    """A rated product category, before it becomes a detail row."""

    category: ProductCategory
    sales_amount: Decimal
    commission_rate: Decimal
    transaction_count: int
    description: Optional[str] = None

    @property
    def commission_amount(self) -> Decimal:
        return percent_of(self.sales_amount, self.commission_rate)


@dataclass
class BonusLine:
    bonus_type: str
    description: str
    amount: Decimal
    eligibility_met: bool
    criteria: dict


@dataclass
class PeriodRunResult:
    """Outcome of calculate_period."""

    period_start: date
    period_end: date
    processed: int = 0
    succeeded: int = 0
    calculation_ids: list = field(default_factory=list)
    total_gross: Decimal = ZERO
    total_net: Decimal = ZERO
    errors: list = field(default_factory=list)
    warnings: list = field(default_factory=list)


def validate_period(period_start: date, period_end: date) -> None:
    if period_end < period_start:
        raise InvalidPeriod(f"Period end {period_end} is before period start {period_start}")


def period_name(period_start: date, period_end: date) -> str:
    """
    Human label for a period.

    >>> period_name(date(2025, 1, 1), date(2025, 1, 31))
    'January 2025'
    >>> period_name(date(2025, 4, 1), date(2025, 6, 30))
    'Q2 2025'
    """
    if period_start.day == 1 and period_start.year == period_end.year:
        year = period_start.year
        month = period_start.month
        if period_end.month == month and period_end.day == calendar.monthrange(year, month)[1]:
            return f"{calendar.month_name[month]} {year}"

        if month in QUARTER_START_MONTHS and period_end.month == month + 2:
            if period_end.day == calendar.monthrange(year, month + 2)[1]:
                return f"Q{QUARTER_START_MONTHS.index(month) + 1} {year}"

    return f"{period_start.isoformat()} to {period_end.isoformat()}"


def previous_month(today: date) -> tuple[date, date]:
    """First and last day of the calendar month before today."""
    year, month = (today.year, today.month - 1) if today.month > 1 else (today.year - 1, 12)
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def quota_achievement(total_sales: Decimal, quota_target: Optional[Decimal]) -> Optional[Decimal]:
    """Percentage of quota reached, or None when there is no quota."""
    if not quota_target:
        return None
    return to_money(Decimal(total_sales) / Decimal(quota_target) * 100)


def group_by_category(rows) -> "OrderedDict[ProductCategory, tuple[Decimal, int]]":
    """Sum commissionable amounts and count rows per category."""
    grouped = {}
    for row in rows:
        amount, count = grouped.get(row.category, (Decimal("0"), 0))
        grouped[row.category] = (amount + row.commissionable_amount, count + 1)
    return OrderedDict(sorted(grouped.items(), key=lambda item: item[0].value))


def flat_lines(
    plan: CommissionPlan,
    sales_by_category: dict,
    overrides: RateOverrides,
) -> tuple[list[CategoryLine], list[ProductCategory]]:
    """
    One line per category that has a rate.

    Returns the lines and the categories that had sales but no rate.
    """
    rates = {r.category: r.commission_rate for r in plan.product_rates if r.is_active}

    lines = []
    unrated = []
    for category, (amount, count) in sales_by_category.items():
        rate = overrides.category_rate(category)
        description = "Custom rate" if rate is not None else None
        if rate is None:
            rate = rates.get(category)
        if rate is None:
            unrated.append(category)
            continue
        lines.append(CategoryLine(category, amount, rate, count, description))
    return lines, unrated


def tiered_lines(
    tier: CommissionPlanTier,
    sales_by_category: dict,
    overrides: RateOverrides,
) -> list[CategoryLine]:
    """Every category at the matched tier's rate."""
    rate = overrides.tier_rate(tier.tier_level)
    description = f"{tier.tier_name} (custom rate)" if rate is not None else tier.tier_name
    if rate is None:
        rate = tier.commission_rate

    return [
        CategoryLine(category, amount, rate, count, description)
        for category, (amount, count) in sales_by_category.items()
    ]


def evaluate_bonuses(
    plan: CommissionPlan,
    tier: Optional[CommissionPlanTier],
    total_sales: Decimal,
    achievement: Optional[Decimal],
) -> list[BonusLine]:
    """
    Bonus lines for the matched tier and every plan bonus rule.

    Lines are produced whether or not they were earned; only eligible
    ones are paid.
    """
    lines = []

    if tier is not None and tier.bonus_amount:
        threshold = tier.bonus_threshold
        met = threshold is None or total_sales >= threshold
        lines.append(BonusLine(
            bonus_type="tier_bonus",
            description=f"{tier.tier_name} bonus",
            amount=to_money(tier.bonus_amount),
            eligibility_met=met,
            criteria={
                "kind": "tier",
                "tier_level": tier.tier_level,
                "bonus_threshold": str(threshold) if threshold is not None else None,
            },
        ))

    for rule in parse_bonus_rules(plan.bonus_rules):
        lines.append(BonusLine(
            bonus_type=rule.bonus_type,
            description=rule.describe(),
            amount=to_money(rule.amount),
            eligibility_met=rule.is_met(total_sales, achievement),
            criteria=rule.model_dump(mode="json", exclude_none=True),
        ))

    return lines


async def _period_calculations(
    db: AsyncSession,
    ctx: RequestContext,
    employee_id: str,
    period_start: date,
    period_end: date,
) -> list[CommissionCalculation]:
    """Every calculation of the employee for the period, under any plan."""
    result = await db.execute(
        select(CommissionCalculation)
        .where(
            CommissionCalculation.tenant_id == ctx.tenant_id,
            CommissionCalculation.employee_id == employee_id,
            CommissionCalculation.calculation_period_start == period_start,
            CommissionCalculation.calculation_period_end == period_end,
        )
        .order_by(CommissionCalculation.id)
    )
    return list(result.scalars().all())


async def _release_inputs(db: AsyncSession, calculation: CommissionCalculation) -> None:
    """Hand a superseded calculation's transactions and adjustments back to the period."""
    await db.execute(
        update(CommissionSalesTransaction)
        .where(CommissionSalesTransaction.calculation_id == calculation.id)
        .values(calculation_id=None, is_processed=False, processed_at=None)
    )
    await db.execute(
        update(CommissionAdjustment)
        .where(CommissionAdjustment.calculation_id == calculation.id)
        .values(calculation_id=None)
    )


async def _claim_calculation(
    db: AsyncSession,
    ctx: RequestContext,
    employee_id: str,
    plan: CommissionPlan,
    period_start: date,
    period_end: date,
) -> Optional[CommissionCalculation]:
    """
    Pick the row a run for (employee, period) rebuilds.

    One calculation per employee and period is kept open whatever the plan.
    A row under the current plan is preferred, then any other open row,
    which is moved to the current plan. The remaining rows are cancelled
    and their inputs released so this run collects them again.
    """
    existing = await _period_calculations(db, ctx, employee_id, period_start, period_end)

    for calculation in existing:
        if calculation.is_finalized:
            raise AlreadyFinalized(
                f"Calculation {calculation.id} for {employee_id} ({calculation.period_name}) "
                f"is already {calculation.status.value}"
            )
        if calculation.status == CalculationStatus.DISPUTED:
            raise InvalidTransition(
                f"Calculation {calculation.id} is under dispute and cannot be recalculated"
            )

    if not existing:
        return None

    same_plan = [c for c in existing if c.plan_id == plan.id]
    open_rows = [c for c in existing if c.status != CalculationStatus.CANCELLED]
    target = (same_plan or open_rows or existing)[0]

    for stale in existing:
        if stale is target:
            continue
        await _release_inputs(db, stale)
        if stale.status != CalculationStatus.CANCELLED:
            await settlement.compare_and_set(
                db,
                stale,
                settlement.CANCELLABLE_STATUSES,
                CalculationStatus.CANCELLED,
                notes=f"Superseded by calculation {target.id} under plan {plan.id}",
            )
            logger.warning(
                f"Calculation {stale.id} (plan {stale.plan_id}) superseded by calculation "
                f"{target.id} for {employee_id} ({period_start} - {period_end})"
            )

    if target.plan_id != plan.id:
        logger.warning(
            f"Calculation {target.id} for {employee_id} moves from plan {target.plan_id} "
            f"to plan {plan.id}"
        )
    return target


async def _calculate(
    db: AsyncSession,
    ctx: RequestContext,
    employee_id: str,
    period_start: date,
    period_end: date,
) -> tuple[CommissionCalculation, list[str]]:
    validate_period(period_start, period_end)

    assignment = await resolve_assignment(db, ctx, employee_id, period_end)
    plan = assignment.plan

    calculation = await _claim_calculation(db, ctx, employee_id, plan, period_start, period_end)

    collected = await collect_transactions(
        db,
        ctx,
        employee_id,
        period_start,
        period_end,
        calculation_id=calculation.id if calculation else None,
    )
    total_sales = to_money(collected.total_sales)
    sales_by_category = group_by_category(collected.rows)
    overrides = RateOverrides.from_json(assignment.custom_rates)
    warnings = []

    tier = None
    if plan.calculation_mode == CalculationMode.TIERED:
        tier = find_tier(plan.tiers, total_sales)
        if tier is None:
            raise InvalidTierSchedule(
                f"Plan {plan.id} has no tier covering total sales of {total_sales}"
            )
        lines = tiered_lines(tier, sales_by_category, overrides)
    else:
        lines, unrated = flat_lines(plan, sales_by_category, overrides)
        for category in unrated:
            amount = sales_by_category[category][0]
            logger.warning(
                f"Plan {plan.id} has no rate for {category.value}; "
                f"{amount} of sales by {employee_id} earn no commission"
            )
            warnings.append(f"No rate for category {category.value} ({amount} in sales)")

    achievement = quota_achievement(total_sales, assignment.quota_target)
    bonus_lines = evaluate_bonuses(plan, tier, total_sales, achievement)

    details = [
        CommissionCalculationDetail(
            category=line.category.value,
            category_name=CATEGORY_NAMES[line.category],
            sales_amount=to_money(line.sales_amount),
            commission_rate=line.commission_rate,
            commission_amount=line.commission_amount,
            transaction_count=line.transaction_count,
            description=line.description,
        )
        for line in lines
    ]
    bonuses = [
        CommissionBonus(
            bonus_type=line.bonus_type,
            description=line.description,
            amount=line.amount,
            eligibility_met=line.eligibility_met,
            eligibility_criteria=line.criteria,
        )
        for line in bonus_lines
    ]

    if calculation is None:
        calculation = CommissionCalculation(
            tenant_id=ctx.tenant_id,
            employee_id=employee_id,
            plan=plan,
            calculation_period_start=period_start,
            calculation_period_end=period_end,
        )
        db.add(calculation)
    else:
        logger.info(f"Recalculating calculation {calculation.id} ({calculation.status.value})")
        calculation.plan = plan

    calculation.assignment_id = assignment.id
    calculation.period_name = period_name(period_start, period_end)
    calculation.total_sales = total_sales
    calculation.quota_target = assignment.quota_target
    calculation.quota_achievement = achievement
    calculation.details = details
    calculation.bonuses = bonuses
    calculation.gross_commission = sum((d.commission_amount for d in details), ZERO)
    calculation.total_bonuses = sum((b.amount for b in bonuses if b.eligibility_met), ZERO)
    calculation.total_adjustments = ZERO
    calculation.status = CalculationStatus.CALCULATED
    calculation.calculated_at = utcnow()
    calculation.calculated_by = ctx.actor_id
    calculation.approved_at = None
    calculation.approved_by = None
    calculation.paid_at = None
    calculation.paid_by = None
    calculation.payout_date = None

    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise ConcurrentCalculation(
            f"Another run already stored a calculation for {employee_id} "
            f"({period_start} - {period_end})"
        )

    calculation.total_adjustments = await adjustments.apply_to_calculation(db, ctx, calculation)
    calculation.refresh_net()

    # Stamp consumed transactions so they stay with this calculation
    rates = {line.category: line.commission_rate for line in lines}
    now = utcnow()
    for row in collected.rows:
        rate = rates.get(row.category, ZERO)
        row.commission_rate = rate
        row.commission_amount = percent_of(row.commissionable_amount, rate)
        row.calculation_id = calculation.id
        if not row.is_processed:
            row.is_processed = True
            row.processed_at = now

    review = []
    minimum = plan.minimum_commission_payment or ZERO
    if minimum > 0 and calculation.net_commission < minimum:
        review.append(
            f"Net commission {calculation.net_commission} is below the plan minimum of {minimum}"
        )
    for violation in collected.split_violations:
        review.append(
            f"Split over-allocation on {violation['transaction_type']} "
            f"{violation['transaction_id']}: {violation['message']}"
        )
    calculation.requires_review = bool(review)
    calculation.review_reason = "; ".join(review) if review else None
    warnings.extend(review)

    await db.flush()

    await events.emit(
        db,
        ctx,
        EventType.CALCULATION_COMPLETED,
        "calculation",
        calculation.id,
        {
            "employee_id": employee_id,
            "period_name": calculation.period_name,
            "net_commission": str(calculation.net_commission),
            "requires_review": calculation.requires_review,
        },
    )
    await log_action(
        db,
        ctx,
        AuditAction.CALCULATE,
        target_type="calculation",
        target_id=calculation.id,
        action_metadata={
            "employee_id": employee_id,
            "period_start": period_start.isoformat(),
            "period_end": period_end.isoformat(),
            "gross_commission": str(calculation.gross_commission),
            "net_commission": str(calculation.net_commission),
        },
    )

    logger.info(
        f"Calculated {calculation.period_name} for {employee_id}: "
        f"sales={total_sales} gross={calculation.gross_commission} "
        f"bonuses={calculation.total_bonuses} adjustments={calculation.total_adjustments} "
        f"net={calculation.net_commission}"
    )
    return calculation, warnings


async def calculate(
    db: AsyncSession,
    ctx: RequestContext,
    employee_id: str,
    period_start: date,
    period_end: date,
) -> CommissionCalculation:
    """
    Calculate (or recalculate) one employee's commission for a period.

    Raises:
        NoActivePlan, AmbiguousAssignment: from assignment resolution
        AlreadyFinalized: the period's calculation is approved or paid
        InvalidTransition: the period's calculation is disputed
        ConcurrentCalculation: a concurrent run stored the same key first
    """
    calculation, _ = await _calculate(db, ctx, employee_id, period_start, period_end)
    return calculation


async def calculate_period(
    db: AsyncSession,
    ctx: RequestContext,
    period_start: date,
    period_end: date,
    employee_ids: Optional[list[str]] = None,
) -> PeriodRunResult:
    """
    Run calculate() for many employees.

    Defaults to every employee with an active assignment on period_end.
    Domain errors are collected per employee and the run continues. A
    ConcurrentCalculation aborts the run, since the session was rolled back.
    """
    validate_period(period_start, period_end)

    if employee_ids is None:
        employee_ids = await employees_with_assignment(db, ctx, period_end)

    run = PeriodRunResult(period_start=period_start, period_end=period_end)
    for employee_id in employee_ids:
        run.processed += 1
        try:
            calculation, warnings = await _calculate(db, ctx, employee_id, period_start, period_end)
        except ConcurrentCalculation:
            raise
        except CommissionError as e:
            logger.warning(f"Calculation for {employee_id} skipped: {e.message}")
            run.errors.append({"employee_id": employee_id, "code": e.code, "message": e.message})
            continue

        run.succeeded += 1
        run.calculation_ids.append(calculation.id)
        run.total_gross += calculation.gross_commission
        run.total_net += calculation.net_commission
        run.warnings.extend({"employee_id": employee_id, "message": w} for w in warnings)

    logger.info(
        f"Period run {period_start} - {period_end}: {run.succeeded}/{run.processed} calculated, "
        f"{len(run.errors)} errors, net total {run.total_net}"
    )
    return run


async def get_calculation(
    db: AsyncSession,
    ctx: RequestContext,
    calculation_id: int,
) -> CommissionCalculation:
    return await get_scoped(db, CommissionCalculation, calculation_id, ctx, "Calculation")


async def list_calculations(
    db: AsyncSession,
    ctx: RequestContext,
    employee_id: Optional[str] = None,
    status: Optional[CalculationStatus] = None,
    plan_id: Optional[int] = None,
    period_start: Optional[date] = None,
    period_end: Optional[date] = None,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[CommissionCalculation], int]:
    """Calculations of the tenant whose period lies within the given bounds."""
    query = select(CommissionCalculation).where(CommissionCalculation.tenant_id == ctx.tenant_id)

    if employee_id:
        query = query.where(CommissionCalculation.employee_id == employee_id)
    if status is not None:
        query = query.where(CommissionCalculation.status == status)
    if plan_id is not None:
        query = query.where(CommissionCalculation.plan_id == plan_id)
    if period_start:
        query = query.where(CommissionCalculation.calculation_period_start >= period_start)
    if period_end:
        query = query.where(CommissionCalculation.calculation_period_end <= period_end)

    total = await db.scalar(select(func.count()).select_from(query.subquery()))

    query = query.order_by(
        CommissionCalculation.calculation_period_start.desc(),
        CommissionCalculation.id.desc(),
    )
    query = query.offset((page - 1) * per_page).limit(per_page)
    result = await db.execute(query)
    return list(result.scalars().all()), total or 0
