"""
Plan and rate store.

Plans own their tier brackets and flat category rates. Tier schedules are
validated whenever they are written: the active tiers of a plan must cover
[0, infinity) with half-open brackets [minimum_sales, maximum_sales) and no
gaps or overlaps, so that find_tier always returns exactly one tier.
"""

import logging
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from commissiondesk.models import (
    AuditAction,
    CalculationMode,
    CommissionPlan,
    CommissionPlanTier,
    CommissionProductRate,
    PlanType,
)
from commissiondesk.models.plan import CATEGORY_NAMES
from commissiondesk.schemas.plan import PlanCreate, PlanUpdate, ProductRateIn, TierIn
from commissiondesk.services.errors import InvalidPeriod, InvalidTierSchedule
from commissiondesk.services.rules import dump_rules
from commissiondesk.services.tenancy import RequestContext, get_scoped
from commissiondesk.utils.audit import log_action

logger = logging.getLogger(__name__)


def validate_tier_schedule(tiers: Sequence) -> None:
    """
    Check that active tiers partition [0, infinity).

    Works on anything with tier_level, minimum_sales, maximum_sales and
    is_active attributes (ORM rows or TierIn requests).

    Raises:
        InvalidTierSchedule: describing the first problem found
    """
    active = [t for t in tiers if t.is_active]
    if not active:
        raise InvalidTierSchedule("A tiered plan needs at least one active tier")

    levels = [t.tier_level for t in active]
    if len(set(levels)) != len(levels):
        raise InvalidTierSchedule("Tier levels must be unique")

    ordered = sorted(active, key=lambda t: t.minimum_sales)
    if ordered[0].minimum_sales != 0:
        raise InvalidTierSchedule(
            f"Lowest tier must start at 0, not {ordered[0].minimum_sales}"
        )

    for current, following in zip(ordered, ordered[1:]):
        if current.maximum_sales is None:
            raise InvalidTierSchedule(
                f"Tier {current.tier_level} is unbounded but tier {following.tier_level} follows it"
            )
        if current.maximum_sales <= current.minimum_sales:
            raise InvalidTierSchedule(
                f"Tier {current.tier_level} maximum must be greater than its minimum"
            )
        if following.minimum_sales > current.maximum_sales:
            raise InvalidTierSchedule(
                f"Gap between tier {current.tier_level} ({current.maximum_sales}) "
                f"and tier {following.tier_level} ({following.minimum_sales})"
            )
        if following.minimum_sales < current.maximum_sales:
            raise InvalidTierSchedule(
                f"Tier {current.tier_level} overlaps tier {following.tier_level}"
            )

    if ordered[-1].maximum_sales is not None:
        raise InvalidTierSchedule("Highest tier must be unbounded (no maximum_sales)")


def find_tier(tiers: Sequence[CommissionPlanTier], total_sales: Decimal) -> Optional[CommissionPlanTier]:
    """Return the active tier whose bracket contains total_sales."""
    matches = [t for t in tiers if t.is_active and t.contains(total_sales)]
    if len(matches) != 1:
        return None
    return matches[0]


def _build_tiers(tiers: Sequence[TierIn]) -> list[CommissionPlanTier]:
    return [
        CommissionPlanTier(
            tier_level=t.tier_level,
            tier_name=t.tier_name,
            minimum_sales=t.minimum_sales,
            maximum_sales=t.maximum_sales,
            commission_rate=t.commission_rate,
            bonus_threshold=t.bonus_threshold,
            bonus_amount=t.bonus_amount,
            is_active=t.is_active,
        )
        for t in sorted(tiers, key=lambda t: t.tier_level)
    ]


def _build_rates(rates: Sequence[ProductRateIn]) -> list[CommissionProductRate]:
    categories = [r.category for r in rates]
    if len(set(categories)) != len(categories):
        raise InvalidTierSchedule("Each product category may only have one rate")

    return [
        CommissionProductRate(
            category=r.category,
            category_name=r.category_name or CATEGORY_NAMES[r.category],
            commission_rate=r.commission_rate,
            description=r.description,
            is_active=r.is_active,
        )
        for r in rates
    ]


async def create_plan(
    db: AsyncSession,
    ctx: RequestContext,
    data: PlanCreate,
) -> CommissionPlan:
    """Create a plan together with its tiers and product rates."""
    if data.calculation_mode == CalculationMode.TIERED or data.tiers:
        validate_tier_schedule(data.tiers)

    plan = CommissionPlan(
        tenant_id=ctx.tenant_id,
        plan_name=data.plan_name,
        plan_type=data.plan_type,
        description=data.description,
        is_active=True,
        calculation_mode=data.calculation_mode,
        effective_date=data.effective_date,
        end_date=data.end_date,
        payment_frequency=data.payment_frequency,
        payment_delay=data.payment_delay,
        minimum_commission_payment=data.minimum_commission_payment,
        split_commission_allowed=data.split_commission_allowed,
        chargeback_enabled=data.chargeback_enabled,
        chargeback_period=data.chargeback_period,
        bonus_rules=dump_rules(data.bonus_rules),
        created_by=ctx.actor_id,
        tiers=_build_tiers(data.tiers),
        product_rates=_build_rates(data.product_rates),
    )
    db.add(plan)
    await db.flush()

    await log_action(
        db,
        ctx,
        AuditAction.CREATE_PLAN,
        target_type="plan",
        target_id=plan.id,
        action_metadata={
            "plan_name": plan.plan_name,
            "calculation_mode": plan.calculation_mode.value,
        },
    )

    logger.info(f"Plan {plan.id} '{plan.plan_name}' created by {ctx.actor_id}")
    return plan


async def get_plan(db: AsyncSession, ctx: RequestContext, plan_id: int) -> CommissionPlan:
    return await get_scoped(db, CommissionPlan, plan_id, ctx, "Plan")


async def list_plans(
    db: AsyncSession,
    ctx: RequestContext,
    is_active: Optional[bool] = None,
    plan_type: Optional[PlanType] = None,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[CommissionPlan], int]:
    """Page through the tenant's plans, newest first."""
    query = select(CommissionPlan).where(CommissionPlan.tenant_id == ctx.tenant_id)

    if is_active is not None:
        query = query.where(CommissionPlan.is_active == is_active)
    if plan_type is not None:
        query = query.where(CommissionPlan.plan_type == plan_type)

    total = await db.scalar(select(func.count()).select_from(query.subquery()))

    query = query.order_by(CommissionPlan.id.desc())
    query = query.offset((page - 1) * per_page).limit(per_page)
    result = await db.execute(query)
    return list(result.scalars().all()), total or 0


async def update_plan(
    db: AsyncSession,
    ctx: RequestContext,
    plan_id: int,
    data: PlanUpdate,
) -> CommissionPlan:
    plan = await get_plan(db, ctx, plan_id)

    changes = data.model_dump(exclude_unset=True)
    if "bonus_rules" in changes:
        changes["bonus_rules"] = dump_rules(data.bonus_rules)

    end_date = changes.get("end_date", plan.end_date)
    if end_date is not None and end_date < plan.effective_date:
        raise InvalidPeriod("end_date must not be before effective_date")

    for field, value in changes.items():
        setattr(plan, field, value)
    plan.updated_by = ctx.actor_id
    await db.flush()

    await log_action(
        db,
        ctx,
        AuditAction.UPDATE_PLAN,
        target_type="plan",
        target_id=plan.id,
        action_metadata={"fields": sorted(changes)},
    )
    return plan


async def replace_tiers(
    db: AsyncSession,
    ctx: RequestContext,
    plan_id: int,
    tiers: Sequence[TierIn],
) -> CommissionPlan:
    """Swap the whole tier schedule of a plan. Validated before anything is written."""
    plan = await get_plan(db, ctx, plan_id)
    validate_tier_schedule(tiers)

    plan.tiers = _build_tiers(tiers)
    plan.updated_by = ctx.actor_id
    await db.flush()

    await log_action(
        db,
        ctx,
        AuditAction.REPLACE_TIERS,
        target_type="plan",
        target_id=plan.id,
        action_metadata={"tiers": len(tiers)},
    )
    logger.info(f"Plan {plan.id} tier schedule replaced ({len(tiers)} tiers)")
    return plan


async def replace_product_rates(
    db: AsyncSession,
    ctx: RequestContext,
    plan_id: int,
    rates: Sequence[ProductRateIn],
) -> CommissionPlan:
    plan = await get_plan(db, ctx, plan_id)
    new_rates = _build_rates(rates)

    # Old rows must be gone before the (plan, category) unique key sees the new ones
    plan.product_rates = []
    await db.flush()
    plan.product_rates = new_rates
    plan.updated_by = ctx.actor_id
    await db.flush()

    await log_action(
        db,
        ctx,
        AuditAction.REPLACE_PRODUCT_RATES,
        target_type="plan",
        target_id=plan.id,
        action_metadata={"categories": [r.category.value for r in rates]},
    )
    return plan
