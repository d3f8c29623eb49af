"""
Tests for the plan store and tier schedule validation.
"""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from commissiondesk.models import CalculationMode, ProductCategory
from commissiondesk.schemas.plan import PlanUpdate, ProductRateIn, TierIn
from commissiondesk.services import plans
from commissiondesk.services.errors import (
    InvalidPeriod,
    InvalidTierSchedule,
    NotFound,
    TenantMismatch,
)
from tests.conftest import flat_plan_data, tier_schedule, tiered_plan_data


def _tier(level, minimum, maximum, rate="5", active=True):
    return SimpleNamespace(
        tier_level=level,
        minimum_sales=Decimal(minimum),
        maximum_sales=Decimal(maximum) if maximum is not None else None,
        commission_rate=Decimal(rate),
        is_active=active,
    )


# ── validate_tier_schedule ───────────────────────────────


class TestValidateTierSchedule:
    def test_valid_schedule(self):
        plans.validate_tier_schedule(tier_schedule())

    def test_single_unbounded_tier(self):
        plans.validate_tier_schedule([_tier(1, "0", None)])

    def test_no_active_tiers(self):
        with pytest.raises(InvalidTierSchedule):
            plans.validate_tier_schedule([_tier(1, "0", None, active=False)])

    def test_must_start_at_zero(self):
        with pytest.raises(InvalidTierSchedule, match="start at 0"):
            plans.validate_tier_schedule([_tier(1, "100", None)])

    def test_gap(self):
        with pytest.raises(InvalidTierSchedule, match="Gap"):
            plans.validate_tier_schedule([_tier(1, "0", "1000"), _tier(2, "1500", None)])

    def test_overlap(self):
        with pytest.raises(InvalidTierSchedule, match="overlaps"):
            plans.validate_tier_schedule([_tier(1, "0", "1000"), _tier(2, "900", None)])

    def test_top_tier_must_be_unbounded(self):
        with pytest.raises(InvalidTierSchedule, match="unbounded"):
            plans.validate_tier_schedule([_tier(1, "0", "1000"), _tier(2, "1000", "2000")])

    def test_unbounded_tier_not_last(self):
        with pytest.raises(InvalidTierSchedule):
            plans.validate_tier_schedule([_tier(1, "0", None), _tier(2, "0", "10")])

    def test_duplicate_levels(self):
        with pytest.raises(InvalidTierSchedule, match="unique"):
            plans.validate_tier_schedule([_tier(1, "0", "1000"), _tier(1, "1000", None)])

    def test_inactive_tiers_ignored(self):
        plans.validate_tier_schedule([
            _tier(1, "0", "1000"),
            _tier(2, "500", "700", active=False),
            _tier(3, "1000", None),
        ])


class TestFindTier:
    def test_boundary_belongs_to_upper_tier(self):
        schedule = plans._build_tiers(tier_schedule())
        assert plans.find_tier(schedule, Decimal("9999.99")).tier_level == 1
        assert plans.find_tier(schedule, Decimal("10000")).tier_level == 2
        assert plans.find_tier(schedule, Decimal("1000000")).tier_level == 3

    def test_zero_sales_in_lowest_tier(self):
        schedule = plans._build_tiers(tier_schedule())
        assert plans.find_tier(schedule, Decimal("0")).tier_level == 1

    def test_inactive_tier_not_matched(self):
        tiers = tier_schedule()
        tiers[2].is_active = False
        schedule = plans._build_tiers(tiers)
        assert plans.find_tier(schedule, Decimal("30000")) is None


# ── Plan store ───────────────────────────────────────────


class TestPlanStore:
    @pytest.mark.asyncio
    async def test_create_flat_plan(self, db_session, manager_ctx):
        plan = await plans.create_plan(db_session, manager_ctx, flat_plan_data())

        assert plan.id is not None
        assert plan.tenant_id == manager_ctx.tenant_id
        assert plan.calculation_mode == CalculationMode.FLAT
        assert {r.category for r in plan.product_rates} == {
            ProductCategory.NEW_EQUIPMENT,
            ProductCategory.SUPPLIES,
        }
        assert plan.product_rates[0].category_name

    @pytest.mark.asyncio
    async def test_create_tiered_plan_rejects_gap(self, db_session, manager_ctx):
        tiers = tier_schedule()
        tiers[1].minimum_sales = Decimal("11000")

        with pytest.raises(InvalidTierSchedule):
            await plans.create_plan(db_session, manager_ctx, tiered_plan_data(tiers=tiers))

    @pytest.mark.asyncio
    async def test_tiered_plan_requires_tiers(self, db_session, manager_ctx):
        with pytest.raises(InvalidTierSchedule):
            await plans.create_plan(db_session, manager_ctx, tiered_plan_data(tiers=[]))

    @pytest.mark.asyncio
    async def test_duplicate_category_rate(self, db_session, manager_ctx):
        rates = [
            ProductRateIn(category=ProductCategory.SUPPLIES, commission_rate=Decimal("5")),
            ProductRateIn(category=ProductCategory.SUPPLIES, commission_rate=Decimal("6")),
        ]
        with pytest.raises(InvalidTierSchedule):
            await plans.create_plan(db_session, manager_ctx, flat_plan_data(product_rates=rates))

    @pytest.mark.asyncio
    async def test_get_plan_other_tenant(self, db_session, flat_plan, other_tenant_ctx):
        with pytest.raises(TenantMismatch):
            await plans.get_plan(db_session, other_tenant_ctx, flat_plan.id)

    @pytest.mark.asyncio
    async def test_get_plan_missing(self, db_session, manager_ctx):
        with pytest.raises(NotFound):
            await plans.get_plan(db_session, manager_ctx, 999)

    @pytest.mark.asyncio
    async def test_list_plans_scoped_to_tenant(self, db_session, manager_ctx, other_tenant_ctx, flat_plan):
        await plans.create_plan(db_session, other_tenant_ctx, flat_plan_data(plan_name="Other"))

        items, total = await plans.list_plans(db_session, manager_ctx)
        assert total == 1
        assert items[0].id == flat_plan.id

    @pytest.mark.asyncio
    async def test_update_plan(self, db_session, manager_ctx, flat_plan):
        plan = await plans.update_plan(
            db_session,
            manager_ctx,
            flat_plan.id,
            PlanUpdate(payment_delay=15, bonus_rules=[{"kind": "threshold", "threshold": "5000", "amount": "100"}]),
        )
        assert plan.payment_delay == 15
        assert plan.bonus_rules == [{"kind": "threshold", "threshold": "5000", "amount": "100"}]
        assert plan.updated_by == manager_ctx.actor_id

    @pytest.mark.asyncio
    async def test_update_plan_end_before_start(self, db_session, manager_ctx, flat_plan):
        with pytest.raises(InvalidPeriod):
            await plans.update_plan(
                db_session, manager_ctx, flat_plan.id, PlanUpdate(end_date=date(2024, 12, 31))
            )

    @pytest.mark.asyncio
    async def test_replace_tiers(self, db_session, manager_ctx, tiered_plan):
        plan = await plans.replace_tiers(
            db_session,
            manager_ctx,
            tiered_plan.id,
            [TierIn(tier_level=1, tier_name="Everyone", commission_rate=Decimal("4"))],
        )
        assert len(plan.tiers) == 1
        assert plan.tiers[0].commission_rate == Decimal("4")

    @pytest.mark.asyncio
    async def test_replace_tiers_invalid_keeps_old(self, db_session, manager_ctx, tiered_plan):
        bad = [TierIn(tier_level=1, tier_name="Broken", minimum_sales=Decimal("5"), commission_rate=Decimal("4"))]
        with pytest.raises(InvalidTierSchedule):
            await plans.replace_tiers(db_session, manager_ctx, tiered_plan.id, bad)

        assert len(tiered_plan.tiers) == 3

    @pytest.mark.asyncio
    async def test_replace_product_rates(self, db_session, manager_ctx, flat_plan):
        plan = await plans.replace_product_rates(
            db_session,
            manager_ctx,
            flat_plan.id,
            [
                ProductRateIn(category=ProductCategory.SUPPLIES, commission_rate=Decimal("8")),
                ProductRateIn(category=ProductCategory.SOFTWARE, commission_rate=Decimal("15")),
            ],
        )
        rates = {r.category: r.commission_rate for r in plan.product_rates}
        assert rates == {
            ProductCategory.SUPPLIES: Decimal("8"),
            ProductCategory.SOFTWARE: Decimal("15"),
        }
