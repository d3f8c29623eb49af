"""
Tests for plan assignments and resolution.
"""

from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError

from commissiondesk.models import EmployeeCommissionAssignment
from commissiondesk.schemas.assignment import AssignmentCreate
from commissiondesk.schemas.plan import PlanUpdate
from commissiondesk.services import assignments, plans
from commissiondesk.services.errors import (
    AmbiguousAssignment,
    InvalidPeriod,
    NoActivePlan,
    TenantMismatch,
)
from tests.conftest import flat_plan_data, make_assignment


class TestAssignPlan:
    @pytest.mark.asyncio
    async def test_assign(self, db_session, manager_ctx, flat_plan):
        assignment = await make_assignment(db_session, manager_ctx, flat_plan, quota_target=Decimal("20000"))

        assert assignment.id is not None
        assert assignment.plan_id == flat_plan.id
        assert assignment.assigned_by == manager_ctx.actor_id
        assert assignment.quota_target == Decimal("20000")

    @pytest.mark.asyncio
    async def test_overlap_rejected(self, db_session, manager_ctx, flat_plan):
        await make_assignment(db_session, manager_ctx, flat_plan, end_date=date(2025, 6, 30))

        with pytest.raises(AmbiguousAssignment):
            await make_assignment(db_session, manager_ctx, flat_plan, effective_date=date(2025, 6, 1))

    @pytest.mark.asyncio
    async def test_adjacent_ranges_allowed(self, db_session, manager_ctx, flat_plan):
        await make_assignment(db_session, manager_ctx, flat_plan, end_date=date(2025, 6, 30))
        second = await make_assignment(db_session, manager_ctx, flat_plan, effective_date=date(2025, 7, 1))

        assert second.id is not None

    @pytest.mark.asyncio
    async def test_other_employee_not_a_clash(self, db_session, manager_ctx, flat_plan):
        await make_assignment(db_session, manager_ctx, flat_plan)
        other = await make_assignment(db_session, manager_ctx, flat_plan, employee_id="emp-2")

        assert other.employee_id == "emp-2"

    @pytest.mark.asyncio
    async def test_other_tenant_plan(self, db_session, other_tenant_ctx, flat_plan):
        with pytest.raises(TenantMismatch):
            await make_assignment(db_session, other_tenant_ctx, flat_plan)

    @pytest.mark.asyncio
    async def test_custom_rates_stored(self, db_session, manager_ctx, flat_plan):
        assignment = await make_assignment(
            db_session,
            manager_ctx,
            flat_plan,
            custom_rates=[{"kind": "category_rate", "category": "supplies", "rate": "12"}],
        )
        assert assignment.custom_rates == [{"kind": "category_rate", "category": "supplies", "rate": "12"}]

    def test_end_before_start_rejected_by_schema(self):
        with pytest.raises(ValidationError):
            AssignmentCreate(
                employee_id="emp-1",
                plan_id=1,
                effective_date=date(2025, 2, 1),
                end_date=date(2025, 1, 1),
            )


class TestResolveAssignment:
    @pytest.mark.asyncio
    async def test_resolves_covering_assignment(self, db_session, manager_ctx, flat_plan):
        created = await make_assignment(db_session, manager_ctx, flat_plan)

        found = await assignments.resolve_assignment(db_session, manager_ctx, "emp-1", date(2025, 3, 31))
        assert found.id == created.id
        assert found.plan.plan_name == flat_plan.plan_name

    @pytest.mark.asyncio
    async def test_before_effective_date(self, db_session, manager_ctx, flat_plan):
        await make_assignment(db_session, manager_ctx, flat_plan, effective_date=date(2025, 2, 1))

        with pytest.raises(NoActivePlan):
            await assignments.resolve_assignment(db_session, manager_ctx, "emp-1", date(2025, 1, 31))

    @pytest.mark.asyncio
    async def test_no_assignment(self, db_session, manager_ctx):
        with pytest.raises(NoActivePlan):
            await assignments.resolve_assignment(db_session, manager_ctx, "nobody", date(2025, 1, 31))

    @pytest.mark.asyncio
    async def test_inactive_plan(self, db_session, manager_ctx, flat_plan):
        await make_assignment(db_session, manager_ctx, flat_plan)
        await plans.update_plan(db_session, manager_ctx, flat_plan.id, PlanUpdate(is_active=False))

        with pytest.raises(NoActivePlan):
            await assignments.resolve_assignment(db_session, manager_ctx, "emp-1", date(2025, 1, 31))

    @pytest.mark.asyncio
    async def test_overlapping_rows_are_ambiguous(self, db_session, manager_ctx, flat_plan):
        await make_assignment(db_session, manager_ctx, flat_plan)
        # Bypass assign_plan's overlap check to simulate bad data
        db_session.add(
            EmployeeCommissionAssignment(
                tenant_id=manager_ctx.tenant_id,
                employee_id="emp-1",
                plan_id=flat_plan.id,
                effective_date=date(2025, 1, 1),
                is_active=True,
                assigned_by="import",
            )
        )
        await db_session.flush()

        with pytest.raises(AmbiguousAssignment):
            await assignments.resolve_assignment(db_session, manager_ctx, "emp-1", date(2025, 1, 31))

    @pytest.mark.asyncio
    async def test_other_tenant_cannot_resolve(self, db_session, manager_ctx, other_tenant_ctx, flat_plan):
        await make_assignment(db_session, manager_ctx, flat_plan)

        with pytest.raises(NoActivePlan):
            await assignments.resolve_assignment(db_session, other_tenant_ctx, "emp-1", date(2025, 1, 31))


class TestEndAssignment:
    @pytest.mark.asyncio
    async def test_end_assignment(self, db_session, manager_ctx, flat_plan):
        assignment = await make_assignment(db_session, manager_ctx, flat_plan)
        await assignments.end_assignment(db_session, manager_ctx, assignment.id, date(2025, 3, 31))

        with pytest.raises(NoActivePlan):
            await assignments.resolve_assignment(db_session, manager_ctx, "emp-1", date(2025, 4, 1))

    @pytest.mark.asyncio
    async def test_end_before_start(self, db_session, manager_ctx, flat_plan):
        assignment = await make_assignment(db_session, manager_ctx, flat_plan)

        with pytest.raises(InvalidPeriod):
            await assignments.end_assignment(db_session, manager_ctx, assignment.id, date(2024, 12, 31))

    @pytest.mark.asyncio
    async def test_employees_with_assignment(self, db_session, manager_ctx, flat_plan):
        await make_assignment(db_session, manager_ctx, flat_plan, employee_id="emp-2")
        await make_assignment(db_session, manager_ctx, flat_plan, employee_id="emp-1")
        other = await plans.create_plan(db_session, manager_ctx, flat_plan_data(plan_name="Late"))
        await make_assignment(db_session, manager_ctx, other, employee_id="emp-3", effective_date=date(2025, 5, 1))

        employees = await assignments.employees_with_assignment(db_session, manager_ctx, date(2025, 1, 31))
        assert employees == ["emp-1", "emp-2"]
