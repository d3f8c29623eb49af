"""
Tests for the period-close background job.
"""

from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from commissiondesk.models import CalculationStatus, CommissionCalculation
from commissiondesk.scheduler import jobs
from commissiondesk.services import settlement
from tests.conftest import make_assignment, make_sale


@pytest.fixture
def shared_session(db_session, monkeypatch):
    """Route the job's sessions to the test session."""

    @asynccontextmanager
    async def fake_context():
        yield db_session
        await db_session.flush()

    monkeypatch.setattr(jobs, "get_db_context", fake_context)
    return db_session


class TestPeriodCloseJob:
    @pytest.mark.asyncio
    async def test_calculates_previous_month(self, shared_session, manager_ctx, flat_plan):
        await make_assignment(shared_session, manager_ctx, flat_plan)
        await make_sale(shared_session, manager_ctx, amount="10000")

        await jobs.period_close_job(today=date(2025, 2, 1))

        result = await shared_session.execute(select(CommissionCalculation))
        calcs = result.scalars().all()
        assert len(calcs) == 1
        assert calcs[0].period_name == "January 2025"
        assert calcs[0].calculated_by == jobs.SYSTEM_ACTOR
        assert calcs[0].net_commission == Decimal("500.00")

    @pytest.mark.asyncio
    async def test_tenants_with_assignments(self, shared_session, manager_ctx, flat_plan):
        await make_assignment(shared_session, manager_ctx, flat_plan)

        assert await jobs.tenants_with_assignments() == [manager_ctx.tenant_id]

    @pytest.mark.asyncio
    async def test_finalized_period_is_skipped(self, shared_session, manager_ctx, flat_plan):
        await make_assignment(shared_session, manager_ctx, flat_plan)
        await make_sale(shared_session, manager_ctx, amount="10000")
        await jobs.period_close_job(today=date(2025, 2, 1))

        result = await shared_session.execute(select(CommissionCalculation))
        calc = result.scalar_one()
        await settlement.approve(shared_session, manager_ctx, calc.id)
        await settlement.pay(shared_session, manager_ctx, calc.id)

        await jobs.period_close_job(today=date(2025, 2, 1))

        assert calc.status == CalculationStatus.PAID


class TestSetupScheduler:
    def test_registers_period_close(self):
        jobs.setup_scheduler()
        try:
            job = jobs.scheduler.get_job("period_close")
            assert job is not None
            assert job.name == "Calculate previous month's commissions"
        finally:
            jobs.scheduler.remove_job("period_close")
