"""
Tests for the transaction collector, split rules and chargebacks.
"""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest
import pytest_asyncio
from pydantic import ValidationError
from sqlalchemy import select

from commissiondesk.models import AdjustmentType, CommissionAdjustment, ProductCategory, TransactionType
from commissiondesk.schemas.transaction import TransactionCreate
from commissiondesk.services import calculator, plans, settlement, transactions
from commissiondesk.services.errors import (
    InvalidPeriod,
    InvalidTransition,
    SplitNotAllowed,
    SplitOverAllocation,
)
from tests.conftest import flat_plan_data, make_assignment, make_sale


def _row(pct, sale="1000", charged_back=False):
    sale_amount = Decimal(sale)
    return SimpleNamespace(
        sale_amount=sale_amount,
        split_percentage=Decimal(pct),
        commissionable_amount=transactions.split_share(sale_amount, Decimal(pct)),
        is_charged_back=charged_back,
    )


@pytest_asyncio.fixture
async def split_plan(db_session, manager_ctx):
    return await plans.create_plan(
        db_session, manager_ctx, flat_plan_data(plan_name="Split Plan", split_commission_allowed=True)
    )


def _split(employee_id, pct, **overrides):
    data = {
        "employee_id": employee_id,
        "transaction_type": TransactionType.INVOICE,
        "transaction_id": "INV-SPLIT-1",
        "transaction_date": date(2025, 1, 10),
        "sale_amount": Decimal("1000"),
        "category": ProductCategory.NEW_EQUIPMENT,
        "is_split_commission": True,
        "split_percentage": Decimal(pct),
        "primary_employee_id": "emp-1",
    }
    data.update(overrides)
    return TransactionCreate(**data)


# ── check_split_allocation ───────────────────────────────


class TestSplitAllocation:
    def test_full_allocation(self):
        assert transactions.check_split_allocation([_row("60"), _row("40")], Decimal("1000")) is None

    def test_over_allocation(self):
        violation = transactions.check_split_allocation([_row("60"), _row("50")], Decimal("1000"))
        assert "110" in violation

    def test_within_tolerance(self):
        rows = [_row("33.34", sale="100"), _row("33.33", sale="100"), _row("33.34", sale="100")]
        assert transactions.check_split_allocation(rows, Decimal("100"), Decimal("0.01")) is None

    def test_charged_back_rows_ignored(self):
        rows = [_row("60"), _row("60", charged_back=True), _row("40")]
        assert transactions.check_split_allocation(rows, Decimal("1000")) is None

    def test_mismatched_sale_amounts(self):
        rows = [_row("50"), _row("50", sale="1200")]
        assert "different sale amounts" in transactions.check_split_allocation(rows, Decimal("1000"))

    def test_split_share(self):
        assert transactions.split_share(Decimal("999.99"), Decimal("33.33")) == Decimal("333.30")


# ── record_transaction ───────────────────────────────────


class TestRecordTransaction:
    @pytest.mark.asyncio
    async def test_full_sale(self, db_session, manager_ctx):
        row = await make_sale(db_session, manager_ctx, amount="2500")

        assert row.commissionable_amount == Decimal("2500.00")
        assert row.is_processed is False
        assert row.calculation_id is None

    @pytest.mark.asyncio
    async def test_valid_split(self, db_session, manager_ctx, split_plan):
        await make_assignment(db_session, manager_ctx, split_plan, employee_id="emp-1")
        await make_assignment(db_session, manager_ctx, split_plan, employee_id="emp-2")

        first = await transactions.record_transaction(db_session, manager_ctx, _split("emp-1", "60"))
        second = await transactions.record_transaction(db_session, manager_ctx, _split("emp-2", "40"))

        assert first.commissionable_amount == Decimal("600.00")
        assert second.commissionable_amount == Decimal("400.00")
        assert first.sale_amount == second.sale_amount == Decimal("1000")

    @pytest.mark.asyncio
    async def test_split_over_allocation(self, db_session, manager_ctx, split_plan):
        await make_assignment(db_session, manager_ctx, split_plan, employee_id="emp-1")
        await make_assignment(db_session, manager_ctx, split_plan, employee_id="emp-2")
        await transactions.record_transaction(db_session, manager_ctx, _split("emp-1", "60"))

        with pytest.raises(SplitOverAllocation):
            await transactions.record_transaction(db_session, manager_ctx, _split("emp-2", "50"))

    @pytest.mark.asyncio
    async def test_split_not_allowed(self, db_session, manager_ctx, flat_plan):
        await make_assignment(db_session, manager_ctx, flat_plan)

        with pytest.raises(SplitNotAllowed):
            await transactions.record_transaction(db_session, manager_ctx, _split("emp-1", "50"))

    def test_split_percentage_without_flag(self):
        with pytest.raises(ValidationError):
            _split("emp-1", "50", is_split_commission=False)

    @pytest.mark.asyncio
    async def test_collect_period(self, db_session, manager_ctx):
        await make_sale(db_session, manager_ctx, amount="100", transaction_date=date(2025, 1, 1))
        await make_sale(db_session, manager_ctx, amount="200", transaction_date=date(2025, 1, 31))
        await make_sale(db_session, manager_ctx, amount="400", transaction_date=date(2025, 2, 1))
        await make_sale(db_session, manager_ctx, employee_id="emp-2", amount="800")

        collected = await transactions.collect_transactions(
            db_session, manager_ctx, "emp-1", date(2025, 1, 1), date(2025, 1, 31)
        )
        assert collected.total_sales == Decimal("300.00")
        assert len(collected.rows) == 2

    @pytest.mark.asyncio
    async def test_collect_invalid_period(self, db_session, manager_ctx):
        with pytest.raises(InvalidPeriod):
            await transactions.collect_transactions(
                db_session, manager_ctx, "emp-1", date(2025, 2, 1), date(2025, 1, 1)
            )


# ── Chargebacks ──────────────────────────────────────────


class TestChargeback:
    @pytest.mark.asyncio
    async def test_chargeback_before_calculation(self, db_session, manager_ctx, flat_plan):
        await make_assignment(db_session, manager_ctx, flat_plan)
        sale = await make_sale(db_session, manager_ctx)

        row = await transactions.charge_back_transaction(
            db_session, manager_ctx, sale.id, "Customer returned unit", date(2025, 2, 1)
        )
        assert row.is_charged_back is True
        assert row.chargeback_reason == "Customer returned unit"

        calc = await calculator.calculate(db_session, manager_ctx, "emp-1", date(2025, 1, 1), date(2025, 1, 31))
        assert calc.gross_commission == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_chargeback_outside_window(self, db_session, manager_ctx, flat_plan):
        await make_assignment(db_session, manager_ctx, flat_plan)
        sale = await make_sale(db_session, manager_ctx)

        with pytest.raises(InvalidTransition):
            await transactions.charge_back_transaction(
                db_session, manager_ctx, sale.id, "Too late", date(2025, 6, 1)
            )

    @pytest.mark.asyncio
    async def test_chargeback_disabled(self, db_session, manager_ctx):
        plan = await plans.create_plan(
            db_session, manager_ctx, flat_plan_data(chargeback_enabled=False)
        )
        await make_assignment(db_session, manager_ctx, plan)
        sale = await make_sale(db_session, manager_ctx)

        with pytest.raises(InvalidTransition):
            await transactions.charge_back_transaction(
                db_session, manager_ctx, sale.id, "Returned", date(2025, 1, 20)
            )

    @pytest.mark.asyncio
    async def test_double_chargeback(self, db_session, manager_ctx, flat_plan):
        await make_assignment(db_session, manager_ctx, flat_plan)
        sale = await make_sale(db_session, manager_ctx)
        await transactions.charge_back_transaction(db_session, manager_ctx, sale.id, "Returned", date(2025, 1, 20))

        with pytest.raises(InvalidTransition):
            await transactions.charge_back_transaction(db_session, manager_ctx, sale.id, "Again", date(2025, 1, 21))

    @pytest.mark.asyncio
    async def test_chargeback_after_payment(self, db_session, manager_ctx, flat_plan):
        await make_assignment(db_session, manager_ctx, flat_plan)
        sale = await make_sale(db_session, manager_ctx)
        calc = await calculator.calculate(db_session, manager_ctx, "emp-1", date(2025, 1, 1), date(2025, 1, 31))
        await settlement.approve(db_session, manager_ctx, calc.id)
        await settlement.pay(db_session, manager_ctx, calc.id, date(2025, 2, 28))

        await transactions.charge_back_transaction(
            db_session, manager_ctx, sale.id, "Returned", date(2025, 3, 10)
        )

        result = await db_session.execute(
            select(CommissionAdjustment).where(CommissionAdjustment.employee_id == "emp-1")
        )
        adjustment = result.scalar_one()
        assert adjustment.adjustment_type == AdjustmentType.CHARGEBACK
        assert adjustment.amount == Decimal("-500.00")
        assert adjustment.calculation_id is None
        assert adjustment.effective_date == date(2025, 3, 10)
        assert adjustment.is_approved

        # The paid calculation keeps its figures
        assert calc.net_commission == Decimal("500.00")

        march = await calculator.calculate(db_session, manager_ctx, "emp-1", date(2025, 3, 1), date(2025, 3, 31))
        assert march.total_adjustments == Decimal("-500.00")
        assert march.net_commission == Decimal("-500.00")
