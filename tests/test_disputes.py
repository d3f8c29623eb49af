"""
Tests for the dispute workflow.
"""

from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from commissiondesk.models import (
    AdjustmentType,
    CalculationStatus,
    CommissionCalculation,
    CommissionDispute,
    DisputeStatus,
    DisputeType,
    ResolutionType,
)
from commissiondesk.models.dispute import AppendOnlyViolation
from commissiondesk.schemas.dispute import DisputeCreate, DisputeUpdate
from commissiondesk.services import adjustments, calculator, disputes, settlement
from commissiondesk.services.errors import (
    Forbidden,
    IncompleteResolution,
    InvalidTransition,
)
from commissiondesk.services.tenancy import RequestContext, Role
from tests.conftest import TENANT, committed_calculation, make_assignment, make_sale


@pytest_asyncio.fixture
async def calculation(db_session, manager_ctx, flat_plan):
    """January 2025 calculation of emp-1: $10,000 at 5%."""
    await make_assignment(db_session, manager_ctx, flat_plan)
    await make_sale(db_session, manager_ctx, amount="10000")
    return await calculator.calculate(db_session, manager_ctx, "emp-1", date(2025, 1, 1), date(2025, 1, 31))


async def _open(db, ctx, calculation, expected="550"):
    return await disputes.open_dispute(
        db,
        ctx,
        DisputeCreate(
            calculation_id=calculation.id,
            dispute_type=DisputeType.CALCULATION_ERROR,
            expected_amount=Decimal(expected),
            description="Invoice INV-1042 is missing from my January total",
        ),
    )


# ── Transition table ─────────────────────────────────────


class TestTransitions:
    def test_allowed(self):
        assert disputes.can_transition(DisputeStatus.SUBMITTED, DisputeStatus.UNDER_REVIEW)
        assert disputes.can_transition(DisputeStatus.UNDER_REVIEW, DisputeStatus.RESOLVED)
        assert disputes.can_transition(DisputeStatus.ESCALATED, DisputeStatus.REJECTED)
        assert disputes.can_transition(DisputeStatus.RESOLVED, DisputeStatus.CLOSED)

    def test_not_allowed(self):
        assert not disputes.can_transition(DisputeStatus.SUBMITTED, DisputeStatus.RESOLVED)
        assert not disputes.can_transition(DisputeStatus.ESCALATED, DisputeStatus.UNDER_REVIEW)
        assert not disputes.can_transition(DisputeStatus.RESOLVED, DisputeStatus.REJECTED)

    def test_closed_is_terminal(self):
        assert all(
            not disputes.can_transition(DisputeStatus.CLOSED, target) for target in DisputeStatus
        )


# ── Filing ───────────────────────────────────────────────


class TestOpenDispute:
    @pytest.mark.asyncio
    async def test_employee_opens_dispute(self, db_session, employee_ctx, calculation):
        dispute = await _open(db_session, employee_ctx, calculation)

        assert dispute.status == DisputeStatus.SUBMITTED
        assert dispute.dispute_number.startswith("DISP-")
        assert dispute.dispute_number.endswith("-001")
        assert dispute.disputed_amount == Decimal("500.00")
        assert dispute.difference == Decimal("50.00")
        assert dispute.submitted_by == "emp-1"
        assert calculation.status == CalculationStatus.DISPUTED

        history = await disputes.get_history(db_session, employee_ctx, dispute.id)
        assert history == []

    @pytest.mark.asyncio
    async def test_numbers_increase(self, db_session, employee_ctx, calculation):
        first = await _open(db_session, employee_ctx, calculation)
        second = await _open(db_session, employee_ctx, calculation, expected="600")

        assert first.dispute_number[-3:] == "001"
        assert second.dispute_number[-3:] == "002"

    @pytest.mark.asyncio
    async def test_other_employee_forbidden(self, db_session, calculation):
        intruder = RequestContext(tenant_id=TENANT, actor_id="emp-2", role=Role.EMPLOYEE)

        with pytest.raises(Forbidden):
            await _open(db_session, intruder, calculation)

    @pytest.mark.asyncio
    async def test_cancelled_calculation(self, db_session, manager_ctx, employee_ctx, calculation):
        await settlement.cancel(db_session, manager_ctx, calculation.id)

        with pytest.raises(InvalidTransition):
            await _open(db_session, employee_ctx, calculation)

    @pytest.mark.asyncio
    async def test_paid_calculation_keeps_status(self, db_session, manager_ctx, employee_ctx, calculation):
        await settlement.approve(db_session, manager_ctx, calculation.id)
        await settlement.pay(db_session, manager_ctx, calculation.id)

        dispute = await _open(db_session, employee_ctx, calculation)

        assert dispute.status == DisputeStatus.SUBMITTED
        assert calculation.status == CalculationStatus.PAID

    @pytest.mark.asyncio
    async def test_disputed_calculation_cannot_be_recalculated(self, db_session, employee_ctx, manager_ctx, calculation):
        await _open(db_session, employee_ctx, calculation)

        with pytest.raises(InvalidTransition):
            await calculator.calculate(db_session, manager_ctx, "emp-1", date(2025, 1, 1), date(2025, 1, 31))

    @pytest.mark.asyncio
    async def test_employee_cannot_view_other_dispute(self, db_session, employee_ctx, calculation):
        dispute = await _open(db_session, employee_ctx, calculation)
        other = RequestContext(tenant_id=TENANT, actor_id="emp-2", role=Role.EMPLOYEE)

        with pytest.raises(Forbidden):
            await disputes.get_dispute(db_session, other, dispute.id)

        items, total = await disputes.list_disputes(db_session, other)
        assert total == 0


# ── Workflow ─────────────────────────────────────────────


class TestDisputeWorkflow:
    @pytest.mark.asyncio
    async def test_resolve_with_adjustment(self, db_session, manager_ctx, employee_ctx, calculation):
        dispute = await _open(db_session, employee_ctx, calculation)

        await disputes.start_review(db_session, manager_ctx, dispute.id, assigned_to="mgr-1")
        await disputes.resolve(
            db_session,
            manager_ctx,
            dispute.id,
            ResolutionType.ADJUSTMENT_APPROVED,
            adjustment_amount=Decimal("50"),
            resolution_notes="INV-1042 was booked to the wrong rep",
        )

        assert dispute.status == DisputeStatus.RESOLVED
        assert dispute.resolved_by == "mgr-1"

        history = await disputes.get_history(db_session, manager_ctx, dispute.id)
        assert [(h.previous_status, h.new_status) for h in history] == [
            (DisputeStatus.SUBMITTED, DisputeStatus.UNDER_REVIEW),
            (DisputeStatus.UNDER_REVIEW, DisputeStatus.RESOLVED),
        ]

        items, _ = await adjustments.list_adjustments(db_session, manager_ctx, calculation_id=calculation.id)
        assert len(items) == 1
        assert items[0].adjustment_type == AdjustmentType.CORRECTION
        assert items[0].amount == Decimal("50.00")
        assert items[0].is_approved
        assert dispute.adjustment_id == items[0].id

        # Released back to calculated; needs approval again
        assert calculation.status == CalculationStatus.CALCULATED

        calc = await settlement.reprocess_adjustments(db_session, manager_ctx, calculation.id)
        assert calc.total_adjustments == Decimal("50.00")
        assert calc.net_commission == Decimal("550.00")

    @pytest.mark.asyncio
    async def test_escalate_then_reject_and_close(self, db_session, manager_ctx, employee_ctx, calculation):
        dispute = await _open(db_session, employee_ctx, calculation)

        await disputes.start_review(db_session, manager_ctx, dispute.id, assigned_to="mgr-1")
        await disputes.escalate(db_session, manager_ctx, dispute.id, "Needs sales director", assigned_to="dir-1")
        await disputes.reject(db_session, manager_ctx, dispute.id, "Invoice belongs to February")
        await disputes.close(db_session, manager_ctx, dispute.id)

        assert dispute.status == DisputeStatus.CLOSED
        assert dispute.assigned_to == "dir-1"
        history = await disputes.get_history(db_session, manager_ctx, dispute.id)
        assert [h.action for h in history] == ["review_started", "escalated", "rejected", "closed"]
        assert calculation.status == CalculationStatus.CALCULATED

    @pytest.mark.asyncio
    async def test_calculation_stays_disputed_while_another_is_open(
        self, db_session, manager_ctx, employee_ctx, calculation
    ):
        first = await _open(db_session, employee_ctx, calculation)
        await _open(db_session, employee_ctx, calculation, expected="600")

        await disputes.start_review(db_session, manager_ctx, first.id, assigned_to="mgr-1")
        await disputes.reject(db_session, manager_ctx, first.id, "Duplicate")

        assert calculation.status == CalculationStatus.DISPUTED

    @pytest.mark.asyncio
    async def test_resolve_from_submitted(self, db_session, manager_ctx, employee_ctx, calculation):
        dispute = await _open(db_session, employee_ctx, calculation)

        with pytest.raises(InvalidTransition):
            await disputes.resolve(db_session, manager_ctx, dispute.id, ResolutionType.NO_CHANGE)

    @pytest.mark.asyncio
    async def test_adjustment_resolution_needs_amount(self, db_session, manager_ctx, employee_ctx, calculation):
        dispute = await _open(db_session, employee_ctx, calculation)
        await disputes.start_review(db_session, manager_ctx, dispute.id, assigned_to="mgr-1")

        with pytest.raises(IncompleteResolution):
            await disputes.resolve(db_session, manager_ctx, dispute.id, ResolutionType.PARTIAL_ADJUSTMENT)

    @pytest.mark.asyncio
    async def test_no_change_rejects_amount(self, db_session, manager_ctx, employee_ctx, calculation):
        dispute = await _open(db_session, employee_ctx, calculation)
        await disputes.start_review(db_session, manager_ctx, dispute.id, assigned_to="mgr-1")

        with pytest.raises(IncompleteResolution):
            await disputes.resolve(
                db_session, manager_ctx, dispute.id, ResolutionType.NO_CHANGE, adjustment_amount=Decimal("10")
            )

    @pytest.mark.asyncio
    async def test_reject_needs_notes(self, db_session, manager_ctx, employee_ctx, calculation):
        dispute = await _open(db_session, employee_ctx, calculation)
        await disputes.start_review(db_session, manager_ctx, dispute.id, assigned_to="mgr-1")

        with pytest.raises(IncompleteResolution):
            await disputes.reject(db_session, manager_ctx, dispute.id, "   ")

    @pytest.mark.asyncio
    async def test_closed_dispute_is_frozen(self, db_session, manager_ctx, employee_ctx, calculation):
        dispute = await _open(db_session, employee_ctx, calculation)
        await disputes.start_review(db_session, manager_ctx, dispute.id, assigned_to="mgr-1")
        await disputes.resolve(
            db_session, manager_ctx, dispute.id, ResolutionType.EXPLANATION_PROVIDED, resolution_notes="Explained"
        )
        await disputes.close(db_session, manager_ctx, dispute.id)

        with pytest.raises(InvalidTransition):
            await disputes.update_dispute(db_session, manager_ctx, dispute.id, DisputeUpdate(manager_comments="late"))
        with pytest.raises(InvalidTransition):
            await disputes.start_review(db_session, manager_ctx, dispute.id, assigned_to="mgr-1")

    @pytest.mark.asyncio
    async def test_employee_may_only_edit_comments(self, db_session, employee_ctx, calculation):
        dispute = await _open(db_session, employee_ctx, calculation)

        updated = await disputes.update_dispute(
            db_session, employee_ctx, dispute.id, DisputeUpdate(employee_comments="Attached the invoice")
        )
        assert updated.employee_comments == "Attached the invoice"

        with pytest.raises(Forbidden):
            await disputes.update_dispute(db_session, employee_ctx, dispute.id, DisputeUpdate(manager_comments="x"))


class TestHistoryIsAppendOnly:
    @pytest.mark.asyncio
    async def test_update_refused(self, db_session, manager_ctx, employee_ctx, calculation):
        dispute = await _open(db_session, employee_ctx, calculation)
        await disputes.start_review(db_session, manager_ctx, dispute.id, assigned_to="mgr-1")
        entry = (await disputes.get_history(db_session, manager_ctx, dispute.id))[0]

        entry.description = "rewritten"
        with pytest.raises(AppendOnlyViolation):
            await db_session.flush()

    @pytest.mark.asyncio
    async def test_delete_refused(self, db_session, manager_ctx, employee_ctx, calculation):
        dispute = await _open(db_session, employee_ctx, calculation)
        await disputes.start_review(db_session, manager_ctx, dispute.id, assigned_to="mgr-1")
        entry = (await disputes.get_history(db_session, manager_ctx, dispute.id))[0]

        await db_session.delete(entry)
        with pytest.raises(AppendOnlyViolation):
            await db_session.flush()


# ── Concurrent status changes ────────────────────────────


class TestConcurrentFiling:
    @pytest.mark.asyncio
    async def test_calculation_paid_meanwhile_stays_paid(
        self, file_sessionmaker, manager_ctx, second_manager_ctx
    ):
        calc_id = await committed_calculation(file_sessionmaker, manager_ctx, approve=True)

        async with file_sessionmaker() as filer, file_sessionmaker() as payer:
            stale = await filer.get(CommissionCalculation, calc_id)
            assert stale.status == CalculationStatus.APPROVED

            await settlement.pay(payer, second_manager_ctx, calc_id)
            await payer.commit()

            dispute = await _open(filer, manager_ctx, stale)
            await filer.commit()

        assert dispute.status == DisputeStatus.SUBMITTED
        async with file_sessionmaker() as db:
            calc = await db.get(CommissionCalculation, calc_id)
            assert calc.status == CalculationStatus.PAID
            assert calc.paid_by == "mgr-2"
            assert calc.approved_at is not None

    @pytest.mark.asyncio
    async def test_calculation_cancelled_meanwhile_refuses_dispute(
        self, file_sessionmaker, manager_ctx, second_manager_ctx
    ):
        calc_id = await committed_calculation(file_sessionmaker, manager_ctx)

        async with file_sessionmaker() as filer, file_sessionmaker() as canceller:
            stale = await filer.get(CommissionCalculation, calc_id)

            await settlement.cancel(canceller, second_manager_ctx, calc_id)
            await canceller.commit()

            with pytest.raises(InvalidTransition):
                await _open(filer, manager_ctx, stale)
            await filer.rollback()

        async with file_sessionmaker() as db:
            calc = await db.get(CommissionCalculation, calc_id)
            assert calc.status == CalculationStatus.CANCELLED
            assert await db.scalar(select(func.count()).select_from(CommissionDispute)) == 0
