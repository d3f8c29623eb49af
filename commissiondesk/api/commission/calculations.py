"""Commission calculation and settlement endpoints."""

from dataclasses import asdict
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from commissiondesk.auth.dependencies import get_request_context, require_manager, scope_employee
from commissiondesk.db import get_db
from commissiondesk.models import CalculationStatus
from commissiondesk.schemas.calculation import (
    CalculateRequest,
    CalculationListResponse,
    CalculationResponse,
    CalculationSummary,
    CancelRequest,
    PayRequest,
    PeriodCalculateRequest,
    PeriodRunResponse,
)
from commissiondesk.services import calculator, settlement
from commissiondesk.services.tenancy import RequestContext

router = APIRouter(tags=["Calculations"])


@router.post("/calculations", response_model=CalculationResponse, status_code=status.HTTP_201_CREATED)
async def calculate_employee(
    data: CalculateRequest,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(require_manager),
):
    """
    Calculate (or recalculate) one employee's commission for a period.

    Re-running replaces a draft or calculated result in place.
    """
    calculation = await calculator.calculate(
        db, ctx, data.employee_id, data.period_start, data.period_end
    )
    return CalculationResponse.from_calculation(calculation)


@router.post("/calculate", response_model=PeriodRunResponse)
async def calculate_period(
    data: PeriodCalculateRequest,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(require_manager),
):
    """
    Calculate a period for every assigned employee, or for the listed ones.

    Per-employee failures are reported in the response instead of failing the run.
    """
    result = await calculator.calculate_period(
        db, ctx, data.period_start, data.period_end, employee_ids=data.employee_ids
    )
    return PeriodRunResponse(**asdict(result))


@router.get("/calculations", response_model=CalculationListResponse)
async def list_calculations(
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    employee_id: Optional[str] = Query(None),
    status_filter: Optional[CalculationStatus] = Query(None, alias="status"),
    plan_id: Optional[int] = Query(None),
    period_start: Optional[date] = Query(None),
    period_end: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
):
    """List calculations. Employees only see their own."""
    items, total = await calculator.list_calculations(
        db,
        ctx,
        employee_id=scope_employee(ctx, employee_id),
        status=status_filter,
        plan_id=plan_id,
        period_start=period_start,
        period_end=period_end,
        page=page,
        per_page=per_page,
    )
    return CalculationListResponse(
        items=[CalculationSummary.model_validate(c) for c in items],
        total=total,
        page=page,
        per_page=per_page,
        pages=(total + per_page - 1) // per_page if total else 0,
    )


@router.get("/calculations/{calculation_id}", response_model=CalculationResponse)
async def get_calculation(
    calculation_id: int,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Calculation with its category lines and bonuses."""
    calculation = await calculator.get_calculation(db, ctx, calculation_id)
    if not ctx.is_manager and calculation.employee_id != ctx.actor_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Employees may only view their own calculations",
        )
    return CalculationResponse.from_calculation(calculation)


@router.post("/calculations/{calculation_id}/approve", response_model=CalculationResponse)
async def approve_calculation(
    calculation_id: int,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(require_manager),
):
    calculation = await settlement.approve(db, ctx, calculation_id)
    return CalculationResponse.from_calculation(calculation)


@router.post("/calculations/{calculation_id}/pay", response_model=CalculationResponse)
async def pay_calculation(
    calculation_id: int,
    data: PayRequest,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(require_manager),
):
    calculation = await settlement.pay(db, ctx, calculation_id, payout_date=data.payout_date)
    return CalculationResponse.from_calculation(calculation)


@router.post("/calculations/{calculation_id}/cancel", response_model=CalculationResponse)
async def cancel_calculation(
    calculation_id: int,
    data: CancelRequest,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(require_manager),
):
    calculation = await settlement.cancel(db, ctx, calculation_id, notes=data.notes)
    return CalculationResponse.from_calculation(calculation)


@router.post(
    "/calculations/{calculation_id}/reprocess-adjustments",
    response_model=CalculationResponse,
)
async def reprocess_adjustments(
    calculation_id: int,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(require_manager),
):
    """Re-sum approved linked adjustments and re-derive net commission."""
    calculation = await settlement.reprocess_adjustments(db, ctx, calculation_id)
    return CalculationResponse.from_calculation(calculation)
