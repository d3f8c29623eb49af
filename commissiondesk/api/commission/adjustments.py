"""Commission adjustment endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from commissiondesk.auth.dependencies import get_request_context, require_manager, scope_employee
from commissiondesk.db import get_db
from commissiondesk.schemas.adjustment import (
    AdjustmentCreate,
    AdjustmentListResponse,
    AdjustmentResponse,
)
from commissiondesk.services import adjustments
from commissiondesk.services.tenancy import RequestContext

router = APIRouter(prefix="/adjustments", tags=["Adjustments"])


@router.get("", response_model=AdjustmentListResponse)
async def list_adjustments(
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    employee_id: Optional[str] = Query(None),
    calculation_id: Optional[int] = Query(None),
    pending_only: bool = Query(False, description="Only adjustments awaiting approval"),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
):
    items, total = await adjustments.list_adjustments(
        db,
        ctx,
        employee_id=scope_employee(ctx, employee_id),
        calculation_id=calculation_id,
        pending_only=pending_only,
        page=page,
        per_page=per_page,
    )
    return AdjustmentListResponse(
        items=[AdjustmentResponse.model_validate(a) for a in items],
        total=total,
        page=page,
        per_page=per_page,
        pages=(total + per_page - 1) // per_page if total else 0,
    )


@router.post("", response_model=AdjustmentResponse, status_code=status.HTTP_201_CREATED)
async def create_adjustment(
    data: AdjustmentCreate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(require_manager),
):
    """Create a manual adjustment, linked to a calculation or standalone."""
    adjustment = await adjustments.create_adjustment(db, ctx, data)
    return AdjustmentResponse.model_validate(adjustment)


@router.post("/{adjustment_id}/approve", response_model=AdjustmentResponse)
async def approve_adjustment(
    adjustment_id: int,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(require_manager),
):
    adjustment = await adjustments.approve_adjustment(db, ctx, adjustment_id)
    return AdjustmentResponse.model_validate(adjustment)
