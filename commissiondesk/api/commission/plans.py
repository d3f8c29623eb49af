"""Commission plan endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from commissiondesk.auth.dependencies import get_request_context, require_manager
from commissiondesk.db import get_db
from commissiondesk.models import PlanType
from commissiondesk.schemas.plan import (
    PlanCreate,
    PlanListResponse,
    PlanResponse,
    PlanUpdate,
    ProductRateIn,
    TierIn,
)
from commissiondesk.services import plans
from commissiondesk.services.tenancy import RequestContext

router = APIRouter(prefix="/plans", tags=["Plans"])


@router.get("", response_model=PlanListResponse)
async def list_plans(
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    is_active: Optional[bool] = Query(None),
    plan_type: Optional[PlanType] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
):
    """List the tenant's commission plans."""
    items, total = await plans.list_plans(
        db, ctx, is_active=is_active, plan_type=plan_type, page=page, per_page=per_page
    )
    return PlanListResponse(
        items=[PlanResponse.model_validate(p) for p in items],
        total=total,
        page=page,
        per_page=per_page,
        pages=(total + per_page - 1) // per_page if total else 0,
    )


@router.post("", response_model=PlanResponse, status_code=status.HTTP_201_CREATED)
async def create_plan(
    data: PlanCreate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(require_manager),
):
    """Create a plan together with its tiers and product rates."""
    plan = await plans.create_plan(db, ctx, data)
    return PlanResponse.model_validate(plan)


@router.get("/{plan_id}", response_model=PlanResponse)
async def get_plan(
    plan_id: int,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    plan = await plans.get_plan(db, ctx, plan_id)
    return PlanResponse.model_validate(plan)


@router.patch("/{plan_id}", response_model=PlanResponse)
async def update_plan(
    plan_id: int,
    data: PlanUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(require_manager),
):
    plan = await plans.update_plan(db, ctx, plan_id, data)
    return PlanResponse.model_validate(plan)


@router.put("/{plan_id}/tiers", response_model=PlanResponse)
async def replace_tiers(
    plan_id: int,
    tiers: List[TierIn],
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(require_manager),
):
    """Replace the plan's tier schedule. The new schedule is validated first."""
    plan = await plans.replace_tiers(db, ctx, plan_id, tiers)
    return PlanResponse.model_validate(plan)


@router.put("/{plan_id}/product-rates", response_model=PlanResponse)
async def replace_product_rates(
    plan_id: int,
    rates: List[ProductRateIn],
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(require_manager),
):
    plan = await plans.replace_product_rates(db, ctx, plan_id, rates)
    return PlanResponse.model_validate(plan)
