"""Commission dispute endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from commissiondesk.auth.dependencies import get_request_context, require_manager
from commissiondesk.db import get_db
from commissiondesk.models import DisputePriority, DisputeStatus
from commissiondesk.schemas.dispute import (
    CloseRequest,
    DisputeCreate,
    DisputeHistoryResponse,
    DisputeListResponse,
    DisputeResponse,
    DisputeUpdate,
    EscalateRequest,
    RejectRequest,
    ResolveRequest,
    ReviewRequest,
)
from commissiondesk.services import disputes
from commissiondesk.services.tenancy import RequestContext

router = APIRouter(prefix="/disputes", tags=["Disputes"])


@router.get("", response_model=DisputeListResponse)
async def list_disputes(
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    status_filter: Optional[DisputeStatus] = Query(None, alias="status"),
    employee_id: Optional[str] = Query(None),
    calculation_id: Optional[int] = Query(None),
    assigned_to: Optional[str] = Query(None),
    priority: Optional[DisputePriority] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
):
    """List disputes. Employees only see their own."""
    items, total = await disputes.list_disputes(
        db,
        ctx,
        status=status_filter,
        employee_id=employee_id,
        calculation_id=calculation_id,
        assigned_to=assigned_to,
        priority=priority,
        page=page,
        per_page=per_page,
    )
    return DisputeListResponse(
        items=[DisputeResponse.model_validate(d) for d in items],
        total=total,
        page=page,
        per_page=per_page,
        pages=(total + per_page - 1) // per_page if total else 0,
    )


@router.post("", response_model=DisputeResponse, status_code=status.HTTP_201_CREATED)
async def open_dispute(
    data: DisputeCreate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Open a dispute against a calculation. Employees may dispute their own."""
    dispute = await disputes.open_dispute(db, ctx, data)
    return DisputeResponse.model_validate(dispute)


@router.get("/{dispute_id}", response_model=DisputeResponse)
async def get_dispute(
    dispute_id: int,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    dispute = await disputes.get_dispute(db, ctx, dispute_id)
    return DisputeResponse.model_validate(dispute)


@router.patch("/{dispute_id}", response_model=DisputeResponse)
async def update_dispute(
    dispute_id: int,
    data: DisputeUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    dispute = await disputes.update_dispute(db, ctx, dispute_id, data)
    return DisputeResponse.model_validate(dispute)


@router.get("/{dispute_id}/history", response_model=List[DisputeHistoryResponse])
async def get_history(
    dispute_id: int,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Status transitions of the dispute, oldest first."""
    history = await disputes.get_history(db, ctx, dispute_id)
    return [DisputeHistoryResponse.model_validate(h) for h in history]


@router.post("/{dispute_id}/review", response_model=DisputeResponse)
async def start_review(
    dispute_id: int,
    data: ReviewRequest,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(require_manager),
):
    dispute = await disputes.start_review(
        db, ctx, dispute_id, data.assigned_to, comments=data.comments
    )
    return DisputeResponse.model_validate(dispute)


@router.post("/{dispute_id}/escalate", response_model=DisputeResponse)
async def escalate(
    dispute_id: int,
    data: EscalateRequest,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(require_manager),
):
    dispute = await disputes.escalate(
        db, ctx, dispute_id, data.reason, assigned_to=data.assigned_to
    )
    return DisputeResponse.model_validate(dispute)


@router.post("/{dispute_id}/resolve", response_model=DisputeResponse)
async def resolve(
    dispute_id: int,
    data: ResolveRequest,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(require_manager),
):
    """Resolve a dispute. Payout-changing resolutions create a correction adjustment."""
    dispute = await disputes.resolve(
        db,
        ctx,
        dispute_id,
        data.resolution_type,
        adjustment_amount=data.adjustment_amount,
        resolution_notes=data.resolution_notes,
    )
    return DisputeResponse.model_validate(dispute)


@router.post("/{dispute_id}/reject", response_model=DisputeResponse)
async def reject(
    dispute_id: int,
    data: RejectRequest,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(require_manager),
):
    dispute = await disputes.reject(db, ctx, dispute_id, data.resolution_notes)
    return DisputeResponse.model_validate(dispute)


@router.post("/{dispute_id}/close", response_model=DisputeResponse)
async def close(
    dispute_id: int,
    data: CloseRequest,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(require_manager),
):
    dispute = await disputes.close(db, ctx, dispute_id, comments=data.comments)
    return DisputeResponse.model_validate(dispute)
