"""Sales transaction endpoints."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from commissiondesk.auth.dependencies import get_request_context, require_manager, scope_employee, scope_employee
from commissiondesk.db import get_db
from commissiondesk.schemas.transaction import (
    ChargebackRequest,
    TransactionCreate,
    TransactionListResponse,
    TransactionResponse,
)
from commissiondesk.services import transactions
from commissiondesk.services.tenancy import RequestContext

router = APIRouter(prefix="/transactions", tags=["Transactions"])


@router.get("", response_model=TransactionListResponse)
async def list_transactions(
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    employee_id: Optional[str] = Query(None),
    period_start: Optional[date] = Query(None),
    period_end: Optional[date] = Query(None),
    calculation_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
):
    items, total = await transactions.list_transactions(
        db,
        ctx,
        employee_id=scope_employee(ctx, employee_id),
        period_start=period_start,
        period_end=period_end,
        calculation_id=calculation_id,
        page=page,
        per_page=per_page,
    )
    return TransactionListResponse(
        items=[TransactionResponse.model_validate(t) for t in items],
        total=total,
        page=page,
        per_page=per_page,
        pages=(total + per_page - 1) // per_page if total else 0,
    )


@router.post("", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def record_transaction(
    data: TransactionCreate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(require_manager),
):
    """Record a sale (or one employee's share of a split sale)."""
    transaction = await transactions.record_transaction(db, ctx, data)
    return TransactionResponse.model_validate(transaction)


@router.post("/{transaction_id}/chargeback", response_model=TransactionResponse)
async def charge_back(
    transaction_id: int,
    data: ChargebackRequest,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(require_manager),
):
    """Charge back a sale inside the plan's chargeback window."""
    transaction = await transactions.charge_back_transaction(
        db, ctx, transaction_id, data.reason, charged_back_on=data.charged_back_on
    )
    return TransactionResponse.model_validate(transaction)
