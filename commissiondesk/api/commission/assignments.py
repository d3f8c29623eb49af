"""Employee plan assignment endpoints."""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from commissiondesk.auth.dependencies import get_request_context, require_manager, scope_employee, scope_employee
from commissiondesk.db import get_db
from commissiondesk.schemas.assignment import (
    AssignmentCreate,
    AssignmentEnd,
    AssignmentResponse,
)
from commissiondesk.services import assignments
from commissiondesk.services.tenancy import RequestContext

router = APIRouter(prefix="/assignments", tags=["Assignments"])


@router.get("", response_model=List[AssignmentResponse])
async def list_assignments(
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    employee_id: Optional[str] = Query(None),
    on_date: Optional[date] = Query(None, description="Only assignments covering this date"),
):
    items = await assignments.list_assignments(
        db, ctx, employee_id=scope_employee(ctx, employee_id), on_date=on_date
    )
    return [AssignmentResponse.from_assignment(a) for a in items]


@router.post("", response_model=AssignmentResponse, status_code=status.HTTP_201_CREATED)
async def assign_plan(
    data: AssignmentCreate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(require_manager),
):
    """Assign a plan to an employee. Overlapping active assignments are rejected."""
    assignment = await assignments.assign_plan(db, ctx, data)
    return AssignmentResponse.from_assignment(assignment)


@router.get("/resolve", response_model=AssignmentResponse)
async def resolve_assignment(
    employee_id: str = Query(..., min_length=1),
    on_date: date = Query(...),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """The single assignment in force for the employee on the date."""
    assignment = await assignments.resolve_assignment(
        db, ctx, scope_employee(ctx, employee_id), on_date
    )
    return AssignmentResponse.from_assignment(assignment)


@router.post("/{assignment_id}/end", response_model=AssignmentResponse)
async def end_assignment(
    assignment_id: int,
    data: AssignmentEnd,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(require_manager),
):
    assignment = await assignments.end_assignment(db, ctx, assignment_id, data.end_date)
    return AssignmentResponse.from_assignment(assignment)
