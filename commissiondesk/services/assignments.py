"""
Assignment resolver.

Answers "which plan is employee X on for date D". Active assignment ranges of
one employee must not overlap; if they somehow do, resolution raises
AmbiguousAssignment instead of picking one.
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from commissiondesk.models import AuditAction, CommissionPlan, EmployeeCommissionAssignment
from commissiondesk.schemas.assignment import AssignmentCreate
from commissiondesk.services.errors import (
    AmbiguousAssignment,
    InvalidPeriod,
    NoActivePlan,
    TenantMismatch,
)
from commissiondesk.services.rules import dump_rules
from commissiondesk.services.tenancy import RequestContext, get_scoped
from commissiondesk.utils.audit import log_action

logger = logging.getLogger(__name__)


def _covering(query, on_date: date):
    return query.where(
        EmployeeCommissionAssignment.is_active == True,
        EmployeeCommissionAssignment.effective_date <= on_date,
        or_(
            EmployeeCommissionAssignment.end_date.is_(None),
            EmployeeCommissionAssignment.end_date >= on_date,
        ),
    )


async def resolve_assignment(
    db: AsyncSession,
    ctx: RequestContext,
    employee_id: str,
    on_date: date,
) -> EmployeeCommissionAssignment:
    """
    Return the single active assignment covering on_date.

    Raises:
        NoActivePlan: no covering assignment, or its plan is inactive or
            not effective on the date
        AmbiguousAssignment: more than one covering assignment
        TenantMismatch: the assignment points at another tenant's plan
    """
    query = select(EmployeeCommissionAssignment).where(
        EmployeeCommissionAssignment.tenant_id == ctx.tenant_id,
        EmployeeCommissionAssignment.employee_id == employee_id,
    )
    result = await db.execute(_covering(query, on_date))
    assignments = result.scalars().all()

    if not assignments:
        raise NoActivePlan(f"Employee {employee_id} has no active assignment on {on_date}")

    if len(assignments) > 1:
        ids = sorted(a.id for a in assignments)
        raise AmbiguousAssignment(
            f"Employee {employee_id} has {len(assignments)} active assignments on {on_date}: {ids}"
        )

    assignment = assignments[0]
    plan = assignment.plan
    if plan.tenant_id != ctx.tenant_id:
        raise TenantMismatch(f"Plan {plan.id} of assignment {assignment.id} belongs to another tenant")

    if not plan.is_effective_on(on_date):
        raise NoActivePlan(f"Plan {plan.id} '{plan.plan_name}' is not active on {on_date}")

    return assignment


async def assign_plan(
    db: AsyncSession,
    ctx: RequestContext,
    data: AssignmentCreate,
) -> EmployeeCommissionAssignment:
    """
    Put an employee on a plan for a date range.

    Raises:
        AmbiguousAssignment: the range overlaps another active assignment
    """
    plan = await get_scoped(db, CommissionPlan, data.plan_id, ctx, "Plan")

    if data.end_date is not None and data.end_date < data.effective_date:
        raise InvalidPeriod("end_date must not be before effective_date")

    result = await db.execute(
        select(EmployeeCommissionAssignment).where(
            EmployeeCommissionAssignment.tenant_id == ctx.tenant_id,
            EmployeeCommissionAssignment.employee_id == data.employee_id,
            EmployeeCommissionAssignment.is_active == True,
        )
    )
    clashes = [a for a in result.scalars().all() if a.overlaps(data.effective_date, data.end_date)]
    if clashes:
        raise AmbiguousAssignment(
            f"Employee {data.employee_id} already has an active assignment "
            f"overlapping {data.effective_date} - {data.end_date or 'open'} "
            f"(assignment {clashes[0].id})"
        )

    assignment = EmployeeCommissionAssignment(
        tenant_id=ctx.tenant_id,
        employee_id=data.employee_id,
        plan=plan,
        effective_date=data.effective_date,
        end_date=data.end_date,
        quota_target=data.quota_target,
        is_active=True,
        custom_rates=dump_rules(data.custom_rates),
        assigned_by=ctx.actor_id,
    )
    db.add(assignment)
    await db.flush()

    await log_action(
        db,
        ctx,
        AuditAction.ASSIGN_PLAN,
        target_type="assignment",
        target_id=assignment.id,
        action_metadata={"employee_id": data.employee_id, "plan_id": plan.id},
    )

    logger.info(f"Employee {data.employee_id} assigned to plan {plan.id} from {data.effective_date}")
    return assignment


async def end_assignment(
    db: AsyncSession,
    ctx: RequestContext,
    assignment_id: int,
    end_date: date,
) -> EmployeeCommissionAssignment:
    """Close an assignment's range on end_date (inclusive)."""
    assignment = await get_scoped(db, EmployeeCommissionAssignment, assignment_id, ctx, "Assignment")

    if end_date < assignment.effective_date:
        raise InvalidPeriod(
            f"end_date {end_date} is before the assignment's effective_date {assignment.effective_date}"
        )

    assignment.end_date = end_date
    await db.flush()

    await log_action(
        db,
        ctx,
        AuditAction.END_ASSIGNMENT,
        target_type="assignment",
        target_id=assignment.id,
        action_metadata={"end_date": end_date.isoformat()},
    )
    return assignment


async def list_assignments(
    db: AsyncSession,
    ctx: RequestContext,
    employee_id: Optional[str] = None,
    on_date: Optional[date] = None,
) -> list[EmployeeCommissionAssignment]:
    query = select(EmployeeCommissionAssignment).where(
        EmployeeCommissionAssignment.tenant_id == ctx.tenant_id,
    )
    if employee_id:
        query = query.where(EmployeeCommissionAssignment.employee_id == employee_id)
    if on_date:
        query = _covering(query, on_date)

    result = await db.execute(
        query.order_by(
            EmployeeCommissionAssignment.employee_id,
            EmployeeCommissionAssignment.effective_date,
        )
    )
    return list(result.scalars().all())


async def employees_with_assignment(
    db: AsyncSession,
    ctx: RequestContext,
    on_date: date,
) -> list[str]:
    """Distinct employees with an active assignment covering on_date."""
    query = select(EmployeeCommissionAssignment.employee_id).where(
        EmployeeCommissionAssignment.tenant_id == ctx.tenant_id,
    )
    result = await db.execute(
        _covering(query, on_date)
        .distinct()
        .order_by(EmployeeCommissionAssignment.employee_id)
    )
    return [row[0] for row in result.all()]
