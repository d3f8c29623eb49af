"""
Commission analytics over a window of calculation periods.

Counts come from SQL aggregates. Money is summed in Python over the selected
columns so totals stay exact Decimals on every backend.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from commissiondesk.models import (
    CalculationStatus,
    CommissionCalculation,
    CommissionDispute,
    CommissionPlan,
    DisputeStatus,
)
from commissiondesk.models.dispute import OPEN_DISPUTE_STATUSES
from commissiondesk.services.calculator import validate_period
from commissiondesk.services.tenancy import RequestContext
from commissiondesk.utils.money import ZERO, to_money


def _in_window(query, ctx: RequestContext, period_start: date, period_end: date):
    return query.where(
        CommissionCalculation.tenant_id == ctx.tenant_id,
        CommissionCalculation.calculation_period_start >= period_start,
        CommissionCalculation.calculation_period_end <= period_end,
    )


def _average(total: Decimal, count: int) -> Decimal:
    return to_money(total / count) if count else ZERO


async def commission_summary(
    db: AsyncSession,
    ctx: RequestContext,
    period_start: date,
    period_end: date,
    top_n: int = 5,
) -> dict:
    """
    Totals, status counts, plan performance, top performers and dispute
    analysis for calculations whose period lies inside the window.

    Cancelled calculations are counted by status but left out of every total.
    """
    validate_period(period_start, period_end)

    # Counts by status
    status_rows = await db.execute(
        _in_window(
            select(CommissionCalculation.status, func.count(CommissionCalculation.id)),
            ctx,
            period_start,
            period_end,
        ).group_by(CommissionCalculation.status)
    )
    by_status = {s.value: 0 for s in CalculationStatus}
    for status, count in status_rows.all():
        by_status[status.value] = count

    result = await db.execute(
        _in_window(
            select(
                CommissionCalculation.employee_id,
                CommissionCalculation.plan_id,
                CommissionCalculation.total_sales,
                CommissionCalculation.gross_commission,
                CommissionCalculation.total_bonuses,
                CommissionCalculation.total_adjustments,
                CommissionCalculation.net_commission,
                CommissionCalculation.quota_achievement,
            ),
            ctx,
            period_start,
            period_end,
        ).where(CommissionCalculation.status != CalculationStatus.CANCELLED)
    )
    rows = result.all()

    participants = {row.employee_id for row in rows}
    net_total = sum((row.net_commission for row in rows), ZERO)
    totals = {
        "calculations": len(rows),
        "participants": len(participants),
        "total_sales": sum((row.total_sales for row in rows), ZERO),
        "gross_commission": sum((row.gross_commission for row in rows), ZERO),
        "total_bonuses": sum((row.total_bonuses for row in rows), ZERO),
        "total_adjustments": sum((row.total_adjustments for row in rows), ZERO),
        "net_commission": net_total,
        "average_payout": _average(net_total, len(participants)),
    }

    # Per plan
    plan_names = dict(
        (await db.execute(
            select(CommissionPlan.id, CommissionPlan.plan_name).where(
                CommissionPlan.tenant_id == ctx.tenant_id,
            )
        )).all()
    )
    plans = defaultdict(lambda: {"employees": set(), "sales": ZERO, "net": ZERO})
    for row in rows:
        entry = plans[row.plan_id]
        entry["employees"].add(row.employee_id)
        entry["sales"] += row.total_sales
        entry["net"] += row.net_commission

    plan_performance = [
        {
            "plan_id": plan_id,
            "plan_name": plan_names.get(plan_id, f"Plan {plan_id}"),
            "participants": len(entry["employees"]),
            "total_sales": entry["sales"],
            "net_commission": entry["net"],
            "average_commission": _average(entry["net"], len(entry["employees"])),
        }
        for plan_id, entry in sorted(plans.items(), key=lambda item: item[1]["net"], reverse=True)
    ]

    # Per employee
    employees = defaultdict(lambda: {"sales": ZERO, "net": ZERO, "quota": None})
    for row in rows:
        entry = employees[row.employee_id]
        entry["sales"] += row.total_sales
        entry["net"] += row.net_commission
        if row.quota_achievement is not None:
            entry["quota"] = max(entry["quota"] or ZERO, row.quota_achievement)

    top_performers = [
        {
            "employee_id": employee_id,
            "total_sales": entry["sales"],
            "net_commission": entry["net"],
            "quota_achievement": entry["quota"],
        }
        for employee_id, entry in sorted(
            employees.items(),
            key=lambda item: (item[1]["net"], item[1]["sales"]),
            reverse=True,
        )[:top_n]
    ]

    # Disputes on calculations in the window
    dispute_rows = (await db.execute(
        _in_window(
            select(
                CommissionDispute.status,
                CommissionDispute.dispute_type,
                CommissionDispute.difference,
            ).join(CommissionCalculation, CommissionDispute.calculation_id == CommissionCalculation.id),
            ctx,
            period_start,
            period_end,
        )
    )).all()

    by_type = defaultdict(int)
    for row in dispute_rows:
        by_type[row.dispute_type.value] += 1

    disputes = {
        "total": len(dispute_rows),
        "open": sum(1 for row in dispute_rows if row.status in OPEN_DISPUTE_STATUSES),
        "resolved": sum(1 for row in dispute_rows if row.status == DisputeStatus.RESOLVED),
        "rejected": sum(1 for row in dispute_rows if row.status == DisputeStatus.REJECTED),
        "closed": sum(1 for row in dispute_rows if row.status == DisputeStatus.CLOSED),
        "total_difference": sum((row.difference for row in dispute_rows), ZERO),
        "by_type": dict(by_type),
    }

    return {
        "period_start": period_start,
        "period_end": period_end,
        "totals": totals,
        "by_status": by_status,
        "plan_performance": plan_performance,
        "top_performers": top_performers,
        "disputes": disputes,
    }
