"""
Background job definitions using APScheduler.

Jobs include:
- Period close: calculate the previous month for every tenant
"""

import logging
from datetime import date
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import select

from commissiondesk.config import settings
from commissiondesk.db import get_db_context
from commissiondesk.models import EmployeeCommissionAssignment
from commissiondesk.services.calculator import calculate_period, previous_month
from commissiondesk.services.errors import CommissionError
from commissiondesk.services.tenancy import RequestContext, Role

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"

# Global scheduler instance
scheduler = AsyncIOScheduler(timezone="UTC")


async def tenants_with_assignments() -> list[str]:
    async with get_db_context() as db:
        result = await db.execute(
            select(EmployeeCommissionAssignment.tenant_id)
            .where(EmployeeCommissionAssignment.is_active.is_(True))
            .distinct()
        )
        return sorted(result.scalars().all())


async def period_close_job(today: Optional[date] = None):
    """
    Calculate last month's commissions for every tenant.

    Each tenant runs in its own transaction so one failure does not
    roll back the others.
    """
    period_start, period_end = previous_month(today or date.today())
    logger.info(f"Period close job: {period_start} - {period_end}")

    for tenant_id in await tenants_with_assignments():
        ctx = RequestContext(tenant_id=tenant_id, actor_id=SYSTEM_ACTOR, role=Role.ADMIN)
        try:
            async with get_db_context() as db:
                run = await calculate_period(db, ctx, period_start, period_end)
            logger.info(
                f"Period close for tenant {tenant_id}: "
                f"{run.succeeded}/{run.processed} calculated, {len(run.errors)} errors"
            )
        except CommissionError as e:
            logger.error(f"Period close for tenant {tenant_id} aborted: {e.message}")
        except Exception as e:
            logger.error(f"Period close job error for tenant {tenant_id}: {e}")


def setup_scheduler():
    """
    Configure and add all scheduled jobs.

    Called during application startup when auto calculation is enabled.
    """
    scheduler.add_job(
        period_close_job,
        trigger=CronTrigger(
            day=settings.auto_calculate_day,
            hour=settings.auto_calculate_hour,
            minute=0,
        ),
        id="period_close",
        name="Calculate previous month's commissions",
        replace_existing=True,
    )

    logger.info("Scheduler configured with jobs")
