"""Commission analytics endpoint."""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from commissiondesk.auth.dependencies import require_manager
from commissiondesk.db import get_db
from commissiondesk.schemas.analytics import AnalyticsResponse
from commissiondesk.services import analytics
from commissiondesk.services.tenancy import RequestContext

router = APIRouter(prefix="/analytics", tags=["Analytics"])


@router.get("", response_model=AnalyticsResponse)
async def commission_analytics(
    period_start: date = Query(...),
    period_end: date = Query(...),
    top_n: int = Query(5, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(require_manager),
):
    """Totals, status counts, plan performance, top performers and disputes."""
    summary = await analytics.commission_summary(db, ctx, period_start, period_end, top_n=top_n)
    return AnalyticsResponse(**summary)
