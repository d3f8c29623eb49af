"""Commission API router aggregation."""

from fastapi import APIRouter

from commissiondesk.api.commission.adjustments import router as adjustments_router
from commissiondesk.api.commission.analytics import router as analytics_router
from commissiondesk.api.commission.assignments import router as assignments_router
from commissiondesk.api.commission.calculations import router as calculations_router
from commissiondesk.api.commission.disputes import router as disputes_router
from commissiondesk.api.commission.events import router as events_router
from commissiondesk.api.commission.plans import router as plans_router
from commissiondesk.api.commission.transactions import router as transactions_router

commission_router = APIRouter(prefix="/commission")

commission_router.include_router(plans_router)
commission_router.include_router(assignments_router)
commission_router.include_router(transactions_router)
commission_router.include_router(calculations_router)
commission_router.include_router(adjustments_router)
commission_router.include_router(disputes_router)
commission_router.include_router(analytics_router)
commission_router.include_router(events_router)

__all__ = ["commission_router"]
