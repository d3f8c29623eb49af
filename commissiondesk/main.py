"""
CommissionDesk - commission management for office-equipment dealers

Main FastAPI application with:
- Commission plans, assignments and sales transactions
- Period calculation, settlement and adjustments
- Disputes with an append-only history
- Tenant-scoped, role-based access (admin/manager/employee)
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from commissiondesk.api import api_router
from commissiondesk.auth.middleware import AuthMiddleware
from commissiondesk.config import settings
from commissiondesk.scheduler.jobs import scheduler, setup_scheduler
from commissiondesk.services.errors import CommissionError

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
    - Starts the period-close scheduler when enabled

    Shutdown:
    - Stops the scheduler
    """
    logger.info("Starting CommissionDesk...")

    if settings.auto_calculate_enabled:
        setup_scheduler()
        scheduler.start()
        logger.info("Period-close scheduler started")

    yield

    # Shutdown
    logger.info("Shutting down CommissionDesk...")
    if scheduler.running:
        scheduler.shutdown(wait=False)


# Create FastAPI application
app = FastAPI(
    title="CommissionDesk",
    description="Commission plans, calculations, disputes and settlement",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)


@app.exception_handler(CommissionError)
async def commission_error_handler(request: Request, exc: CommissionError):
    logger.info(f"{request.method} {request.url.path} -> {exc.code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# Add authentication middleware
app.add_middleware(AuthMiddleware)

# Include routers
app.include_router(api_router)  # /api/* endpoints


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "commissiondesk.main:app",
        host="0.0.0.0",
        port=8000,
        reload=not settings.is_production,
    )
