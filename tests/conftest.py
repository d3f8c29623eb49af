"""
Pytest configuration and fixtures.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret")

from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from commissiondesk.models import (
    Base,
    CalculationMode,
    PlanType,
    ProductCategory,
    TransactionType,
)
from commissiondesk.schemas.assignment import AssignmentCreate
from commissiondesk.schemas.plan import PlanCreate, ProductRateIn, TierIn
from commissiondesk.schemas.transaction import TransactionCreate
from commissiondesk.services import assignments, calculator, plans, settlement, transactions
from commissiondesk.services.tenancy import RequestContext, Role


# Test database URL (use SQLite for tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TENANT = "dealer-1"
OTHER_TENANT = "dealer-2"


@pytest_asyncio.fixture
async def db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    """Create test database session."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session


@pytest_asyncio.fixture
async def file_sessionmaker(tmp_path):
    """Sessionmaker over a database file, so two sessions use two connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'commission.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def second_manager_ctx():
    return RequestContext(tenant_id=TENANT, actor_id="mgr-2", role=Role.MANAGER)


@pytest.fixture
def manager_ctx():
    return RequestContext(tenant_id=TENANT, actor_id="mgr-1", role=Role.MANAGER)


@pytest.fixture
def employee_ctx():
    return RequestContext(tenant_id=TENANT, actor_id="emp-1", role=Role.EMPLOYEE)


@pytest.fixture
def other_tenant_ctx():
    return RequestContext(tenant_id=OTHER_TENANT, actor_id="mgr-9", role=Role.MANAGER)


# ── Builders ─────────────────────────────────────────────


def flat_plan_data(**overrides) -> PlanCreate:
    """Flat plan paying 5% on new equipment and 10% on supplies."""
    data = {
        "plan_name": "Standard Rep Plan",
        "plan_type": PlanType.SALES_REP,
        "calculation_mode": CalculationMode.FLAT,
        "effective_date": date(2025, 1, 1),
        "product_rates": [
            ProductRateIn(category=ProductCategory.NEW_EQUIPMENT, commission_rate=Decimal("5")),
            ProductRateIn(category=ProductCategory.SUPPLIES, commission_rate=Decimal("10")),
        ],
    }
    data.update(overrides)
    return PlanCreate(**data)


def tier_schedule() -> list[TierIn]:
    """0-10k at 3%, 10k-25k at 5% (+$250 bonus), 25k+ at 7%."""
    return [
        TierIn(
            tier_level=1,
            tier_name="Bronze",
            minimum_sales=Decimal("0"),
            maximum_sales=Decimal("10000"),
            commission_rate=Decimal("3"),
        ),
        TierIn(
            tier_level=2,
            tier_name="Silver",
            minimum_sales=Decimal("10000"),
            maximum_sales=Decimal("25000"),
            commission_rate=Decimal("5"),
            bonus_amount=Decimal("250"),
        ),
        TierIn(
            tier_level=3,
            tier_name="Gold",
            minimum_sales=Decimal("25000"),
            commission_rate=Decimal("7"),
        ),
    ]


def tiered_plan_data(**overrides) -> PlanCreate:
    data = {
        "plan_name": "Tiered Rep Plan",
        "plan_type": PlanType.FIELD_SALES,
        "calculation_mode": CalculationMode.TIERED,
        "effective_date": date(2025, 1, 1),
        "tiers": tier_schedule(),
    }
    data.update(overrides)
    return PlanCreate(**data)


async def make_assignment(db, ctx, plan, employee_id="emp-1", **overrides):
    data = {
        "employee_id": employee_id,
        "plan_id": plan.id,
        "effective_date": date(2025, 1, 1),
    }
    data.update(overrides)
    return await assignments.assign_plan(db, ctx, AssignmentCreate(**data))


async def make_sale(db, ctx, employee_id="emp-1", amount="10000", **overrides):
    data = {
        "employee_id": employee_id,
        "transaction_type": TransactionType.INVOICE,
        "transaction_id": f"INV-{employee_id}-{amount}-{overrides.get('transaction_date', date(2025, 1, 15))}",
        "transaction_date": date(2025, 1, 15),
        "sale_amount": Decimal(amount),
        "category": ProductCategory.NEW_EQUIPMENT,
    }
    data.update(overrides)
    return await transactions.record_transaction(db, ctx, TransactionCreate(**data))


async def committed_calculation(sessionmaker, ctx, approve=False) -> int:
    """Store emp-1's January calculation on a 10000 sale and return its id."""
    async with sessionmaker() as db:
        plan = await plans.create_plan(db, ctx, flat_plan_data())
        await make_assignment(db, ctx, plan)
        await make_sale(db, ctx, amount="10000")
        calculation = await calculator.calculate(db, ctx, "emp-1", date(2025, 1, 1), date(2025, 1, 31))
        if approve:
            await settlement.approve(db, ctx, calculation.id)
        await db.commit()
        return calculation.id


@pytest_asyncio.fixture
async def flat_plan(db_session, manager_ctx):
    return await plans.create_plan(db_session, manager_ctx, flat_plan_data())


@pytest_asyncio.fixture
async def tiered_plan(db_session, manager_ctx):
    return await plans.create_plan(db_session, manager_ctx, tiered_plan_data())


# ── API client ───────────────────────────────────────────


@pytest_asyncio.fixture
async def client(db_session):
    """HTTP client bound to the app, sharing the test session."""
    from commissiondesk.db import get_db
    from commissiondesk.main import app

    async def override_get_db():
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def auth_headers(actor_id="mgr-1", role="manager", tenant_id=TENANT) -> dict:
    from commissiondesk.auth.jwt import create_access_token

    token = create_access_token(actor_id, tenant_id, role)
    return {"Authorization": f"Bearer {token}"}
