"""
Tests for the commission schema.

Verifies that the ORM metadata creates every table and constraint the
services rely on, and that the migration script matches it.
"""

import pathlib

import pytest
import pytest_asyncio
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.ext.asyncio import create_async_engine

from commissiondesk.models import Base

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TABLES = [
    "commission_plans",
    "commission_plan_tiers",
    "commission_product_rates",
    "employee_commission_assignments",
    "commission_calculations",
    "commission_calculation_details",
    "commission_bonuses",
    "commission_sales_transactions",
    "commission_adjustments",
    "commission_disputes",
    "commission_dispute_history",
    "commission_events",
    "audit_logs",
]


@pytest_asyncio.fixture
async def schema():
    """Return {table_name: {"columns": [...], "unique": [...]}}."""
    eng = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with eng.connect() as conn:
        def _inspect(sync_conn):
            insp = sa_inspect(sync_conn)
            tables = {}
            for table in insp.get_table_names():
                tables[table] = {
                    "columns": [c["name"] for c in insp.get_columns(table)],
                    "unique": [u["name"] for u in insp.get_unique_constraints(table)],
                }
            return tables
        result = await conn.run_sync(_inspect)

    await eng.dispose()
    return result


# ── ORM metadata ─────────────────────────────────────────


class TestTables:
    def test_all_tables_created(self, schema):
        for table in TABLES:
            assert table in schema, f"Table '{table}' missing"

    def test_every_business_table_is_tenant_scoped(self, schema):
        for table in ["commission_plans", "commission_calculations", "commission_disputes", "commission_events"]:
            assert "tenant_id" in schema[table]["columns"]

    def test_calculation_key_is_unique(self, schema):
        assert "uq_calculation_employee_plan_period" in schema["commission_calculations"]["unique"]

    def test_dispute_number_is_unique(self, schema):
        assert "uq_dispute_tenant_number" in schema["commission_disputes"]["unique"]

    def test_one_rate_per_category(self, schema):
        assert "uq_product_rate_plan_category" in schema["commission_product_rates"]["unique"]

    def test_calculation_money_columns(self, schema):
        columns = schema["commission_calculations"]["columns"]
        for name in ["total_sales", "gross_commission", "total_bonuses", "total_adjustments", "net_commission"]:
            assert name in columns

    def test_history_status_columns(self, schema):
        columns = schema["commission_dispute_history"]["columns"]
        assert "previous_status" in columns
        assert "new_status" in columns


# ── Migration script structural checks ───────────────────


class TestMigrationScript:
    """Source-level checks of the initial migration."""

    @pytest.fixture
    def source(self):
        fpath = pathlib.Path(__file__).resolve().parent.parent / "alembic" / "versions" / "001_commission_schema.py"
        return fpath.read_text(encoding="utf-8")

    def test_revision_id(self, source):
        assert 'revision: str = "001_commission_schema"' in source

    def test_is_first_revision(self, source):
        assert "down_revision: Union[str, None] = None" in source

    def test_upgrade_covers_all_tables(self, source):
        up_start = source.index("def upgrade()")
        down_start = source.index("def downgrade()")
        upgrade_body = source[up_start:down_start]
        for table in TABLES:
            assert table in upgrade_body, f"Table '{table}' not found in upgrade()"

    def test_downgrade_covers_all_tables(self, source):
        downgrade_body = source[source.index("def downgrade()"):]
        for table in TABLES:
            assert table in downgrade_body, f"Table '{table}' not found in downgrade()"

    def test_constraints_match_models(self, source):
        for name in [
            "uq_calculation_employee_plan_period",
            "uq_dispute_tenant_number",
            "uq_product_rate_plan_category",
        ]:
            assert name in source

    def test_idempotency_guards(self, source):
        assert "_table_exists" in source
        assert "checkfirst=True" in source
