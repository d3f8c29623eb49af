"""Commission schema

Revision ID: 001_commission_schema
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy import inspect
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_commission_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# Enum types are created once up front; several columns share the same type
ENUMS = {
    "plan_type": (
        "sales_rep", "sales_manager", "service_tech",
        "account_manager", "inside_sales", "field_sales",
    ),
    "calculation_mode": ("flat", "tiered"),
    "payment_frequency": ("weekly", "bi_weekly", "monthly", "quarterly", "annually"),
    "product_category": (
        "new_equipment", "used_equipment", "service_contracts", "supplies",
        "software", "billable_hours", "parts_markup", "addon_sales",
    ),
    "calculation_status": ("draft", "calculated", "approved", "paid", "disputed", "cancelled"),
    "transaction_type": ("quote", "invoice", "contract", "service_call"),
    "adjustment_type": (
        "chargeback", "bonus", "penalty", "correction",
        "manual_adjustment", "split_adjustment",
    ),
    "dispute_status": ("submitted", "under_review", "escalated", "resolved", "rejected", "closed"),
    "dispute_type": (
        "calculation_error", "split_commission", "chargeback_dispute",
        "rate_dispute", "quota_dispute", "bonus_dispute",
    ),
    "dispute_priority": ("low", "medium", "high", "urgent"),
    "resolution_type": (
        "adjustment_approved", "partial_adjustment", "no_change", "explanation_provided",
    ),
    "event_status": ("pending", "dispatched"),
    "audit_action": (
        "create_plan", "update_plan", "replace_tiers", "replace_product_rates",
        "assign_plan", "end_assignment", "record_transaction", "charge_back",
        "calculate", "approve_calculation", "pay_calculation", "cancel_calculation",
        "reprocess_adjustments", "create_adjustment", "approve_adjustment",
        "open_dispute", "update_dispute", "transition_dispute",
    ),
}


def _enum(name: str) -> postgresql.ENUM:
    """Column type referring to an already created enum."""
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _table_exists(table: str) -> bool:
    """Check if a table already exists (idempotency guard)."""
    bind = op.get_bind()
    return table in inspect(bind).get_table_names()


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """Create the commission tables."""
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    # ── plans ───────────────────────────────────────────────
    if not _table_exists("commission_plans"):
        op.create_table(
            "commission_plans",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("tenant_id", sa.String(64), nullable=False),
            sa.Column("plan_name", sa.String(200), nullable=False),
            sa.Column("plan_type", _enum("plan_type"), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
            sa.Column("calculation_mode", _enum("calculation_mode"), nullable=False),
            sa.Column("effective_date", sa.Date(), nullable=False),
            sa.Column("end_date", sa.Date(), nullable=True),
            sa.Column("payment_frequency", _enum("payment_frequency"), server_default="monthly", nullable=False),
            sa.Column("payment_delay", sa.Integer(), server_default="30", nullable=False),
            sa.Column("minimum_commission_payment", sa.Numeric(10, 2), server_default="0", nullable=False),
            sa.Column("split_commission_allowed", sa.Boolean(), server_default=sa.false(), nullable=False),
            sa.Column("chargeback_enabled", sa.Boolean(), server_default=sa.true(), nullable=False),
            sa.Column("chargeback_period", sa.Integer(), server_default="90", nullable=False),
            sa.Column("bonus_rules", sa.JSON(), nullable=True),
            sa.Column("created_by", sa.String(64), nullable=False),
            sa.Column("updated_by", sa.String(64), nullable=True),
            *_timestamps(),
        )
        op.create_index("ix_commission_plans_tenant_id", "commission_plans", ["tenant_id"])
        op.create_index("ix_commission_plans_is_active", "commission_plans", ["is_active"])
        op.create_index("ix_commission_plans_effective_date", "commission_plans", ["effective_date"])

    if not _table_exists("commission_plan_tiers"):
        op.create_table(
            "commission_plan_tiers",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("plan_id", sa.Integer(), sa.ForeignKey("commission_plans.id", ondelete="CASCADE"), nullable=False),
            sa.Column("tier_level", sa.Integer(), nullable=False),
            sa.Column("tier_name", sa.String(100), nullable=False),
            sa.Column("minimum_sales", sa.Numeric(15, 2), server_default="0", nullable=False),
            sa.Column("maximum_sales", sa.Numeric(15, 2), nullable=True),
            sa.Column("commission_rate", sa.Numeric(5, 2), nullable=False),
            sa.Column("bonus_threshold", sa.Numeric(15, 2), nullable=True),
            sa.Column("bonus_amount", sa.Numeric(10, 2), nullable=True),
            sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
            *_timestamps(),
        )
        op.create_index("ix_commission_plan_tiers_plan_id", "commission_plan_tiers", ["plan_id"])

    if not _table_exists("commission_product_rates"):
        op.create_table(
            "commission_product_rates",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("plan_id", sa.Integer(), sa.ForeignKey("commission_plans.id", ondelete="CASCADE"), nullable=False),
            sa.Column("category", _enum("product_category"), nullable=False),
            sa.Column("category_name", sa.String(100), nullable=False),
            sa.Column("commission_rate", sa.Numeric(5, 2), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
            *_timestamps(),
            sa.UniqueConstraint("plan_id", "category", name="uq_product_rate_plan_category"),
        )
        op.create_index("ix_commission_product_rates_plan_id", "commission_product_rates", ["plan_id"])
        op.create_index("ix_commission_product_rates_category", "commission_product_rates", ["category"])

    # ── assignments ─────────────────────────────────────────
    if not _table_exists("employee_commission_assignments"):
        op.create_table(
            "employee_commission_assignments",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("tenant_id", sa.String(64), nullable=False),
            sa.Column("employee_id", sa.String(64), nullable=False),
            sa.Column("plan_id", sa.Integer(), sa.ForeignKey("commission_plans.id"), nullable=False),
            sa.Column("effective_date", sa.Date(), nullable=False),
            sa.Column("end_date", sa.Date(), nullable=True),
            sa.Column("quota_target", sa.Numeric(15, 2), nullable=True),
            sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
            sa.Column("custom_rates", sa.JSON(), nullable=True),
            sa.Column("assigned_by", sa.String(64), nullable=False),
            *_timestamps(),
        )
        for column in ("tenant_id", "employee_id", "plan_id", "effective_date", "is_active"):
            op.create_index(
                f"ix_employee_commission_assignments_{column}",
                "employee_commission_assignments",
                [column],
            )

    # ── calculations ────────────────────────────────────────
    if not _table_exists("commission_calculations"):
        op.create_table(
            "commission_calculations",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("tenant_id", sa.String(64), nullable=False),
            sa.Column("employee_id", sa.String(64), nullable=False),
            sa.Column("plan_id", sa.Integer(), sa.ForeignKey("commission_plans.id"), nullable=False),
            sa.Column(
                "assignment_id",
                sa.Integer(),
                sa.ForeignKey("employee_commission_assignments.id"),
                nullable=True,
            ),
            sa.Column("calculation_period_start", sa.Date(), nullable=False),
            sa.Column("calculation_period_end", sa.Date(), nullable=False),
            sa.Column("period_name", sa.String(100), nullable=False),
            sa.Column("total_sales", sa.Numeric(15, 2), server_default="0", nullable=False),
            sa.Column("quota_target", sa.Numeric(15, 2), nullable=True),
            sa.Column("quota_achievement", sa.Numeric(7, 2), nullable=True),
            sa.Column("gross_commission", sa.Numeric(12, 2), server_default="0", nullable=False),
            sa.Column("total_bonuses", sa.Numeric(12, 2), server_default="0", nullable=False),
            sa.Column("total_adjustments", sa.Numeric(12, 2), server_default="0", nullable=False),
            sa.Column("net_commission", sa.Numeric(12, 2), server_default="0", nullable=False),
            sa.Column("status", _enum("calculation_status"), server_default="draft", nullable=False),
            sa.Column("requires_review", sa.Boolean(), server_default=sa.false(), nullable=False),
            sa.Column("review_reason", sa.Text(), nullable=True),
            sa.Column("calculated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("payout_date", sa.Date(), nullable=True),
            sa.Column("calculated_by", sa.String(64), nullable=True),
            sa.Column("approved_by", sa.String(64), nullable=True),
            sa.Column("paid_by", sa.String(64), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            *_timestamps(),
            sa.UniqueConstraint(
                "tenant_id",
                "employee_id",
                "plan_id",
                "calculation_period_start",
                "calculation_period_end",
                name="uq_calculation_employee_plan_period",
            ),
        )
        for column in ("tenant_id", "employee_id", "plan_id", "status", "payout_date"):
            op.create_index(f"ix_commission_calculations_{column}", "commission_calculations", [column])
        op.create_index(
            "ix_commission_calculations_period",
            "commission_calculations",
            ["calculation_period_start", "calculation_period_end"],
        )

    if not _table_exists("commission_calculation_details"):
        op.create_table(
            "commission_calculation_details",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "calculation_id",
                sa.Integer(),
                sa.ForeignKey("commission_calculations.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("category", sa.String(50), nullable=False),
            sa.Column("category_name", sa.String(100), nullable=False),
            sa.Column("sales_amount", sa.Numeric(15, 2), server_default="0", nullable=False),
            sa.Column("commission_rate", sa.Numeric(5, 2), nullable=False),
            sa.Column("commission_amount", sa.Numeric(12, 2), server_default="0", nullable=False),
            sa.Column("transaction_count", sa.Integer(), server_default="0", nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
        op.create_index(
            "ix_commission_calculation_details_calculation_id",
            "commission_calculation_details",
            ["calculation_id"],
        )
        op.create_index(
            "ix_commission_calculation_details_category",
            "commission_calculation_details",
            ["category"],
        )

    if not _table_exists("commission_bonuses"):
        op.create_table(
            "commission_bonuses",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "calculation_id",
                sa.Integer(),
                sa.ForeignKey("commission_calculations.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("bonus_type", sa.String(50), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("eligibility_met", sa.Boolean(), server_default=sa.false(), nullable=False),
            sa.Column("eligibility_criteria", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
        op.create_index("ix_commission_bonuses_calculation_id", "commission_bonuses", ["calculation_id"])
        op.create_index("ix_commission_bonuses_bonus_type", "commission_bonuses", ["bonus_type"])

    # ── transactions ────────────────────────────────────────
    if not _table_exists("commission_sales_transactions"):
        op.create_table(
            "commission_sales_transactions",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("tenant_id", sa.String(64), nullable=False),
            sa.Column(
                "calculation_id",
                sa.Integer(),
                sa.ForeignKey("commission_calculations.id"),
                nullable=True,
            ),
            sa.Column("employee_id", sa.String(64), nullable=False),
            sa.Column("transaction_type", _enum("transaction_type"), nullable=False),
            sa.Column("transaction_id", sa.String(64), nullable=False),
            sa.Column("transaction_number", sa.String(100), nullable=True),
            sa.Column("transaction_date", sa.Date(), nullable=False),
            sa.Column("customer_id", sa.String(64), nullable=True),
            sa.Column("customer_name", sa.String(200), nullable=True),
            sa.Column("sale_amount", sa.Numeric(15, 2), nullable=False),
            sa.Column("commissionable_amount", sa.Numeric(15, 2), nullable=False),
            sa.Column("category", _enum("product_category"), nullable=False),
            sa.Column("commission_rate", sa.Numeric(5, 2), nullable=True),
            sa.Column("commission_amount", sa.Numeric(12, 2), nullable=True),
            sa.Column("is_split_commission", sa.Boolean(), server_default=sa.false(), nullable=False),
            sa.Column("split_percentage", sa.Numeric(5, 2), server_default="100", nullable=False),
            sa.Column("primary_employee_id", sa.String(64), nullable=True),
            sa.Column("is_processed", sa.Boolean(), server_default=sa.false(), nullable=False),
            sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("is_charged_back", sa.Boolean(), server_default=sa.false(), nullable=False),
            sa.Column("charged_back_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("chargeback_reason", sa.Text(), nullable=True),
            *_timestamps(),
        )
        for column in ("tenant_id", "calculation_id", "category", "is_processed"):
            op.create_index(
                f"ix_commission_sales_transactions_{column}",
                "commission_sales_transactions",
                [column],
            )
        op.create_index(
            "ix_commission_sales_transactions_sale",
            "commission_sales_transactions",
            ["tenant_id", "transaction_type", "transaction_id"],
        )
        op.create_index(
            "ix_commission_sales_transactions_employee_date",
            "commission_sales_transactions",
            ["employee_id", "transaction_date"],
        )

    # ── adjustments ─────────────────────────────────────────
    if not _table_exists("commission_adjustments"):
        op.create_table(
            "commission_adjustments",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("tenant_id", sa.String(64), nullable=False),
            sa.Column(
                "calculation_id",
                sa.Integer(),
                sa.ForeignKey("commission_calculations.id"),
                nullable=True,
            ),
            sa.Column("employee_id", sa.String(64), nullable=False),
            sa.Column("adjustment_type", _enum("adjustment_type"), nullable=False),
            sa.Column("amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("reason", sa.Text(), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("effective_date", sa.Date(), nullable=False),
            sa.Column("reference_type", sa.String(50), nullable=True),
            sa.Column("reference_id", sa.String(64), nullable=True),
            sa.Column("reference_name", sa.String(200), nullable=True),
            sa.Column("is_processed", sa.Boolean(), server_default=sa.false(), nullable=False),
            sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("requires_approval", sa.Boolean(), server_default=sa.true(), nullable=False),
            sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("approved_by", sa.String(64), nullable=True),
            sa.Column("created_by", sa.String(64), nullable=False),
            *_timestamps(),
        )
        for column in ("tenant_id", "calculation_id", "employee_id", "adjustment_type", "is_processed"):
            op.create_index(f"ix_commission_adjustments_{column}", "commission_adjustments", [column])

    # ── disputes ────────────────────────────────────────────
    if not _table_exists("commission_disputes"):
        op.create_table(
            "commission_disputes",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("tenant_id", sa.String(64), nullable=False),
            sa.Column("dispute_number", sa.String(30), nullable=False),
            sa.Column(
                "calculation_id",
                sa.Integer(),
                sa.ForeignKey("commission_calculations.id"),
                nullable=False,
            ),
            sa.Column("employee_id", sa.String(64), nullable=False),
            sa.Column("dispute_type", _enum("dispute_type"), nullable=False),
            sa.Column("status", _enum("dispute_status"), server_default="submitted", nullable=False),
            sa.Column("priority", _enum("dispute_priority"), server_default="medium", nullable=False),
            sa.Column("disputed_amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("expected_amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("difference", sa.Numeric(12, 2), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("employee_comments", sa.Text(), nullable=True),
            sa.Column("manager_comments", sa.Text(), nullable=True),
            sa.Column("assigned_to", sa.String(64), nullable=True),
            sa.Column("estimated_resolution", sa.Date(), nullable=True),
            sa.Column("actual_resolution", sa.DateTime(timezone=True), nullable=True),
            sa.Column("resolution_type", _enum("resolution_type"), nullable=True),
            sa.Column("adjustment_amount", sa.Numeric(12, 2), nullable=True),
            sa.Column(
                "adjustment_id",
                sa.Integer(),
                sa.ForeignKey("commission_adjustments.id"),
                nullable=True,
            ),
            sa.Column("resolution_notes", sa.Text(), nullable=True),
            sa.Column("submitted_by", sa.String(64), nullable=False),
            sa.Column("resolved_by", sa.String(64), nullable=True),
            *_timestamps(),
            sa.UniqueConstraint("tenant_id", "dispute_number", name="uq_dispute_tenant_number"),
        )
        for column in ("tenant_id", "dispute_number", "calculation_id", "employee_id", "status", "assigned_to"):
            op.create_index(f"ix_commission_disputes_{column}", "commission_disputes", [column])

    if not _table_exists("commission_dispute_history"):
        op.create_table(
            "commission_dispute_history",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("dispute_id", sa.Integer(), sa.ForeignKey("commission_disputes.id"), nullable=False),
            sa.Column("action", sa.String(50), nullable=False),
            sa.Column("actor_id", sa.String(64), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("previous_status", _enum("dispute_status"), nullable=True),
            sa.Column("new_status", _enum("dispute_status"), nullable=True),
            sa.Column("metadata", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
        for column in ("dispute_id", "action", "created_at"):
            op.create_index(f"ix_commission_dispute_history_{column}", "commission_dispute_history", [column])

    # ── events & audit ──────────────────────────────────────
    if not _table_exists("commission_events"):
        op.create_table(
            "commission_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("tenant_id", sa.String(64), nullable=False),
            sa.Column("event_type", sa.String(50), nullable=False),
            sa.Column("subject_type", sa.String(50), nullable=False),
            sa.Column("subject_id", sa.Integer(), nullable=False),
            sa.Column("payload", sa.JSON(), nullable=True),
            sa.Column("status", _enum("event_status"), server_default="pending", nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column("dispatched_at", sa.DateTime(timezone=True), nullable=True),
        )
        for column in ("tenant_id", "event_type", "status"):
            op.create_index(f"ix_commission_events_{column}", "commission_events", [column])

    if not _table_exists("audit_logs"):
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("tenant_id", sa.String(64), nullable=False),
            sa.Column("actor_id", sa.String(64), nullable=False),
            sa.Column("action", _enum("audit_action"), nullable=False),
            sa.Column("target_type", sa.String(50), nullable=True),
            sa.Column("target_id", sa.Integer(), nullable=True),
            sa.Column("action_metadata", sa.JSON(), nullable=True),
            sa.Column("ip_address", sa.String(45), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
        for column in ("tenant_id", "actor_id", "action", "created_at"):
            op.create_index(f"ix_audit_logs_{column}", "audit_logs", [column])


def downgrade() -> None:
    """Drop the commission tables and enum types."""
    for table in (
        "audit_logs",
        "commission_events",
        "commission_dispute_history",
        "commission_disputes",
        "commission_adjustments",
        "commission_sales_transactions",
        "commission_bonuses",
        "commission_calculation_details",
        "commission_calculations",
        "employee_commission_assignments",
        "commission_product_rates",
        "commission_plan_tiers",
        "commission_plans",
    ):
        if _table_exists(table):
            op.drop_table(table)

    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).drop(bind, checkfirst=True)
