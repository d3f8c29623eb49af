"""
Commission plan, tier bracket and product-category rate models.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from commissiondesk.models.base import Base, TenantMixin, TimestampMixin, str_enum


class PlanType(str, Enum):
    """Role a commission plan is written for."""
    SALES_REP = "sales_rep"
    SALES_MANAGER = "sales_manager"
    SERVICE_TECH = "service_tech"
    ACCOUNT_MANAGER = "account_manager"
    INSIDE_SALES = "inside_sales"
    FIELD_SALES = "field_sales"


class PaymentFrequency(str, Enum):
    """How often a plan pays out."""
    WEEKLY = "weekly"
    BI_WEEKLY = "bi_weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUALLY = "annually"


class CalculationMode(str, Enum):
    """Which rate source a plan uses. The two are never mixed."""
    FLAT = "flat"      # per-category CommissionProductRate
    TIERED = "tiered"  # plan-wide CommissionPlanTier brackets


class ProductCategory(str, Enum):
    """Commissionable product categories."""
    NEW_EQUIPMENT = "new_equipment"
    USED_EQUIPMENT = "used_equipment"
    SERVICE_CONTRACTS = "service_contracts"
    SUPPLIES = "supplies"
    SOFTWARE = "software"
    BILLABLE_HOURS = "billable_hours"
    PARTS_MARKUP = "parts_markup"
    ADDON_SALES = "addon_sales"


CATEGORY_NAMES = {
    ProductCategory.NEW_EQUIPMENT: "New Equipment",
    ProductCategory.USED_EQUIPMENT: "Used Equipment",
    ProductCategory.SERVICE_CONTRACTS: "Service Contracts",
    ProductCategory.SUPPLIES: "Supplies",
    ProductCategory.SOFTWARE: "Software",
    ProductCategory.BILLABLE_HOURS: "Billable Hours",
    ProductCategory.PARTS_MARKUP: "Parts Markup",
    ProductCategory.ADDON_SALES: "Add-on Sales",
}


class CommissionPlan(Base, TimestampMixin, TenantMixin):
    """
    A named commission plan.

    A plan owns its tier brackets and category rates. Which of the two is
    used is decided by calculation_mode, never by which child rows exist.
    """

    __tablename__ = "commission_plans"

    id: Mapped[int] = mapped_column(primary_key=True)
    plan_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )
    plan_type: Mapped[PlanType] = mapped_column(
        str_enum(PlanType, "plan_type"),
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        index=True,
    )
    calculation_mode: Mapped[CalculationMode] = mapped_column(
        str_enum(CalculationMode, "calculation_mode"),
        nullable=False,
    )
    effective_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        index=True,
    )
    end_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
        comment="NULL means open-ended",
    )

    # Payment settings
    payment_frequency: Mapped[PaymentFrequency] = mapped_column(
        str_enum(PaymentFrequency, "payment_frequency"),
        default=PaymentFrequency.MONTHLY,
        nullable=False,
    )
    payment_delay: Mapped[int] = mapped_column(
        Integer,
        default=30,
        nullable=False,
        comment="Days between period end and scheduled payout",
    )
    minimum_commission_payment: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        default=Decimal("0.00"),
        nullable=False,
    )

    # Rules
    split_commission_allowed: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    chargeback_enabled: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
    chargeback_period: Mapped[int] = mapped_column(
        Integer,
        default=90,
        nullable=False,
        comment="Days after the sale during which a chargeback is allowed",
    )
    bonus_rules: Mapped[Optional[list]] = mapped_column(
        JSON,
        nullable=True,
        comment="Tagged bonus rules, see services.rules",
    )

    created_by: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    updated_by: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )

    # Relationships
    tiers: Mapped[List["CommissionPlanTier"]] = relationship(
        "CommissionPlanTier",
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="CommissionPlanTier.tier_level",
        lazy="selectin",
    )
    product_rates: Mapped[List["CommissionProductRate"]] = relationship(
        "CommissionProductRate",
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="CommissionProductRate.category",
        lazy="selectin",
    )

    def is_effective_on(self, on_date: date) -> bool:
        """True if the plan is active and its date range covers on_date."""
        if not self.is_active or self.effective_date > on_date:
            return False
        return self.end_date is None or self.end_date >= on_date

    def __repr__(self) -> str:
        return f"<CommissionPlan(id={self.id}, name='{self.plan_name}', mode={self.calculation_mode})>"


class CommissionPlanTier(Base, TimestampMixin):
    """
    Sales-volume bracket of a tiered plan.

    Brackets are half-open: minimum_sales <= total < maximum_sales.
    A NULL maximum_sales marks the unbounded top tier.
    """

    __tablename__ = "commission_plan_tiers"

    id: Mapped[int] = mapped_column(primary_key=True)
    plan_id: Mapped[int] = mapped_column(
        ForeignKey("commission_plans.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tier_level: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    tier_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    minimum_sales: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        default=Decimal("0.00"),
        nullable=False,
    )
    maximum_sales: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(15, 2),
        nullable=True,
    )
    commission_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        comment="Percentage",
    )
    bonus_threshold: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(15, 2),
        nullable=True,
    )
    bonus_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    plan: Mapped["CommissionPlan"] = relationship(
        "CommissionPlan",
        back_populates="tiers",
    )

    def contains(self, amount: Decimal) -> bool:
        if amount < self.minimum_sales:
            return False
        return self.maximum_sales is None or amount < self.maximum_sales

    def __repr__(self) -> str:
        return f"<CommissionPlanTier(plan_id={self.plan_id}, level={self.tier_level}, rate={self.commission_rate})>"


class CommissionProductRate(Base, TimestampMixin):
    """Flat rate for one product category within a flat-mode plan."""

    __tablename__ = "commission_product_rates"
    __table_args__ = (
        UniqueConstraint("plan_id", "category", name="uq_product_rate_plan_category"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    plan_id: Mapped[int] = mapped_column(
        ForeignKey("commission_plans.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    category: Mapped[ProductCategory] = mapped_column(
        str_enum(ProductCategory, "product_category"),
        nullable=False,
        index=True,
    )
    category_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    commission_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        comment="Percentage",
    )
    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    plan: Mapped["CommissionPlan"] = relationship(
        "CommissionPlan",
        back_populates="product_rates",
    )

    def __repr__(self) -> str:
        return f"<CommissionProductRate(plan_id={self.plan_id}, category={self.category}, rate={self.commission_rate})>"
