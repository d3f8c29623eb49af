"""
Commission calculation models: one calculation per employee per period,
with per-category detail lines and bonus lines.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from commissiondesk.models.base import Base, TenantMixin, TimestampMixin, str_enum, utcnow

if TYPE_CHECKING:
    from commissiondesk.models.plan import CommissionPlan


class CalculationStatus(str, Enum):
    """Lifecycle of a calculation."""
    DRAFT = "draft"
    CALCULATED = "calculated"
    APPROVED = "approved"
    PAID = "paid"
    DISPUTED = "disputed"
    CANCELLED = "cancelled"


# Statuses a recalculation may overwrite
REPLACEABLE_STATUSES = (
    CalculationStatus.DRAFT,
    CalculationStatus.CALCULATED,
    CalculationStatus.CANCELLED,
)
FINALIZED_STATUSES = (CalculationStatus.APPROVED, CalculationStatus.PAID)


class CommissionCalculation(Base, TimestampMixin, TenantMixin):
    """
    Commission result for one employee over one period.

    Invariants:
    - gross_commission == sum(details.commission_amount)
    - total_bonuses == sum(bonuses.amount where eligibility_met)
    - net_commission == gross_commission + total_bonuses + total_adjustments
    """

    __tablename__ = "commission_calculations"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "employee_id",
            "plan_id",
            "calculation_period_start",
            "calculation_period_end",
            name="uq_calculation_employee_plan_period",
        ),
        Index(
            "ix_commission_calculations_period",
            "calculation_period_start",
            "calculation_period_end",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    employee_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )
    plan_id: Mapped[int] = mapped_column(
        ForeignKey("commission_plans.id"),
        nullable=False,
        index=True,
    )
    assignment_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("employee_commission_assignments.id"),
        nullable=True,
    )
    calculation_period_start: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )
    calculation_period_end: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )
    period_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment='"January 2025", "Q1 2025", ...',
    )

    # Sales metrics
    total_sales: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        default=Decimal("0.00"),
        nullable=False,
    )
    quota_target: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(15, 2),
        nullable=True,
    )
    quota_achievement: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(7, 2),
        nullable=True,
        comment="Percentage of quota_target",
    )

    # Results
    gross_commission: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False,
    )
    total_bonuses: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False,
    )
    total_adjustments: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False,
    )
    net_commission: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False,
    )

    # Status and processing
    status: Mapped[CalculationStatus] = mapped_column(
        str_enum(CalculationStatus, "calculation_status"),
        default=CalculationStatus.DRAFT,
        nullable=False,
        index=True,
    )
    requires_review: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    review_reason: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    calculated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    payout_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
        index=True,
    )

    calculated_by: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )
    approved_by: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )
    paid_by: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )
    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    # Relationships
    plan: Mapped["CommissionPlan"] = relationship(
        "CommissionPlan",
        lazy="selectin",
    )
    details: Mapped[List["CommissionCalculationDetail"]] = relationship(
        "CommissionCalculationDetail",
        back_populates="calculation",
        cascade="all, delete-orphan",
        order_by="CommissionCalculationDetail.category",
        lazy="selectin",
    )
    bonuses: Mapped[List["CommissionBonus"]] = relationship(
        "CommissionBonus",
        back_populates="calculation",
        cascade="all, delete-orphan",
        order_by="CommissionBonus.id",
        lazy="selectin",
    )

    @property
    def is_finalized(self) -> bool:
        return self.status in FINALIZED_STATUSES

    def refresh_net(self) -> None:
        """Re-derive net_commission from its three components."""
        self.net_commission = self.gross_commission + self.total_bonuses + self.total_adjustments

    def __repr__(self) -> str:
        return (
            f"<CommissionCalculation(id={self.id}, employee_id='{self.employee_id}', "
            f"period='{self.period_name}', status={self.status})>"
        )


class CommissionCalculationDetail(Base):
    """Per-category breakdown line of a calculation."""

    __tablename__ = "commission_calculation_details"

    id: Mapped[int] = mapped_column(primary_key=True)
    calculation_id: Mapped[int] = mapped_column(
        ForeignKey("commission_calculations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    category: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
    )
    category_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    sales_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        default=Decimal("0.00"),
        nullable=False,
    )
    commission_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
    )
    commission_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False,
    )
    transaction_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    calculation: Mapped["CommissionCalculation"] = relationship(
        "CommissionCalculation",
        back_populates="details",
    )


class CommissionBonus(Base):
    """
    Bonus line attached to a calculation.

    Rows are written whether or not the rule was met so the
    evaluation is visible; only eligible rows count towards total_bonuses.
    """

    __tablename__ = "commission_bonuses"

    id: Mapped[int] = mapped_column(primary_key=True)
    calculation_id: Mapped[int] = mapped_column(
        ForeignKey("commission_calculations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    bonus_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
        comment="tier_bonus, threshold_bonus, quota_bonus",
    )
    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )
    eligibility_met: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    eligibility_criteria: Mapped[Optional[dict]] = mapped_column(
        JSON,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    calculation: Mapped["CommissionCalculation"] = relationship(
        "CommissionCalculation",
        back_populates="bonuses",
    )
