"""
CommissionAdjustment model for chargebacks, corrections and manual changes.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from commissiondesk.models.base import Base, TenantMixin, TimestampMixin, str_enum


class AdjustmentType(str, Enum):
    """Kinds of commission adjustment."""
    CHARGEBACK = "chargeback"
    BONUS = "bonus"
    PENALTY = "penalty"
    CORRECTION = "correction"
    MANUAL_ADJUSTMENT = "manual_adjustment"
    SPLIT_ADJUSTMENT = "split_adjustment"


class CommissionAdjustment(Base, TimestampMixin, TenantMixin):
    """
    Signed amount applied to a calculation, or standalone.

    A standalone adjustment (calculation_id NULL) is picked up by the
    calculation of the period containing its effective_date. Only approved
    adjustments are ever counted.
    """

    __tablename__ = "commission_adjustments"

    id: Mapped[int] = mapped_column(primary_key=True)
    calculation_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("commission_calculations.id"),
        nullable=True,
        index=True,
    )
    employee_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )
    adjustment_type: Mapped[AdjustmentType] = mapped_column(
        str_enum(AdjustmentType, "adjustment_type"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Positive or negative",
    )
    reason: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    effective_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    # Reference to the originating record (quote, invoice, dispute, ...)
    reference_type: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
    )
    reference_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )
    reference_name: Mapped[Optional[str]] = mapped_column(
        String(200),
        nullable=True,
    )

    # Processing
    is_processed: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        index=True,
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Approval
    requires_approval: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    approved_by: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )

    created_by: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    @property
    def is_approved(self) -> bool:
        return self.approved_at is not None

    def __repr__(self) -> str:
        return (
            f"<CommissionAdjustment(id={self.id}, type={self.adjustment_type}, "
            f"amount={self.amount}, calculation_id={self.calculation_id})>"
        )
