"""
Commission dispute and its append-only history.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from commissiondesk.models.base import Base, TenantMixin, TimestampMixin, str_enum, utcnow

if TYPE_CHECKING:
    from commissiondesk.models.calculation import CommissionCalculation


class DisputeStatus(str, Enum):
    """Dispute workflow states."""
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    ESCALATED = "escalated"
    RESOLVED = "resolved"
    REJECTED = "rejected"
    CLOSED = "closed"


OPEN_DISPUTE_STATUSES = (
    DisputeStatus.SUBMITTED,
    DisputeStatus.UNDER_REVIEW,
    DisputeStatus.ESCALATED,
)


class DisputeType(str, Enum):
    """What the employee is contesting."""
    CALCULATION_ERROR = "calculation_error"
    SPLIT_COMMISSION = "split_commission"
    CHARGEBACK_DISPUTE = "chargeback_dispute"
    RATE_DISPUTE = "rate_dispute"
    QUOTA_DISPUTE = "quota_dispute"
    BONUS_DISPUTE = "bonus_dispute"


class DisputePriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ResolutionType(str, Enum):
    """How a dispute was resolved."""
    ADJUSTMENT_APPROVED = "adjustment_approved"
    PARTIAL_ADJUSTMENT = "partial_adjustment"
    NO_CHANGE = "no_change"
    EXPLANATION_PROVIDED = "explanation_provided"

    @property
    def changes_payout(self) -> bool:
        return self in (ResolutionType.ADJUSTMENT_APPROVED, ResolutionType.PARTIAL_ADJUSTMENT)


class CommissionDispute(Base, TimestampMixin, TenantMixin):
    """A formal contest of one calculation."""

    __tablename__ = "commission_disputes"
    __table_args__ = (
        UniqueConstraint("tenant_id", "dispute_number", name="uq_dispute_tenant_number"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    dispute_number: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        index=True,
    )
    calculation_id: Mapped[int] = mapped_column(
        ForeignKey("commission_calculations.id"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )

    dispute_type: Mapped[DisputeType] = mapped_column(
        str_enum(DisputeType, "dispute_type"),
        nullable=False,
    )
    status: Mapped[DisputeStatus] = mapped_column(
        str_enum(DisputeStatus, "dispute_status"),
        default=DisputeStatus.SUBMITTED,
        nullable=False,
        index=True,
    )
    priority: Mapped[DisputePriority] = mapped_column(
        str_enum(DisputePriority, "dispute_priority"),
        default=DisputePriority.MEDIUM,
        nullable=False,
    )

    # Amounts
    disputed_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Amount the employee was given",
    )
    expected_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Amount the employee believes is owed",
    )
    difference: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="expected_amount - disputed_amount",
    )

    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    employee_comments: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    manager_comments: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    # Assignment and resolution
    assigned_to: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        index=True,
    )
    estimated_resolution: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
    )
    actual_resolution: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    resolution_type: Mapped[Optional[ResolutionType]] = mapped_column(
        str_enum(ResolutionType, "resolution_type"),
        nullable=True,
    )
    adjustment_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
    )
    adjustment_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("commission_adjustments.id"),
        nullable=True,
    )
    resolution_notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    submitted_by: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    resolved_by: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )

    calculation: Mapped["CommissionCalculation"] = relationship(
        "CommissionCalculation",
        lazy="selectin",
    )

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_DISPUTE_STATUSES

    def __repr__(self) -> str:
        return f"<CommissionDispute(id={self.id}, number='{self.dispute_number}', status={self.status})>"


class CommissionDisputeHistory(Base):
    """
    Audit trail of dispute status transitions.

    Rows are insert-only: the ORM refuses to update or delete them,
    see the mapper listeners below.
    """

    __tablename__ = "commission_dispute_history"

    id: Mapped[int] = mapped_column(primary_key=True)
    dispute_id: Mapped[int] = mapped_column(
        ForeignKey("commission_disputes.id"),
        nullable=False,
        index=True,
    )
    action: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
    )
    actor_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    previous_status: Mapped[Optional[DisputeStatus]] = mapped_column(
        str_enum(DisputeStatus, "dispute_status"),
        nullable=True,
    )
    new_status: Mapped[Optional[DisputeStatus]] = mapped_column(
        str_enum(DisputeStatus, "dispute_status"),
        nullable=True,
    )
    history_metadata: Mapped[Optional[dict]] = mapped_column(
        "metadata",
        JSON,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return (
            f"<CommissionDisputeHistory(dispute_id={self.dispute_id}, "
            f"{self.previous_status} -> {self.new_status})>"
        )


class AppendOnlyViolation(RuntimeError):
    """Raised when code tries to change or remove a dispute history row."""


@event.listens_for(CommissionDisputeHistory, "before_update")
def _refuse_history_update(mapper, connection, target):
    raise AppendOnlyViolation(f"Dispute history row {target.id} cannot be updated")


@event.listens_for(CommissionDisputeHistory, "before_delete")
def _refuse_history_delete(mapper, connection, target):
    raise AppendOnlyViolation(f"Dispute history row {target.id} cannot be deleted")
