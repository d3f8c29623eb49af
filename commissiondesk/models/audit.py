"""
AuditLog model for tracking user actions.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from commissiondesk.models.base import Base, TenantMixin, str_enum, utcnow


class AuditAction(str, Enum):
    """Types of auditable actions."""
    CREATE_PLAN = "create_plan"
    UPDATE_PLAN = "update_plan"
    REPLACE_TIERS = "replace_tiers"
    REPLACE_PRODUCT_RATES = "replace_product_rates"
    ASSIGN_PLAN = "assign_plan"
    END_ASSIGNMENT = "end_assignment"
    RECORD_TRANSACTION = "record_transaction"
    CHARGE_BACK = "charge_back"
    CALCULATE = "calculate"
    APPROVE_CALCULATION = "approve_calculation"
    PAY_CALCULATION = "pay_calculation"
    CANCEL_CALCULATION = "cancel_calculation"
    REPROCESS_ADJUSTMENTS = "reprocess_adjustments"
    CREATE_ADJUSTMENT = "create_adjustment"
    APPROVE_ADJUSTMENT = "approve_adjustment"
    OPEN_DISPUTE = "open_dispute"
    UPDATE_DISPUTE = "update_dispute"
    TRANSITION_DISPUTE = "transition_dispute"


class AuditLog(Base, TenantMixin):
    """
    Audit log for tracking every mutating commission operation.

    Payout figures move money, so every change records who made it,
    from where, and on what.
    """

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(primary_key=True)
    actor_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )
    action: Mapped[AuditAction] = mapped_column(
        str_enum(AuditAction, "audit_action"),
        nullable=False,
        index=True,
    )
    target_type: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="Type of entity affected (plan, calculation, dispute, etc)",
    )
    target_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="ID of the affected entity",
    )
    action_metadata: Mapped[Optional[dict]] = mapped_column(
        JSON,
        nullable=True,
        comment="Additional context about the action",
    )
    ip_address: Mapped[Optional[str]] = mapped_column(
        String(45),
        nullable=True,
        comment="IPv4 or IPv6 address",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, actor_id='{self.actor_id}', action={self.action})>"
