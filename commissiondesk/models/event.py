"""
CommissionEvent model: outbox of domain events for the notification layer.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from commissiondesk.models.base import Base, TenantMixin, str_enum, utcnow


class EventStatus(str, Enum):
    """Delivery status of an outbox event."""
    PENDING = "pending"        # Waiting for a consumer
    DISPATCHED = "dispatched"  # Picked up by a consumer


class EventType(str, Enum):
    CALCULATION_COMPLETED = "calculation.completed"
    CALCULATION_APPROVED = "calculation.approved"
    CALCULATION_PAID = "calculation.paid"
    CALCULATION_CANCELLED = "calculation.cancelled"
    DISPUTE_OPENED = "dispute.opened"
    DISPUTE_STATUS_CHANGED = "dispute.status_changed"
    TRANSACTION_CHARGED_BACK = "transaction.charged_back"


class CommissionEvent(Base, TenantMixin):
    """
    Outgoing domain event.

    Events are added by the services in the same transaction as the change
    they describe and drained by whatever delivers notifications.
    """

    __tablename__ = "commission_events"

    id: Mapped[int] = mapped_column(primary_key=True)
    event_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
    )
    subject_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="calculation, dispute, transaction",
    )
    subject_id: Mapped[int] = mapped_column(
        nullable=False,
    )
    payload: Mapped[Optional[dict]] = mapped_column(
        JSON,
        nullable=True,
    )
    status: Mapped[EventStatus] = mapped_column(
        str_enum(EventStatus, "event_status"),
        default=EventStatus.PENDING,
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    dispatched_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<CommissionEvent(id={self.id}, type={self.event_type}, status={self.status})>"
