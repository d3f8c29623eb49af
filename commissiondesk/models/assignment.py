"""
EmployeeCommissionAssignment model binding an employee to a plan.
"""

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, Date, ForeignKey, JSON, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from commissiondesk.models.base import Base, TenantMixin, TimestampMixin

if TYPE_CHECKING:
    from commissiondesk.models.plan import CommissionPlan


class EmployeeCommissionAssignment(Base, TimestampMixin, TenantMixin):
    """
    Binds an employee to a commission plan for a date range.

    Active ranges of the same employee must not overlap. This is checked
    when an assignment is written and again when one is resolved.
    """

    __tablename__ = "employee_commission_assignments"

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
    effective_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        index=True,
    )
    end_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
        comment="NULL means current assignment",
    )
    quota_target: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(15, 2),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        index=True,
    )
    custom_rates: Mapped[Optional[list]] = mapped_column(
        JSON,
        nullable=True,
        comment="Tagged rate overrides, see services.rules",
    )
    assigned_by: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    plan: Mapped["CommissionPlan"] = relationship(
        "CommissionPlan",
        lazy="selectin",
    )

    def covers(self, on_date: date) -> bool:
        if self.effective_date > on_date:
            return False
        return self.end_date is None or self.end_date >= on_date

    def overlaps(self, start: date, end: Optional[date]) -> bool:
        """True if [start, end] intersects this assignment's range."""
        if end is not None and end < self.effective_date:
            return False
        return self.end_date is None or self.end_date >= start

    def __repr__(self) -> str:
        return (
            f"<EmployeeCommissionAssignment(id={self.id}, employee_id='{self.employee_id}', "
            f"plan_id={self.plan_id})>"
        )
