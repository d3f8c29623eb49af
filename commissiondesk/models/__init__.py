"""
Database models for Commission Desk.

All models are exported here for convenient imports:
    from commissiondesk.models import CommissionPlan, CommissionCalculation, etc.
"""

from commissiondesk.models.adjustment import AdjustmentType, CommissionAdjustment
from commissiondesk.models.assignment import EmployeeCommissionAssignment
from commissiondesk.models.audit import AuditAction, AuditLog
from commissiondesk.models.base import Base, TenantMixin, TimestampMixin
from commissiondesk.models.calculation import (
    CalculationStatus,
    CommissionBonus,
    CommissionCalculation,
    CommissionCalculationDetail,
)
from commissiondesk.models.dispute import (
    AppendOnlyViolation,
    CommissionDispute,
    CommissionDisputeHistory,
    DisputePriority,
    DisputeStatus,
    DisputeType,
    ResolutionType,
)
from commissiondesk.models.event import CommissionEvent, EventStatus, EventType
from commissiondesk.models.plan import (
    CalculationMode,
    CommissionPlan,
    CommissionPlanTier,
    CommissionProductRate,
    PaymentFrequency,
    PlanType,
    ProductCategory,
)
from commissiondesk.models.transaction import CommissionSalesTransaction, TransactionType

__all__ = [
    # Base
    "Base",
    "TenantMixin",
    "TimestampMixin",
    # Plan
    "CommissionPlan",
    "CommissionPlanTier",
    "CommissionProductRate",
    "CalculationMode",
    "PaymentFrequency",
    "PlanType",
    "ProductCategory",
    # Assignment
    "EmployeeCommissionAssignment",
    # Transaction
    "CommissionSalesTransaction",
    "TransactionType",
    # Calculation
    "CommissionCalculation",
    "CommissionCalculationDetail",
    "CommissionBonus",
    "CalculationStatus",
    # Adjustment
    "CommissionAdjustment",
    "AdjustmentType",
    # Dispute
    "CommissionDispute",
    "CommissionDisputeHistory",
    "DisputeStatus",
    "DisputeType",
    "DisputePriority",
    "ResolutionType",
    "AppendOnlyViolation",
    # Events
    "CommissionEvent",
    "EventStatus",
    "EventType",
    # Audit
    "AuditLog",
    "AuditAction",
]
