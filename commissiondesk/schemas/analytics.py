"""
Commission analytics schemas.
"""

from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel


class CommissionTotals(BaseModel):
    calculations: int
    participants: int
    total_sales: Decimal
    gross_commission: Decimal
    total_bonuses: Decimal
    total_adjustments: Decimal
    net_commission: Decimal
    average_payout: Decimal


class PlanPerformance(BaseModel):
    plan_id: int
    plan_name: str
    participants: int
    total_sales: Decimal
    net_commission: Decimal
    average_commission: Decimal


class TopPerformer(BaseModel):
    employee_id: str
    total_sales: Decimal
    net_commission: Decimal
    quota_achievement: Optional[Decimal]


class DisputeAnalysis(BaseModel):
    total: int
    open: int
    resolved: int
    rejected: int
    closed: int
    total_difference: Decimal
    by_type: Dict[str, int]


class AnalyticsResponse(BaseModel):
    """Aggregated view of a window of calculation periods."""

    period_start: date
    period_end: date
    totals: CommissionTotals
    by_status: Dict[str, int]
    plan_performance: List[PlanPerformance]
    top_performers: List[TopPerformer]
    disputes: DisputeAnalysis
