"""
Calculation request and response schemas.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from commissiondesk.models.calculation import CalculationStatus


class _Period(BaseModel):
    period_start: date
    period_end: date

    @model_validator(mode="after")
    def check_period(self):
        if self.period_end < self.period_start:
            raise ValueError("period_end must not be before period_start")
        return self


class CalculateRequest(_Period):
    """Calculate one employee's commission for a period."""

    employee_id: str = Field(..., min_length=1, max_length=64)


class PeriodCalculateRequest(_Period):
    """Batch run. Omit employee_ids to run everyone assigned on period_end."""

    employee_ids: Optional[List[str]] = None


class PayRequest(BaseModel):
    payout_date: Optional[date] = Field(None, description="Defaults to today")


class CancelRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=2000)


class DetailResponse(BaseModel):
    id: int
    category: str
    category_name: str
    sales_amount: Decimal
    commission_rate: Decimal
    commission_amount: Decimal
    transaction_count: int
    description: Optional[str]

    model_config = {"from_attributes": True}


class BonusResponse(BaseModel):
    id: int
    bonus_type: str
    description: str
    amount: Decimal
    eligibility_met: bool
    eligibility_criteria: Optional[dict]

    model_config = {"from_attributes": True}


class CalculationSummary(BaseModel):
    """Calculation without its detail and bonus lines."""

    id: int
    employee_id: str
    plan_id: int
    assignment_id: Optional[int]
    calculation_period_start: date
    calculation_period_end: date
    period_name: str
    total_sales: Decimal
    quota_target: Optional[Decimal]
    quota_achievement: Optional[Decimal]
    gross_commission: Decimal
    total_bonuses: Decimal
    total_adjustments: Decimal
    net_commission: Decimal
    status: CalculationStatus
    requires_review: bool
    review_reason: Optional[str]
    calculated_at: Optional[datetime]
    approved_at: Optional[datetime]
    paid_at: Optional[datetime]
    payout_date: Optional[date]
    calculated_by: Optional[str]
    approved_by: Optional[str]
    paid_by: Optional[str]
    notes: Optional[str]

    model_config = {"from_attributes": True}


class CalculationResponse(CalculationSummary):
    plan_name: Optional[str] = None
    details: List[DetailResponse] = []
    bonuses: List[BonusResponse] = []

    @classmethod
    def from_calculation(cls, calculation) -> "CalculationResponse":
        response = cls.model_validate(calculation)
        response.plan_name = calculation.plan.plan_name if calculation.plan else None
        return response


class CalculationListResponse(BaseModel):
    items: List[CalculationSummary]
    total: int
    page: int
    per_page: int
    pages: int


class EmployeeError(BaseModel):
    employee_id: str
    code: str
    message: str


class EmployeeWarning(BaseModel):
    employee_id: str
    message: str


class PeriodRunResponse(BaseModel):
    """Outcome of a batch calculation run."""

    period_start: date
    period_end: date
    processed: int
    succeeded: int
    calculation_ids: List[int]
    total_gross: Decimal
    total_net: Decimal
    errors: List[EmployeeError]
    warnings: List[EmployeeWarning]
