"""
Commission adjustment schemas.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from commissiondesk.models.adjustment import AdjustmentType


class AdjustmentCreate(BaseModel):
    """
    Request to create an adjustment.

    Either linked to a calculation (calculation_id) or standalone for an
    employee, in which case it is picked up by the calculation whose period
    contains effective_date.
    """

    calculation_id: Optional[int] = None
    employee_id: Optional[str] = Field(None, min_length=1, max_length=64)
    adjustment_type: AdjustmentType
    amount: Decimal = Field(..., description="Signed; negative reduces the payout")
    reason: str = Field(..., min_length=1, max_length=2000)
    description: Optional[str] = None
    effective_date: Optional[date] = None
    reference_type: Optional[str] = Field(None, max_length=50)
    reference_id: Optional[str] = Field(None, max_length=64)
    reference_name: Optional[str] = Field(None, max_length=200)
    requires_approval: bool = True

    @model_validator(mode="after")
    def check_target(self):
        if self.calculation_id is None and self.employee_id is None:
            raise ValueError("Either calculation_id or employee_id is required")
        if self.amount == 0:
            raise ValueError("amount must not be zero")
        return self


class AdjustmentResponse(BaseModel):
    id: int
    calculation_id: Optional[int]
    employee_id: str
    adjustment_type: AdjustmentType
    amount: Decimal
    reason: str
    description: Optional[str]
    effective_date: date
    reference_type: Optional[str]
    reference_id: Optional[str]
    reference_name: Optional[str]
    is_processed: bool
    processed_at: Optional[datetime]
    requires_approval: bool
    approved_at: Optional[datetime]
    approved_by: Optional[str]
    created_by: str
    created_at: datetime

    model_config = {"from_attributes": True}


class AdjustmentListResponse(BaseModel):
    items: List[AdjustmentResponse]
    total: int
    page: int
    per_page: int
    pages: int
