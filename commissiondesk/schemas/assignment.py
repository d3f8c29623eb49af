"""
Employee plan assignment schemas.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from commissiondesk.services.rules import RateOverride


class AssignmentCreate(BaseModel):
    """Request to put an employee on a plan."""

    employee_id: str = Field(..., min_length=1, max_length=64)
    plan_id: int
    effective_date: date
    end_date: Optional[date] = None
    quota_target: Optional[Decimal] = Field(None, ge=0)
    custom_rates: List[RateOverride] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date is not None and self.end_date < self.effective_date:
            raise ValueError("end_date must not be before effective_date")
        return self


class AssignmentEnd(BaseModel):
    end_date: date


class AssignmentResponse(BaseModel):
    id: int
    employee_id: str
    plan_id: int
    plan_name: Optional[str] = None
    effective_date: date
    end_date: Optional[date]
    quota_target: Optional[Decimal]
    is_active: bool
    custom_rates: Optional[list] = None
    assigned_by: str
    created_at: datetime

    model_config = {"from_attributes": True}

    @classmethod
    def from_assignment(cls, assignment) -> "AssignmentResponse":
        response = cls.model_validate(assignment)
        response.plan_name = assignment.plan.plan_name if assignment.plan else None
        return response
