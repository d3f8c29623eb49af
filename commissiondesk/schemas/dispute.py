"""
Dispute workflow schemas.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from commissiondesk.models.dispute import (
    DisputePriority,
    DisputeStatus,
    DisputeType,
    ResolutionType,
)


class DisputeCreate(BaseModel):
    """Request to contest a calculation."""

    calculation_id: int
    dispute_type: DisputeType
    priority: DisputePriority = DisputePriority.MEDIUM
    expected_amount: Decimal
    disputed_amount: Optional[Decimal] = Field(
        None,
        description="Defaults to the calculation's net commission",
    )
    description: str = Field(..., min_length=1, max_length=5000)
    employee_comments: Optional[str] = Field(None, max_length=5000)
    estimated_resolution: Optional[date] = None


class DisputeUpdate(BaseModel):
    """Fields that may change without a status transition."""

    priority: Optional[DisputePriority] = None
    employee_comments: Optional[str] = Field(None, max_length=5000)
    manager_comments: Optional[str] = Field(None, max_length=5000)
    estimated_resolution: Optional[date] = None


class ReviewRequest(BaseModel):
    assigned_to: str = Field(..., min_length=1, max_length=64)
    comments: Optional[str] = Field(None, max_length=5000)


class EscalateRequest(BaseModel):
    assigned_to: Optional[str] = Field(None, min_length=1, max_length=64)
    reason: str = Field(..., min_length=1, max_length=5000)


class ResolveRequest(BaseModel):
    resolution_type: ResolutionType
    adjustment_amount: Optional[Decimal] = None
    resolution_notes: Optional[str] = Field(None, max_length=5000)


class RejectRequest(BaseModel):
    resolution_notes: Optional[str] = Field(None, max_length=5000)


class CloseRequest(BaseModel):
    comments: Optional[str] = Field(None, max_length=5000)


class DisputeResponse(BaseModel):
    id: int
    dispute_number: str
    calculation_id: int
    employee_id: str
    dispute_type: DisputeType
    status: DisputeStatus
    priority: DisputePriority
    disputed_amount: Decimal
    expected_amount: Decimal
    difference: Decimal
    description: str
    employee_comments: Optional[str]
    manager_comments: Optional[str]
    assigned_to: Optional[str]
    estimated_resolution: Optional[date]
    actual_resolution: Optional[datetime]
    resolution_type: Optional[ResolutionType]
    adjustment_amount: Optional[Decimal]
    adjustment_id: Optional[int]
    resolution_notes: Optional[str]
    submitted_by: str
    resolved_by: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime]

    model_config = {"from_attributes": True}


class DisputeListResponse(BaseModel):
    items: List[DisputeResponse]
    total: int
    page: int
    per_page: int
    pages: int


class DisputeHistoryResponse(BaseModel):
    id: int
    dispute_id: int
    action: str
    actor_id: str
    description: str
    previous_status: Optional[DisputeStatus]
    new_status: Optional[DisputeStatus]
    metadata: Optional[dict] = Field(None, validation_alias="history_metadata")
    created_at: datetime

    model_config = {"from_attributes": True, "populate_by_name": True}
