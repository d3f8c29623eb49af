"""
Sales transaction schemas.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from commissiondesk.models.plan import ProductCategory
from commissiondesk.models.transaction import TransactionType


class TransactionCreate(BaseModel):
    """
    Request to record one employee's share of a sale.

    sale_amount is always the full sale. For a split row the commissionable
    share is derived from split_percentage.
    """

    employee_id: str = Field(..., min_length=1, max_length=64)
    transaction_type: TransactionType
    transaction_id: str = Field(..., min_length=1, max_length=64)
    transaction_number: Optional[str] = Field(None, max_length=100)
    transaction_date: date
    customer_id: Optional[str] = Field(None, max_length=64)
    customer_name: Optional[str] = Field(None, max_length=200)
    sale_amount: Decimal = Field(..., gt=0)
    category: ProductCategory
    is_split_commission: bool = False
    split_percentage: Decimal = Field(Decimal("100"), gt=0, le=100)
    primary_employee_id: Optional[str] = Field(None, max_length=64)

    @model_validator(mode="after")
    def check_split(self):
        if not self.is_split_commission and self.split_percentage != 100:
            raise ValueError("split_percentage other than 100 requires is_split_commission")
        return self


class ChargebackRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)
    charged_back_on: Optional[date] = Field(None, description="Defaults to today")


class TransactionResponse(BaseModel):
    id: int
    calculation_id: Optional[int]
    employee_id: str
    transaction_type: TransactionType
    transaction_id: str
    transaction_number: Optional[str]
    transaction_date: date
    customer_id: Optional[str]
    customer_name: Optional[str]
    sale_amount: Decimal
    commissionable_amount: Decimal
    category: ProductCategory
    commission_rate: Optional[Decimal]
    commission_amount: Optional[Decimal]
    is_split_commission: bool
    split_percentage: Decimal
    primary_employee_id: Optional[str]
    is_processed: bool
    processed_at: Optional[datetime]
    is_charged_back: bool
    charged_back_at: Optional[datetime]
    chargeback_reason: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class TransactionListResponse(BaseModel):
    items: List[TransactionResponse]
    total: int
    page: int
    per_page: int
    pages: int
