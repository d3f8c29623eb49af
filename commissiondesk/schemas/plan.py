"""
Plan, tier and product-rate schemas.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from commissiondesk.models.plan import (
    CalculationMode,
    PaymentFrequency,
    PlanType,
    ProductCategory,
)
from commissiondesk.services.rules import BonusRule


class TierIn(BaseModel):
    """One sales bracket of a tiered plan."""

    tier_level: int = Field(..., ge=1)
    tier_name: str = Field(..., min_length=1, max_length=100)
    minimum_sales: Decimal = Field(Decimal("0"), ge=0)
    maximum_sales: Optional[Decimal] = Field(None, gt=0, description="Omit for the top tier")
    commission_rate: Decimal = Field(..., ge=0, le=100, description="Percentage")
    bonus_threshold: Optional[Decimal] = Field(None, ge=0)
    bonus_amount: Optional[Decimal] = Field(None, ge=0)
    is_active: bool = True


class ProductRateIn(BaseModel):
    """Flat rate for one product category."""

    category: ProductCategory
    category_name: Optional[str] = Field(None, max_length=100)
    commission_rate: Decimal = Field(..., ge=0, le=100, description="Percentage")
    description: Optional[str] = None
    is_active: bool = True


class PlanCreate(BaseModel):
    """Request to create a commission plan with its schedule."""

    plan_name: str = Field(..., min_length=1, max_length=200)
    plan_type: PlanType
    description: Optional[str] = None
    calculation_mode: CalculationMode
    effective_date: date
    end_date: Optional[date] = None
    payment_frequency: PaymentFrequency = PaymentFrequency.MONTHLY
    payment_delay: int = Field(30, ge=0, le=365)
    minimum_commission_payment: Decimal = Field(Decimal("0"), ge=0)
    split_commission_allowed: bool = False
    chargeback_enabled: bool = True
    chargeback_period: int = Field(90, ge=0, le=3650)
    bonus_rules: List[BonusRule] = Field(default_factory=list)
    tiers: List[TierIn] = Field(default_factory=list)
    product_rates: List[ProductRateIn] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date is not None and self.end_date < self.effective_date:
            raise ValueError("end_date must not be before effective_date")
        return self


class PlanUpdate(BaseModel):
    """Partial plan update. Schedules are replaced through their own endpoints."""

    plan_name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    is_active: Optional[bool] = None
    end_date: Optional[date] = None
    payment_frequency: Optional[PaymentFrequency] = None
    payment_delay: Optional[int] = Field(None, ge=0, le=365)
    minimum_commission_payment: Optional[Decimal] = Field(None, ge=0)
    split_commission_allowed: Optional[bool] = None
    chargeback_enabled: Optional[bool] = None
    chargeback_period: Optional[int] = Field(None, ge=0, le=3650)
    bonus_rules: Optional[List[BonusRule]] = None


class TierResponse(BaseModel):
    id: int
    tier_level: int
    tier_name: str
    minimum_sales: Decimal
    maximum_sales: Optional[Decimal]
    commission_rate: Decimal
    bonus_threshold: Optional[Decimal]
    bonus_amount: Optional[Decimal]
    is_active: bool

    model_config = {"from_attributes": True}


class ProductRateResponse(BaseModel):
    id: int
    category: ProductCategory
    category_name: str
    commission_rate: Decimal
    description: Optional[str]
    is_active: bool

    model_config = {"from_attributes": True}


class PlanResponse(BaseModel):
    """Plan with its tiers and product rates."""

    id: int
    plan_name: str
    plan_type: PlanType
    description: Optional[str]
    is_active: bool
    calculation_mode: CalculationMode
    effective_date: date
    end_date: Optional[date]
    payment_frequency: PaymentFrequency
    payment_delay: int
    minimum_commission_payment: Decimal
    split_commission_allowed: bool
    chargeback_enabled: bool
    chargeback_period: int
    bonus_rules: Optional[list] = None
    tiers: List[TierResponse] = []
    product_rates: List[ProductRateResponse] = []
    created_by: str
    updated_by: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime]

    model_config = {"from_attributes": True}


class PlanListResponse(BaseModel):
    items: List[PlanResponse]
    total: int
    page: int
    per_page: int
    pages: int
