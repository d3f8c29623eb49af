"""
Tagged variants for plan bonus rules and per-employee rate overrides.

Both are stored as JSON lists (CommissionPlan.bonus_rules and
EmployeeCommissionAssignment.custom_rates). Each entry carries a "kind"
discriminator and is parsed into one of the models below, so an unknown
kind or a missing field fails loudly instead of being ignored.
"""

from decimal import Decimal
from typing import Annotated, ClassVar, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from commissiondesk.models.plan import ProductCategory


class _Rule(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ThresholdBonus(_Rule):
    """Fixed bonus when total sales reach a threshold."""

    kind: Literal["threshold"] = "threshold"
    threshold: Decimal = Field(ge=0)
    amount: Decimal = Field(gt=0)
    description: Optional[str] = None

    bonus_type: ClassVar[str] = "threshold_bonus"

    def is_met(self, total_sales: Decimal, quota_achievement: Optional[Decimal]) -> bool:
        return total_sales >= self.threshold

    def describe(self) -> str:
        return self.description or f"Sales of {self.threshold} reached"


class QuotaBonus(_Rule):
    """Fixed bonus when quota achievement reaches a percentage."""

    kind: Literal["quota"] = "quota"
    quota_pct: Decimal = Field(gt=0)
    amount: Decimal = Field(gt=0)
    description: Optional[str] = None

    bonus_type: ClassVar[str] = "quota_bonus"

    def is_met(self, total_sales: Decimal, quota_achievement: Optional[Decimal]) -> bool:
        # No quota target means the rule cannot be evaluated as met
        if quota_achievement is None:
            return False
        return quota_achievement >= self.quota_pct

    def describe(self) -> str:
        return self.description or f"{self.quota_pct}% of quota achieved"


class CategoryRateOverride(_Rule):
    """Replaces the flat rate of one product category for one employee."""

    kind: Literal["category_rate"] = "category_rate"
    category: ProductCategory
    rate: Decimal = Field(ge=0, le=100)


class TierRateOverride(_Rule):
    """Replaces the rate of one tier level for one employee."""

    kind: Literal["tier_rate"] = "tier_rate"
    tier_level: int = Field(ge=1)
    rate: Decimal = Field(ge=0, le=100)


BonusRule = Annotated[Union[ThresholdBonus, QuotaBonus], Field(discriminator="kind")]
RateOverride = Annotated[
    Union[CategoryRateOverride, TierRateOverride],
    Field(discriminator="kind"),
]

_bonus_rules = TypeAdapter(List[BonusRule])
_rate_overrides = TypeAdapter(List[RateOverride])


def parse_bonus_rules(raw: Optional[list]) -> list:
    """Parse a stored bonus_rules JSON list. Raises pydantic.ValidationError."""
    if not raw:
        return []
    return _bonus_rules.validate_python(raw)


def parse_rate_overrides(raw: Optional[list]) -> list:
    """Parse a stored custom_rates JSON list. Raises pydantic.ValidationError."""
    if not raw:
        return []
    return _rate_overrides.validate_python(raw)


def dump_rules(rules: list) -> Optional[list]:
    """Serialize parsed rules back to JSON-safe dicts for storage."""
    if not rules:
        return None
    return [rule.model_dump(mode="json", exclude_none=True) for rule in rules]


class RateOverrides:
    """Lookup over an employee's parsed overrides."""

    def __init__(self, overrides: list):
        self._categories = {}
        self._tiers = {}
        for override in overrides:
            if isinstance(override, CategoryRateOverride):
                self._categories[override.category] = override.rate
            else:
                self._tiers[override.tier_level] = override.rate

    @classmethod
    def from_json(cls, raw: Optional[list]) -> "RateOverrides":
        return cls(parse_rate_overrides(raw))

    def category_rate(self, category: ProductCategory) -> Optional[Decimal]:
        return self._categories.get(category)

    def tier_rate(self, tier_level: int) -> Optional[Decimal]:
        return self._tiers.get(tier_level)
