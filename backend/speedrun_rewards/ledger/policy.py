"""
Immutable campaign policy handed to a ledger at construction.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from ..core.constants import CampaignConstants
from .types import RewardCategory


@dataclass(frozen=True)
class CategoryRule:
    """Default per-grant amount and weekly grant cap for one category."""
    amount: Decimal
    max_per_week: int
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amount": str(self.amount),
            "max_per_week": self.max_per_week,
            "description": self.description,
        }


def default_rules() -> Dict[RewardCategory, CategoryRule]:
    return {
        RewardCategory.TOP_QUALITY: CategoryRule(
            CampaignConstants.TOP_QUALITY_AMOUNT,
            CampaignConstants.TOP_QUALITY_MAX_PER_WEEK,
            "Top quality submissions per week",
        ),
        RewardCategory.TOP_ENGAGEMENT: CategoryRule(
            CampaignConstants.TOP_ENGAGEMENT_AMOUNT,
            CampaignConstants.TOP_ENGAGEMENT_MAX_PER_WEEK,
            "Top social engagement per week",
        ),
        RewardCategory.FAST_COMPLETION: CategoryRule(
            CampaignConstants.FAST_COMPLETION_AMOUNT,
            CampaignConstants.FAST_COMPLETION_MAX_PER_WEEK,
            "Fastest completions (final week only)",
        ),
    }


@dataclass(frozen=True)
class CampaignPolicy:
    """
    Budget ceiling, week range and category rules of one campaign.

    Passed explicitly into each ledger so independent campaigns (and test
    fixtures) never share state.
    """
    max_budget: Decimal = CampaignConstants.DEFAULT_MAX_BUDGET
    first_week: int = CampaignConstants.FIRST_WEEK
    last_week: int = CampaignConstants.LAST_WEEK
    rules: Mapping[RewardCategory, CategoryRule] = field(default_factory=default_rules)
    claims_blocked_when_paused: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "max_budget", Decimal(str(self.max_budget)))
        object.__setattr__(self, "rules", MappingProxyType(dict(self.rules)))
        if self.max_budget <= 0:
            raise ValueError("max_budget must be positive")
        if self.first_week > self.last_week:
            raise ValueError("first_week must not be after last_week")

    def is_valid_week(self, week: Any) -> bool:
        # bool is an int subclass but never a week
        if isinstance(week, bool) or not isinstance(week, int):
            return False
        return self.first_week <= week <= self.last_week

    def rule_for(self, category: RewardCategory) -> Optional[CategoryRule]:
        return self.rules.get(category)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_budget": str(self.max_budget),
            "first_week": self.first_week,
            "last_week": self.last_week,
            "claims_blocked_when_paused": self.claims_blocked_when_paused,
            "rules": {category.value: rule.to_dict() for category, rule in self.rules.items()},
        }
