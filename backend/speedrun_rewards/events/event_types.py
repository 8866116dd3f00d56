"""
Event type definitions and the event model.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class EventType(str, Enum):
    """
    Enumeration of the events the reward service publishes.

    Naming Convention:
    - Format: <domain>.<action>
    """

    # ============== Reward Events ==============
    REWARD_BATCH_ALLOCATED = "reward.batch_allocated"
    REWARD_CLAIMED = "reward.claimed"
    REWARD_SETTLEMENT_CONFIRMED = "reward.settlement_confirmed"
    REWARD_SETTLEMENT_FAILED = "reward.settlement_failed"

    # ============== Campaign Events ==============
    CAMPAIGN_PAUSED = "campaign.paused"
    CAMPAIGN_UNPAUSED = "campaign.unpaused"
    CAMPAIGN_FUNDED = "campaign.funded"
    CAMPAIGN_EMERGENCY_WITHDRAWAL = "campaign.emergency_withdrawal"

    def get_category(self) -> str:
        """Get the category (first part) of this event type."""
        return self.value.split('.')[0]

    def __str__(self) -> str:
        return self.value


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Event(BaseModel):
    """
    An event as delivered to handlers.
    """
    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: EventType
    timestamp: datetime = Field(default_factory=_utcnow)
    source: str = Field(default="reward_service")
    correlation_id: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)

    def get_category(self) -> str:
        return self.type.get_category()

    def get_data_field(self, field: str, default: Any = None) -> Any:
        """Get a field from the event data."""
        return self.data.get(field, default)
