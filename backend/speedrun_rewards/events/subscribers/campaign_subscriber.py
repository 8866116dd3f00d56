"""
Campaign subscriber: turns reward and campaign events into operator log lines.

Settlement failures and emergency withdrawals need someone to reconcile
them by hand, so they are logged at ERROR and WARNING.
"""

from typing import Any, Dict, List, Tuple

from ...core.logging_config import get_logger
from ..event_bus import EventBus
from ..event_types import Event, EventType

logger = get_logger(__name__)


class CampaignSubscriber:
    """
    Subscriber that logs reward and campaign events.
    """

    def __init__(self, event_bus: EventBus):
        self.event_bus = event_bus
        self._subscriptions: List[Tuple[EventType, str]] = []

    def initialize(self) -> None:
        """Subscribe to the events operators need to see."""
        handlers = {
            EventType.REWARD_BATCH_ALLOCATED: self.handle_batch_allocated,
            EventType.REWARD_SETTLEMENT_FAILED: self.handle_settlement_failed,
            EventType.REWARD_SETTLEMENT_CONFIRMED: self.handle_settlement_confirmed,
            EventType.CAMPAIGN_PAUSED: self.handle_pause_changed,
            EventType.CAMPAIGN_UNPAUSED: self.handle_pause_changed,
            EventType.CAMPAIGN_EMERGENCY_WITHDRAWAL: self.handle_emergency_withdrawal,
        }
        for event_type, handler in handlers.items():
            self._subscriptions.append((event_type, self.event_bus.subscribe(event_type, handler)))
        logger.info("CampaignSubscriber initialized and subscribed to events")

    def cleanup(self) -> None:
        """Unsubscribe from all events."""
        for event_type, handler_id in self._subscriptions:
            self.event_bus.unsubscribe(event_type, handler_id)
        self._subscriptions.clear()
        logger.info("CampaignSubscriber cleaned up")

    async def handle_batch_allocated(self, data: Dict[str, Any], event: Event) -> None:
        logger.info(
            f"Batch {data.get('batch_id')} allocated: {data.get('applied_count')} grant(s), "
            f"{data.get('total_amount')} total",
            extra={"event_id": event.id, "batch_id": data.get("batch_id")},
        )

    async def handle_settlement_failed(self, data: Dict[str, Any], event: Event) -> None:
        logger.error(
            f"Settlement failed for batch {data.get('batch_id')}: {data.get('error')}; "
            f"confirm it manually once the payout lands",
            extra={"event_id": event.id, "batch_id": data.get("batch_id")},
        )

    async def handle_settlement_confirmed(self, data: Dict[str, Any], event: Event) -> None:
        logger.info(
            f"Batch {data.get('batch_id')} settled with reference {data.get('reference')}",
            extra={"event_id": event.id, "batch_id": data.get("batch_id")},
        )

    async def handle_pause_changed(self, data: Dict[str, Any], event: Event) -> None:
        state = "paused" if event.type == EventType.CAMPAIGN_PAUSED else "resumed"
        logger.warning(f"Campaign {state} by {data.get('caller')}", extra={"event_id": event.id})

    async def handle_emergency_withdrawal(self, data: Dict[str, Any], event: Event) -> None:
        logger.warning(
            f"Emergency withdrawal of {data.get('amount')} to {data.get('to')}",
            extra={"event_id": event.id},
        )
