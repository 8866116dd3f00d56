"""
In-process publish/subscribe for reward and campaign events.

Example:
    ```python
    bus = EventBus()

    async def on_claim(data: dict, event: Event):
        ...

    bus.subscribe(EventType.REWARD_CLAIMED, on_claim)
    await bus.publish(EventType.REWARD_CLAIMED, {"recipient": "0x...", "amount": "50"})
    ```
"""

from .event_bus import EventBus
from .event_handlers import EventHandlerRegistry, HandlerInfo
from .event_types import Event, EventType

__all__ = [
    "EventBus",
    "EventHandlerRegistry",
    "HandlerInfo",
    "Event",
    "EventType",
]
