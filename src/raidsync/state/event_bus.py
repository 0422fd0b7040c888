"""
Event bus for raidsync state changes.

Lets observers (chat bridges, audit logs, tests) react to profile changes
without the engines knowing about them.

Usage:
    from .event_bus import get_event_bus, EventType

    bus = get_event_bus()
    bus.on(EventType.INSURANCE_SCHEDULED, my_handler)

    bus.emit(EventType.INSURANCE_SCHEDULED, session_id="abc", trader_id="...", items=3)
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Events that can be published."""

    # Profile persistence
    PROFILE_LOADED = "profile.loaded"
    PROFILE_SAVED = "profile.saved"
    SAVE_HOOK_FAILED = "profile.save_hook_failed"

    # Raid lifecycle
    RAID_REGISTERED = "raid.registered"
    RAID_RESOLVED = "raid.resolved"
    QUEST_FAILED = "quest.failed"

    # Insurance
    INSURANCE_CAPTURED = "insurance.captured"
    INSURANCE_SCHEDULED = "insurance.scheduled"
    INSURANCE_LOST = "insurance.lost"

    # Scav
    FENCE_STANDING_CHANGED = "fence.standing_changed"
    SCAV_REGENERATED = "scav.regenerated"


@dataclass
class RaidEvent:
    """
    Event payload for the event bus.

    Attributes:
        type: The event type (from EventType enum)
        data: Event-specific payload as dict
        session_id: Session the event belongs to
        timestamp: When the event was emitted
    """

    type: EventType
    data: dict = field(default_factory=dict)
    session_id: str = ""
    timestamp: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        return f"[{self.type.value}] {self.session_id} {self.data}"


EventHandler = Callable[[RaidEvent], None]


class EventBus:
    """
    Synchronous event bus.

    Listeners are called immediately on emit(), in subscription order.
    A listener that raises is logged and skipped; the rest still run.
    """

    def __init__(self, history_limit: int = 100):
        self._listeners: dict[EventType, list[EventHandler]] = {}
        self._history: list[RaidEvent] = []
        self._history_limit = history_limit

    def on(self, event_type: EventType, handler: EventHandler) -> None:
        """Subscribe handler to event_type. Subscribing twice is a no-op."""
        if event_type not in self._listeners:
            self._listeners[event_type] = []
        if handler not in self._listeners[event_type]:
            self._listeners[event_type].append(handler)

    def off(self, event_type: EventType, handler: EventHandler) -> None:
        if event_type in self._listeners and handler in self._listeners[event_type]:
            self._listeners[event_type].remove(handler)

    def emit(self, event_type: EventType, session_id: str = "", **data) -> RaidEvent:
        """
        Emit an event to all subscribers.

        Args:
            event_type: The type of event
            session_id: Session context (optional)
            **data: Event-specific data

        Returns:
            The emitted RaidEvent
        """
        event = RaidEvent(type=event_type, data=data, session_id=session_id)

        self._history.append(event)
        if len(self._history) > self._history_limit:
            self._history = self._history[-self._history_limit :]

        for handler in list(self._listeners.get(event_type, [])):
            try:
                handler(event)
            except Exception:
                logger.exception(f"Error in handler for {event_type.value}")

        return event

    def clear(self) -> None:
        """Clear all listeners and history."""
        self._listeners.clear()
        self._history.clear()

    def get_history(self, event_type: EventType | None = None) -> list[RaidEvent]:
        """Recent events, optionally filtered by type."""
        if event_type is None:
            return list(self._history)
        return [e for e in self._history if e.type == event_type]

    def listener_count(self, event_type: EventType) -> int:
        return len(self._listeners.get(event_type, []))


_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the process-wide event bus, creating it on first use."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


def reset_event_bus() -> None:
    """Drop the process-wide event bus. Used by tests."""
    global _event_bus
    _event_bus = None
