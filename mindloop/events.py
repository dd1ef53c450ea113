"""
Domain events published by the world and by the state machine.

The orchestrator turns these into rewards. Subscribers are called
synchronously, in subscription order; a failing subscriber is logged and
never prevents delivery to the others.
"""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)


class AgentEventType(str, Enum):
    """Event kinds the decision core reacts to."""

    STATE_CHANGED = "state_changed"
    RESOURCE_COLLECTED = "resource_collected"
    ENTITY_DEFEATED = "entity_defeated"
    AGENT_DEFEATED = "agent_defeated"
    NEW_AREA_DISCOVERED = "new_area_discovered"
    HEALTH_CHANGED = "health_changed"


@dataclass(frozen=True)
class AgentEvent:
    """
    A single domain event.

    Payload keys by type:
        state_changed: ``old``, ``new``
        resource_collected: ``block``
        entity_defeated: ``name``, ``entity_type``
        agent_defeated: (none)
        new_area_discovered: ``position`` (optional)
        health_changed: ``old``, ``new``
    """
    event_type: AgentEventType
    payload: Dict[str, Any] = field(default_factory=dict)
    seq: int = 0

    def get(self, key: str, default: Any = None) -> Any:
        return self.payload.get(key, default)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "payload": dict(self.payload),
            "seq": self.seq,
        }


Handler = Callable[[AgentEvent], None]


class EventBus:
    """
    Synchronous publish/subscribe hub.

    Example:
        >>> bus = EventBus()
        >>> unsubscribe = bus.subscribe(AgentEventType.HEALTH_CHANGED, print)
        >>> bus.publish(AgentEventType.HEALTH_CHANGED, old=20, new=15)
        >>> unsubscribe()
    """

    def __init__(self, history_size: int = 100):
        self._handlers: Dict[AgentEventType, List[Handler]] = {}
        self._any_handlers: List[Handler] = []
        self._seq = 0
        self._history: Deque[AgentEvent] = deque(maxlen=history_size)

    def subscribe(
        self,
        event_type: Optional[AgentEventType],
        handler: Handler,
    ) -> Callable[[], None]:
        """
        Register a handler.

        Args:
            event_type: Event kind to receive, or None for every event

        Returns:
            Unsubscribe function
        """
        handlers = self._any_handlers if event_type is None else self._handlers.setdefault(
            AgentEventType(event_type), []
        )
        handlers.append(handler)

        def unsubscribe():
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, event_type: AgentEventType, **payload: Any) -> AgentEvent:
        """Build an event from keyword payload and deliver it."""
        return self.emit(event_type, payload)

    def emit(self, event_type: AgentEventType, payload: Optional[Dict[str, Any]] = None) -> AgentEvent:
        """Like publish, for payloads that arrive as a mapping (any keys allowed)."""
        self._seq += 1
        event = AgentEvent(event_type=AgentEventType(event_type), payload=dict(payload or {}), seq=self._seq)
        self.dispatch(event)
        return event

    def dispatch(self, event: AgentEvent) -> None:
        self._history.append(event)
        for handler in list(self._handlers.get(event.event_type, ())) + list(self._any_handlers):
            try:
                handler(event)
            except Exception as e:
                logger.warning(f"Event handler error on {event.event_type.value}: {e}")

    def recent(self, n: Optional[int] = None) -> List[AgentEvent]:
        events = list(self._history)
        return events if n is None else events[-n:]

    def clear(self) -> None:
        self._handlers.clear()
        self._any_handlers.clear()
