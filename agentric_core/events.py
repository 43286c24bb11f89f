"""
Typed system event channel.

Collaborators subscribe to a closed set of event variants instead of listening
on free-form string topics. Handlers are called synchronously in subscription
order; a failing handler is logged and never prevents delivery to the others.
"""

import logging
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional, Type, Union


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class AgentStatusUpdate:
    agent_id: str
    status: str
    previous_status: Optional[str] = None
    timestamp: str = field(default_factory=_now)


@dataclass(frozen=True)
class SystemEmergency:
    emergency_type: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=_now)


@dataclass(frozen=True)
class SystemReady:
    agent_count: int
    timestamp: str = field(default_factory=_now)


@dataclass(frozen=True)
class SystemError:
    error_code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=_now)


SystemEvent = Union[AgentStatusUpdate, SystemEmergency, SystemReady, SystemError]
EVENT_TYPES = (AgentStatusUpdate, SystemEmergency, SystemReady, SystemError)

EventHandler = Callable[[Any], None]


class EventChannel:
    """Publish/subscribe channel restricted to the system event variants."""

    def __init__(self, history_size: int = 1000):
        self.logger = logging.getLogger("event_channel")
        self._handlers: Dict[type, List[EventHandler]] = defaultdict(list)
        self._history: Deque[SystemEvent] = deque(maxlen=history_size)
        self.stats = {
            "published": 0,
            "handler_errors": 0,
        }

    def subscribe(self, event_type: Type[Any], handler: EventHandler) -> Callable[[], None]:
        """Register ``handler`` for ``event_type``. Returns an unsubscribe callable."""
        if event_type not in EVENT_TYPES:
            raise TypeError(f"Unknown system event type: {event_type!r}")
        self._handlers[event_type].append(handler)

        def unsubscribe():
            if handler in self._handlers[event_type]:
                self._handlers[event_type].remove(handler)

        return unsubscribe

    def subscribe_all(self, handler: EventHandler) -> Callable[[], None]:
        unsubscribers = [self.subscribe(t, handler) for t in EVENT_TYPES]

        def unsubscribe():
            for unsub in unsubscribers:
                unsub()

        return unsubscribe

    def publish(self, event: SystemEvent) -> None:
        if not isinstance(event, EVENT_TYPES):
            raise TypeError(f"Not a system event: {event!r}")
        self.stats["published"] += 1
        self._history.append(event)
        for handler in list(self._handlers.get(type(event), ())):
            try:
                handler(event)
            except Exception as e:
                self.stats["handler_errors"] += 1
                self.logger.error(f"Handler for {type(event).__name__} failed: {e}")

    def history(self, event_type: Optional[Type[Any]] = None) -> List[SystemEvent]:
        if event_type is None:
            return list(self._history)
        return [e for e in self._history if isinstance(e, event_type)]
