"""
In-process event bus for workflow notifications.

The engine publishes events after a mutation has been committed. External
notifiers subscribe to them; a failing subscriber is logged and never
affects the workflow mutation that produced the event.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List

from .models import utcnow

logger = logging.getLogger(__name__)

STEP_STATUS_CHANGED = "step.status_changed"
STEP_COMPLETED = "step.completed"
INSTANCE_COMPLETED = "instance.completed"
INSTANCE_CANCELLED = "instance.cancelled"
INSTANCE_OVERDUE = "instance.overdue"
EXCEPTION_OPENED = "exception.opened"
EXCEPTION_RESOLVED = "exception.resolved"
EXCEPTION_DISMISSED = "exception.dismissed"
INTEGRATION_EXHAUSTED = "integration.exhausted"

WILDCARD = "*"


@dataclass
class WorkflowEvent:
    type: str
    instance_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utcnow)


Handler = Callable[[WorkflowEvent], None]


class EventBus:
    """Synchronous publish/subscribe dispatcher."""

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: Handler) -> None:
        """Register a handler for an event type, or '*' for all events."""
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: str, handler: Handler) -> None:
        if handler in self._handlers.get(event_type, []):
            self._handlers[event_type].remove(handler)

    def publish(self, event: WorkflowEvent) -> None:
        for handler in list(self._handlers.get(event.type, [])) + list(self._handlers.get(WILDCARD, [])):
            try:
                handler(event)
            except Exception:
                logger.exception(f"Event handler {handler!r} failed for {event.type} on {event.instance_id}")

    def publish_all(self, events: List[WorkflowEvent]) -> None:
        for event in events:
            self.publish(event)
