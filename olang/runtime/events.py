"""Event delivery for debrief and emit steps."""

import inspect
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import structlog

logger = structlog.get_logger(__name__)

WILDCARD = "*"

DEBRIEF = "debrief"
WORKFLOW_STARTED = "workflow_started"
WORKFLOW_COMPLETED = "workflow_completed"


@dataclass
class RuntimeEvent:
    """Event published by a running workflow."""
    name: str
    payload: Any = None
    workflow_name: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass
class EventSubscription:
    """Listener registered for one event name (or the wildcard)."""
    subscriber_id: str
    event_name: str
    callback: Callable[..., Any]
    with_envelope: bool = False

    def matches(self, event: RuntimeEvent) -> bool:
        return self.event_name == WILDCARD or self.event_name == event.name


class EventBus:
    """Fan-out of runtime events to registered listeners.

    Listener failures are logged and never reach the publishing step.
    """

    def __init__(self):
        self._subscriptions: Dict[str, EventSubscription] = {}
        self._counter = 0
        self.history: List[RuntimeEvent] = []
        self._stats = {
            "events_published": 0,
            "events_delivered": 0,
            "delivery_errors": 0,
        }

    def subscribe(
        self,
        event_name: str,
        callback: Callable[..., Any],
        with_envelope: bool = False,
    ) -> str:
        """Register a listener.

        By default the callback receives the event payload; with
        ``with_envelope`` it receives the full :class:`RuntimeEvent`.
        Wildcard listeners always receive the envelope.
        """
        self._counter += 1
        subscriber_id = f"subscriber_{self._counter}"
        self._subscriptions[subscriber_id] = EventSubscription(
            subscriber_id=subscriber_id,
            event_name=event_name,
            callback=callback,
            with_envelope=with_envelope or event_name == WILDCARD,
        )
        logger.debug("event_subscription_added", subscriber_id=subscriber_id, event_name=event_name)
        return subscriber_id

    def on(self, event_name: str, callback: Callable[..., Any]) -> str:
        return self.subscribe(event_name, callback)

    def unsubscribe(self, subscriber_id: str) -> None:
        if subscriber_id in self._subscriptions:
            del self._subscriptions[subscriber_id]
            logger.debug("event_subscription_removed", subscriber_id=subscriber_id)

    async def emit(
        self,
        name: str,
        payload: Any = None,
        workflow_name: Optional[str] = None,
    ) -> RuntimeEvent:
        """Publish an event and wait for listeners to finish."""
        event = RuntimeEvent(name=name, payload=payload, workflow_name=workflow_name)
        self.history.append(event)
        self._stats["events_published"] += 1

        for subscription in list(self._subscriptions.values()):
            if subscription.matches(event):
                await self._deliver(event, subscription)
        return event

    async def _deliver(self, event: RuntimeEvent, subscription: EventSubscription) -> None:
        argument = event if subscription.with_envelope else event.payload
        try:
            result = subscription.callback(argument)
            if inspect.isawaitable(result):
                await result
            self._stats["events_delivered"] += 1
        except Exception as e:
            self._stats["delivery_errors"] += 1
            logger.error(
                "event_delivery_failed",
                subscriber_id=subscription.subscriber_id,
                event_name=event.name,
                error=str(e),
            )

    def get_stats(self) -> Dict[str, Any]:
        return {**self._stats, "subscribers": len(self._subscriptions)}
