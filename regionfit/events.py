"""
Publish/subscribe notifications for rule and experiment lifecycle events.

Subscribers are plain callables. A failing subscriber is logged and skipped so
that it can never block the mutation that published the event.
"""

import threading
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from loguru import logger


class RuleEvent(str, Enum):
    """Event types published by the stores."""

    RULE_CREATED = "ruleCreated"
    RULE_UPDATED = "ruleUpdated"  # payload: (new_rule, previous_rule)
    RULE_DELETED = "ruleDeleted"
    AB_TEST_CREATED = "abTestCreated"
    AB_TEST_UPDATED = "abTestUpdated"


EventType = Union[RuleEvent, str]
Callback = Callable[..., Any]


def _key(event_type: EventType) -> str:
    return event_type.value if isinstance(event_type, RuleEvent) else str(event_type)


class SubscriberBus:
    """
    In-process publish/subscribe bus.

    Example:
        >>> bus = SubscriberBus()
        >>> unsubscribe = bus.subscribe(RuleEvent.RULE_CREATED, print)
        >>> bus.publish(RuleEvent.RULE_CREATED, rule)
        >>> unsubscribe()
    """

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Callback]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: EventType, callback: Callback) -> Callable[[], None]:
        """
        Register a callback for an event type.

        Args:
            event_type: Event to listen for
            callback: Called with the event payload

        Returns:
            Function that removes this subscription when called
        """
        key = _key(event_type)
        with self._lock:
            self._subscribers.setdefault(key, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(key)
                if callbacks and callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def publish(self, event_type: EventType, *args: Any) -> int:
        """
        Invoke every subscriber of an event type.

        Args:
            event_type: Event being published
            *args: Payload passed to each callback

        Returns:
            Number of callbacks that completed without raising
        """
        key = _key(event_type)
        with self._lock:
            callbacks = list(self._subscribers.get(key, []))

        delivered = 0
        for callback in callbacks:
            try:
                callback(*args)
                delivered += 1
            except Exception as e:
                logger.bind(component="events").error(
                    f"Subscriber callback error for {key}: {type(e).__name__}: {e}"
                )
        return delivered

    def subscriber_count(self, event_type: Optional[EventType] = None) -> int:
        """Count subscriptions, for one event type or across all of them."""
        with self._lock:
            if event_type is not None:
                return len(self._subscribers.get(_key(event_type), []))
            return sum(len(callbacks) for callbacks in self._subscribers.values())
