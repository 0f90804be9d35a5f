"""
In-process domain event relay.

Services publish after their transaction has committed. Listeners are
fire-and-forget: a failing listener is logged and skipped, it never
propagates back into the operation that published.
"""

import logging

logger = logging.getLogger(__name__)

EVENT_TYPES = (
    "tournament_created",
    "tournament_started",
    "match_result",
    "payment_received",
)


class EventRelay:
    def __init__(self):
        self._listeners = []

    def subscribe(self, listener):
        """Register ``listener(event_type, payload)``. Returns it for use as a decorator."""
        self._listeners.append(listener)
        return listener

    def unsubscribe(self, listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def clear(self):
        self._listeners.clear()

    def publish(self, event_type: str, payload: dict) -> None:
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type}")

        logger.debug(f"Publishing {event_type}: {payload}")
        for listener in list(self._listeners):
            try:
                listener(event_type, payload)
            except Exception:
                logger.warning(f"Listener {listener!r} failed on {event_type}", exc_info=True)


relay = EventRelay()
