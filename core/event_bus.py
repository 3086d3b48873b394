"""
Event bus for booking domain events.

In-process pub/sub. By default handlers run in the publisher's thread; with
an executor they run on worker threads and publish() returns immediately.
Handler errors are logged but never propagate - the booking change has
already committed.
"""

import logging
from concurrent.futures import Executor
from typing import Callable, Dict, List

from core.events import BookingEvent

logger = logging.getLogger(__name__)


class EventBus:
    """
    In-process event bus for booking domain events.

    Subscribe by event class name (string), publish by event instance.
    Handlers are called in subscription order.
    """

    def __init__(self, executor: Executor | None = None):
        self._subscribers: Dict[str, List[Callable]] = {}
        self._executor = executor

    def subscribe(self, event_type: str, callback: Callable):
        """
        Subscribe to events of a specific type.

        Args:
            event_type: Name of event class to subscribe to (e.g. 'BookingCreated')
            callback: Function to call when event is published
        """
        self._subscribers.setdefault(event_type, []).append(callback)

    def publish(self, event: BookingEvent):
        """
        Publish an event to all subscribers of that type.

        Never raises because of a handler, or because the executor refused
        the work (e.g. it was shut down while the worker is stopping).
        """
        event_type = event.__class__.__name__
        callbacks = list(self._subscribers.get(event_type, ()))
        if not callbacks:
            return

        if self._executor is None:
            self._dispatch(event, callbacks)
            return
        try:
            self._executor.submit(self._dispatch, event, callbacks)
        except Exception:
            logger.exception(
                "Could not dispatch %s (event_id=%s); %d handler(s) skipped",
                event_type, event.event_id, len(callbacks),
            )

    def _dispatch(self, event: BookingEvent, callbacks: List[Callable]):
        event_type = event.__class__.__name__
        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Handler %s failed for %s (event_id=%s)",
                    getattr(callback, "__name__", repr(callback)),
                    event_type,
                    event.event_id,
                )
