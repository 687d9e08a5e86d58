"""EventBus - in-process pub/sub for editor events.

The editor runs on a single event loop, so delivery is synchronous and
unlocked. Two kinds of subscriber are supported:

- handlers registered with ``on(event_type, fn)`` are called immediately,
  in registration order; this is how the info popup's edit request reaches
  the attribute workflow without any global registry;
- queues returned by ``subscribe()`` receive every event, for observers
  such as the HTTP layer or tests.
"""

from __future__ import annotations

import queue
from collections import defaultdict
from typing import Any, Callable

from loguru import logger

Handler = Callable[[dict], Any]


class EventBus:
    """Simple pub/sub for pushing editor events to subscribers."""

    def __init__(self) -> None:
        self._subscribers: list[queue.Queue] = []
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, maxsize: int = 100) -> queue.Queue:
        """Subscribe to all events. Returns a Queue that receives them."""
        q: queue.Queue = queue.Queue(maxsize=maxsize)
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: queue.Queue) -> None:
        try:
            self._subscribers.remove(q)
        except ValueError:
            pass

    def on(self, event_type: str, handler: Handler) -> None:
        """Call handler(msg) whenever event_type is published."""
        self._handlers[event_type].append(handler)

    def off(self, event_type: str, handler: Handler) -> None:
        try:
            self._handlers[event_type].remove(handler)
        except ValueError:
            pass

    def publish(self, event_type: str, data: dict | None = None) -> None:
        msg: dict = {"type": event_type}
        if data is not None:
            msg["data"] = data

        for handler in list(self._handlers.get(event_type, ())):
            try:
                handler(msg)
            except Exception as e:
                logger.error(f"Handler for '{event_type}' failed: {e}")

        for q in self._subscribers:
            try:
                q.put_nowait(msg)
            except queue.Full:
                # Drop oldest so the newest state change is never lost
                try:
                    q.get_nowait()
                except queue.Empty:
                    pass
                try:
                    q.put_nowait(msg)
                except queue.Full:
                    pass
