"""
In-process publish/subscribe between loop components.

Delivery contract:
- synchronous: publish() returns after every subscriber has run
- ordered: subscribers run in subscription order, payloads in publish order
- at-most-once: each subscriber sees each payload once, no redelivery
- isolated: a subscriber that raises is logged and skipped; the others still run
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

logger = logging.getLogger(__name__)

# Topic names
SCAN_RESULTS = "scan_results"  # payload: scanner.autonomous.ScanResult
COMMITMENTS = "commitments"  # payload: executor.engine.Decision (accepted)
RESOLUTIONS = "resolutions"  # payload: scanner.models.ResolutionEvent

Handler = Callable[[Any], None]


class EventBus:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[tuple[str, Handler]]] = {}
        self._published: dict[str, int] = {}
        self._handler_errors = 0

    def subscribe(self, topic: str, handler: Handler, name: str | None = None) -> None:
        label = name or getattr(handler, "__qualname__", repr(handler))
        with self._lock:
            self._subscribers.setdefault(topic, []).append((label, handler))

    def unsubscribe(self, topic: str, handler: Handler) -> bool:
        with self._lock:
            subs = self._subscribers.get(topic, [])
            for i, (_, h) in enumerate(subs):
                if h == handler:
                    del subs[i]
                    return True
        return False

    def publish(self, topic: str, payload: Any) -> int:
        """Deliver payload to every subscriber of topic. Returns how many handled it cleanly."""
        with self._lock:
            subs = list(self._subscribers.get(topic, []))
            self._published[topic] = self._published.get(topic, 0) + 1
        delivered = 0
        for label, handler in subs:
            try:
                handler(payload)
                delivered += 1
            except Exception:
                with self._lock:
                    self._handler_errors += 1
                logger.exception("Subscriber %s failed on topic %s", label, topic)
        return delivered

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, []))

    @property
    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "published": dict(self._published),
                "handler_errors": self._handler_errors,
            }
