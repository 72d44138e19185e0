"""
Resolution watcher: polls venues for the markets behind pending predictions.

Per watched prediction: watching -> resolved | abandoned, both terminal.
One poll pass groups predictions by venue and market so each venue is asked
once per pass, and several predictions on the same market settle from the
same status read.

Abandonment (logged at ERROR, kept in the ledger):
  - the venue no longer lists the market
  - the venue reports a terminal state without a result
  - the market is still open past the horizon
"""

from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict
from typing import Callable, Mapping

from client.platform import VenueAdapter
from ledger.store import PersistenceError, PredictionStore
from pipeline.events import RESOLUTIONS, EventBus
from pipeline.ticker import PeriodicTask
from scanner.models import Direction, Prediction, ResolutionEvent, VenueStatus

logger = logging.getLogger(__name__)

SCORE_LABELS = (
    (0.10, "excellent"),
    (0.20, "good"),
    (0.30, "fair"),
    (0.40, "poor"),
)


def accuracy_score(probability: float, direction: Direction, outcome: bool) -> float:
    """
    Squared error of the YES forecast against the outcome. 0 is perfect, 1 is
    maximally wrong. probability is expressed in the direction's terms.
    """
    forecast = probability if direction == Direction.YES else 1.0 - probability
    actual = 1.0 if outcome else 0.0
    return round((forecast - actual) ** 2, 4)


def interpret_score(score: float) -> str:
    for ceiling, label in SCORE_LABELS:
        if score <= ceiling:
            return label
    return "bad"


class ResolutionWatcher:
    def __init__(
        self,
        adapters: Mapping[str, VenueAdapter],
        store: PredictionStore,
        bus: EventBus | None = None,
        poll_sec: float = 60.0,
        horizon_days: float = 90.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._adapters = dict(adapters)
        self._store = store
        self._bus = bus
        self._horizon_sec = horizon_days * 86400.0
        self._clock = clock
        self._lock = threading.Lock()
        self._watched: dict[int, Prediction] = {}
        self._task = PeriodicTask("watcher", poll_sec, self.poll_once)
        self.resolved_count = 0
        self.abandoned_count = 0
        self.poll_errors = 0
        self.last_poll_at: float | None = None

    # ── Watch list ──

    def watch(self, prediction: Prediction) -> bool:
        """Start watching. False if the prediction has no market link or is already watched."""
        if not prediction.has_market_link:
            return False
        with self._lock:
            if prediction.id in self._watched:
                return False
            self._watched[prediction.id] = prediction
        logger.info(
            "Watching #%d on %s:%s", prediction.id, prediction.venue, prediction.market_id,
        )
        return True

    def unwatch(self, prediction_id: int) -> bool:
        with self._lock:
            return self._watched.pop(prediction_id, None) is not None

    def load_pending(self) -> int:
        """Resume watching every pending, market-linked prediction in the ledger."""
        loaded = sum(1 for p in self._store.list_pending() if self.watch(p))
        logger.info("Loaded %d pending prediction(s) from ledger", loaded)
        return loaded

    @property
    def watched(self) -> list[Prediction]:
        with self._lock:
            return list(self._watched.values())

    # ── Lifecycle ──

    @property
    def running(self) -> bool:
        return self._task.running

    def start(self) -> None:
        self._task.start()

    def stop(self) -> None:
        """Cancel future polls. A pass already writing to the ledger finishes first."""
        self._task.stop()

    def force_check(self) -> list[ResolutionEvent]:
        """One synchronous poll pass, serialized with the scheduled ones."""
        return self._task.run_now()

    # ── Polling ──

    def poll_once(self) -> list[ResolutionEvent]:
        now = self._clock()
        self.last_poll_at = now
        by_venue: dict[str, dict[str, list[Prediction]]] = defaultdict(lambda: defaultdict(list))
        for p in self.watched:
            by_venue[p.venue][p.market_id].append(p)

        events: list[ResolutionEvent] = []
        for venue, markets in by_venue.items():
            adapter = self._adapters.get(venue)
            if adapter is None:
                logger.warning("No adapter for venue %s; %d market(s) left watched", venue, len(markets))
                continue
            try:
                statuses = adapter.get_market_status(list(markets))
            except Exception as e:
                self.poll_errors += 1
                logger.warning("Status poll failed for %s, retrying next pass: %s", venue, e)
                continue
            for market_id, predictions in markets.items():
                status = statuses.get(market_id)
                for p in predictions:
                    try:
                        event = self._settle(p, status, now)
                    except PersistenceError as e:
                        logger.error("Could not settle #%d, still watching: %s", p.id, e)
                        continue
                    if event is not None:
                        events.append(event)

        if events:
            logger.info("Poll pass settled %d prediction(s)", len(events))
        if self._bus is not None:
            for event in events:
                self._bus.publish(RESOLUTIONS, event)
        return events

    def _settle(self, p: Prediction, status: VenueStatus | None, now: float) -> ResolutionEvent | None:
        if status is None:
            return self.abandon_prediction(p, "market no longer listed by venue")
        if status.resolved:
            if status.outcome is None:
                return self.abandon_prediction(p, f"venue reports {status.state} without a result")
            return self.resolve_prediction(p, status.outcome, now)
        if now - p.created_at > self._horizon_sec:
            days = self._horizon_sec / 86400.0
            return self.abandon_prediction(p, f"still {status.state} after {days:.0f} days")
        return None

    def resolve_prediction(
        self, prediction: Prediction, outcome: bool, now: float | None = None,
    ) -> ResolutionEvent | None:
        """
        Score and persist a resolution. Returns None when the ledger row was
        already terminal, so a repeat observation emits nothing. Raises
        PersistenceError with the prediction still watched.
        """
        ts = self._clock() if now is None else now
        score = accuracy_score(prediction.probability, prediction.direction, outcome)
        applied = self._store.resolve_prediction(prediction.id, outcome, score, ts)
        self.unwatch(prediction.id)
        if not applied:
            logger.debug("#%d already terminal, nothing to do", prediction.id)
            return None
        self.resolved_count += 1
        logger.info(
            "Resolved #%d: outcome %s, predicted %s @ %.0f%%, score %.4f (%s)",
            prediction.id, "YES" if outcome else "NO", prediction.direction.value,
            prediction.probability * 100, score, interpret_score(score),
        )
        return ResolutionEvent(
            prediction_id=prediction.id,
            kind="resolved",
            venue=prediction.venue,
            market_id=prediction.market_id,
            outcome=outcome,
            accuracy_score=score,
            timestamp=ts,
        )

    def abandon_prediction(self, prediction: Prediction, reason: str) -> ResolutionEvent | None:
        applied = self._store.abandon_prediction(prediction.id, reason)
        self.unwatch(prediction.id)
        if not applied:
            return None
        self.abandoned_count += 1
        logger.error("Abandoned #%d (%s:%s): %s", prediction.id, prediction.venue, prediction.market_id, reason)
        return ResolutionEvent(
            prediction_id=prediction.id,
            kind="abandoned",
            venue=prediction.venue,
            market_id=prediction.market_id,
            detail=reason,
            timestamp=self._clock(),
        )

    def status(self) -> dict:
        return {
            "running": self.running,
            "watching": len(self.watched),
            "resolved": self.resolved_count,
            "abandoned": self.abandoned_count,
            "poll_errors": self.poll_errors,
            "last_poll_at": self.last_poll_at,
        }
