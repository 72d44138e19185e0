"""
Decision engine: turns scanner opportunities into committed predictions.

Per opportunity:
  1. ordered gate (executor/gates.py) under the state lock
  2. independent cross-check read, outside the lock (network I/O)
  3. gate again + persist + counter update, atomically under the lock
  4. register with the resolution watcher, publish the commitment

Step 3 re-runs the gate because another opportunity may have committed while
step 2 was in flight. Counters only move after the ledger write succeeds, so
a persistence failure leaves state exactly as it was.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter, deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Protocol

from executor.gates import GatePolicy, GateReason, GateRejected, run_gates
from ledger.store import PersistenceError
from pipeline.events import COMMITMENTS, EventBus
from scanner.intelligence import IntelligenceRead
from scanner.models import PRICE_EPSILON, Category, Direction, Opportunity, Prediction
from state.engine_state import CommitmentRecord, EngineState, utc_day

logger = logging.getLogger(__name__)

MAX_INTEL_DIVERGENCE = 0.20
FAVORED_BOOST = 10.0
_DECISION_LOG = 100


class IntelligenceSource(Protocol):
    def read(self, question: str) -> IntelligenceRead: ...


class PredictionLedger(Protocol):
    def create_prediction(
        self,
        question: str,
        probability: float,
        direction: Direction,
        category: Category,
        venue: str = "",
        market_id: str = "",
        reasoning: str = "",
        created_at: float | None = None,
    ) -> Prediction: ...


class Watchlist(Protocol):
    def watch(self, prediction: Prediction) -> None: ...


class PerformanceSource(Protocol):
    def snapshot(self): ...


class DecisionStatus(Enum):
    COMMITTED = "committed"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass(frozen=True)
class Decision:
    opportunity: Opportunity
    status: DecisionStatus
    reason: GateReason | None = None
    detail: str = ""
    prediction: Prediction | None = None
    timestamp: float = field(default_factory=time.time)

    @property
    def committed(self) -> bool:
        return self.status == DecisionStatus.COMMITTED


class DecisionEngine:
    def __init__(
        self,
        state: EngineState,
        policy: GatePolicy,
        ledger: PredictionLedger,
        intelligence: IntelligenceSource | None = None,
        learner: PerformanceSource | None = None,
        watcher: Watchlist | None = None,
        bus: EventBus | None = None,
        max_intel_divergence: float = MAX_INTEL_DIVERGENCE,
        favored_boost: float = FAVORED_BOOST,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.state = state
        self.policy = policy
        self._ledger = ledger
        self._intelligence = intelligence
        self._learner = learner
        self._watcher = watcher
        self._bus = bus
        self._max_intel_divergence = max_intel_divergence
        self._favored_boost = favored_boost
        self._clock = clock
        self._running = False
        self._log_lock = threading.Lock()
        self._decisions: deque[Decision] = deque(maxlen=_DECISION_LOG)
        self.rejections: Counter[str] = Counter()
        self.committed_total = 0
        self.failed_total = 0
        self.last_performance = None

    # ── Lifecycle ──

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Rebuild performance signals, then accept opportunities."""
        self.refresh_performance()
        self._running = True
        logger.info("Decision engine started")

    def stop(self) -> None:
        self._running = False
        logger.info("Decision engine stopped")

    def restore_from_ledger(self, predictions: Iterable[Prediction]) -> int:
        """
        Re-seed state from recent ledger rows so a restart cannot bypass the
        ceilings, cooldown or duplicate window. Only today's rows count
        toward the daily ceilings. Returns how many counted toward today.
        """
        counted = 0
        with self.state.lock:
            today = utc_day(self._clock())
            self.state.reset_daily(today)
            self.state.recent.clear()
            for p in sorted(predictions, key=lambda p: p.created_at):
                record = CommitmentRecord(
                    prediction_id=p.id,
                    market_key=f"{p.venue}:{p.market_id}" if p.has_market_link else f"prediction:{p.id}",
                    category=p.category,
                    timestamp=p.created_at,
                )
                if utc_day(p.created_at) == today:
                    self.state.record_commitment(record)
                    counted += 1
                else:
                    self.state.remember(record)
        logger.info("Restored %d commitment(s) from today's ledger", counted)
        return counted

    def refresh_performance(self):
        """Pull a fresh learner snapshot, replace avoid/favor lists and keep it as last_performance."""
        if self._learner is None:
            return None
        snap = self._learner.snapshot()
        with self.state.lock:
            self.state.apply_performance(
                snap.rolling_accuracy_score, snap.sample_size, snap.avoid, snap.favor,
            )
            self.last_performance = snap
        logger.info(
            "Performance refreshed: avg score %s over %d, avoid=%s favor=%s",
            "n/a" if snap.rolling_accuracy_score is None else f"{snap.rolling_accuracy_score:.3f}",
            snap.sample_size,
            sorted(c.value for c in snap.avoid),
            sorted(c.value for c in snap.favor),
        )
        return snap

    def _maybe_roll_day(self, now: float) -> None:
        today = utc_day(now)
        with self.state.lock:
            if self.state.day == today:
                return
            logger.info("Daily reset: %s -> %s", self.state.day, today)
            self.state.reset_daily(today)
        self.refresh_performance()

    # ── Decisions ──

    def handle_scan_result(self, result) -> list[Decision]:
        """EventBus subscriber for scan results."""
        if result.error:
            logger.info("Skipping failed scan: %s", result.error)
            return []
        return self.process(result.top_opportunities)

    def rank(self, opportunities: Iterable[Opportunity]) -> list[Opportunity]:
        """Score order with the favored-category boost. The boost never bypasses a gate."""
        with self.state.lock:
            favored = self.state.favor_categories
        return sorted(
            opportunities,
            key=lambda o: o.score + (self._favored_boost if o.category in favored else 0.0),
            reverse=True,
        )

    def process(self, opportunities: Iterable[Opportunity]) -> list[Decision]:
        return [self.evaluate(opp) for opp in self.rank(opportunities)]

    def evaluate(self, opp: Opportunity) -> Decision:
        now = self._clock()
        self._maybe_roll_day(now)
        try:
            with self.state.lock:
                run_gates(opp, self.state, self.policy, self._running, now)
            probability, intel_note = self._cross_check(opp)
        except GateRejected as e:
            return self._record(Decision(opp, DecisionStatus.REJECTED, e.reason, e.detail, timestamp=now))

        reasoning = " | ".join([*opp.reasons, intel_note, f"Committed {opp.suggested_direction.value} @ {probability:.0%}"])
        try:
            with self.state.lock:
                now = self._clock()
                run_gates(opp, self.state, self.policy, self._running, now)
                prediction = self._commit(opp, probability, reasoning, now)
        except GateRejected as e:
            return self._record(Decision(opp, DecisionStatus.REJECTED, e.reason, e.detail, timestamp=now))
        except PersistenceError as e:
            logger.error("Commitment aborted for %s, state untouched: %s", opp.market.key, e)
            return self._record(Decision(opp, DecisionStatus.FAILED, detail=str(e), timestamp=now))

        if self._watcher is not None and prediction.has_market_link:
            self._watcher.watch(prediction)
        decision = self._record(Decision(opp, DecisionStatus.COMMITTED, prediction=prediction, timestamp=now))
        if self._bus is not None:
            self._bus.publish(COMMITMENTS, decision)
        return decision

    def _cross_check(self, opp: Opportunity) -> tuple[float, str]:
        """
        Reconcile the opportunity with an independent read. Returns the
        committed probability (of the suggested direction) and a note.
        """
        opp_yes = opp.implied_yes_probability
        direction = opp.suggested_direction
        assert opp_yes is not None and direction is not None  # guaranteed by the edge gate

        if self._intelligence is None:
            return opp.suggested_probability, "No independent read configured"
        try:
            intel = self._intelligence.read(opp.market.title)
        except Exception as e:
            raise GateRejected(GateReason.INTELLIGENCE_UNAVAILABLE, f"cross-check read failed: {e}") from e

        divergence = abs(opp_yes - intel.probability)
        if divergence > self._max_intel_divergence + PRICE_EPSILON:
            raise GateRejected(
                GateReason.INTELLIGENCE_DIVERGENCE,
                f"opportunity {opp_yes:.0%} YES vs independent {intel.probability:.0%} YES "
                f"(diff {divergence:.2f} > {self._max_intel_divergence:.2f})",
            )
        adjusted_yes = (opp_yes + intel.probability) / 2.0
        probability = adjusted_yes if direction == Direction.YES else 1.0 - adjusted_yes
        note = f"Independent range {intel.low:.0%}-{intel.high:.0%} ({len(intel.sources)} sources)"
        return probability, note

    def _commit(self, opp: Opportunity, probability: float, reasoning: str, now: float) -> Prediction:
        """Persist, then count. Caller holds state.lock. Raises PersistenceError with state untouched."""
        market = opp.market
        prediction = self._ledger.create_prediction(
            question=market.title,
            probability=probability,
            direction=opp.suggested_direction,
            category=opp.category,
            venue=market.venue,
            market_id=market.market_id,
            reasoning=reasoning,
            created_at=now,
        )
        self.state.record_commitment(CommitmentRecord(
            prediction_id=prediction.id,
            market_key=market.key,
            category=opp.category,
            timestamp=now,
        ))
        logger.info(
            "Committed #%d: %s %s @ %.0f%% [%s, score %.0f]",
            prediction.id, market.title[:60], opp.suggested_direction.value,
            probability * 100, opp.category.value, opp.score,
        )
        return prediction

    def _record(self, decision: Decision) -> Decision:
        with self._log_lock:
            self._decisions.append(decision)
            if decision.status == DecisionStatus.COMMITTED:
                self.committed_total += 1
            elif decision.status == DecisionStatus.FAILED:
                self.failed_total += 1
            elif decision.reason is not None:
                self.rejections[decision.reason.value] += 1
        if decision.status == DecisionStatus.REJECTED:
            logger.debug("Rejected %s: %s", decision.opportunity.market.key, decision.detail)
        return decision

    def recent_decisions(self) -> list[Decision]:
        with self._log_lock:
            return list(self._decisions)

    def status(self) -> dict:
        with self.state.lock:
            state = self.state.to_dict()
        state.pop("recent", None)
        state.pop("recent_maxlen", None)
        with self._log_lock:
            return {
                "running": self._running,
                **state,
                "committed_total": self.committed_total,
                "failed_total": self.failed_total,
                "rejections": dict(self.rejections),
            }
