"""
Ordered pre-commitment gate. Fail-fast: the first failing check raises GateRejected.

Order matters only for which reason is recorded; any failure rejects. Each
check depends on a single threshold, so tightening one threshold can only
shrink the accepted set.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from config import Config
from scanner.models import PRICE_EPSILON, Confidence, Opportunity
from state.engine_state import EngineState


class GateReason(Enum):
    NOT_RUNNING = "not_running"
    DAILY_LIMIT = "daily_limit"
    CATEGORY_LIMIT = "category_limit"
    COOLDOWN = "cooldown"
    AVOIDED_CATEGORY = "avoided_category"
    LOW_SCORE = "low_score"
    LOW_CONFIDENCE = "low_confidence"
    LOW_EDGE = "low_edge"
    RECENT_DUPLICATE = "recent_duplicate"
    PERFORMANCE_BREAKER = "performance_breaker"
    # Raised after the gate, during the independent cross-check
    INTELLIGENCE_DIVERGENCE = "intelligence_divergence"
    INTELLIGENCE_UNAVAILABLE = "intelligence_unavailable"


class GateRejected(Exception):
    """A policy rejection. Not an error: the opportunity is skipped and the reason recorded."""

    def __init__(self, reason: GateReason, detail: str) -> None:
        super().__init__(f"{reason.value}: {detail}")
        self.reason = reason
        self.detail = detail


@dataclass(frozen=True)
class GatePolicy:
    min_score: float = 70.0
    min_confidence: Confidence = Confidence.MEDIUM
    max_per_day: int = 10
    max_per_category: int = 3
    min_edge: float = 0.10
    cooldown_sec: float = 300.0
    duplicate_window_sec: float = 86400.0
    max_avg_accuracy_score: float = 0.30

    @classmethod
    def from_config(cls, cfg: Config) -> GatePolicy:
        return cls(
            min_score=cfg.min_score_to_act,
            min_confidence=Confidence(cfg.min_confidence),
            max_per_day=cfg.max_predictions_per_day,
            max_per_category=cfg.max_per_category,
            min_edge=cfg.min_edge,
            cooldown_sec=cfg.cooldown_sec,
            duplicate_window_sec=cfg.duplicate_window_sec,
            max_avg_accuracy_score=cfg.max_avg_accuracy_score,
        )


def verify_running(running: bool) -> None:
    if not running:
        raise GateRejected(GateReason.NOT_RUNNING, "decision engine is not running")


def verify_daily_limit(state: EngineState, max_per_day: int) -> None:
    if state.predictions_today >= max_per_day:
        raise GateRejected(
            GateReason.DAILY_LIMIT,
            f"{state.predictions_today}/{max_per_day} predictions already today",
        )


def verify_category_limit(state: EngineState, opp: Opportunity, max_per_category: int) -> None:
    count = state.category_count(opp.category)
    if count >= max_per_category:
        raise GateRejected(
            GateReason.CATEGORY_LIMIT,
            f"{count}/{max_per_category} {opp.category.value} predictions already today",
        )


def verify_cooldown(state: EngineState, now: float, cooldown_sec: float) -> None:
    if state.last_commitment_at is None:
        return
    elapsed = now - state.last_commitment_at
    if elapsed < cooldown_sec:
        raise GateRejected(
            GateReason.COOLDOWN,
            f"last commitment {elapsed:.0f}s ago (cooldown {cooldown_sec:.0f}s)",
        )


def verify_not_avoided(state: EngineState, opp: Opportunity) -> None:
    if opp.category in state.avoid_categories:
        raise GateRejected(
            GateReason.AVOIDED_CATEGORY,
            f"{opp.category.value} is on the avoid list (poor recent accuracy)",
        )


def verify_min_score(opp: Opportunity, min_score: float) -> None:
    if opp.score < min_score:
        raise GateRejected(GateReason.LOW_SCORE, f"score {opp.score:.1f} < {min_score:.1f}")


def verify_min_confidence(opp: Opportunity, min_confidence: Confidence) -> None:
    if opp.confidence.rank < min_confidence.rank:
        raise GateRejected(
            GateReason.LOW_CONFIDENCE,
            f"confidence {opp.confidence.value} < {min_confidence.value}",
        )


def verify_min_edge(opp: Opportunity, min_edge: float) -> None:
    if opp.suggested_direction is None or opp.suggested_probability is None:
        raise GateRejected(GateReason.LOW_EDGE, "no suggested direction")
    if opp.expected_edge + PRICE_EPSILON < min_edge:
        raise GateRejected(
            GateReason.LOW_EDGE,
            f"expected edge {opp.expected_edge:.3f} < {min_edge:.3f}",
        )


def verify_no_recent_commitment(
    state: EngineState, opp: Opportunity, now: float, window_sec: float,
) -> None:
    if state.committed_on(opp.market.key, now - window_sec):
        raise GateRejected(
            GateReason.RECENT_DUPLICATE,
            f"already committed on {opp.market.key} within {window_sec / 3600:.0f}h",
        )


def verify_performance(state: EngineState, max_avg_score: float) -> None:
    score = state.rolling_accuracy_score
    if score is not None and score > max_avg_score:
        raise GateRejected(
            GateReason.PERFORMANCE_BREAKER,
            f"rolling accuracy score {score:.3f} > {max_avg_score:.3f}; commitments paused",
        )


def run_gates(
    opp: Opportunity,
    state: EngineState,
    policy: GatePolicy,
    running: bool,
    now: float,
) -> None:
    """All checks in order. Caller must hold state.lock."""
    verify_running(running)
    verify_daily_limit(state, policy.max_per_day)
    verify_category_limit(state, opp, policy.max_per_category)
    verify_cooldown(state, now, policy.cooldown_sec)
    verify_not_avoided(state, opp)
    verify_min_score(opp, policy.min_score)
    verify_min_confidence(opp, policy.min_confidence)
    verify_min_edge(opp, policy.min_edge)
    verify_no_recent_commitment(state, opp, now, policy.duplicate_window_sec)
    verify_performance(state, policy.max_avg_accuracy_score)
