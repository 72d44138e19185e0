"""
Unit tests for executor/engine.py -- gate, cross-check, commit, rollback.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from executor.engine import DecisionEngine, DecisionStatus
from executor.gates import GatePolicy, GateReason
from ledger.store import PersistenceError, PredictionStore
from monitor.learner import PerformanceSnapshot
from pipeline.events import COMMITMENTS, EventBus
from scanner.autonomous import ScanResult
from scanner.intelligence import IntelligenceRead
from scanner.models import (
    NEUTRAL_BASE_RATE,
    BaseRate,
    Category,
    Confidence,
    Direction,
    Market,
    Opportunity,
    OpportunityType,
)
from state.engine_state import EngineState

# 2027-01-15 12:00:00 UTC
NOON = 1_800_000_000.0 - (1_800_000_000.0 % 86400) + 43200


class _Clock:
    def __init__(self, now: float = NOON):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class _FixedIntelligence:
    """Independent read centred on a given YES probability."""

    def __init__(self, yes_probability: float | None = None, error: Exception | None = None):
        self.yes_probability = yes_probability
        self.error = error
        self.questions = []

    def read(self, question: str) -> IntelligenceRead:
        self.questions.append(question)
        if self.error:
            raise self.error
        p = self.yes_probability
        return IntelligenceRead(question, NEUTRAL_BASE_RATE, None, (p,), p - 0.1, p + 0.1)


class _FailingLedger:
    def create_prediction(self, **kwargs):
        raise PersistenceError("disk full")


class _RecordingWatcher:
    def __init__(self):
        self.watched = []

    def watch(self, prediction):
        self.watched.append(prediction)


class _FixedLearner:
    def __init__(self, snapshot: PerformanceSnapshot):
        self.snap = snapshot
        self.calls = 0

    def snapshot(self):
        self.calls += 1
        return self.snap


def _make_opportunity(
    market_id="m1",
    category=Category.CRYPTO,
    score=85.0,
    confidence=Confidence.HIGH,
    direction=Direction.YES,
    probability=0.6,
    edge=0.2,
    venue="polymarket",
):
    market = Market(venue=venue, market_id=market_id, title=f"Will BTC hit {market_id}?", yes_price=0.4, volume=50_000)
    return Opportunity(
        market=market,
        category=category,
        opportunity_type=OpportunityType.MISPRICED,
        score=score,
        confidence=confidence,
        base_rate=BaseRate(0.6, 10),
        divergence=0.2,
        suggested_direction=direction,
        suggested_probability=probability,
        expected_edge=edge,
        reasons=("Market at 40% vs base rate 60%",),
    )


@pytest.fixture
def store(tmp_path: Path) -> PredictionStore:
    return PredictionStore(db_path=tmp_path / "engine.db")


def _make_engine(store, policy=None, intelligence=None, clock=None, start=True, **kwargs):
    clock = clock or _Clock()
    engine = DecisionEngine(
        state=EngineState(day="2027-01-15"),
        policy=policy or GatePolicy(),
        ledger=store,
        intelligence=intelligence if intelligence is not None else _FixedIntelligence(0.6),
        clock=clock,
        **kwargs,
    )
    if start:
        engine.start()
    return engine


class TestCommit:
    def test_commits_and_persists(self, store):
        watcher = _RecordingWatcher()
        engine = _make_engine(store, watcher=watcher)
        decision = engine.evaluate(_make_opportunity())
        assert decision.status == DecisionStatus.COMMITTED
        p = decision.prediction
        assert store.get_prediction(p.id) == p
        assert p.venue == "polymarket" and p.market_id == "m1"
        assert p.direction == Direction.YES
        assert "Market at 40% vs base rate 60%" in p.reasoning
        assert watcher.watched == [p]
        assert engine.state.predictions_today == 1
        assert engine.state.category_count(Category.CRYPTO) == 1
        assert engine.state.last_commitment_at == NOON

    def test_publishes_commitment(self, store):
        bus = EventBus()
        received = []
        bus.subscribe(COMMITMENTS, received.append)
        engine = _make_engine(store, bus=bus)
        decision = engine.evaluate(_make_opportunity())
        assert received == [decision]

    def test_rejection_publishes_nothing(self, store):
        bus = EventBus()
        received = []
        bus.subscribe(COMMITMENTS, received.append)
        engine = _make_engine(store, bus=bus)
        engine.evaluate(_make_opportunity(score=10))
        assert received == []


class TestCategoryScenario:
    def test_five_crypto_three_committed(self, store):
        engine = _make_engine(store, policy=GatePolicy(cooldown_sec=0, max_per_day=10, max_per_category=3))
        opps = [_make_opportunity(market_id=f"c{i}") for i in range(5)]
        decisions = engine.process(opps)
        committed = [d for d in decisions if d.status == DecisionStatus.COMMITTED]
        rejected = [d for d in decisions if d.status == DecisionStatus.REJECTED]
        assert len(committed) == 3
        assert len(rejected) == 2
        assert all(d.reason == GateReason.CATEGORY_LIMIT for d in rejected)
        assert engine.rejections == {"category_limit": 2}
        assert store.count_by_status()["pending"] == 3

    def test_default_cooldown_blocks_back_to_back(self, store):
        engine = _make_engine(store)
        decisions = engine.process([_make_opportunity("a"), _make_opportunity("b")])
        assert [d.status for d in decisions] == [DecisionStatus.COMMITTED, DecisionStatus.REJECTED]
        assert decisions[1].reason == GateReason.COOLDOWN

    def test_daily_ceiling_never_exceeded(self, store):
        clock = _Clock()
        engine = _make_engine(store, policy=GatePolicy(cooldown_sec=0, max_per_day=2, max_per_category=2), clock=clock)
        cats = [Category.CRYPTO, Category.POLITICS, Category.SPORTS, Category.TECH]
        for i, cat in enumerate(cats):
            engine.evaluate(_make_opportunity(f"x{i}", category=cat))
        assert engine.state.predictions_today == 2
        assert engine.rejections["daily_limit"] == 2


class TestCrossCheck:
    def test_average_on_agreement_yes(self, store):
        engine = _make_engine(store, intelligence=_FixedIntelligence(0.5))
        decision = engine.evaluate(_make_opportunity(direction=Direction.YES, probability=0.6))
        assert decision.prediction.probability == pytest.approx(0.55)

    def test_average_on_agreement_no(self, store):
        # NO @ 0.6 implies YES 0.4; averaged with independent 0.5 gives YES 0.45 -> NO 0.55
        engine = _make_engine(store, intelligence=_FixedIntelligence(0.5))
        decision = engine.evaluate(_make_opportunity(direction=Direction.NO, probability=0.6))
        assert decision.prediction.direction == Direction.NO
        assert decision.prediction.probability == pytest.approx(0.55)

    def test_divergent_read_rejected(self, store):
        engine = _make_engine(store, intelligence=_FixedIntelligence(0.3))
        decision = engine.evaluate(_make_opportunity(probability=0.6))
        assert decision.status == DecisionStatus.REJECTED
        assert decision.reason == GateReason.INTELLIGENCE_DIVERGENCE
        assert engine.state.predictions_today == 0

    def test_divergence_exactly_at_limit_accepted(self, store):
        # 0.8 - 0.6 is 0.2000000000000001 in floats
        engine = _make_engine(store, intelligence=_FixedIntelligence(0.6))
        decision = engine.evaluate(_make_opportunity(probability=0.8))
        assert decision.status == DecisionStatus.COMMITTED
        assert decision.prediction.probability == pytest.approx(0.7)

    def test_unavailable_read_rejected(self, store):
        engine = _make_engine(store, intelligence=_FixedIntelligence(error=TimeoutError("slow")))
        decision = engine.evaluate(_make_opportunity())
        assert decision.reason == GateReason.INTELLIGENCE_UNAVAILABLE
        assert "slow" in decision.detail

    def test_gate_runs_before_cross_check(self, store):
        intel = _FixedIntelligence(0.6)
        engine = _make_engine(store, intelligence=intel)
        engine.evaluate(_make_opportunity(score=10))
        assert intel.questions == []


class TestPersistenceFailure:
    def test_failure_leaves_state_untouched(self):
        watcher = _RecordingWatcher()
        engine = _make_engine(_FailingLedger(), watcher=watcher)
        decision = engine.evaluate(_make_opportunity())
        assert decision.status == DecisionStatus.FAILED
        assert "disk full" in decision.detail
        assert engine.state.predictions_today == 0
        assert engine.state.last_commitment_at is None
        assert len(engine.state.recent) == 0
        assert watcher.watched == []
        assert engine.failed_total == 1


class TestLifecycle:
    def test_not_running_rejects(self, store):
        engine = _make_engine(store, start=False)
        assert engine.evaluate(_make_opportunity()).reason == GateReason.NOT_RUNNING

    def test_stop(self, store):
        engine = _make_engine(store)
        engine.stop()
        assert engine.evaluate(_make_opportunity()).reason == GateReason.NOT_RUNNING

    def test_failed_scan_result_ignored(self, store):
        engine = _make_engine(store)
        result = ScanResult(timestamp=NOON, markets_scanned=0, opportunities_found=0,
                            top_opportunities=(), error="venue down")
        assert engine.handle_scan_result(result) == []


class TestPerformance:
    def test_start_applies_learner_snapshot(self, store):
        snap = PerformanceSnapshot(0.12, 30, avoid=frozenset({Category.SPORTS}), favor=frozenset({Category.CRYPTO}))
        engine = _make_engine(store, learner=_FixedLearner(snap))
        assert engine.state.avoid_categories == {Category.SPORTS}
        assert engine.state.favor_categories == {Category.CRYPTO}
        assert engine.last_performance is snap
        assert engine.evaluate(_make_opportunity(category=Category.SPORTS)).reason == GateReason.AVOIDED_CATEGORY

    def test_breaker_pauses_commitments(self, store):
        snap = PerformanceSnapshot(0.45, 30)
        engine = _make_engine(store, learner=_FixedLearner(snap))
        assert engine.evaluate(_make_opportunity()).reason == GateReason.PERFORMANCE_BREAKER

    def test_favored_boost_orders_but_never_bypasses(self, store):
        snap = PerformanceSnapshot(0.1, 30, favor=frozenset({Category.POLITICS}))
        engine = _make_engine(store, learner=_FixedLearner(snap), favored_boost=10)
        plain = _make_opportunity("a", category=Category.CRYPTO, score=80)
        favored = _make_opportunity("b", category=Category.POLITICS, score=75)
        weak_favored = _make_opportunity("c", category=Category.POLITICS, score=65)
        assert engine.rank([plain, weak_favored, favored]) == [favored, plain, weak_favored]
        decision = engine.evaluate(weak_favored)
        assert decision.reason == GateReason.LOW_SCORE

    def test_day_rollover_resets_and_refreshes(self, store):
        clock = _Clock()
        learner = _FixedLearner(PerformanceSnapshot(None, 0))
        engine = _make_engine(store, clock=clock, learner=learner,
                              policy=GatePolicy(cooldown_sec=0, max_per_day=1, max_per_category=1))
        assert engine.evaluate(_make_opportunity("a")).status == DecisionStatus.COMMITTED
        assert engine.evaluate(_make_opportunity("b")).reason == GateReason.DAILY_LIMIT
        calls_before = learner.calls
        clock.advance(86400)
        assert engine.evaluate(_make_opportunity("c")).status == DecisionStatus.COMMITTED
        assert engine.state.day == "2027-01-16"
        assert learner.calls == calls_before + 1


class TestRestore:
    def test_restart_cannot_bypass_ceilings(self, store):
        clock = _Clock()
        policy = GatePolicy(cooldown_sec=0, max_per_day=10, max_per_category=2)
        first = _make_engine(store, policy=policy, clock=clock)
        first.process([_make_opportunity("a"), _make_opportunity("b")])

        restarted = _make_engine(store, policy=policy, clock=clock, start=False)
        assert restarted.restore_from_ledger(store.list_created_since(clock.now - 86400)) == 2
        restarted.start()
        assert restarted.state.category_count(Category.CRYPTO) == 2
        assert restarted.evaluate(_make_opportunity("c")).reason == GateReason.CATEGORY_LIMIT

    def test_yesterdays_commitments_only_block_duplicates(self, store):
        clock = _Clock()
        first = _make_engine(store, clock=clock)
        first.evaluate(_make_opportunity("a"))
        clock.advance(13 * 3600)  # next UTC day, inside the 24h window

        restarted = _make_engine(store, policy=GatePolicy(cooldown_sec=0), clock=clock, start=False)
        assert restarted.restore_from_ledger(store.list_created_since(clock.now - 86400)) == 0
        restarted.start()
        assert restarted.state.predictions_today == 0
        assert restarted.evaluate(_make_opportunity("a")).reason == GateReason.RECENT_DUPLICATE


class TestMonotonicity:
    """Tightening one threshold can only shrink the accepted set for a fixed stream."""

    STREAM = [
        dict(market_id="s1", category=Category.CRYPTO, score=95, edge=0.30, confidence=Confidence.HIGH),
        dict(market_id="s2", category=Category.POLITICS, score=72, edge=0.12, confidence=Confidence.MEDIUM),
        dict(market_id="s3", category=Category.SPORTS, score=88, edge=0.18, confidence=Confidence.HIGH),
        dict(market_id="s4", category=Category.TECH, score=79, edge=0.25, confidence=Confidence.MEDIUM),
        dict(market_id="s5", category=Category.ECONOMICS, score=65, edge=0.40, confidence=Confidence.HIGH),
        dict(market_id="s6", category=Category.CLIMATE, score=91, edge=0.09, confidence=Confidence.HIGH),
        dict(market_id="s7", category=Category.GENERAL, score=83, edge=0.15, confidence=Confidence.LOW),
    ]

    def _accepted(self, tmp_path, name, policy):
        store = PredictionStore(db_path=tmp_path / f"{name}.db")
        engine = _make_engine(store, policy=policy)
        decisions = engine.process([_make_opportunity(**kw) for kw in self.STREAM])
        return {d.opportunity.market.market_id for d in decisions if d.committed}

    @pytest.mark.parametrize("tight", [
        dict(min_score=85),
        dict(min_edge=0.2),
        dict(min_confidence=Confidence.HIGH),
        dict(max_per_day=2),
    ])
    def test_tightening_shrinks_accepted_set(self, tmp_path, tight):
        base = dict(cooldown_sec=0, max_per_day=10, max_per_category=3)
        loose = self._accepted(tmp_path, "loose", GatePolicy(**base))
        strict = self._accepted(tmp_path, "strict", GatePolicy(**{**base, **tight}))
        assert strict <= loose
        assert len(strict) < len(loose)
