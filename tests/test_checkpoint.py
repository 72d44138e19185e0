"""
Unit tests for state/checkpoint.py and state/engine_state.py -- engine state snapshots.
"""

from __future__ import annotations

import json
import sqlite3
from collections import deque
from pathlib import Path

import pytest

from scanner.models import Category
from state.checkpoint import STATE_KEY, CheckpointManager
from state.engine_state import CommitmentRecord, EngineState, utc_day


# ---------------------------------------------------------------------------
# Fixtures / helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "test_state.db"


@pytest.fixture
def mgr(db_path: Path) -> CheckpointManager:
    m = CheckpointManager(db_path=db_path)
    yield m
    m.close()


def _busy_state() -> EngineState:
    state = EngineState(day="2027-01-15", recent=deque(maxlen=5))
    state.record_commitment(CommitmentRecord(1, "polymarket:a", Category.CRYPTO, 100.0))
    state.record_commitment(CommitmentRecord(2, "kalshi:b", Category.POLITICS, 200.0))
    state.apply_performance(0.18, 12, frozenset({Category.SPORTS}), frozenset({Category.CRYPTO}))
    return state


# ---------------------------------------------------------------------------
# EngineState
# ---------------------------------------------------------------------------

class TestEngineState:
    def test_utc_day(self):
        assert utc_day(0.0) == "1970-01-01"
        assert utc_day(86399.0) == "1970-01-01"
        assert utc_day(86400.0) == "1970-01-02"

    def test_record_commitment_counts(self):
        state = _busy_state()
        assert state.predictions_today == 2
        assert state.category_count(Category.CRYPTO) == 1
        assert state.category_count(Category.TECH) == 0
        assert state.last_commitment_at == 200.0

    def test_remember_skips_daily_counters(self):
        state = EngineState()
        state.remember(CommitmentRecord(1, "polymarket:a", Category.CRYPTO, 50.0))
        assert state.predictions_today == 0
        assert state.last_commitment_at == 50.0
        assert state.committed_on("polymarket:a", since=0.0)
        assert not state.committed_on("polymarket:a", since=60.0)

    def test_last_commitment_never_moves_backwards(self):
        state = EngineState()
        state.remember(CommitmentRecord(1, "x:1", Category.CRYPTO, 500.0))
        state.remember(CommitmentRecord(2, "x:2", Category.CRYPTO, 100.0))
        assert state.last_commitment_at == 500.0

    def test_reset_daily_keeps_cooldown_and_recent(self):
        state = _busy_state()
        state.reset_daily("2027-01-16")
        assert state.day == "2027-01-16"
        assert state.predictions_today == 0
        assert state.per_category_today == {}
        assert state.last_commitment_at == 200.0
        assert len(state.recent) == 2

    def test_apply_performance_replaces(self):
        state = _busy_state()
        state.apply_performance(None, 0, frozenset(), frozenset())
        assert state.avoid_categories == frozenset()
        assert state.favor_categories == frozenset()
        assert state.rolling_accuracy_score is None

    def test_dict_round_trip(self):
        state = _busy_state()
        restored = EngineState.from_dict(json.loads(json.dumps(state.to_dict())))
        assert restored.day == state.day
        assert restored.per_category_today == state.per_category_today
        assert list(restored.recent) == list(state.recent)
        assert restored.recent.maxlen == 5
        assert restored.avoid_categories == {Category.SPORTS}


# ---------------------------------------------------------------------------
# CheckpointManager
# ---------------------------------------------------------------------------

class TestCheckpointManager:
    def test_empty_load(self, mgr: CheckpointManager):
        assert mgr.load() is None
        assert mgr.load_raw() is None

    def test_save_and_load(self, mgr: CheckpointManager):
        mgr.save(_busy_state(), extra={"pid": 123})
        state = mgr.load()
        assert state.predictions_today == 2
        assert state.favor_categories == {Category.CRYPTO}
        data, updated_at = mgr.load_raw()
        assert data["extra"] == {"pid": 123}
        assert updated_at > 0
        assert mgr.save_count == 1

    def test_save_replaces_previous(self, mgr: CheckpointManager, db_path: Path):
        mgr.save(_busy_state())
        state = _busy_state()
        state.reset_daily("2027-01-16")
        mgr.save(state)
        assert mgr.load().day == "2027-01-16"
        conn = sqlite3.connect(db_path)
        assert conn.execute("SELECT COUNT(*) FROM engine_checkpoint").fetchone()[0] == 1
        conn.close()

    def test_survives_reopen(self, db_path: Path):
        first = CheckpointManager(db_path)
        first.save(_busy_state())
        first.close()
        second = CheckpointManager(db_path)
        assert second.load().predictions_today == 2
        second.close()

    def test_unreadable_checkpoint_discarded(self, mgr: CheckpointManager, db_path: Path):
        conn = sqlite3.connect(db_path)
        conn.execute(
            "INSERT INTO engine_checkpoint (name, data_json, updated_at) VALUES (?, ?, ?)",
            (STATE_KEY, json.dumps({"recent": []}), 1.0),
        )
        conn.commit()
        conn.close()
        assert mgr.load() is None
