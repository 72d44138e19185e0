"""
Unit tests for config.py.
"""

import pytest
from pydantic import ValidationError

from config import Config, load_config, reliability_for


class TestConfig:
    def test_defaults(self):
        cfg = Config(_env_file=None)
        assert cfg.venues == ["polymarket", "kalshi", "manifold"]
        assert cfg.similarity_threshold == 0.35
        assert cfg.min_divergence == 0.15
        assert cfg.min_opportunity_score == 60.0
        assert cfg.min_score_to_act == 70.0
        assert cfg.max_predictions_per_day == 10
        assert cfg.max_per_category == 3
        assert cfg.cooldown_sec == 300.0
        assert cfg.min_edge == 0.10
        assert cfg.intelligence_max_divergence == 0.20
        assert cfg.scan_interval_sec == 1800.0
        assert cfg.scan_top_n == 10
        assert cfg.learner_min_samples == 5
        assert cfg.db_path == "forecasts.db"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("MAX_PREDICTIONS_PER_DAY", "20")
        monkeypatch.setenv("MIN_CONFIDENCE", "high")
        cfg = Config(_env_file=None)
        assert cfg.max_predictions_per_day == 20
        assert cfg.min_confidence == "high"

    def test_frozen(self):
        cfg = Config(_env_file=None)
        with pytest.raises(ValidationError):
            cfg.min_edge = 0.5

    def test_load_config_overrides(self):
        cfg = load_config(_env_file=None, db_path="/tmp/other.db", cooldown_sec=0)
        assert cfg.db_path == "/tmp/other.db"
        assert cfg.cooldown_sec == 0


class TestValidation:
    def test_field_bounds(self):
        with pytest.raises(ValidationError):
            Config(_env_file=None, similarity_threshold=1.5)

    def test_unknown_confidence_tier(self):
        with pytest.raises(ValidationError, match="min_confidence"):
            Config(_env_file=None, min_confidence="certain")

    def test_poor_must_be_below_good(self):
        with pytest.raises(ValidationError, match="learner_poor_threshold"):
            Config(_env_file=None, learner_poor_threshold=0.8, learner_good_threshold=0.7)

    def test_category_ceiling_within_daily(self):
        with pytest.raises(ValidationError, match="max_per_category"):
            Config(_env_file=None, max_per_category=11, max_predictions_per_day=10)

    def test_reliability_range(self):
        with pytest.raises(ValidationError, match="venue_reliability"):
            Config(_env_file=None, venue_reliability={"polymarket": 1.5})

    def test_unknown_venue(self):
        with pytest.raises(ValidationError, match="unsupported venue"):
            Config(_env_file=None, venues=["polymarket", "betfair"])

    def test_load_config_fails_fast(self):
        with pytest.raises(ValidationError):
            load_config(_env_file=None, cooldown_sec=-1)


class TestReliability:
    def test_known_and_unknown_venues(self):
        cfg = Config(_env_file=None)
        assert reliability_for(cfg, "polymarket") == 1.0
        assert reliability_for(cfg, "Kalshi") == 0.95
        assert reliability_for(cfg, "somewhere") == 0.5
