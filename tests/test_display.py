"""
Unit tests for monitor/display.py -- console output and notification text.
"""

from __future__ import annotations

import logging

from config import Config
from monitor.display import (
    _truncate,
    format_commitment,
    format_opportunity,
    format_resolution,
    print_arbitrage,
    print_cycle_header,
    print_scan_result,
    print_startup,
    print_status,
)
from scanner.arbitrage import ArbitragePair
from scanner.autonomous import ScanResult
from scanner.models import (
    BaseRate,
    Category,
    Confidence,
    Direction,
    Market,
    Opportunity,
    OpportunityType,
    Prediction,
    ResolutionEvent,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_opportunity(direction=Direction.YES, url="https://polymarket.com/event/btc"):
    market = Market(
        venue="polymarket", market_id="m1", title="Will Bitcoin reach $150k by 2030?",
        yes_price=0.2, volume=50_000, url=url,
    )
    return Opportunity(
        market=market,
        category=Category.CRYPTO,
        opportunity_type=OpportunityType.MISPRICED,
        score=100.0,
        confidence=Confidence.HIGH,
        base_rate=BaseRate(0.6, 10),
        divergence=0.4,
        suggested_direction=direction,
        suggested_probability=0.6 if direction else None,
        expected_edge=0.4 if direction else 0.0,
    )


def _make_prediction(**overrides):
    kwargs = dict(
        id=7, question="Will Bitcoin reach $150k by 2030?", probability=0.5875,
        direction=Direction.YES, category=Category.CRYPTO, created_at=0.0,
        venue="polymarket", market_id="m1", reasoning="Market at 20% vs base rate 60%",
    )
    kwargs.update(overrides)
    return Prediction(**kwargs)


def _messages(caplog):
    return "\n".join(r.getMessage() for r in caplog.records)


# ---------------------------------------------------------------------------
# Notification text
# ---------------------------------------------------------------------------

class TestFormatOpportunity:
    def test_mispriced(self):
        text = format_opportunity(_make_opportunity())
        lines = text.splitlines()
        assert lines[0] == "MISPRICED [crypto] score 100 (high)"
        assert "Market 20% YES on polymarket, base rate 60% (n=10)" in text
        assert "Suggest YES @ 60%, edge 0.40" in text
        assert lines[-1] == "https://polymarket.com/event/btc"

    def test_without_direction_or_url(self):
        text = format_opportunity(_make_opportunity(direction=None, url=""))
        assert "Suggest" not in text
        assert "http" not in text


class TestFormatCommitment:
    def test_linked(self):
        text = format_commitment(_make_prediction())
        assert text.startswith("New forecast #7 [crypto]")
        assert "YES @ 59%" in text
        assert "Watching polymarket:m1" in text
        assert text.endswith("Market at 20% vs base rate 60%")

    def test_unlinked(self):
        text = format_commitment(_make_prediction(venue="", market_id="", reasoning=""))
        assert "Watching" not in text


class TestFormatResolution:
    def test_resolved(self):
        event = ResolutionEvent(7, "resolved", "polymarket", "m1", outcome=True, accuracy_score=0.1702)
        text = format_resolution(event, _make_prediction())
        assert text.startswith("Forecast #7: Will Bitcoin")
        assert "Resolved YES, accuracy score 0.1702 (good)" in text
        assert "Predicted YES @ 59%" in text

    def test_abandoned_without_prediction(self):
        event = ResolutionEvent(7, "abandoned", "polymarket", "m1", detail="market no longer listed by venue")
        assert format_resolution(event) == "Forecast #7\nAbandoned: market no longer listed by venue"


# ---------------------------------------------------------------------------
# Console
# ---------------------------------------------------------------------------

class TestConsole:
    def test_truncate(self):
        assert _truncate("short") == "short"
        long = "x" * 80
        assert len(_truncate(long)) == 50
        assert _truncate(long).endswith("…")

    def test_startup(self, caplog):
        with caplog.at_level(logging.INFO, logger="monitor.display"):
            print_startup(Config(_env_file=None))
        out = _messages(caplog)
        assert "polymarket  kalshi  manifold" in out
        assert "score >= 70" in out

    def test_cycle_header(self, caplog):
        with caplog.at_level(logging.INFO, logger="monitor.display"):
            print_cycle_header("Scan")
        assert " Scan " in _messages(caplog)

    def test_scan_result_table(self, caplog):
        result = ScanResult(0.0, 5, 1, (_make_opportunity(),), duration_sec=1.2)
        with caplog.at_level(logging.INFO, logger="monitor.display"):
            print_scan_result(result)
        out = _messages(caplog)
        assert "Scanned 5 markets in 1.2s, 1 opportunities" in out
        assert "YES @ 60%" in out

    def test_scan_failure(self, caplog):
        with caplog.at_level(logging.INFO, logger="monitor.display"):
            print_scan_result(ScanResult(0.0, 0, 0, (), error="venue down"))
        assert "Scan failed: venue down" in _messages(caplog)

    def test_empty_arbitrage(self, caplog):
        with caplog.at_level(logging.INFO, logger="monitor.display"):
            print_arbitrage([])
        assert "No cross-venue spreads" in _messages(caplog)

    def test_arbitrage(self, caplog):
        cheap = Market("polymarket", "p1", "Will X happen?", 0.40)
        rich = Market("kalshi", "K1", "Will X happen?", 0.55)
        pair = ArbitragePair("happen", cheap, rich, 0.15, 1.0, "Buy YES @ polymarket (40%)", 0.04)
        with caplog.at_level(logging.INFO, logger="monitor.display"):
            print_arbitrage([pair])
        out = _messages(caplog)
        assert "1 cross-venue spread" in out
        assert "spread 15.0 pts" in out

    def test_status(self, caplog):
        status = {
            "engine": {
                "running": True, "day": "2027-01-15", "predictions_today": 2,
                "last_commitment_at": None, "rolling_accuracy_score": 0.18,
                "resolved_sample_size": 12, "avoid_categories": ["sports"],
                "favor_categories": [], "rejections": {"cooldown": 3},
            },
            "scanner": {"running": False, "scans": 4, "failed_scans": 1, "last_scan_at": None},
            "watcher": {"running": False, "watching": 2, "resolved": 5, "abandoned": 1},
            "learner": {
                "sample_size": 6, "overall_accuracy": 0.5,
                "calibration": [{"low": 0.6, "high": 0.8, "samples": 6, "mean_predicted": 0.7, "realized": 0.5}],
            },
            "ledger": {"pending": 2, "resolved": 5, "abandoned": 1},
            "checkpoint": {"saved_at": 0.0, "day": "2027-01-15", "predictions_today": 2, "last_commitment_at": None},
        }
        with caplog.at_level(logging.INFO, logger="monitor.display"):
            print_status(status)
        out = _messages(caplog)
        assert "Engine running  day 2027-01-15  2 today  last commit never" in out
        assert "0.180 (good)" in out
        assert "avoid sports" in out
        assert "cooldown=3" in out
        assert "abandoned 1  pending 2  resolved 5" in out
        assert "Learner: 6 resolved  direction accuracy 50%" in out
        assert "n=6   predicted  70%  realized  50%" in out
        assert "Checkpoint 1970-01-01 00:00:00 UTC  day 2027-01-15  2 today  last commit never" in out
