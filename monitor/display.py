"""
Console and notification formatting for the forecasting loop.

print_* functions emit boxed log lines for the CLI. format_* functions return
plain text for the notifier. No side effects beyond logging; all data arrives
via arguments.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from config import Config
from scanner.arbitrage import ArbitragePair
from scanner.autonomous import ScanResult
from scanner.models import Opportunity, Prediction, ResolutionEvent
from monitor.watcher import interpret_score

logger = logging.getLogger(__name__)

_TOP = "┌"  # ┌
_MID = "│"  # │
_BOT = "└"  # └
_DASH = "─"  # ─

_MAX_TITLE_LEN = 50


def _truncate(text: str, length: int = _MAX_TITLE_LEN) -> str:
    if len(text) <= length:
        return text
    return text[: length - 1] + "…"


def _pct(p: float | None) -> str:
    return "-" if p is None else f"{p * 100:.0f}%"


def _ts(epoch: float | None) -> str:
    if epoch is None:
        return "never"
    return datetime.fromtimestamp(epoch, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


# ---------------------------------------------------------------------------
# Console
# ---------------------------------------------------------------------------


def print_startup(cfg: Config) -> None:
    logger.info("  Venues: %s", "  ".join(cfg.venues))
    logger.info(
        "  Gate: score >= %.0f  confidence >= %s  edge >= %.2f  %d/day  %d/category  cooldown %.0fs",
        cfg.min_score_to_act, cfg.min_confidence, cfg.min_edge,
        cfg.max_predictions_per_day, cfg.max_per_category, cfg.cooldown_sec,
    )
    logger.info(
        "  Scan every %.0fs (top %d of %d)  Resolution poll %.0fs  Ledger %s",
        cfg.scan_interval_sec, cfg.scan_top_n, cfg.scan_batch_size,
        cfg.resolution_poll_sec, cfg.db_path,
    )


def print_cycle_header(label: str) -> None:
    ts = time.strftime("%H:%M:%S")
    title = f" {label} "
    pad = max(2, 60 - 2 - len(title) - len(ts) - 3)
    logger.info("%s%s%s %s %s", _DASH * 2, title, _DASH * pad, ts, _DASH * 2)


def print_scan_result(result: ScanResult) -> None:
    if result.error:
        logger.info("  %s Scan failed: %s", _TOP, result.error)
        return
    logger.info(
        "  Scanned %d markets in %.1fs, %d opportunities",
        result.markets_scanned, result.duration_sec, result.opportunities_found,
    )
    if not result.top_opportunities:
        logger.info("  %s No opportunities above the floor", _TOP)
        return

    logger.info("  %s Top %d", _TOP, len(result.top_opportunities))
    logger.info(
        "  %s  %-3s %-10s %-50s %6s %6s %6s %-6s %s",
        _MID, "#", "Venue", "Market", "Price", "Base", "Score", "Conf", "Action",
    )
    for idx, opp in enumerate(result.top_opportunities, 1):
        action = (
            f"{opp.suggested_direction.value} @ {_pct(opp.suggested_probability)}"
            if opp.suggested_direction else opp.opportunity_type.value
        )
        logger.info(
            "  %s  %-3d %-10s %-50s %6s %6s %6.1f %-6s %s",
            _MID, idx, opp.market.venue, _truncate(opp.market.title),
            _pct(opp.market.yes_price), _pct(opp.base_rate.rate),
            opp.score, opp.confidence.value, action,
        )
    logger.info("  %s", _BOT)


def print_arbitrage(pairs: list[ArbitragePair]) -> None:
    if not pairs:
        logger.info("  %s No cross-venue spreads above threshold", _TOP)
        return
    logger.info("  %s %d cross-venue spread%s", _TOP, len(pairs), "" if len(pairs) == 1 else "s")
    for pair in pairs:
        logger.info("  %s  %s", _MID, _truncate(pair.cheap.title, 70))
        logger.info(
            "  %s    spread %.1f pts (%.0f%%)  sim %.2f  locked %.3f  %s",
            _MID, pair.spread * 100, pair.profit_pct * 100, pair.similarity, pair.locked_profit, pair.strategy,
        )
    logger.info("  %s", _BOT)


def print_status(status: dict) -> None:
    engine = status.get("engine", {})
    watcher = status.get("watcher", {})
    scanner = status.get("scanner", {})
    ledger = status.get("ledger", {})
    logger.info(
        "  %s Engine %s  day %s  %d today  last commit %s",
        _TOP, "running" if engine.get("running") else "stopped",
        engine.get("day"), engine.get("predictions_today", 0),
        _ts(engine.get("last_commitment_at")),
    )
    score = engine.get("rolling_accuracy_score")
    logger.info(
        "  %s  Rolling score %s over %d  avoid %s  favor %s",
        _MID, "-" if score is None else f"{score:.3f} ({interpret_score(score)})",
        engine.get("resolved_sample_size", 0),
        ",".join(engine.get("avoid_categories", [])) or "-",
        ",".join(engine.get("favor_categories", [])) or "-",
    )
    if engine.get("rejections"):
        parts = [f"{k}={v}" for k, v in sorted(engine["rejections"].items())]
        logger.info("  %s  Rejections: %s", _MID, " ".join(parts))
    logger.info(
        "  %s  Scanner %s  %d scans (%d failed)  last %s",
        _MID, "running" if scanner.get("running") else "stopped",
        scanner.get("scans", 0), scanner.get("failed_scans", 0), _ts(scanner.get("last_scan_at")),
    )
    logger.info(
        "  %s  Watcher %s  watching %d  resolved %d  abandoned %d",
        _MID, "running" if watcher.get("running") else "stopped",
        watcher.get("watching", 0), watcher.get("resolved", 0), watcher.get("abandoned", 0),
    )
    checkpoint = status.get("checkpoint")
    if checkpoint:
        logger.info(
            "  %s  Checkpoint %s  day %s  %d today  last commit %s",
            _MID, _ts(checkpoint.get("saved_at")), checkpoint.get("day"),
            checkpoint.get("predictions_today", 0), _ts(checkpoint.get("last_commitment_at")),
        )
    learner = status.get("learner") or {}
    if learner.get("sample_size"):
        logger.info(
            "  %s  Learner: %d resolved  direction accuracy %.0f%%",
            _MID, learner["sample_size"], (learner.get("overall_accuracy") or 0.0) * 100,
        )
        for b in learner.get("calibration", []):
            logger.info(
                "  %s    %3.0f-%3.0f%%  n=%-3d predicted %3.0f%%  realized %3.0f%%",
                _MID, b["low"] * 100, b["high"] * 100, b["samples"],
                b["mean_predicted"] * 100, b["realized"] * 100,
            )
    if ledger:
        logger.info(
            "  %s Ledger: %s",
            _BOT, "  ".join(f"{k} {v}" for k, v in sorted(ledger.items())),
        )


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


def format_opportunity(opp: Opportunity) -> str:
    lines = [
        f"{opp.opportunity_type.value.upper()} [{opp.category.value}] score {opp.score:.0f} ({opp.confidence.value})",
        opp.market.title,
        f"Market {_pct(opp.market.yes_price)} YES on {opp.market.venue}, base rate {_pct(opp.base_rate.rate)} (n={opp.base_rate.sample_size})",
    ]
    if opp.suggested_direction is not None:
        lines.append(f"Suggest {opp.suggested_direction.value} @ {_pct(opp.suggested_probability)}, edge {opp.expected_edge:.2f}")
    if opp.market.url:
        lines.append(opp.market.url)
    return "\n".join(lines)


def format_commitment(prediction: Prediction) -> str:
    lines = [
        f"New forecast #{prediction.id} [{prediction.category.value}]",
        prediction.question,
        f"{prediction.direction.value} @ {_pct(prediction.probability)}",
    ]
    if prediction.has_market_link:
        lines.append(f"Watching {prediction.venue}:{prediction.market_id}")
    if prediction.reasoning:
        lines.append(prediction.reasoning)
    return "\n".join(lines)


def format_resolution(event: ResolutionEvent, prediction: Prediction | None = None) -> str:
    head = f"Forecast #{event.prediction_id}"
    if prediction is not None:
        head += f": {prediction.question}"
    if event.kind == "abandoned":
        return f"{head}\nAbandoned: {event.detail}"
    outcome = "YES" if event.outcome else "NO"
    body = f"Resolved {outcome}, accuracy score {event.accuracy_score:.4f} ({interpret_score(event.accuracy_score)})"
    if prediction is not None:
        body += f"\nPredicted {prediction.direction.value} @ {_pct(prediction.probability)}"
    return f"{head}\n{body}"
