"""
Control loop: wires scanner, decision engine, watcher and learner together
and exposes the operational surface (scan_once, start/stop, get_status,
force_cycle).

Event flow:
  scanner --scan_results--> engine --commitments--> notifier
  watcher --resolutions--> learner refresh + notifier
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from functools import partial
from typing import Callable

import httpx

from client.aggregator import MarketAggregator
from client.base_rate import HistoricalBaseRate
from client.gamma import GammaAdapter
from client.http import make_client
from client.kalshi import KalshiAdapter
from client.manifold import ManifoldAdapter
from client.notifier import build_notifier
from client.platform import Notifier, VenueAdapter
from config import Config, reliability_for
from executor.engine import Decision, DecisionEngine, DecisionStatus
from executor.gates import GatePolicy
from ledger.store import PredictionStore
from monitor.display import format_commitment, format_opportunity, format_resolution
from monitor.learner import PerformanceLearner
from monitor.watcher import ResolutionWatcher
from pipeline.events import COMMITMENTS, RESOLUTIONS, SCAN_RESULTS, EventBus
from scanner.arbitrage import ArbitragePair, find_arbitrage
from scanner.autonomous import AutonomousScanner, ScanResult
from scanner.intelligence import MarketIntelligence
from scanner.matching import cluster_markets
from scanner.models import ResolutionEvent
from scanner.scorer import OpportunityScorer, ScoringContext
from state.checkpoint import CheckpointManager
from state.engine_state import EngineState

logger = logging.getLogger(__name__)


def build_adapters(cfg: Config, http: httpx.Client | None = None) -> list[VenueAdapter]:
    """One read-only adapter per enabled venue, sharing one HTTP client."""
    http = http or make_client(cfg.http_timeout_sec)
    factories = {
        "polymarket": lambda: GammaAdapter(cfg.gamma_host, http, cfg.http_timeout_sec, cfg.http_retries),
        "kalshi": lambda: KalshiAdapter(cfg.kalshi_host, http, cfg.http_timeout_sec, cfg.http_retries),
        "manifold": lambda: ManifoldAdapter(cfg.manifold_host, http, cfg.http_timeout_sec, cfg.http_retries),
    }
    adapters = []
    for name in cfg.venues:
        if name not in factories:
            raise ValueError(f"unsupported venue {name!r}")
        adapters.append(factories[name]())
    return adapters


@dataclass(frozen=True)
class CycleReport:
    scanned: int
    opportunities: int
    committed: int
    rejected: int
    failed: int
    error: str = ""
    duration_sec: float = 0.0


class ControlLoop:
    def __init__(
        self,
        cfg: Config,
        adapters: list[VenueAdapter] | None = None,
        store: PredictionStore | None = None,
        notifier: Notifier | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cfg = cfg
        self._clock = clock
        # Shared by the venue adapters and the notifier; closed in close()
        self.http = make_client(cfg.http_timeout_sec)
        adapters = adapters if adapters is not None else build_adapters(cfg, self.http)
        self.store = store or PredictionStore(cfg.db_path)
        self.bus = EventBus()
        self.notifier = notifier or build_notifier(cfg.telegram_bot_token, self.http)
        self.aggregator = MarketAggregator(adapters, max_workers=cfg.scan_concurrency)

        reliability = partial(reliability_for, cfg)
        base_rates = HistoricalBaseRate(self.aggregator, cfg.similarity_threshold)
        self.scanner = AutonomousScanner(
            venues=self.aggregator,
            scorer=OpportunityScorer(base_rates, ScoringContext.from_config(cfg)),
            bus=self.bus,
            interval_sec=cfg.scan_interval_sec,
            batch_size=cfg.scan_batch_size,
            top_n=cfg.scan_top_n,
            concurrency=cfg.scan_concurrency,
            lookup_delay_sec=cfg.scan_lookup_delay_sec,
        )
        self.learner = PerformanceLearner(
            self.store,
            min_samples=cfg.learner_min_samples,
            poor_threshold=cfg.learner_poor_threshold,
            good_threshold=cfg.learner_good_threshold,
            window=cfg.learner_window,
        )
        self.watcher = ResolutionWatcher(
            {a.venue: a for a in adapters},
            self.store,
            bus=self.bus,
            poll_sec=cfg.resolution_poll_sec,
            horizon_days=cfg.resolution_horizon_days,
            clock=clock,
        )
        self.state = EngineState(recent=deque(maxlen=cfg.recent_commitments_kept))
        self.engine = DecisionEngine(
            state=self.state,
            policy=GatePolicy.from_config(cfg),
            ledger=self.store,
            intelligence=MarketIntelligence(
                self.aggregator, base_rates, reliability,
                threshold=cfg.similarity_threshold,
                min_base_samples=cfg.intelligence_min_base_samples,
            ),
            learner=self.learner,
            watcher=self.watcher,
            bus=self.bus,
            max_intel_divergence=cfg.intelligence_max_divergence,
            favored_boost=cfg.favored_category_boost,
            clock=clock,
        )
        self.checkpoint = CheckpointManager(cfg.db_path) if cfg.checkpoint_enabled else None

        self._prepared = False
        self._prepare_lock = threading.Lock()
        self.started_at: float | None = None

        self.bus.subscribe(SCAN_RESULTS, self.engine.handle_scan_result, name="engine")
        self.bus.subscribe(SCAN_RESULTS, self._notify_scan, name="notify-scan")
        self.bus.subscribe(COMMITMENTS, self._on_commitment, name="notify-commitment")
        self.bus.subscribe(RESOLUTIONS, self._on_resolution, name="learner")

    # ── Lifecycle ──

    def prepare(self) -> None:
        """Re-seed state from the ledger and start accepting decisions. Idempotent."""
        with self._prepare_lock:
            if self._prepared:
                return
            previous = self.checkpoint.load() if self.checkpoint is not None else None
            since = self._clock() - self.cfg.duplicate_window_sec
            self.engine.restore_from_ledger(self.store.list_created_since(since))
            if (
                previous is not None
                and previous.day == self.state.day
                and previous.predictions_today != self.state.predictions_today
            ):
                logger.warning(
                    "Last checkpoint shows %d commitment(s) today, ledger shows %d; using the ledger",
                    previous.predictions_today, self.state.predictions_today,
                )
            self.watcher.load_pending()
            self.engine.start()
            self._prepared = True

    def start(self) -> None:
        self.prepare()
        self.started_at = self._clock()
        self.watcher.start()
        self.scanner.start()
        logger.info("Control loop running")

    def stop(self) -> None:
        """Cancel future ticks. In-flight scans, commits and resolutions finish first."""
        self.scanner.stop()
        self.watcher.stop()
        self.engine.stop()
        self.save_checkpoint()
        logger.info("Control loop stopped")

    def close(self) -> None:
        self.store.close()
        if self.checkpoint is not None:
            self.checkpoint.close()
        self.http.close()

    def save_checkpoint(self) -> None:
        if self.checkpoint is None:
            return
        self.checkpoint.save(self.state, extra={"rejections": dict(self.engine.rejections)})

    # ── Operations ──

    def scan_once(self) -> ScanResult:
        """Scan without deciding."""
        return self.scanner.scan_once(publish=False)

    def force_cycle(self) -> CycleReport:
        """Synchronous scan-then-decide pass."""
        self.prepare()
        result = self.scanner.scan_once(publish=False)
        decisions = self.engine.handle_scan_result(result)
        self._notify_scan(result)
        report = CycleReport(
            scanned=result.markets_scanned,
            opportunities=result.opportunities_found,
            committed=sum(1 for d in decisions if d.status == DecisionStatus.COMMITTED),
            rejected=sum(1 for d in decisions if d.status == DecisionStatus.REJECTED),
            failed=sum(1 for d in decisions if d.status == DecisionStatus.FAILED),
            error=result.error,
            duration_sec=result.duration_sec,
        )
        logger.info(
            "Cycle: %d scanned, %d opportunities, %d committed, %d rejected, %d failed",
            report.scanned, report.opportunities, report.committed, report.rejected, report.failed,
        )
        return report

    def scan_arbitrage(self, query: str = "", limit: int | None = None) -> list[ArbitragePair]:
        """Cluster current cross-venue listings and report spreads above threshold."""
        limit = limit or self.cfg.scan_batch_size
        if query:
            markets = self.aggregator.search_markets(query, limit=limit)
        else:
            markets = self.aggregator.get_hot_markets(limit)
        clusters = cluster_markets(markets, self.cfg.similarity_threshold, self.cfg.duplicate_listing_ratio)
        return find_arbitrage(
            clusters,
            min_spread=self.cfg.arbitrage_min_spread,
            threshold=self.cfg.similarity_threshold,
            fees=self.cfg.venue_fees,
        )

    def get_status(self) -> dict:
        last = self.scanner.last_result
        stats = self.scanner.stats
        performance = self.engine.last_performance
        return {
            "started_at": self.started_at,
            "engine": self.engine.status(),
            "scanner": {
                "running": self.scanner.running,
                "scans": stats.scans,
                "failed_scans": stats.failed_scans,
                "markets_scanned": stats.markets_scanned,
                "opportunities_found": stats.opportunities_found,
                "last_scan_at": last.timestamp if last else None,
                "last_error": last.error if last else "",
            },
            "watcher": self.watcher.status(),
            "learner": performance.to_dict() if performance is not None else None,
            "ledger": self.store.count_by_status(),
            "checkpoint": self.checkpoint_status(),
            "events": self.bus.stats,
        }

    def checkpoint_status(self) -> dict | None:
        """What the last saved snapshot says, or None if there is none."""
        if self.checkpoint is None:
            return None
        raw = self.checkpoint.load_raw()
        if raw is None:
            return None
        data, saved_at = raw
        return {
            "saved_at": saved_at,
            "day": data.get("day"),
            "predictions_today": data.get("predictions_today", 0),
            "last_commitment_at": data.get("last_commitment_at"),
            "rejections": data.get("extra", {}).get("rejections", {}),
        }

    # ── Subscribers ──

    def _deliver(self, message: str) -> None:
        self.notifier.deliver(self.cfg.notify_chat_id, message)

    def _notify_scan(self, result: ScanResult) -> None:
        for opp in result.high_confidence:
            self._deliver(format_opportunity(opp))

    def _on_commitment(self, decision: Decision) -> None:
        if decision.prediction is not None:
            self._deliver(format_commitment(decision.prediction))
        self.save_checkpoint()

    def _on_resolution(self, event: ResolutionEvent) -> None:
        self.engine.refresh_performance()
        self._deliver(format_resolution(event, self.store.get_prediction(event.prediction_id)))
