"""
Autonomous scanner: fetch hot markets, score each, publish the ranked top N.

State machine: stopped -> running. While running, a PeriodicTask scans once
immediately and then every scan_interval_sec. A failed fetch never escapes:
the cycle publishes an empty result carrying the error string.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from client.platform import MarketSource
from pipeline.events import SCAN_RESULTS, EventBus
from pipeline.ticker import PeriodicTask
from scanner.models import Confidence, Market, Opportunity
from scanner.scorer import OpportunityScorer, rank_opportunities

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanResult:
    timestamp: float
    markets_scanned: int
    opportunities_found: int
    top_opportunities: tuple[Opportunity, ...]
    duration_sec: float = 0.0
    error: str = ""

    @property
    def high_confidence(self) -> tuple[Opportunity, ...]:
        return tuple(o for o in self.top_opportunities if o.confidence == Confidence.HIGH)

    @property
    def ok(self) -> bool:
        return not self.error


@dataclass
class ScannerStats:
    scans: int = 0
    failed_scans: int = 0
    markets_scanned: int = 0
    opportunities_found: int = 0
    score_errors: int = 0
    last_result: ScanResult | None = field(default=None, repr=False)


class AutonomousScanner:
    def __init__(
        self,
        venues: MarketSource,
        scorer: OpportunityScorer,
        bus: EventBus,
        interval_sec: float = 1800.0,
        batch_size: int = 50,
        top_n: int = 10,
        concurrency: int = 4,
        lookup_delay_sec: float = 0.1,
    ) -> None:
        self._venues = venues
        self._scorer = scorer
        self._bus = bus
        self._batch_size = batch_size
        self._top_n = top_n
        self._concurrency = concurrency
        self._lookup_delay_sec = lookup_delay_sec
        self._scan_lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._task = PeriodicTask("scanner", interval_sec, self._tick)
        self.stats = ScannerStats()

    @property
    def running(self) -> bool:
        return self._task.running

    @property
    def last_result(self) -> ScanResult | None:
        return self.stats.last_result

    def start(self) -> None:
        if self._task.start():
            logger.info("Autonomous scanner started")

    def stop(self) -> None:
        """Cancel future scans. A scan already in flight is left to finish."""
        self._task.stop()

    def _tick(self) -> None:
        self.scan_once(publish=True)

    def _score_one(self, market: Market) -> Opportunity | None:
        try:
            opp = self._scorer.score(market)
        except Exception as e:
            with self._stats_lock:
                self.stats.score_errors += 1
            logger.warning("Scoring failed for %s: %s", market.key, e)
            opp = None
        if self._lookup_delay_sec > 0:
            # Spreads per-worker lookups out to respect third-party rate limits.
            time.sleep(self._lookup_delay_sec)
        return opp

    def scan_once(self, publish: bool = True) -> ScanResult:
        """
        Run one full scan. Scans never overlap: a concurrent caller waits
        for the in-flight scan and then runs its own.
        """
        with self._scan_lock:
            result = self._scan()
            self.stats.scans += 1
            self.stats.markets_scanned += result.markets_scanned
            self.stats.opportunities_found += result.opportunities_found
            if result.error:
                self.stats.failed_scans += 1
            self.stats.last_result = result
        if publish:
            self._bus.publish(SCAN_RESULTS, result)
        return result

    def _scan(self) -> ScanResult:
        started = time.time()
        try:
            markets = self._venues.get_hot_markets(self._batch_size)
        except Exception as e:
            logger.error("Scan fetch failed, zero opportunities this cycle: %s", e)
            return ScanResult(
                timestamp=started,
                markets_scanned=0,
                opportunities_found=0,
                top_opportunities=(),
                duration_sec=time.time() - started,
                error=str(e) or type(e).__name__,
            )

        with ThreadPoolExecutor(max_workers=self._concurrency) as pool:
            scored = list(pool.map(self._score_one, markets))
        opportunities = [o for o in scored if o is not None]
        ranked = rank_opportunities(opportunities)[: self._top_n]

        result = ScanResult(
            timestamp=started,
            markets_scanned=len(markets),
            opportunities_found=len(opportunities),
            top_opportunities=tuple(ranked),
            duration_sec=time.time() - started,
        )
        logger.info(
            "Scan complete: %d markets, %d opportunities (%d high confidence) in %.1fs",
            result.markets_scanned, result.opportunities_found,
            len(result.high_confidence), result.duration_sec,
        )
        return result
