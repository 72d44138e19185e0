"""
Independent probability read for a question, used to cross-check opportunities.

Sources are the historical base rate (only with enough samples) and the
prices in the best cross-venue cluster of on-topic search results. The
recommended range is mean +/- (std + 0.05), clamped to [0.05, 0.95]; its
midpoint is the independent YES probability.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable

from client.platform import BaseRateService, MarketSource
from scanner.consensus import ConsensusResult, cluster_consensus
from scanner.matching import best_cluster, cluster_markets
from scanner.models import BaseRate
from scanner.similarity import similarity

logger = logging.getLogger(__name__)

RANGE_PAD = 0.05
RANGE_FLOOR = 0.05
RANGE_CEIL = 0.95
DEFAULT_RANGE = (0.3, 0.7)


@dataclass(frozen=True)
class IntelligenceRead:
    question: str
    base_rate: BaseRate
    consensus: ConsensusResult | None
    sources: tuple[float, ...]
    low: float
    high: float

    @property
    def probability(self) -> float:
        """Midpoint of the recommended range, as a YES-probability."""
        return (self.low + self.high) / 2.0


def recommended_range(sources: list[float]) -> tuple[float, float]:
    if not sources:
        return DEFAULT_RANGE
    mean = sum(sources) / len(sources)
    std = math.sqrt(sum((s - mean) ** 2 for s in sources) / len(sources))
    low = max(RANGE_FLOOR, mean - std - RANGE_PAD)
    high = min(RANGE_CEIL, mean + std + RANGE_PAD)
    return low, high


class MarketIntelligence:
    def __init__(
        self,
        venues: MarketSource,
        base_rates: BaseRateService,
        reliability: Callable[[str], float],
        threshold: float = 0.35,
        min_base_samples: int = 3,
        search_limit: int = 10,
    ) -> None:
        self._venues = venues
        self._base_rates = base_rates
        self._reliability = reliability
        self._threshold = threshold
        self._min_base_samples = min_base_samples
        self._search_limit = search_limit

    def read(self, question: str) -> IntelligenceRead:
        """Raises whatever the venue or base-rate call raises; callers decide how to degrade."""
        base = self._base_rates.base_rate(question)
        sources: list[float] = []
        if base.sample_size >= self._min_base_samples:
            sources.append(base.rate)

        found = self._venues.search_markets(question, limit=self._search_limit)
        on_topic = [m for m in found if similarity(question, m.title) >= self._threshold]
        consensus = None
        cluster = best_cluster(cluster_markets(on_topic, self._threshold))
        if cluster is not None:
            consensus = cluster_consensus(cluster, self._reliability)
            sources.extend(m.yes_price for m in cluster.members)

        low, high = recommended_range(sources)
        logger.debug(
            "Intelligence for '%s': %d source(s), range %.2f-%.2f",
            question[:50], len(sources), low, high,
        )
        return IntelligenceRead(
            question=question,
            base_rate=base,
            consensus=consensus,
            sources=tuple(sources),
            low=low,
            high=high,
        )
