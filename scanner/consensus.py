"""
Liquidity and reliability weighted consensus over a cluster.

weight = log(volume + 1) * venue reliability. The consensus is the weighted
mean of yes-prices (plain mean if every weight is zero). Agreement collapses
to zero once the mean absolute deviation reaches 0.2.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable

from scanner.matching import Cluster
from scanner.models import Confidence, Market

AGREEMENT_SLOPE = 5.0
HIGH_MIN_SOURCES = 3
HIGH_MIN_AGREEMENT = 0.7
MEDIUM_MIN_SOURCES = 2
MEDIUM_MIN_AGREEMENT = 0.4
ARBITRAGE_SPREAD = 0.05


@dataclass(frozen=True)
class SourceContribution:
    venue: str
    market_id: str
    probability: float
    volume: float
    weight: float


@dataclass(frozen=True)
class ConsensusResult:
    probability: float
    sources: tuple[SourceContribution, ...]
    agreement: float
    confidence: Confidence
    spread: float
    arbitrage_signal: bool

    @property
    def source_count(self) -> int:
        return len(self.sources)


def _confidence_tier(sources: int, agreement: float) -> Confidence:
    if sources >= HIGH_MIN_SOURCES and agreement > HIGH_MIN_AGREEMENT:
        return Confidence.HIGH
    if sources >= MEDIUM_MIN_SOURCES and agreement > MEDIUM_MIN_AGREEMENT:
        return Confidence.MEDIUM
    return Confidence.LOW


def compute_consensus(
    markets: list[Market],
    reliability: Callable[[str], float],
    arbitrage_spread: float = ARBITRAGE_SPREAD,
) -> ConsensusResult | None:
    """
    Weighted consensus over a list of same-topic markets.
    Returns None for an empty list.
    """
    if not markets:
        return None

    sources = tuple(
        SourceContribution(
            venue=m.venue,
            market_id=m.market_id,
            probability=m.yes_price,
            volume=m.volume,
            weight=math.log1p(max(m.volume, 0.0)) * reliability(m.venue),
        )
        for m in markets
    )

    total_weight = sum(s.weight for s in sources)
    if len(sources) == 1:
        probability = sources[0].probability
    elif total_weight > 0:
        probability = sum(s.probability * s.weight for s in sources) / total_weight
    else:
        probability = sum(s.probability for s in sources) / len(sources)
    # Inputs are already in [0, 1]; clamp away float drift.
    probability = min(1.0, max(0.0, probability))

    mean_dev = sum(abs(s.probability - probability) for s in sources) / len(sources)
    agreement = max(0.0, 1.0 - AGREEMENT_SLOPE * mean_dev)

    prices = [s.probability for s in sources]
    spread = max(prices) - min(prices)

    return ConsensusResult(
        probability=probability,
        sources=sources,
        agreement=agreement,
        confidence=_confidence_tier(len(sources), agreement),
        spread=spread,
        arbitrage_signal=spread > arbitrage_spread,
    )


def cluster_consensus(
    cluster: Cluster,
    reliability: Callable[[str], float],
    arbitrage_spread: float = ARBITRAGE_SPREAD,
) -> ConsensusResult:
    """Consensus for one cluster. A single-member cluster returns that market's price with LOW confidence."""
    result = compute_consensus(cluster.members, reliability, arbitrage_spread)
    assert result is not None  # clusters always hold their seed
    return result
