"""
Cross-venue price spreads within a cluster.

Only pairs from different venues inside one cluster are considered, and the
pair itself must clear the clustering threshold (members are only checked
against the seed, not each other). Titles naming different years are never
paired.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from itertools import combinations
from typing import Mapping

from scanner.matching import Cluster, year_mismatch
from scanner.models import PRICE_EPSILON, Market
from scanner.similarity import similarity

logger = logging.getLogger(__name__)

DEFAULT_MIN_SPREAD = 0.05
DEFAULT_FEE = 0.01


@dataclass(frozen=True)
class ArbitragePair:
    signature: str
    cheap: Market  # lower yes-price: buy YES here
    rich: Market  # higher yes-price: sell / short here
    spread: float
    similarity: float
    strategy: str
    # 1 - (YES@cheap + NO@rich, fee-loaded); 0 when the hedge does not lock in profit
    locked_profit: float

    @property
    def profit_pct(self) -> float:
        return self.spread / self.cheap.yes_price if self.cheap.yes_price > 0 else 0.0


def _pct(p: float) -> str:
    return f"{p * 100:.1f}%"


def strategy_text(cheap: Market, rich: Market) -> str:
    return (
        f"Buy YES @ {cheap.venue} ({_pct(cheap.yes_price)}), "
        f"sell/short @ {rich.venue} ({_pct(rich.yes_price)})"
    )


def locked_profit(cheap: Market, rich: Market, fees: Mapping[str, float]) -> float:
    """Profit per $1 payout from YES on the cheap venue plus NO on the rich one."""
    fee_cheap = fees.get(cheap.venue, DEFAULT_FEE)
    fee_rich = fees.get(rich.venue, DEFAULT_FEE)
    cost = cheap.yes_price * (1 + fee_cheap) + (1.0 - rich.yes_price) * (1 + fee_rich)
    return max(0.0, 1.0 - cost)


def find_arbitrage(
    clusters: list[Cluster],
    min_spread: float = DEFAULT_MIN_SPREAD,
    threshold: float = 0.35,
    fees: Mapping[str, float] | None = None,
) -> list[ArbitragePair]:
    """All qualifying cross-venue pairs, widest spread first."""
    fees = fees or {}
    pairs: list[ArbitragePair] = []

    for cluster in clusters:
        if len(cluster.venues) < 2:
            continue
        for a, b in combinations(cluster.members, 2):
            if a.venue == b.venue:
                continue
            spread = abs(a.yes_price - b.yes_price)
            if spread + PRICE_EPSILON < min_spread:
                continue
            if year_mismatch(a.title, b.title):
                logger.debug("Arb pair rejected (year mismatch): '%s' vs '%s'", a.title[:50], b.title[:50])
                continue
            sim = similarity(a.title, b.title)
            if sim < threshold:
                continue
            cheap, rich = (a, b) if a.yes_price <= b.yes_price else (b, a)
            pairs.append(ArbitragePair(
                signature=cluster.signature,
                cheap=cheap,
                rich=rich,
                spread=spread,
                similarity=sim,
                strategy=strategy_text(cheap, rich),
                locked_profit=locked_profit(cheap, rich, fees),
            ))

    pairs.sort(key=lambda p: p.spread, reverse=True)
    return pairs
