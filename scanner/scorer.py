"""
Opportunity scoring for a single market against its base rate.

Score starts at BASE_SCORE and accumulates:
  mispriced     +divergence * 100   (|price - base rate| >= min divergence)
  high volume   +10                 (volume > 10k)
  closing soon  +15                 (closes within 48h)
  confidence    +15 high / -10 low

Labels keep the first classification that applied: mispriced beats
high_volume beats closing_soon; otherwise the market is just trending.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from config import Config
from client.platform import BaseRateService
from scanner.categories import infer_category
from scanner.models import (
    BaseRate,
    Category,
    Confidence,
    Direction,
    Market,
    NEUTRAL_BASE_RATE,
    PRICE_EPSILON,
    Opportunity,
    OpportunityType,
)

logger = logging.getLogger(__name__)

BASE_SCORE = 50.0
DIVERGENCE_MULTIPLIER = 100.0

HIGH_VOLUME = 10_000.0
HIGH_VOLUME_BONUS = 10.0

CLOSING_SOON_HOURS = 48.0
CLOSING_SOON_BONUS = 15.0

HIGH_CONF_DIVERGENCE = 0.25
HIGH_CONF_VOLUME = 5_000.0
HIGH_CONF_BONUS = 15.0
LOW_CONF_DIVERGENCE = 0.10
LOW_CONF_VOLUME = 2_000.0
LOW_CONF_PENALTY = 10.0


@dataclass(frozen=True)
class ScoringContext:
    """Thresholds the scorer needs, lifted out of Config so tests can build one directly."""
    min_divergence: float = 0.15
    min_score: float = 60.0
    min_volume: float = 1_000.0
    focus_categories: frozenset[Category] = frozenset()

    @classmethod
    def from_config(cls, cfg: Config) -> ScoringContext:
        return cls(
            min_divergence=cfg.min_divergence,
            min_score=cfg.min_opportunity_score,
            min_volume=cfg.min_market_volume,
            focus_categories=frozenset(Category(c.lower()) for c in cfg.focus_categories),
        )


def _confidence(divergence: float, volume: float) -> Confidence:
    if divergence > HIGH_CONF_DIVERGENCE and volume > HIGH_CONF_VOLUME:
        return Confidence.HIGH
    if divergence < LOW_CONF_DIVERGENCE or volume < LOW_CONF_VOLUME:
        return Confidence.LOW
    return Confidence.MEDIUM


def score_market(
    market: Market,
    base_rate: BaseRate,
    ctx: ScoringContext,
    now: float | None = None,
) -> Opportunity | None:
    """
    Score one market. Returns None when it is filtered out (volume, category,
    or final score below the acceptance floor).
    """
    if market.volume < ctx.min_volume:
        return None
    category = infer_category(market.title)
    if ctx.focus_categories and category not in ctx.focus_categories:
        return None

    price = market.yes_price
    divergence = abs(price - base_rate.rate)
    score = BASE_SCORE
    opp_type = OpportunityType.TRENDING
    direction: Direction | None = None
    suggested: float | None = None
    reasons: list[str] = []

    if divergence + PRICE_EPSILON >= ctx.min_divergence:
        opp_type = OpportunityType.MISPRICED
        score += divergence * DIVERGENCE_MULTIPLIER
        if price > base_rate.rate:
            direction = Direction.NO
            suggested = 1.0 - base_rate.rate
            verdict = "YES looks overpriced"
        else:
            direction = Direction.YES
            suggested = base_rate.rate
            verdict = "YES looks underpriced"
        reasons.append(
            f"Market at {price:.0%} vs base rate {base_rate.rate:.0%} "
            f"(n={base_rate.sample_size}); {verdict}"
        )

    if market.volume > HIGH_VOLUME:
        score += HIGH_VOLUME_BONUS
        if opp_type == OpportunityType.TRENDING:
            opp_type = OpportunityType.HIGH_VOLUME
            reasons.append("High volume market with reliable pricing")

    hours = None
    if market.close_time is not None:
        ref = time.time() if now is None else now
        hours = (market.close_time - ref) / 3600.0
    if hours is not None and 0 < hours <= CLOSING_SOON_HOURS:
        score += CLOSING_SOON_BONUS
        if opp_type == OpportunityType.TRENDING:
            opp_type = OpportunityType.CLOSING_SOON
            reasons.append(f"Closing in {hours:.0f}h")

    confidence = _confidence(divergence, market.volume)
    if confidence == Confidence.HIGH:
        score += HIGH_CONF_BONUS
    elif confidence == Confidence.LOW:
        score -= LOW_CONF_PENALTY

    if score < ctx.min_score:
        return None

    expected_edge = 0.0
    if direction is not None and suggested is not None:
        market_prob = price if direction == Direction.YES else 1.0 - price
        expected_edge = abs(suggested - market_prob)

    if not reasons:
        reasons.append("Trending market worth monitoring")

    return Opportunity(
        market=market,
        category=category,
        opportunity_type=opp_type,
        score=min(100.0, max(0.0, score)),
        confidence=confidence,
        base_rate=base_rate,
        divergence=divergence,
        suggested_direction=direction,
        suggested_probability=suggested,
        expected_edge=expected_edge,
        reasons=tuple(reasons),
    )


def lookup_base_rate(service: BaseRateService, question: str) -> BaseRate:
    """Base rate for a question; any failure degrades to neutral 0.5 with zero samples."""
    try:
        return service.base_rate(question)
    except Exception as e:
        logger.warning("Base rate lookup failed for '%s': %s", question[:50], e)
        return NEUTRAL_BASE_RATE


class OpportunityScorer:
    """Binds a base-rate service to the scoring thresholds."""

    def __init__(self, base_rates: BaseRateService, ctx: ScoringContext) -> None:
        self._base_rates = base_rates
        self._ctx = ctx

    def score(self, market: Market) -> Opportunity | None:
        if market.volume < self._ctx.min_volume:
            return None
        return score_market(market, lookup_base_rate(self._base_rates, market.title), self._ctx)


def rank_opportunities(opps: list[Opportunity]) -> list[Opportunity]:
    """Sort by score, highest first. Ties broken by expected edge."""
    return sorted(opps, key=lambda o: (o.score, o.expected_edge), reverse=True)
