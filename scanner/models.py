"""
Core data models for the forecasting loop. Pure data, no I/O.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum


class MarketStatus(Enum):
    ACTIVE = "active"
    CLOSED = "closed"
    RESOLVED = "resolved"


class Direction(Enum):
    YES = "YES"
    NO = "NO"


class Category(Enum):
    CRYPTO = "crypto"
    POLITICS = "politics"
    ECONOMICS = "economics"
    SPORTS = "sports"
    TECH = "tech"
    CLIMATE = "climate"
    GEOPOLITICS = "geopolitics"
    GENERAL = "general"


class Confidence(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _CONFIDENCE_RANK[self]


_CONFIDENCE_RANK = {Confidence.LOW: 0, Confidence.MEDIUM: 1, Confidence.HIGH: 2}


class OpportunityType(Enum):
    MISPRICED = "mispriced"
    HIGH_VOLUME = "high_volume"
    CLOSING_SOON = "closing_soon"
    TRENDING = "trending"


@dataclass(frozen=True)
class Market:
    """One venue's listing of a binary question, normalized by the venue adapter."""
    venue: str
    market_id: str
    title: str
    yes_price: float
    volume: float = 0.0
    liquidity: float = 0.0
    close_time: float | None = None  # unix seconds
    status: MarketStatus = MarketStatus.ACTIVE
    outcome: bool | None = None  # set once, when resolved
    url: str = ""

    @property
    def key(self) -> str:
        return f"{self.venue}:{self.market_id}"


@dataclass(frozen=True)
class VenueStatus:
    """Venue-reported lifecycle for a watched market."""
    market_id: str
    state: str  # raw venue state, e.g. "open", "closed", "determined", "finalized"
    resolved: bool
    outcome: bool | None = None


@dataclass(frozen=True)
class BaseRate:
    rate: float
    sample_size: int


NEUTRAL_BASE_RATE = BaseRate(rate=0.5, sample_size=0)

# Tolerance for threshold comparisons on price differences (0.45 - 0.40 < 0.05 in floats)
PRICE_EPSILON = 1e-9


@dataclass(frozen=True)
class Opportunity:
    """A scored candidate action on one market. Lives for a single scan cycle."""
    market: Market
    category: Category
    opportunity_type: OpportunityType
    score: float
    confidence: Confidence
    base_rate: BaseRate
    divergence: float
    suggested_direction: Direction | None
    # Probability of the suggested direction (YES-probability when direction is YES).
    suggested_probability: float | None
    expected_edge: float
    reasons: tuple[str, ...] = ()

    @property
    def implied_yes_probability(self) -> float | None:
        if self.suggested_probability is None or self.suggested_direction is None:
            return None
        if self.suggested_direction == Direction.YES:
            return self.suggested_probability
        return 1.0 - self.suggested_probability


class PredictionStatus(Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    ABANDONED = "abandoned"


@dataclass(frozen=True)
class Prediction:
    """
    Durable commitment. probability is the probability of `direction`
    (a NO prediction at 0.7 means 30% YES).
    """
    id: int
    question: str
    probability: float
    direction: Direction
    category: Category
    created_at: float
    venue: str = ""
    market_id: str = ""
    reasoning: str = ""
    status: PredictionStatus = PredictionStatus.PENDING
    resolved_at: float | None = None
    outcome: bool | None = None
    accuracy_score: float | None = None

    @property
    def has_market_link(self) -> bool:
        return bool(self.venue and self.market_id)

    @property
    def yes_probability(self) -> float:
        return self.probability if self.direction == Direction.YES else 1.0 - self.probability

    @property
    def was_correct(self) -> bool | None:
        if self.outcome is None:
            return None
        return (self.direction == Direction.YES) == self.outcome


@dataclass(frozen=True)
class ResolutionEvent:
    """Published by the watcher when a prediction reaches a terminal state."""
    prediction_id: int
    kind: str  # "resolved" or "abandoned"
    venue: str
    market_id: str
    outcome: bool | None = None
    accuracy_score: float | None = None
    detail: str = ""
    timestamp: float = field(default_factory=time.time)
