"""
Configuration loaded from environment variables. Fail-fast on impossible values.
"""

from pydantic_settings import BaseSettings
from pydantic import Field, model_validator


CONFIDENCE_TIERS = ("low", "medium", "high")
SUPPORTED_VENUES = ("polymarket", "kalshi", "manifold")


def _default_reliability() -> dict[str, float]:
    # Ranked by historical trustworthiness: regulated / high-liquidity first.
    return {
        "polymarket": 1.0,
        "kalshi": 0.95,
        "metaculus": 0.90,
        "limitless": 0.80,
        "manifold": 0.70,
    }


def _default_fees() -> dict[str, float]:
    return {
        "polymarket": 0.005,
        "kalshi": 0.01,
        "limitless": 0.01,
        "manifold": 0.0,
        "metaculus": 0.0,
    }


class Config(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "frozen": True, "extra": "ignore"}

    # Venue endpoints
    venues: list[str] = Field(default_factory=lambda: ["polymarket", "kalshi", "manifold"])
    gamma_host: str = "https://gamma-api.polymarket.com"
    kalshi_host: str = "https://api.elections.kalshi.com/trade-api/v2"
    manifold_host: str = "https://api.manifold.markets/v0"
    # Every external call is bounded; one retry on transient failure.
    http_timeout_sec: float = Field(default=5.0, gt=0, le=60.0)
    http_retries: int = Field(default=1, ge=0, le=3)

    # Similarity / clustering
    similarity_threshold: float = Field(default=0.35, gt=0, le=1.0)
    duplicate_listing_ratio: float = Field(default=95.0, ge=50.0, le=100.0)

    # Consensus
    venue_reliability: dict[str, float] = Field(default_factory=_default_reliability)
    default_venue_reliability: float = Field(default=0.5, ge=0, le=1.0)
    consensus_arbitrage_spread: float = Field(default=0.05, gt=0, le=1.0)

    # Arbitrage
    arbitrage_min_spread: float = Field(default=0.05, gt=0, le=1.0)
    venue_fees: dict[str, float] = Field(default_factory=_default_fees)

    # Opportunity scorer
    min_divergence: float = Field(default=0.15, gt=0, le=1.0)
    min_opportunity_score: float = Field(default=60.0, ge=0, le=100.0)
    min_market_volume: float = Field(default=1000.0, ge=0)
    focus_categories: list[str] = Field(default_factory=list)

    # Autonomous scanner
    scan_interval_sec: float = Field(default=1800.0, gt=0)
    scan_batch_size: int = Field(default=50, gt=0, le=500)
    scan_top_n: int = Field(default=10, gt=0)
    scan_concurrency: int = Field(default=4, ge=1, le=32)
    scan_lookup_delay_sec: float = Field(default=0.1, ge=0)

    # Decision engine
    min_score_to_act: float = Field(default=70.0, ge=0, le=100.0)
    min_confidence: str = "medium"
    max_predictions_per_day: int = Field(default=10, gt=0)
    max_per_category: int = Field(default=3, gt=0)
    min_edge: float = Field(default=0.10, ge=0, le=1.0)
    cooldown_sec: float = Field(default=300.0, ge=0)
    duplicate_window_sec: float = Field(default=86400.0, ge=0)
    # Circuit breaker: pause commitments when the rolling accuracy score exceeds this.
    max_avg_accuracy_score: float = Field(default=0.30, gt=0, le=1.0)
    intelligence_max_divergence: float = Field(default=0.20, gt=0, le=1.0)
    intelligence_min_base_samples: int = Field(default=3, ge=0)
    favored_category_boost: float = Field(default=10.0, ge=0)
    recent_commitments_kept: int = Field(default=100, gt=0)

    # Performance learner
    learner_min_samples: int = Field(default=5, gt=0)
    learner_poor_threshold: float = Field(default=0.40, ge=0, le=1.0)
    learner_good_threshold: float = Field(default=0.70, ge=0, le=1.0)
    learner_window: int = Field(default=100, gt=0)

    # Resolution watcher
    resolution_poll_sec: float = Field(default=60.0, gt=0)
    resolution_horizon_days: float = Field(default=90.0, gt=0)

    # Storage
    db_path: str = "forecasts.db"
    checkpoint_enabled: bool = False

    # Notifications (Telegram if both set, otherwise log only)
    telegram_bot_token: str = ""
    notify_chat_id: str = ""

    log_level: str = "INFO"

    @model_validator(mode="after")
    def _check_consistency(self) -> "Config":
        if self.min_confidence not in CONFIDENCE_TIERS:
            raise ValueError(
                f"min_confidence must be one of {CONFIDENCE_TIERS}, got {self.min_confidence!r}"
            )
        if not self.venues:
            raise ValueError("at least one venue must be enabled")
        unknown = [v for v in self.venues if v not in SUPPORTED_VENUES]
        if unknown:
            raise ValueError(f"unsupported venue(s) {unknown}; choose from {SUPPORTED_VENUES}")
        if self.learner_poor_threshold >= self.learner_good_threshold:
            raise ValueError(
                f"learner_poor_threshold ({self.learner_poor_threshold}) must be below "
                f"learner_good_threshold ({self.learner_good_threshold})"
            )
        if self.max_per_category > self.max_predictions_per_day:
            raise ValueError(
                f"max_per_category ({self.max_per_category}) exceeds "
                f"max_predictions_per_day ({self.max_predictions_per_day})"
            )
        for venue, weight in self.venue_reliability.items():
            if not 0.0 <= weight <= 1.0:
                raise ValueError(f"venue_reliability[{venue}]={weight} out of range [0, 1]")
        for venue, fee in self.venue_fees.items():
            if not 0.0 <= fee < 1.0:
                raise ValueError(f"venue_fees[{venue}]={fee} out of range [0, 1)")
        return self


def reliability_for(cfg: Config, venue: str) -> float:
    """Per-venue reliability multiplier, falling back to the default for unknown venues."""
    return cfg.venue_reliability.get(venue.lower(), cfg.default_venue_reliability)


def load_config(**overrides) -> Config:
    """Load and validate config from environment. Raises ValidationError on bad values."""
    # Init kwargs take priority over env values and go through the same validation.
    return Config(**overrides)
