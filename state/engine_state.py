"""
Process-lifetime decision state: daily counters, cooldown, performance signals.

Single writer: the DecisionEngine mutates it only while holding `lock`.
Readers that need a consistent view (status, checkpoint) take the same lock.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from scanner.models import Category


def utc_day(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).date().isoformat()


@dataclass(frozen=True)
class CommitmentRecord:
    prediction_id: int
    market_key: str
    category: Category
    timestamp: float


@dataclass
class EngineState:
    day: str = field(default_factory=lambda: utc_day(time.time()))
    predictions_today: int = 0
    per_category_today: dict[Category, int] = field(default_factory=dict)
    last_commitment_at: float | None = None
    rolling_accuracy_score: float | None = None  # None until something has resolved
    resolved_sample_size: int = 0
    avoid_categories: frozenset[Category] = frozenset()
    favor_categories: frozenset[Category] = frozenset()
    recent: deque[CommitmentRecord] = field(default_factory=lambda: deque(maxlen=100))
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def category_count(self, category: Category) -> int:
        return self.per_category_today.get(category, 0)

    def reset_daily(self, day: str) -> None:
        """Zero the daily counters. Cooldown and recent commitments carry over."""
        self.day = day
        self.predictions_today = 0
        self.per_category_today = {}

    def record_commitment(self, record: CommitmentRecord) -> None:
        self.predictions_today += 1
        self.per_category_today[record.category] = self.category_count(record.category) + 1
        self.remember(record)

    def remember(self, record: CommitmentRecord) -> None:
        """Track for cooldown and duplicate checks without touching daily counters."""
        if self.last_commitment_at is None or record.timestamp > self.last_commitment_at:
            self.last_commitment_at = record.timestamp
        self.recent.append(record)

    def committed_on(self, market_key: str, since: float) -> bool:
        return any(r.market_key == market_key and r.timestamp >= since for r in self.recent)

    def apply_performance(
        self,
        rolling_score: float | None,
        sample_size: int,
        avoid: frozenset[Category],
        favor: frozenset[Category],
    ) -> None:
        """Replace, never merge: the learner's snapshot is authoritative."""
        self.rolling_accuracy_score = rolling_score
        self.resolved_sample_size = sample_size
        self.avoid_categories = frozenset(avoid)
        self.favor_categories = frozenset(favor)

    def to_dict(self) -> dict[str, Any]:
        return {
            "day": self.day,
            "predictions_today": self.predictions_today,
            "per_category_today": {c.value: n for c, n in self.per_category_today.items()},
            "last_commitment_at": self.last_commitment_at,
            "rolling_accuracy_score": self.rolling_accuracy_score,
            "resolved_sample_size": self.resolved_sample_size,
            "avoid_categories": sorted(c.value for c in self.avoid_categories),
            "favor_categories": sorted(c.value for c in self.favor_categories),
            "recent": [
                {
                    "prediction_id": r.prediction_id,
                    "market_key": r.market_key,
                    "category": r.category.value,
                    "timestamp": r.timestamp,
                }
                for r in self.recent
            ],
            "recent_maxlen": self.recent.maxlen,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EngineState:
        recent: deque[CommitmentRecord] = deque(maxlen=data.get("recent_maxlen") or 100)
        for r in data.get("recent", []):
            recent.append(CommitmentRecord(
                prediction_id=r["prediction_id"],
                market_key=r["market_key"],
                category=Category(r["category"]),
                timestamp=r["timestamp"],
            ))
        return cls(
            day=data["day"],
            predictions_today=data.get("predictions_today", 0),
            per_category_today={
                Category(c): n for c, n in data.get("per_category_today", {}).items()
            },
            last_commitment_at=data.get("last_commitment_at"),
            rolling_accuracy_score=data.get("rolling_accuracy_score"),
            resolved_sample_size=data.get("resolved_sample_size", 0),
            avoid_categories=frozenset(Category(c) for c in data.get("avoid_categories", [])),
            favor_categories=frozenset(Category(c) for c in data.get("favor_categories", [])),
            recent=recent,
        )
