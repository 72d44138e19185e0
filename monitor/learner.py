"""
Performance learner: turns recent resolutions into avoid/favor signals.

Every snapshot is computed from scratch over the most recent resolved
predictions. Callers replace their lists with it; nothing carries over, so a
category that recovers drops off the avoid list on the next snapshot.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ledger.store import PredictionStore
from scanner.models import Category, Prediction

logger = logging.getLogger(__name__)

BUCKET_WIDTH = 0.2


@dataclass(frozen=True)
class CategoryPerformance:
    category: Category
    samples: int
    correct: int
    mean_score: float

    @property
    def accuracy(self) -> float:
        return self.correct / self.samples if self.samples else 0.0


@dataclass(frozen=True)
class CalibrationBucket:
    low: float
    high: float
    samples: int
    mean_predicted: float
    realized: float


@dataclass(frozen=True)
class PerformanceSnapshot:
    rolling_accuracy_score: float | None
    sample_size: int
    categories: dict[Category, CategoryPerformance] = field(default_factory=dict)
    avoid: frozenset[Category] = frozenset()
    favor: frozenset[Category] = frozenset()
    calibration: tuple[CalibrationBucket, ...] = ()

    @property
    def overall_accuracy(self) -> float | None:
        if not self.sample_size:
            return None
        return sum(c.correct for c in self.categories.values()) / self.sample_size

    def to_dict(self) -> dict:
        return {
            "sample_size": self.sample_size,
            "rolling_accuracy_score": self.rolling_accuracy_score,
            "overall_accuracy": self.overall_accuracy,
            "categories": {
                cat.value: {"samples": perf.samples, "accuracy": round(perf.accuracy, 4)}
                for cat, perf in sorted(self.categories.items(), key=lambda kv: kv[0].value)
            },
            "calibration": [
                {
                    "low": b.low,
                    "high": b.high,
                    "samples": b.samples,
                    "mean_predicted": round(b.mean_predicted, 4),
                    "realized": round(b.realized, 4),
                }
                for b in self.calibration
            ],
        }


def calibration_buckets(predictions: list[Prediction]) -> tuple[CalibrationBucket, ...]:
    """Predicted YES probability vs realized YES frequency, in fixed-width buckets."""
    n_buckets = round(1.0 / BUCKET_WIDTH)
    grouped: list[list[Prediction]] = [[] for _ in range(n_buckets)]
    for p in predictions:
        idx = min(int(p.yes_probability / BUCKET_WIDTH), n_buckets - 1)
        grouped[idx].append(p)
    buckets = []
    for idx, members in enumerate(grouped):
        if not members:
            continue
        buckets.append(CalibrationBucket(
            low=round(idx * BUCKET_WIDTH, 2),
            high=round((idx + 1) * BUCKET_WIDTH, 2),
            samples=len(members),
            mean_predicted=sum(p.yes_probability for p in members) / len(members),
            realized=sum(1 for p in members if p.outcome) / len(members),
        ))
    return tuple(buckets)


class PerformanceLearner:
    def __init__(
        self,
        store: PredictionStore,
        min_samples: int = 5,
        poor_threshold: float = 0.40,
        good_threshold: float = 0.70,
        window: int = 100,
    ) -> None:
        if poor_threshold >= good_threshold:
            raise ValueError(f"poor threshold {poor_threshold} must be below good threshold {good_threshold}")
        self._store = store
        self.min_samples = min_samples
        self.poor_threshold = poor_threshold
        self.good_threshold = good_threshold
        self.window = window

    def snapshot(self) -> PerformanceSnapshot:
        resolved = [
            p for p in self._store.list_resolved(self.window)
            if p.accuracy_score is not None and p.outcome is not None
        ]
        return self.evaluate(resolved)

    def evaluate(self, resolved: list[Prediction]) -> PerformanceSnapshot:
        if not resolved:
            return PerformanceSnapshot(rolling_accuracy_score=None, sample_size=0)

        rolling = sum(p.accuracy_score for p in resolved) / len(resolved)

        per_cat: dict[Category, list[Prediction]] = {}
        for p in resolved:
            per_cat.setdefault(p.category, []).append(p)

        categories: dict[Category, CategoryPerformance] = {}
        avoid: set[Category] = set()
        favor: set[Category] = set()
        for cat, preds in per_cat.items():
            perf = CategoryPerformance(
                category=cat,
                samples=len(preds),
                correct=sum(1 for p in preds if p.was_correct),
                mean_score=sum(p.accuracy_score for p in preds) / len(preds),
            )
            categories[cat] = perf
            if perf.samples < self.min_samples:
                continue
            if perf.accuracy < self.poor_threshold:
                avoid.add(cat)
            elif perf.accuracy > self.good_threshold:
                favor.add(cat)

        snap = PerformanceSnapshot(
            rolling_accuracy_score=round(rolling, 4),
            sample_size=len(resolved),
            categories=categories,
            avoid=frozenset(avoid),
            favor=frozenset(favor),
            calibration=calibration_buckets(resolved),
        )
        logger.debug(
            "Learner snapshot: %d resolved, avg score %.4f, %d avoid, %d favor",
            snap.sample_size, rolling, len(avoid), len(favor),
        )
        return snap
