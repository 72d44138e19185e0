"""
Same-topic market clustering across venues.

Greedy single pass: the next unassigned market seeds a cluster, and every
remaining unassigned market whose title similarity to the seed clears the
threshold joins it. O(n^2) in batch size, which is capped in the tens.

Same-venue candidates only join a cluster when they are duplicate listings
of a member already in it (near-identical title via rapidfuzz); the
higher-volume listing is kept. Any other same-venue candidate stays
unassigned and seeds its own cluster later, so a cluster never holds two
distinct same-venue markets.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field

from rapidfuzz import fuzz

from scanner.models import Market
from scanner.similarity import extract_keywords, similarity

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.35

# token_set_ratio at or above this marks two same-venue listings as duplicates
DUPLICATE_RATIO = 95.0

# Year pattern for detecting year mismatches (e.g., 2024 vs 2028)
_YEAR_PATTERN = re.compile(r"\b(20\d{2})\b")

_SIGNATURE_WORDS = 6


@dataclass
class Cluster:
    """Markets believed to be the same real-world question. Rebuilt every scan."""
    signature: str
    seed: Market
    members: list[Market] = field(default_factory=list)
    # Same-venue duplicate listings dropped in favour of a higher-volume member
    duplicates: list[Market] = field(default_factory=list)

    @property
    def venues(self) -> set[str]:
        return {m.venue for m in self.members}

    @property
    def total_volume(self) -> float:
        return sum(m.volume for m in self.members)

    @property
    def size(self) -> int:
        return len(self.members)

    def rank_score(self) -> float:
        """distinct venues x log(1 + total volume); used to pick the best cluster for a query."""
        return len(self.venues) * math.log1p(max(self.total_volume, 0.0))


def topic_signature(title: str) -> str:
    """Stable key for a cluster: sorted keywords of the seed title."""
    words = sorted(extract_keywords(title))[:_SIGNATURE_WORDS]
    return "-".join(words) if words else title.strip().lower()


def year_mismatch(title_a: str, title_b: str) -> bool:
    """True when both titles name years and the sets differ (e.g., 2024 vs 2028)."""
    years_a = set(_YEAR_PATTERN.findall(title_a))
    years_b = set(_YEAR_PATTERN.findall(title_b))
    return bool(years_a and years_b and years_a != years_b)


def is_duplicate_listing(a: Market, b: Market, ratio: float = DUPLICATE_RATIO) -> bool:
    """Same venue and near-identical title."""
    if a.venue != b.venue:
        return False
    return fuzz.token_set_ratio(a.title, b.title) >= ratio


def _admit(cluster: Cluster, candidate: Market, duplicate_ratio: float) -> bool:
    """
    Add candidate to the cluster, collapsing same-venue duplicates.
    Returns False if the candidate clashes with a distinct same-venue member.
    """
    for i, member in enumerate(cluster.members):
        if member.venue != candidate.venue:
            continue
        if not is_duplicate_listing(member, candidate, duplicate_ratio):
            return False
        if candidate.volume > member.volume:
            cluster.members[i] = candidate
            cluster.duplicates.append(member)
        else:
            cluster.duplicates.append(candidate)
        return True
    cluster.members.append(candidate)
    return True


def cluster_markets(
    markets: list[Market],
    threshold: float = DEFAULT_THRESHOLD,
    duplicate_ratio: float = DUPLICATE_RATIO,
) -> list[Cluster]:
    """
    Partition markets into clusters. Every member's similarity to its seed is
    >= threshold, and no market appears in more than one cluster.
    """
    clusters: list[Cluster] = []
    assigned: set[int] = set()

    for i, seed in enumerate(markets):
        if i in assigned:
            continue
        assigned.add(i)
        cluster = Cluster(signature=topic_signature(seed.title), seed=seed, members=[seed])

        for j in range(i + 1, len(markets)):
            if j in assigned:
                continue
            candidate = markets[j]
            score = similarity(seed.title, candidate.title)
            if score < threshold:
                continue
            if _admit(cluster, candidate, duplicate_ratio):
                assigned.add(j)

        clusters.append(cluster)

    logger.debug(
        "Clustered %d markets into %d clusters (%d multi-venue)",
        len(markets), len(clusters), sum(1 for c in clusters if len(c.venues) > 1),
    )
    return clusters


def best_cluster(clusters: list[Cluster]) -> Cluster | None:
    """Highest venues x log(1 + volume) wins; None for an empty list."""
    if not clusters:
        return None
    return max(clusters, key=lambda c: c.rank_score())
