"""
Historical base rates: yes-frequency among resolved markets similar to a question.
"""

from __future__ import annotations

import logging

from client.platform import MarketSource
from scanner.models import BaseRate, MarketStatus, NEUTRAL_BASE_RATE
from scanner.similarity import similarity

logger = logging.getLogger(__name__)

_CANDIDATES = 20


class HistoricalBaseRate:
    """BaseRateService backed by a venue's resolved-market search."""

    def __init__(self, venue: MarketSource, threshold: float = 0.35, candidates: int = _CANDIDATES) -> None:
        self._venue = venue
        self._threshold = threshold
        self._candidates = candidates

    def base_rate(self, question: str) -> BaseRate:
        markets = self._venue.search_markets(question, limit=self._candidates, resolved=True)
        outcomes = [
            m.outcome for m in markets
            if m.status == MarketStatus.RESOLVED
            and m.outcome is not None
            and similarity(question, m.title) >= self._threshold
        ]
        if not outcomes:
            return NEUTRAL_BASE_RATE
        rate = sum(1 for o in outcomes if o) / len(outcomes)
        logger.debug("Base rate for '%s': %.2f (n=%d)", question[:50], rate, len(outcomes))
        return BaseRate(rate=rate, sample_size=len(outcomes))
