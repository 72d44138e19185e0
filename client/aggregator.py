"""
Fan-out over several venue adapters behind the MarketSource shape.

Listings only: returned Markets keep their venue and raw market id, and
per-market status reads go straight to the owning adapter (the resolution
watcher holds those). One venue failing only drops that venue from the
result; if every venue fails the call raises VenueUnavailable.
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, TypeVar

from client.platform import VenueAdapter
from scanner.models import Market

logger = logging.getLogger(__name__)

T = TypeVar("T")


class VenueUnavailable(Exception):
    """Every venue failed for a call."""


class MarketAggregator:
    def __init__(self, adapters: list[VenueAdapter], max_workers: int = 4) -> None:
        if not adapters:
            raise ValueError("MarketAggregator needs at least one venue adapter")
        self._adapters = {a.venue: a for a in adapters}
        self._max_workers = max_workers

    @property
    def venue(self) -> str:
        return "aggregate"

    def _fan_out(self, op: str, call: Callable[[VenueAdapter], T]) -> dict[str, T]:
        results: dict[str, T] = {}
        failures: dict[str, Exception] = {}
        with ThreadPoolExecutor(max_workers=min(self._max_workers, len(self._adapters))) as pool:
            futures = {name: pool.submit(call, adapter) for name, adapter in self._adapters.items()}
            for name, future in futures.items():
                try:
                    results[name] = future.result()
                except Exception as e:
                    failures[name] = e
                    logger.warning("%s failed on %s, skipping venue this cycle: %s", op, name, e)
        if failures and not results:
            raise VenueUnavailable(
                f"{op} failed on every venue: "
                + ", ".join(f"{k}={v}" for k, v in failures.items())
            )
        return results

    @staticmethod
    def _merge(per_venue: dict[str, list[Market]], limit: int) -> list[Market]:
        seen: set[str] = set()
        merged: list[Market] = []
        for markets in per_venue.values():
            for m in markets:
                if m.key in seen:
                    continue
                seen.add(m.key)
                merged.append(m)
        merged.sort(key=lambda m: m.volume, reverse=True)
        return merged[:limit]

    def search_markets(self, query: str, limit: int = 20, resolved: bool = False) -> list[Market]:
        per_venue = self._fan_out(
            "search_markets", lambda a: a.search_markets(query, limit=limit, resolved=resolved),
        )
        return self._merge(per_venue, limit * len(self._adapters))

    def get_hot_markets(self, limit: int = 20) -> list[Market]:
        per_venue_limit = max(1, math.ceil(limit / len(self._adapters)))
        per_venue = self._fan_out("get_hot_markets", lambda a: a.get_hot_markets(per_venue_limit))
        return self._merge(per_venue, limit)
