"""
Collaborator protocols: market sources, venue adapters, base-rate service, notifier.

Any venue that can return normalized Market records through VenueAdapter
plugs into clustering, scanning and resolution with no other changes.
Scanning and cross-checks only need MarketSource, which the multi-venue
aggregator also satisfies.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from scanner.models import BaseRate, Market, VenueStatus


@runtime_checkable
class MarketSource(Protocol):
    """
    Read-only market listings from one venue or an aggregate of several.

    Calls are bounded by a timeout. Transient failures surface as exceptions
    after at most one retry; callers skip the venue for that cycle.
    """

    @property
    def venue(self) -> str:
        """Short identifier: 'polymarket', 'kalshi', ..."""
        ...

    def search_markets(self, query: str, limit: int = 20, resolved: bool = False) -> list[Market]:
        """Keyword search. resolved=True searches settled markets instead of open ones."""
        ...

    def get_hot_markets(self, limit: int = 20) -> list[Market]:
        """Active markets, highest volume first."""
        ...


@runtime_checkable
class VenueAdapter(MarketSource, Protocol):
    """One venue. Adds per-market reads keyed by the venue's own market ids."""

    def get_market(self, market_id: str) -> Market | None:
        """None if the venue no longer lists the market."""
        ...

    def get_market_status(self, market_ids: list[str]) -> dict[str, VenueStatus]:
        """Status per id. Ids the venue no longer knows are absent from the result."""
        ...


@runtime_checkable
class BaseRateService(Protocol):
    def base_rate(self, question: str) -> BaseRate:
        """Prior yes-probability from historically similar resolved questions."""
        ...


@runtime_checkable
class Notifier(Protocol):
    def deliver(self, recipient: str, message: str) -> None:
        """Fire-and-forget. Implementations must not raise for delivery failures."""
        ...
