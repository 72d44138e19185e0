"""
Manifold Markets adapter (play-money venue). Binary markets only.
"""

from __future__ import annotations

import logging
import time

import httpx

from client.http import DEFAULT_RETRIES, DEFAULT_TIMEOUT, get_json, make_client, parse_timestamp, to_float
from scanner.models import Market, MarketStatus, VenueStatus

logger = logging.getLogger(__name__)

VENUE = "manifold"


def _resolution(m: dict) -> bool | None:
    # MKT / CANCEL resolutions have no binary outcome
    resolution = str(m.get("resolution") or "").upper()
    if resolution == "YES":
        return True
    if resolution == "NO":
        return False
    return None


def parse_market(m: dict) -> Market | None:
    if m.get("outcomeType", "BINARY") != "BINARY":
        return None
    market_id = m.get("id")
    title = m.get("question")
    if not market_id or not title:
        return None
    close_time = parse_timestamp(m.get("closeTime"))
    if m.get("isResolved"):
        status = MarketStatus.RESOLVED
    elif close_time is not None and close_time < time.time():
        status = MarketStatus.CLOSED
    else:
        status = MarketStatus.ACTIVE
    return Market(
        venue=VENUE,
        market_id=str(market_id),
        title=str(title),
        yes_price=min(1.0, max(0.0, to_float(m.get("probability"), default=0.5))),
        volume=to_float(m.get("volume")),
        liquidity=to_float(m.get("totalLiquidity")),
        close_time=close_time,
        status=status,
        outcome=_resolution(m) if status == MarketStatus.RESOLVED else None,
        url=str(m.get("url") or ""),
    )


class ManifoldAdapter:
    """VenueAdapter over the Manifold v0 API."""

    def __init__(
        self,
        host: str = "https://api.manifold.markets/v0",
        http: httpx.Client | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        retries: int = DEFAULT_RETRIES,
    ) -> None:
        self._host = host.rstrip("/")
        self._http = http or make_client(timeout)
        self._retries = retries

    @property
    def venue(self) -> str:
        return VENUE

    def _get(self, path: str, params: dict | None = None) -> dict | list:
        return get_json(self._http, f"{self._host}{path}", params, retries=self._retries)

    def _search(self, term: str, limit: int, sort: str, filter_: str) -> list[Market]:
        raw = self._get("/search-markets", {
            "term": term,
            "limit": limit,
            "sort": sort,
            "filter": filter_,
            "contractType": "BINARY",
        })
        markets = []
        for m in raw if isinstance(raw, list) else []:
            market = parse_market(m)
            if market is not None:
                markets.append(market)
        logger.debug("Manifold %s search '%s': %d binary market(s)", filter_, term[:40], len(markets))
        return markets

    def search_markets(self, query: str, limit: int = 20, resolved: bool = False) -> list[Market]:
        return self._search(query, limit, sort="score", filter_="resolved" if resolved else "open")

    def get_hot_markets(self, limit: int = 20) -> list[Market]:
        return self._search("", limit, sort="24-hour-vol", filter_="open")

    def get_market(self, market_id: str) -> Market | None:
        try:
            raw = self._get(f"/market/{market_id}")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise
        return parse_market(raw) if isinstance(raw, dict) else None

    def get_market_status(self, market_ids: list[str]) -> dict[str, VenueStatus]:
        result: dict[str, VenueStatus] = {}
        for market_id in market_ids:
            market = self.get_market(market_id)
            if market is None:
                continue
            resolved = market.status == MarketStatus.RESOLVED
            result[market_id] = VenueStatus(
                market_id=market_id,
                state="finalized" if resolved else market.status.value,
                resolved=resolved,
                outcome=market.outcome,
            )
        return result
