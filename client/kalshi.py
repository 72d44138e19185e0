"""
Kalshi REST API v2 adapter. Public market data only (no auth, no orders).

All prices are in cents (1-99). We convert to dollars (0.01-0.99) to match the Market model.
"""

from __future__ import annotations

import logging

import httpx

from client.http import DEFAULT_RETRIES, DEFAULT_TIMEOUT, get_json, make_client, parse_timestamp, to_float
from scanner.models import Market, MarketStatus, VenueStatus
from scanner.similarity import rank_by_query

logger = logging.getLogger(__name__)

VENUE = "kalshi"

_SEARCH_PAGE = 200
# Kalshi terminal states; only determined/finalized carry a definite result.
_TERMINAL_STATES = frozenset({"closed", "determined", "finalized", "settled"})
_RESOLVED_STATES = frozenset({"determined", "finalized", "settled"})
# GET /markets?tickers= accepts a comma-separated batch
_TICKER_BATCH = 50


def _cents(raw) -> float | None:
    value = to_float(raw, default=-1.0)
    if value <= 0:
        return None
    return value / 100.0


def _yes_price(m: dict) -> float:
    """Bid/ask midpoint, else last trade, else 0.5."""
    bid = _cents(m.get("yes_bid"))
    ask = _cents(m.get("yes_ask"))
    if bid is not None and ask is not None:
        return (bid + ask) / 2.0
    last = _cents(m.get("last_price"))
    return last if last is not None else 0.5


def _result(m: dict) -> bool | None:
    result = str(m.get("result") or "").lower()
    if result == "yes":
        return True
    if result == "no":
        return False
    return None


def _map_status(state: str) -> MarketStatus:
    if state in _RESOLVED_STATES:
        return MarketStatus.RESOLVED
    if state in _TERMINAL_STATES:
        return MarketStatus.CLOSED
    return MarketStatus.ACTIVE


def parse_market(m: dict) -> Market | None:
    ticker = m.get("ticker")
    if not ticker:
        return None
    state = str(m.get("status") or "").lower()
    status = _map_status(state)
    return Market(
        venue=VENUE,
        market_id=str(ticker),
        title=str(m.get("title") or ticker),
        yes_price=_yes_price(m),
        volume=to_float(m.get("volume")),
        liquidity=to_float(m.get("open_interest")),
        close_time=parse_timestamp(m.get("close_time")),
        status=status,
        outcome=_result(m) if status == MarketStatus.RESOLVED else None,
        url=f"https://kalshi.com/markets/{ticker}",
    )


def parse_status(m: dict) -> VenueStatus:
    """Terminal with result -> resolved. 'closed' alone is still awaiting settlement."""
    state = str(m.get("status") or "").lower()
    outcome = _result(m)
    resolved = state in _RESOLVED_STATES or (state == "closed" and outcome is not None)
    return VenueStatus(
        market_id=str(m.get("ticker", "")),
        state=state,
        resolved=resolved,
        outcome=outcome if resolved else None,
    )


class KalshiAdapter:
    """VenueAdapter over Kalshi's public market endpoints."""

    def __init__(
        self,
        host: str = "https://api.elections.kalshi.com/trade-api/v2",
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

    def _get(self, path: str, params: dict | None = None) -> dict:
        data = get_json(self._http, f"{self._host}{path}", params, retries=self._retries)
        return data if isinstance(data, dict) else {}

    def _raw_markets(self, status: str, limit: int) -> list[dict]:
        data = self._get("/markets", {"status": status, "limit": limit})
        return data.get("markets", [])

    def _parse_all(self, raw: list[dict]) -> list[Market]:
        markets = []
        for m in raw:
            market = parse_market(m)
            if market is not None:
                markets.append(market)
        return markets

    def search_markets(self, query: str, limit: int = 20, resolved: bool = False) -> list[Market]:
        markets = self._parse_all(self._raw_markets("settled" if resolved else "open", _SEARCH_PAGE))
        order = rank_by_query([m.title for m in markets], query)
        return [markets[i] for i in order[:limit]]

    def get_hot_markets(self, limit: int = 20) -> list[Market]:
        markets = self._parse_all(self._raw_markets("open", limit * 2))
        markets.sort(key=lambda m: m.volume, reverse=True)
        return markets[:limit]

    def get_market(self, market_id: str) -> Market | None:
        try:
            data = self._get(f"/markets/{market_id}")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise
        raw = data.get("market")
        return parse_market(raw) if raw else None

    def get_market_status(self, market_ids: list[str]) -> dict[str, VenueStatus]:
        result: dict[str, VenueStatus] = {}
        for i in range(0, len(market_ids), _TICKER_BATCH):
            batch = market_ids[i:i + _TICKER_BATCH]
            data = self._get("/markets", {"tickers": ",".join(batch), "limit": len(batch)})
            for m in data.get("markets", []):
                status = parse_status(m)
                if status.market_id:
                    result[status.market_id] = status
        logger.debug("Kalshi status: %d of %d ticker(s) returned", len(result), len(market_ids))
        return result
