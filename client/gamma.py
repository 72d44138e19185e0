"""
Polymarket Gamma API adapter for market discovery and resolution. Pure REST, no SDK dependency.
"""

from __future__ import annotations

import json
import logging

import httpx

from client.http import DEFAULT_RETRIES, DEFAULT_TIMEOUT, get_json, make_client, parse_timestamp, to_float
from scanner.models import Market, MarketStatus, VenueStatus
from scanner.similarity import rank_by_query

logger = logging.getLogger(__name__)

VENUE = "polymarket"

# Gamma search is unreliable, so pull a wide page and filter client-side.
_SEARCH_PAGE = 200
# Settlement prices snap to 0/1; anything this close counts as decided.
_DECIDED = 0.99


def _outcome_prices(m: dict) -> list[float]:
    """outcomePrices may be a JSON string or a list."""
    raw = m.get("outcomePrices") or m.get("outcome_prices")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return []
    if not isinstance(raw, list):
        return []
    return [to_float(p, default=-1.0) for p in raw]


def _decided_outcome(prices: list[float]) -> bool | None:
    if len(prices) < 2:
        return None
    if prices[0] >= _DECIDED and prices[1] <= 1 - _DECIDED:
        return True
    if prices[1] >= _DECIDED and prices[0] <= 1 - _DECIDED:
        return False
    return None


def _is_settled(m: dict) -> bool:
    if not m.get("closed"):
        return False
    uma = str(m.get("umaResolutionStatus") or "").lower()
    return uma == "resolved" or _decided_outcome(_outcome_prices(m)) is not None


def parse_market(m: dict) -> Market | None:
    """Gamma market JSON -> Market. None for non-binary or malformed entries."""
    title = m.get("question") or m.get("title")
    market_id = str(m.get("conditionId") or m.get("id") or "")
    if not title or not market_id:
        return None
    prices = _outcome_prices(m)
    yes_price = prices[0] if prices and 0.0 <= prices[0] <= 1.0 else 0.5

    outcome = None
    if _is_settled(m):
        status = MarketStatus.RESOLVED
        outcome = _decided_outcome(prices)
    elif m.get("closed") or m.get("active") is False:
        status = MarketStatus.CLOSED
    else:
        status = MarketStatus.ACTIVE

    slug = m.get("slug") or ""
    return Market(
        venue=VENUE,
        market_id=market_id,
        title=str(title),
        yes_price=yes_price,
        volume=to_float(m.get("volumeNum", m.get("volume"))),
        liquidity=to_float(m.get("liquidityNum", m.get("liquidity"))),
        close_time=parse_timestamp(m.get("endDateIso") or m.get("endDate") or m.get("end_date_iso")),
        status=status,
        outcome=outcome,
        url=f"https://polymarket.com/event/{slug}" if slug else "",
    )


def _parse_all(raw: list) -> list[Market]:
    markets = []
    for m in raw:
        market = parse_market(m)
        if market is not None:
            markets.append(market)
    return markets


class GammaAdapter:
    """VenueAdapter over the Gamma REST API."""

    def __init__(
        self,
        host: str = "https://gamma-api.polymarket.com",
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

    def _list(self, closed: bool, limit: int) -> list[Market]:
        raw = self._get("/markets", {
            "closed": str(closed).lower(),
            "limit": limit,
            "order": "volume",
            "ascending": "false",
        })
        return _parse_all(raw if isinstance(raw, list) else [])

    def search_markets(self, query: str, limit: int = 20, resolved: bool = False) -> list[Market]:
        markets = self._list(closed=resolved, limit=_SEARCH_PAGE)
        order = rank_by_query([m.title for m in markets], query)
        return [markets[i] for i in order[:limit]]

    def get_hot_markets(self, limit: int = 20) -> list[Market]:
        return self._list(closed=False, limit=limit)

    def get_market(self, market_id: str) -> Market | None:
        try:
            raw = self._get("/markets", {"condition_ids": market_id})
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise
        markets = _parse_all(raw if isinstance(raw, list) else [raw])
        return markets[0] if markets else None

    def get_market_status(self, market_ids: list[str]) -> dict[str, VenueStatus]:
        result: dict[str, VenueStatus] = {}
        for market_id in market_ids:
            market = self.get_market(market_id)
            if market is None:
                continue
            result[market_id] = VenueStatus(
                market_id=market_id,
                state=market.status.value,
                resolved=market.status == MarketStatus.RESOLVED,
                outcome=market.outcome,
            )
        logger.debug("Gamma status: %d of %d market(s) still listed", len(result), len(market_ids))
        return result
