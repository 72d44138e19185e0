"""
Unit tests for scanner/arbitrage.py -- cross-venue spreads inside clusters.
"""

import pytest

from scanner.arbitrage import find_arbitrage, locked_profit, strategy_text
from scanner.matching import Cluster, cluster_markets
from scanner.models import Market

BTC = "Will BTC hit $100k by 2026?"


def _make_market(venue, market_id, yes_price, title=BTC, volume=10_000.0):
    return Market(venue=venue, market_id=market_id, title=title, yes_price=yes_price, volume=volume)


def _make_cluster(*members: Market) -> Cluster:
    return Cluster(signature="test", seed=members[0], members=list(members))


class TestFindArbitrage:
    def test_btc_scenario_buy_b_sell_a(self):
        a = _make_market("polymarket", "a", 0.70, volume=500_000)
        b = _make_market("kalshi", "b", 0.40, volume=20_000)
        pairs = find_arbitrage(cluster_markets([a, b]), min_spread=0.05)
        assert len(pairs) == 1
        pair = pairs[0]
        assert pair.cheap.venue == "kalshi"
        assert pair.rich.venue == "polymarket"
        assert pair.spread == pytest.approx(0.30)
        assert pair.strategy == "Buy YES @ kalshi (40.0%), sell/short @ polymarket (70.0%)"
        assert pair.locked_profit > 0

    def test_never_same_venue(self):
        cluster = _make_cluster(
            _make_market("polymarket", "a", 0.30),
            _make_market("polymarket", "b", 0.80),
        )
        assert find_arbitrage([cluster]) == []

    def test_spread_below_threshold_ignored(self):
        cluster = _make_cluster(
            _make_market("polymarket", "a", 0.70),
            _make_market("kalshi", "b", 0.68),
        )
        assert find_arbitrage([cluster], min_spread=0.05) == []

    def test_every_reported_pair_meets_threshold(self):
        cluster = _make_cluster(
            _make_market("polymarket", "a", 0.70),
            _make_market("kalshi", "b", 0.62),
            _make_market("manifold", "c", 0.50),
        )
        pairs = find_arbitrage([cluster], min_spread=0.10)
        assert pairs
        for pair in pairs:
            assert pair.cheap.venue != pair.rich.venue
            assert pair.spread >= 0.10
        spreads = [p.spread for p in pairs]
        assert spreads == sorted(spreads, reverse=True)

    def test_year_mismatch_rejected(self):
        cluster = _make_cluster(
            _make_market("polymarket", "a", 0.70, title="Will Democrats win the 2024 election?"),
            _make_market("kalshi", "b", 0.40, title="Will Democrats win the 2028 election?"),
        )
        assert find_arbitrage([cluster]) == []

    def test_dissimilar_pair_rejected(self):
        cluster = _make_cluster(
            _make_market("polymarket", "a", 0.70),
            _make_market("kalshi", "b", 0.40, title="Will it rain in London tomorrow?"),
        )
        assert find_arbitrage([cluster], threshold=0.35) == []

    @pytest.mark.parametrize("low, high", [(0.40, 0.45), (0.70, 0.75)])
    def test_spread_exactly_at_threshold_reported(self, low, high):
        markets = [_make_market("polymarket", "a", high), _make_market("kalshi", "b", low)]
        pairs = find_arbitrage(cluster_markets(markets), min_spread=0.05)
        assert len(pairs) == 1
        assert pairs[0].spread == pytest.approx(0.05)


class TestLockedProfit:
    def test_fee_loaded(self):
        cheap = _make_market("kalshi", "b", 0.40)
        rich = _make_market("polymarket", "a", 0.70)
        profit = locked_profit(cheap, rich, {"kalshi": 0.01, "polymarket": 0.005})
        assert profit == pytest.approx(1.0 - (0.40 * 1.01 + 0.30 * 1.005))

    def test_no_lock_is_zero(self):
        cheap = _make_market("kalshi", "b", 0.50)
        rich = _make_market("polymarket", "a", 0.505)
        # 0.505 + 0.495 * 1.01 > 1 once fees are loaded
        assert locked_profit(cheap, rich, {}) == 0.0

    def test_strategy_text(self):
        cheap = _make_market("kalshi", "b", 0.25)
        rich = _make_market("manifold", "a", 0.5)
        assert strategy_text(cheap, rich) == "Buy YES @ kalshi (25.0%), sell/short @ manifold (50.0%)"
