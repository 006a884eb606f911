from datetime import datetime, timezone
from decimal import Decimal

import pytest

from solarb.models.market import PriceQuote, TokenPair, Venue
from solarb.strategies.pathfinder import DEFAULT_LIQUIDITY, PathFinder


def _quote(venue: Venue, base: str, quote: str, bid: str, ask: str, liquidity=None) -> PriceQuote:
    return PriceQuote.from_bid_ask(
        venue,
        TokenPair(base, quote),
        Decimal(bid),
        Decimal(ask),
        liquidity=Decimal(liquidity) if liquidity is not None else None,
        timestamp=datetime.now(timezone.utc),
    )


def _market(ray_sol_bid: str, ray_sol_ask: str):
    return [
        _quote(Venue.RAYDIUM, "SOL", "USDC", "100", "100.1", liquidity="20000"),
        _quote(Venue.ORCA, "RAY", "USDC", "2.0", "2.01", liquidity="15000"),
        _quote(Venue.RAYDIUM, "RAY", "SOL", ray_sol_bid, ray_sol_ask, liquidity="3000"),
    ]


def test_mispriced_triangle_is_found() -> None:
    pf = PathFinder(max_hops=4)
    pf.rebuild(_market("0.0300", "0.0301"))

    from_sol = pf.find_triangular_paths("SOL")
    expected = [p for p in from_sol if p.tokens() == ["SOL", "USDC", "RAY", "SOL"]]
    assert len(expected) == 1
    path = expected[0]

    assert path.is_profitable()
    assert path.profit_ratio == path.calculate_profit_ratio()
    assert path.profit_percentage() > Decimal("40")
    assert path.min_liquidity == Decimal("3000")
    assert path.optimal_size(Decimal("1000")) == Decimal("1000")
    assert path.optimal_size(Decimal("5000")) == Decimal("3000")

    everywhere = pf.find_all_profitable_paths()
    assert [p.cycle_key() for p in everywhere] == [path.cycle_key()]


def test_fair_prices_produce_no_cycle() -> None:
    pf = PathFinder()
    pf.rebuild(_market("0.0199", "0.0200"))
    assert pf.find_all_profitable_paths() == []
    assert pf.find_best_path("SOL") is None


def test_each_quote_adds_two_edges() -> None:
    pf = PathFinder()
    pf.add_price(_quote(Venue.ORCA, "SOL", "USDC", "100", "100.1"))
    pf.add_price(_quote(Venue.ORCA, "RAY", "USDC", "0", "2.01"))
    assert pf.edge_count() == 2
    assert pf.tokens() == {"SOL", "USDC"}

    pf.clear()
    assert pf.edge_count() == 0
    assert pf.find_triangular_paths("SOL") == []


def test_two_venue_round_trip_counts_as_cycle() -> None:
    pf = PathFinder()
    pf.rebuild(
        [
            _quote(Venue.RAYDIUM, "SOL", "USDC", "100", "100.1"),
            _quote(Venue.PHOENIX, "SOL", "USDC", "103", "103.1"),
        ]
    )
    best = pf.find_best_path("SOL")
    assert best is not None
    assert len(best.edges) == 2
    assert best.edges[0].venue is Venue.PHOENIX
    assert best.min_liquidity == DEFAULT_LIQUIDITY


def test_hop_limit_bounds_search() -> None:
    quotes = _market("0.0300", "0.0301")
    pf = PathFinder(max_hops=2)
    pf.rebuild(quotes)
    assert all(len(p.edges) <= 2 for p in pf.find_all_profitable_paths())
    assert not any(len(p.edges) == 3 for p in pf.find_triangular_paths("SOL"))

    with pytest.raises(ValueError):
        PathFinder(max_hops=1)


def test_describe_names_the_route() -> None:
    pf = PathFinder()
    pf.rebuild(_market("0.0300", "0.0301"))
    best = pf.find_best_path("SOL")
    assert best is not None
    assert best.describe().startswith("SOL -> ")
    assert "3 hops" in best.describe()
