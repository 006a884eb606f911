from datetime import datetime, timezone
from decimal import Decimal

import pytest

from solarb.core.var import VarCalculator, z_score_for
from solarb.core.volatility import VolatilityTracker
from solarb.models.market import PriceQuote, TokenPair, Venue


def test_needs_three_prices() -> None:
    tracker = VolatilityTracker(window_size=5)
    assert tracker.get_volatility("SOL/USDC") is None
    tracker.update_price("SOL/USDC", Decimal("100"))
    tracker.update_price("SOL/USDC", Decimal("101"))
    assert tracker.get_volatility("SOL/USDC") is None
    tracker.update_price("SOL/USDC", Decimal("100"))
    assert tracker.get_volatility("SOL/USDC") is not None


def test_flat_prices_have_zero_volatility() -> None:
    tracker = VolatilityTracker(window_size=5)
    for _ in range(5):
        tracker.update_price("SOL/USDC", Decimal("150"))
    assert tracker.get_volatility("SOL/USDC") == Decimal(0)


def test_alternating_returns() -> None:
    tracker = VolatilityTracker(window_size=3)
    for price in ("100", "110", "99"):
        tracker.update_price("SOL/USDC", Decimal(price))
    # returns +10% and -10% -> stdev 10%
    assert tracker.get_volatility("SOL/USDC") == Decimal("0.1")


def test_window_is_bounded_and_ignores_bad_prices() -> None:
    tracker = VolatilityTracker(window_size=3)
    for price in ("1", "2", "3", "4", "5", "0", "-1"):
        tracker.update_price("RAY/USDC", Decimal(price))
    assert tracker.sample_count("RAY/USDC") == 3
    assert tracker.pairs() == ["RAY/USDC"]


def test_batch_update_averages_venues() -> None:
    pair = TokenPair("SOL", "USDC")
    now = datetime.now(timezone.utc)
    tracker = VolatilityTracker(window_size=5)
    tracker.update_quotes(
        [
            PriceQuote.from_bid_ask(Venue.RAYDIUM, pair, Decimal("99"), Decimal("101"), timestamp=now),
            PriceQuote.from_bid_ask(Venue.ORCA, pair, Decimal("101"), Decimal("103"), timestamp=now),
        ]
    )
    assert tracker.sample_count("SOL/USDC") == 1


def test_window_must_hold_three_prices() -> None:
    with pytest.raises(ValueError):
        VolatilityTracker(window_size=2)


def test_z_scores() -> None:
    assert z_score_for(0.99) == Decimal("2.326")
    assert z_score_for(0.95) == Decimal("1.645")
    assert z_score_for(0.90) == Decimal("1.282")


def test_position_var() -> None:
    calc = VarCalculator(confidence_level=0.95)
    assert calc.calculate_var(Decimal("1000"), Decimal("0.02")) == Decimal("32.90000")


def test_portfolio_var_sums_positions_with_fallback() -> None:
    tracker = VolatilityTracker(window_size=3)
    for price in ("100", "110", "99"):
        tracker.update_price("SOL/USDC", Decimal(price))

    calc = VarCalculator(confidence_level=0.99)
    total = calc.calculate_portfolio_var(
        {"SOL/USDC": Decimal("100"), "RAY/USDC": Decimal("1000")},
        tracker,
    )
    # 100 * 0.1 * 2.326 + 1000 * 0.01 * 2.326
    assert total == Decimal("46.52")


def test_confidence_must_be_a_probability() -> None:
    with pytest.raises(ValueError):
        VarCalculator(confidence_level=1.5)
