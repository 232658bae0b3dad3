"""Tests for constant-product quoting and liquidity tiers."""

import pytest

from sniper.core.types import LiquidityTier, Slippage
from sniper.market.liquidity import (
    apply_slippage,
    classify_liquidity,
    get_amounts_out,
    has_enough_liquidity_for_trade,
    quote_amount_in,
    quote_amount_out,
)

ETH = 10**18
THRESHOLDS = (2 * ETH, 10 * ETH, 15 * ETH, 20 * ETH)


class TestQuoting:
    """Test constant-product math."""

    def test_amount_out(self):
        """Output follows the 0.3% fee formula, rounded down."""
        assert quote_amount_out(1000, 10**6, 10**6) == 996

    def test_amount_out_large_values(self):
        """Wei-scale reserves do not overflow."""
        amount = quote_amount_out(10**16, 50 * ETH, 10**30)
        assert 0 < amount < 10**30

    def test_amount_in_rounds_up(self):
        amount_in = quote_amount_in(996, 10**6, 10**6)

        assert quote_amount_out(amount_in, 10**6, 10**6) >= 996

    @pytest.mark.parametrize(
        "reserve_in,reserve_out", [(10 * ETH, 10**24), (10**6, 10**6), (3, 10**18)]
    )
    def test_inverse_within_rounding(self, reserve_in, reserve_out):
        """Quoting the output back recovers the input up to rounding."""
        amount_in = reserve_in // 7 or 1
        amount_out = quote_amount_out(amount_in, reserve_in, reserve_out)

        recovered = quote_amount_in(amount_out, reserve_in, reserve_out)

        assert recovered <= amount_in + 1
        assert quote_amount_out(recovered, reserve_in, reserve_out) >= amount_out

    def test_output_monotonic(self):
        outputs = [
            quote_amount_out(amount, 10 * ETH, 10**24) for amount in (ETH, 2 * ETH, 3 * ETH)
        ]

        assert outputs == sorted(outputs)
        assert len(set(outputs)) == 3

    @pytest.mark.parametrize(
        "amount,reserve_in,reserve_out",
        [(0, 10, 10), (1, 0, 10), (1, 10, 0), (-1, 10, 10)],
    )
    def test_invalid_inputs(self, amount, reserve_in, reserve_out):
        with pytest.raises(ValueError):
            quote_amount_out(amount, reserve_in, reserve_out)

    def test_amount_in_exceeding_reserve(self):
        with pytest.raises(ValueError):
            quote_amount_in(10, 100, 10)

    def test_multi_hop(self):
        amounts = get_amounts_out(1000, [(10**6, 10**6), (10**6, 10**6)])

        assert amounts[0] == 1000
        assert amounts[1] == 996
        assert amounts[2] == quote_amount_out(996, 10**6, 10**6)

    def test_apply_slippage(self):
        assert apply_slippage(1000, Slippage.TWO_PERCENT) == 980
        assert apply_slippage(1000, Slippage.NONE) == 1000
        assert apply_slippage(999, Slippage.TEN_PERCENT) == 899


class TestClassifyLiquidity:
    """Test tier boundaries."""

    @pytest.mark.parametrize(
        "amount,tier",
        [
            (0, LiquidityTier.ZERO),
            (1, LiquidityTier.MICRO),
            (2 * ETH - 1, LiquidityTier.MICRO),
            (2 * ETH, LiquidityTier.VERY_LOW),
            (10 * ETH, LiquidityTier.LOW),
            (15 * ETH, LiquidityTier.MEDIUM),
            (20 * ETH - 1, LiquidityTier.MEDIUM),
            (20 * ETH, LiquidityTier.HIGH),
            (5000 * ETH, LiquidityTier.HIGH),
        ],
    )
    def test_tiers(self, amount, tier):
        """Lower bounds are inclusive."""
        liquidity = classify_liquidity(amount, THRESHOLDS)

        assert liquidity.tier == tier
        assert liquidity.raw_amount == amount

    def test_tradability(self):
        assert not classify_liquidity(ETH, THRESHOLDS).is_tradable
        assert classify_liquidity(50 * ETH, THRESHOLDS).is_tradable


def test_enough_liquidity_for_trade():
    """The pool must hold the reserve factor times the trade size."""
    assert has_enough_liquidity_for_trade(10 * ETH, ETH, 10)
    assert not has_enough_liquidity_for_trade(10 * ETH - 1, ETH, 10)
