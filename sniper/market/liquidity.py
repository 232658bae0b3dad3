"""Constant-product quoting and liquidity classification."""

from ..core.types import Liquidity, LiquidityTier, Slippage

# Uniswap V2 style 0.3% swap fee
FEE_NUMERATOR = 997
FEE_DENOMINATOR = 1000


def quote_amount_out(amount_in: int, reserve_in: int, reserve_out: int) -> int:
    """Output of a constant-product swap after the protocol fee.

    Args:
        amount_in: Input amount
        reserve_in: Pool reserve of the input asset
        reserve_out: Pool reserve of the output asset

    Returns:
        Output amount, rounded down

    Raises:
        ValueError: If the amount or reserves are not positive
    """
    if amount_in <= 0:
        raise ValueError("amount_in must be positive")
    if reserve_in <= 0 or reserve_out <= 0:
        raise ValueError("Reserves must be positive")

    amount_in_with_fee = amount_in * FEE_NUMERATOR
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * FEE_DENOMINATOR + amount_in_with_fee
    return numerator // denominator


def quote_amount_in(amount_out: int, reserve_in: int, reserve_out: int) -> int:
    """Input required to receive ``amount_out``, rounded up.

    Raises:
        ValueError: If the amount is not positive or exceeds the output reserve
    """
    if amount_out <= 0:
        raise ValueError("amount_out must be positive")
    if reserve_in <= 0 or reserve_out <= 0:
        raise ValueError("Reserves must be positive")
    if amount_out >= reserve_out:
        raise ValueError("amount_out exceeds available reserve")

    numerator = reserve_in * amount_out * FEE_DENOMINATOR
    denominator = (reserve_out - amount_out) * FEE_NUMERATOR
    return numerator // denominator + 1


def get_amounts_out(amount_in: int, hops: list[tuple[int, int]]) -> list[int]:
    """Chain :func:`quote_amount_out` across a multi-hop path.

    Args:
        amount_in: Amount entering the first hop
        hops: (reserve_in, reserve_out) for each consecutive pool on the path

    Returns:
        Amounts at every point of the path, starting with ``amount_in``
    """
    amounts = [amount_in]
    for reserve_in, reserve_out in hops:
        amounts.append(quote_amount_out(amounts[-1], reserve_in, reserve_out))
    return amounts


def apply_slippage(amount_out: int, slippage: Slippage) -> int:
    """Minimum acceptable output for a quoted amount."""
    return amount_out * slippage.keep_percent // 100


def classify_liquidity(
    raw_amount: int, thresholds: tuple[int, int, int, int]
) -> Liquidity:
    """Classify a base-asset amount into a liquidity tier.

    Lower bounds are inclusive: an amount equal to a threshold lands in the
    higher tier.

    Args:
        raw_amount: Base-asset amount in wei
        thresholds: VeryLow, Low, Medium and High lower bounds in wei

    Returns:
        Liquidity reading with tier and raw amount
    """
    very_low, low, medium, high = thresholds

    if raw_amount <= 0:
        tier = LiquidityTier.ZERO
    elif raw_amount < very_low:
        tier = LiquidityTier.MICRO
    elif raw_amount < low:
        tier = LiquidityTier.VERY_LOW
    elif raw_amount < medium:
        tier = LiquidityTier.LOW
    elif raw_amount < high:
        tier = LiquidityTier.MEDIUM
    else:
        tier = LiquidityTier.HIGH

    return Liquidity(tier=tier, amount=max(raw_amount, 0))


def has_enough_liquidity_for_trade(
    base_reserve: int, trade_amount: int, reserve_factor: int
) -> bool:
    """Whether the pool still holds ``reserve_factor`` times the trade size."""
    return base_reserve >= trade_amount * reserve_factor
