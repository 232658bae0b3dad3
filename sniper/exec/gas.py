"""EIP-1559 fee estimation and gas accounting."""

import random
from enum import Enum

from ..core.types import Block, TxReceipt

GWEI = 10**9

# Jitter added to the next base fee so competing bots don't tie exactly
BASE_FEE_JITTER = 8


class GasFeeTier(str, Enum):
    """Fee tier used for a submission; retries escalate to HIGH."""

    STANDARD = "standard"
    HIGH = "high"


def next_base_fee(block: Block, jitter: int | None = None) -> int:
    """Estimate the base fee of the block after ``block``.

    Standard EIP-1559 update: the base fee moves by one eighth of the
    relative deviation of gas used from the target (half the gas limit).

    Args:
        block: Current block header
        jitter: Wei added to the estimate; random in [0, 8] when None

    Returns:
        Estimated next base fee in wei
    """
    base_fee = block.base_fee_per_gas
    target = block.gas_limit // 2 or 1

    if block.gas_used > target:
        delta = base_fee * (block.gas_used - target) // target // 8
        estimate = base_fee + delta
    else:
        delta = base_fee * (target - block.gas_used) // target // 8
        estimate = base_fee - delta

    if jitter is None:
        jitter = random.randint(0, BASE_FEE_JITTER)
    return estimate + jitter


def fee_params(
    block: Block,
    tier: GasFeeTier,
    chain: str = "mainnet",
    buffer_percent: int = 5,
    jitter: int | None = None,
) -> tuple[int, int]:
    """Compute (max_fee_per_gas, max_priority_fee_per_gas) for the next block.

    Args:
        block: Current block header
        tier: Fee tier
        chain: Chain name; Base uses flat L2 fees
        buffer_percent: Percentage added on top of the next base fee
        jitter: Passed to :func:`next_base_fee`

    Returns:
        Max fee and priority fee in wei
    """
    if chain == "base":
        if tier == GasFeeTier.STANDARD:
            priority_fee = GWEI // 10
            return priority_fee * 15 // 10, priority_fee
        priority_fee = GWEI
        return block.base_fee_per_gas * 2 + priority_fee, priority_fee

    base = next_base_fee(block, jitter)
    if tier == GasFeeTier.STANDARD:
        max_fee = base + base * buffer_percent // 100
        return max_fee, max_fee // 10

    priority_fee = 2 * GWEI
    return 2 * base + priority_fee, priority_fee


def tier_for_attempt(attempts: int) -> GasFeeTier:
    """First attempt pays the standard tier, later attempts escalate."""
    return GasFeeTier.HIGH if attempts > 1 else GasFeeTier.STANDARD


def tx_gas_cost(receipt: TxReceipt) -> int:
    """Wei paid for gas by a mined transaction (reverted ones included)."""
    return receipt.gas_used * receipt.effective_gas_price


def transaction_cost(gas_used: list[int], max_fees: list[int], next_base: int) -> int:
    """Expected cost of a bundle at the next block's base fee.

    Each transaction burns its own gas at its own price, and no
    transaction pays more per gas than its max fee.
    """
    return sum(gas * min(max_fee, next_base) for gas, max_fee in zip(gas_used, max_fees))


def bribe(cost: int, gas_used: int, fraction: float) -> int:
    """Priority fee per gas that pays ``fraction`` of ``cost`` to the builder."""
    if gas_used <= 0:
        return 0
    return int(cost * fraction) // gas_used
