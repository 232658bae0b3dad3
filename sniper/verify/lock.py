"""Liquidity-lock verification against LP holder lists."""

import structlog

from ..core.interfaces import ChainGateway, HolderSource
from ..core.types import HolderEntry, Token

logger = structlog.get_logger(__name__)


def locked_amount(holders: list[HolderEntry], lockers: list[str]) -> int:
    """Sum of LP units held by burn/lock addresses."""
    locker_set = {address.lower() for address in lockers}
    return sum(holder.quantity for holder in holders if holder.address in locker_set)


def is_sufficiently_locked(locked: int, total_supply: int, threshold_percent: int) -> bool:
    """Whether ``locked`` is at least ``threshold_percent`` of ``total_supply``."""
    if total_supply <= 0:
        return False
    return locked * 100 >= total_supply * threshold_percent


class LiquidityLockChecker:
    """Checks what share of a pool's LP supply sits at lock/burn addresses."""

    def __init__(
        self,
        gateway: ChainGateway,
        holder_source: HolderSource,
        lockers: list[str],
        threshold_percent: int = 90,
    ) -> None:
        """Initialize the checker.

        Args:
            gateway: Chain gateway for LP total supply
            holder_source: Holder-list API
            lockers: Lowercase burn/lock addresses
            threshold_percent: Minimum locked share of LP supply
        """
        self.gateway = gateway
        self.holder_source = holder_source
        self.lockers = [address.lower() for address in lockers]
        self.threshold_percent = threshold_percent

    async def check(self, token: Token) -> bool | None:
        """Check the token's LP lock.

        Returns:
            True when locked, False when insufficiently locked, None when
            holder data is not available yet
        """
        total_supply = await self.gateway.get_total_supply(token.pair_address)
        if total_supply == 0:
            return None

        holders = await self.holder_source.get_holders(token.pair_address)
        if not holders:
            logger.info("No LP holders found yet", **token.log_fields())
            return None

        top_holder = max(holders, key=lambda holder: holder.quantity)
        logger.debug(
            "Top LP holder",
            holder=top_holder.address,
            quantity=top_holder.quantity,
            **token.log_fields(),
        )

        locked = locked_amount(holders, self.lockers)
        result = is_sufficiently_locked(locked, total_supply, self.threshold_percent)

        logger.info(
            "Liquidity lock checked",
            locked_percent=round(100 * locked / total_supply, 2),
            threshold_percent=self.threshold_percent,
            locked=result,
            **token.log_fields(),
        )
        return result
