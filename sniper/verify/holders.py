"""Token holder concentration analysis."""

import structlog

from ..core.interfaces import ChainGateway, HolderSource
from ..core.types import Token

logger = structlog.get_logger(__name__)


class HolderConcentrationChecker:
    """Flags tokens where one wallet holds too much of the supply.

    The pool itself and lock/burn addresses are not counted as holders.
    """

    def __init__(
        self,
        gateway: ChainGateway,
        holder_source: HolderSource,
        excluded: list[str],
        threshold_percent: int = 10,
    ) -> None:
        self.gateway = gateway
        self.holder_source = holder_source
        self.excluded = {address.lower() for address in excluded}
        self.threshold_percent = threshold_percent

    async def check(self, token: Token) -> bool | None:
        """Check holder concentration.

        Returns:
            True when acceptable, False when the top holder exceeds the
            threshold, None when holder data is not available yet
        """
        total_supply = await self.gateway.get_total_supply(token.address)
        if total_supply == 0:
            return None

        holders = [
            holder
            for holder in await self.holder_source.get_holders(token.address)
            if holder.address not in self.excluded and holder.address != token.pair_address
        ]
        if not holders:
            return None

        top_holder = max(holders, key=lambda holder: holder.quantity)
        if top_holder.quantity == 0:
            return None

        top_percent = 100 * top_holder.quantity / total_supply
        acceptable = top_holder.quantity * 100 <= total_supply * self.threshold_percent

        logger.info(
            "Holder concentration checked",
            top_holder=top_holder.address,
            top_holder_percent=round(top_percent, 2),
            threshold_percent=self.threshold_percent,
            acceptable=acceptable,
            **token.log_fields(),
        )
        return acceptable
