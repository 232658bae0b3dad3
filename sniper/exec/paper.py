"""Dry-run trade execution priced from venue quotes."""

import structlog

from ..core.interfaces import SwapVenue, TradeExecutor
from ..core.types import VOLUME_ROUNDS, Token
from ..market.liquidity import has_enough_liquidity_for_trade
from .executor import TRADE_ERRORS

logger = structlog.get_logger(__name__)


class PaperTradeExecutor(TradeExecutor):
    """Executor that fills at the quoted price without sending transactions.

    No gas is spent. Sells check the pool still holds enough base asset
    relative to the purchase, so a drained pool reads as a zero fill. A
    failed quote also fills zero.
    """

    def __init__(self, venue: SwapVenue, min_reserve_factor: int = 10) -> None:
        """Initialize paper executor.

        Args:
            venue: Swap venue used for quotes
            min_reserve_factor: Pool base reserve must be at least this
                multiple of the ETH spent for a sell to fill
        """
        self.venue = venue
        self.min_reserve_factor = min_reserve_factor
        self.trade_history: list[dict] = []

        logger.info("Paper executor initialized", min_reserve_factor=min_reserve_factor)

    def _record(self, token: Token, side: str, amount_eth: int, amount_token: int) -> None:
        self.trade_history.append(
            {
                "address": token.address,
                "symbol": token.symbol,
                "side": side,
                "amount_eth": amount_eth,
                "amount_token": amount_token,
            }
        )

    async def buy(self, token: Token, eth_amount: int) -> int:
        """Fill a buy at the venue quote."""
        try:
            amount_out = await self.venue.quote_buy(token, eth_amount)
        except TRADE_ERRORS as e:
            logger.error(
                "Paper buy failed",
                error=str(e),
                error_type=type(e).__name__,
                **token.log_fields(),
            )
            return 0
        self._record(token, "buy", eth_amount, amount_out)

        logger.info(
            "Paper buy executed",
            eth_amount=eth_amount,
            amount_bought=amount_out,
            **token.log_fields(),
        )
        return amount_out

    async def sell(self, token: Token, token_amount: int) -> int:
        """Fill a sell at the venue quote unless the pool has been drained."""
        if token_amount <= 0:
            return 0

        try:
            base_reserve = await self.venue.base_liquidity(token)
            if not has_enough_liquidity_for_trade(
                base_reserve, token.eth_spent, self.min_reserve_factor
            ):
                logger.warning(
                    "Pool drained, paper sell not filled",
                    base_reserve=base_reserve,
                    eth_spent=token.eth_spent,
                    **token.log_fields(),
                )
                return 0

            eth_out = await self.venue.quote_sell(token, token_amount)
        except TRADE_ERRORS as e:
            logger.error(
                "Paper sell failed",
                error=str(e),
                error_type=type(e).__name__,
                **token.log_fields(),
            )
            return 0
        self._record(token, "sell", eth_out, token_amount)

        logger.info(
            "Paper sell executed",
            token_amount=token_amount,
            eth_received=eth_out,
            **token.log_fields(),
        )
        return eth_out

    async def quote_volume_buys(self, token: Token, base_amount: int) -> list[int]:
        """Quote buys of (i + 1) x ``base_amount`` for every volume bucket."""
        return [
            await self.venue.quote_buy(token, base_amount * (index + 1))
            for index in range(VOLUME_ROUNDS)
        ]

    async def quote_volume_sell(self, token: Token, amount: int) -> int:
        """Quote one volume bucket back to ETH, subject to the drain check."""
        return await self.sell(token, amount)
