"""Position exits: single sale after a hold, or staged sales across buckets."""

from typing import Literal

import structlog
from pydantic import BaseModel, Field

from ..core.interfaces import TradeExecutor
from ..core.types import TIME_ROUNDS, VOLUME_ROUNDS, Token, TokenState
from ..registry.tokens import TokenRegistry
from .paper import PaperTradeExecutor

logger = structlog.get_logger(__name__)

ExitMode = Literal["hold", "time_buckets", "volume_buckets"]


def get_time_interval(
    current_time: int, time_of_purchase: int, bucket_seconds: int, rounds: int = TIME_ROUNDS
) -> int | None:
    """Index of the time bucket ``current_time`` falls in.

    Returns:
        Bucket index, or None once every bucket has elapsed
    """
    elapsed = max(current_time - time_of_purchase, 0)
    index = elapsed // bucket_seconds
    return index if index < rounds else None


class ExitResult(BaseModel):
    """Outcome of one exit step for a token."""

    address: str = Field(description="Token address")
    eth_received: int = Field(default=0, description="Wei received by this step")
    settled: bool = Field(default=False, description="Position fully closed")
    gave_up: bool = Field(default=False, description="Sell attempts exhausted")


class ExitStrategy:
    """Decides when Bought tokens are sold and performs the sale.

    Every step claims the token by moving it Bought -> Selling, so a
    re-triggered sweep cannot sell the same position twice. Each time or
    volume bucket is filled at most once.
    """

    def __init__(
        self,
        executor: TradeExecutor,
        registry: TokenRegistry,
        mode: ExitMode = "hold",
        hold_seconds: int = 300,
        bucket_seconds: int = 60,
        sell_attempt_limit: int = 10,
    ) -> None:
        """Initialize the exit strategy.

        Args:
            executor: Trade executor used for sales
            registry: Token registry
            mode: hold, time_buckets or volume_buckets
            hold_seconds: Hold duration for hold and volume_buckets modes
            bucket_seconds: Width of each time bucket
            sell_attempt_limit: Failed sells tolerated before giving up
        """
        if mode == "volume_buckets" and not isinstance(executor, PaperTradeExecutor):
            raise ValueError("volume_buckets exits require the paper executor")

        self.executor = executor
        self.registry = registry
        self.mode = mode
        self.hold_seconds = hold_seconds
        self.bucket_seconds = bucket_seconds
        self.sell_attempt_limit = sell_attempt_limit

        logger.info(
            "Exit strategy initialized",
            mode=mode,
            hold_seconds=hold_seconds,
            bucket_seconds=bucket_seconds,
        )

    def is_due(self, token: Token, now: int) -> bool:
        """Whether a Bought token has a sale pending at ``now``."""
        if token.state != TokenState.BOUGHT:
            return False

        if self.mode != "time_buckets":
            return now >= token.time_of_purchase + self.hold_seconds

        index = get_time_interval(now, token.time_of_purchase, self.bucket_seconds)
        if index is None:
            return True
        return index > 0 and not token.is_sold_at_time[index]

    async def on_bought(self, token: Token, base_amount: int) -> None:
        """Hook run after a buy fills; quotes the volume buckets in that mode."""
        if self.mode != "volume_buckets":
            return
        amounts = await self.executor.quote_volume_buys(token, base_amount)
        await self.registry.set_amounts_bought(token.address, amounts)
        logger.info("Volume buckets bought", amounts=amounts, **token.log_fields())

    async def run(self, address: str, now: int) -> ExitResult | None:
        """Perform the exit step due for ``address``.

        Each claimed step counts as one sell attempt. A step that raises
        hands the token back to Bought for the next sweep, or gives it up
        once the attempts are exhausted.

        Returns:
            The step's result, or None when the token could not be claimed

        Raises:
            Exception: Whatever the step raised, unless the token was given up
        """
        if not await self.registry.set_state(address, TokenState.SELLING):
            return None

        await self.registry.increment(address, "sell_attempts")
        token = await self.registry.get(address)
        if token is None:
            return None

        try:
            return await self._step(token, now)
        except Exception as e:
            logger.error(
                "Exit step failed",
                error=str(e),
                error_type=type(e).__name__,
                **token.log_fields(),
            )
            result = await self._finish(token, 0, final=False)
            if result.gave_up:
                return result
            raise

    async def _step(self, token: Token, now: int) -> ExitResult:
        address = token.address
        if self.mode == "time_buckets":
            index = get_time_interval(now, token.time_of_purchase, self.bucket_seconds)
            if index is None or index == TIME_ROUNDS - 1:
                eth_received = await self._sell(token, self._remaining(token))
                return await self._finish(token, eth_received, final=True, index=index)
            eth_received = await self.sell_time_bucket(address, index)
            return await self._finish(token, eth_received, final=False, index=index)

        if self.mode == "volume_buckets":
            for index in range(VOLUME_ROUNDS):
                await self.sell_volume_bucket(address, index)

        eth_received = await self._sell(token, token.amount_bought)
        return await self._finish(token, eth_received, final=True)

    def _share(self, token: Token) -> int:
        return token.amount_bought // (TIME_ROUNDS - 1)

    def _remaining(self, token: Token) -> int:
        sold_buckets = sum(1 for sold in token.is_sold_at_time[1:] if sold)
        return token.amount_bought - self._share(token) * sold_buckets

    async def _sell(self, token: Token, amount: int) -> int:
        fresh = await self.registry.get(token.address)
        return await self.executor.sell(fresh or token, amount)

    async def sell_time_bucket(self, address: str, index: int) -> int:
        """Sell the equal share belonging to time bucket ``index`` once.

        Returns:
            Wei recorded for the bucket by this call; 0 when it was already
            sold or the sale failed
        """
        token = await self.registry.get(address)
        if token is None or token.is_sold_at_time[index]:
            return 0

        eth_received = await self._sell(token, self._share(token))
        if eth_received == 0:
            return 0
        if not await self.registry.record_time_sale(address, index, eth_received):
            return 0

        logger.info(
            "Time bucket sold", index=index, eth_received=eth_received, **token.log_fields()
        )
        return eth_received

    async def sell_volume_bucket(self, address: str, index: int) -> int:
        """Quote volume bucket ``index`` back to ETH once."""
        token = await self.registry.get(address)
        if token is None or token.is_sold_at_volume[index]:
            return 0

        eth_received = await self.executor.quote_volume_sell(
            token, token.amounts_bought[index]
        )
        if not await self.registry.record_volume_sale(address, index, eth_received):
            return 0

        logger.info(
            "Volume bucket sold",
            index=index,
            amount=token.amounts_bought[index],
            eth_received=eth_received,
            **token.log_fields(),
        )
        return eth_received

    async def _finish(
        self, token: Token, eth_received: int, final: bool, index: int | None = None
    ) -> ExitResult:
        result = ExitResult(address=token.address, eth_received=eth_received)

        if eth_received == 0:
            current = await self.registry.get(token.address)
            attempts = current.sell_attempts if current else self.sell_attempt_limit
            if attempts >= self.sell_attempt_limit:
                logger.error(
                    "Sell attempts exhausted", attempts=attempts, **token.log_fields()
                )
                result.gave_up = True
                return result
            logger.warning(
                "Sell returned nothing, will retry",
                attempts=attempts,
                bucket=index,
                **token.log_fields(),
            )
            await self.registry.record_sale(token.address, 0, final=False)
            return result

        if final and index is not None and index < TIME_ROUNDS:
            await self.registry.record_time_sale(token.address, index, eth_received)

        await self.registry.record_sale(token.address, eth_received, final=final)
        result.settled = final
        logger.info(
            "Token sold" if final else "Partial sale recorded",
            eth_received=eth_received,
            bucket=index,
            **token.log_fields(),
        )
        return result
