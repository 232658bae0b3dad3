"""Lifecycle scheduler: per-block sweeps dispatching per-token tasks."""

import asyncio
import time
from collections.abc import Awaitable, Callable
from decimal import Decimal

import structlog

from ..core.interfaces import AlertSink, Persistence, TradeExecutor
from ..core.types import WEI_PER_ETH, Block, TaskOutcome, Token, TokenState
from ..exec.strategy import ExitStrategy
from ..registry.tokens import TokenRegistry
from ..verify.pipeline import ValidationPipeline

logger = structlog.get_logger(__name__)

TokenTask = Callable[[str, int], Awaitable[None]]


def _eth(wei: int) -> str:
    return f"{Decimal(wei) / WEI_PER_ETH:.6f}"


class LifecycleScheduler:
    """Dispatches the next lifecycle step of every eligible token.

    Each step runs as its own task so one slow token never blocks another.
    A token with a task in flight is skipped until that task finishes.
    Every task reports a TaskOutcome on :attr:`results`.
    """

    def __init__(
        self,
        registry: TokenRegistry,
        pipeline: ValidationPipeline,
        executor: TradeExecutor,
        strategy: ExitStrategy,
        storage: Persistence,
        alerts: AlertSink,
        purchase_amount: int,
        stats_every_blocks: int = 30,
    ) -> None:
        """Initialize the scheduler.

        Args:
            registry: Token registry
            pipeline: Validation pipeline
            executor: Trade executor
            strategy: Exit strategy for Bought tokens
            storage: Trade and portfolio persistence
            alerts: Operator alert sink
            purchase_amount: Wei spent per buy
            stats_every_blocks: Blocks between stats log lines
        """
        self.registry = registry
        self.pipeline = pipeline
        self.executor = executor
        self.strategy = strategy
        self.storage = storage
        self.alerts = alerts
        self.purchase_amount = purchase_amount
        self.stats_every_blocks = stats_every_blocks

        self.results: asyncio.Queue[TaskOutcome] = asyncio.Queue()
        self._in_flight: set[str] = set()
        self._tasks: set[asyncio.Task] = set()
        self._blocks_seen = 0

    def _next_action(self, token: Token, now: int) -> tuple[str, TokenTask] | None:
        if token.state in self.pipeline.pending_states():
            return "validate", self._validate
        if token.state == TokenState.VALIDATED:
            return "buy", self._buy
        if self.strategy.is_due(token, now):
            return "sell", self._sell
        return None

    async def sweep(self, now: int) -> list[asyncio.Task]:
        """Dispatch the next step for every eligible token.

        Args:
            now: Current chain time (unix seconds)

        Returns:
            Tasks started by this sweep
        """
        started = []
        for token in await self.registry.all():
            if token.address in self._in_flight:
                continue
            action = self._next_action(token, now)
            if action is None:
                continue
            name, task_fn = action
            started.append(self._dispatch(token.address, name, task_fn, now))

        if started:
            logger.debug("Sweep dispatched tasks", count=len(started), now=now)
        return started

    def _dispatch(
        self, address: str, action: str, task_fn: TokenTask, now: int
    ) -> asyncio.Task:
        self._in_flight.add(address)
        task = asyncio.create_task(self._run_task(address, action, task_fn, now))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_task(
        self, address: str, action: str, task_fn: TokenTask, now: int
    ) -> None:
        outcome = TaskOutcome(address=address, action=action, ok=True)
        try:
            await task_fn(address, now)
        except Exception as e:
            # Task boundary: one token's failure must not stop the others
            outcome.ok = False
            outcome.error = str(e)
            logger.error(
                "Token task failed",
                action=action,
                address=address,
                error=str(e),
                error_type=type(e).__name__,
            )
        finally:
            self._in_flight.discard(address)
            token = await self.registry.get(address)
            outcome.state = token.state if token else None
            self.results.put_nowait(outcome)

    async def wait_idle(self) -> None:
        """Wait for every dispatched task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def drain_results(self) -> list[TaskOutcome]:
        """Collect every outcome reported since the last drain."""
        outcomes = []
        while not self.results.empty():
            outcomes.append(self.results.get_nowait())
        return outcomes

    # Per-token steps

    async def _validate(self, address: str, now: int) -> None:
        outcome = await self.pipeline.advance(address)
        if outcome.state == TokenState.REMOVED and outcome.reasons:
            await self.alerts.push(
                f"❌ <b>Token rejected</b>\n<code>{address}</code>\n"
                f"Reason: {', '.join(outcome.reasons)}"
            )

    async def _buy(self, address: str, now: int) -> None:
        if not await self.registry.set_state(address, TokenState.BUYING):
            return

        # A buy is attempted once; any failure removes the token
        await self.registry.increment(address, "purchase_attempts")
        token = await self.registry.get(address)
        if token is None:
            return

        try:
            amount = await self.executor.buy(token, self.purchase_amount)
        except Exception:
            await self._buy_failed(token)
            raise
        if amount == 0:
            await self._buy_failed(token)
            return

        await self.registry.record_purchase(address, self.purchase_amount, amount, now)
        token = await self.registry.get(address) or token
        await self.storage.record_trade(
            token_address=address,
            symbol=token.symbol,
            side="buy",
            amount_eth=self.purchase_amount,
            amount_token=amount,
            gas_cost=token.tx_gas_cost,
        )
        await self.strategy.on_bought(token, self.purchase_amount)
        await self.alerts.push(
            f"🟢 <b>Bought</b> {token.symbol}\n"
            f"Token: <code>{address}</code>\n"
            f"Spent: {_eth(self.purchase_amount)} ETH\n"
            f"Amount: {amount}"
        )
        logger.info(
            "Token bought",
            eth_spent=self.purchase_amount,
            amount_bought=amount,
            **token.log_fields(),
        )

    async def _buy_failed(self, token: Token) -> None:
        # Never leave a token parked in Buying
        await self.registry.remove(token.address, "buy failed")
        await self.alerts.push(
            f"❌ <b>Buy failed</b> {token.symbol}\n<code>{token.address}</code>"
        )

    async def _sell(self, address: str, now: int) -> None:
        result = await self.strategy.run(address, now)
        if result is None:
            return

        token = await self.registry.get(address)
        if token is None:
            return

        if result.eth_received:
            await self.storage.record_trade(
                token_address=address,
                symbol=token.symbol,
                side="sell",
                amount_eth=result.eth_received,
                amount_token=0,
            )

        if result.gave_up:
            await self._settle(address, "sell failed")
        elif result.settled:
            await self._settle(address, "sold")

    async def _settle(self, address: str, reason: str) -> None:
        token = await self.registry.remove(address, reason)
        if token is None:
            return

        await self.storage.record_sale(token)
        await self.alerts.push(
            f"{'💰' if token.state == TokenState.SOLD else '🛑'} <b>{reason.title()}</b> "
            f"{token.symbol}\n"
            f"Received: {_eth(token.eth_received_at_sale)} ETH\n"
            f"Profit: {_eth(token.profit())} ETH (ROI {token.roi():.1%})"
        )
        logger.info(
            "Token settled",
            reason=reason,
            eth_received=token.eth_received_at_sale,
            profit=token.profit(),
            roi=round(token.roi(), 4),
            **token.log_fields(),
        )

    # Block handling

    async def on_block(self, block: Block) -> list[asyncio.Task]:
        """Sweep on a new block and log stats periodically."""
        self._blocks_seen += 1
        tasks = await self.sweep(block.timestamp)

        outcomes = self.drain_results()
        failed = [outcome for outcome in outcomes if not outcome.ok]
        if outcomes and len(failed) * 2 > len(outcomes):
            logger.warning(
                "High token task failure rate",
                failed=len(failed),
                total=len(outcomes),
                errors=[outcome.error for outcome in failed[:5]],
            )

        if self._blocks_seen % self.stats_every_blocks == 0:
            await self.log_stats(block)
        return tasks

    async def log_stats(self, block: Block | None = None) -> dict:
        """Log token counts by state and realized profit."""
        counts = await self.registry.counts_by_state()
        portfolio = await self.storage.load_portfolio()
        total_profit = sum(int(row["profit"]) for row in portfolio)
        stats = {
            "tracked": sum(counts.values()),
            "by_state": counts,
            "settled": len(portfolio),
            "total_profit_eth": _eth(total_profit),
            "block": block.number if block else None,
            "ts": int(time.time()),
        }
        logger.info("Sniper stats", **stats)
        return stats

    async def run(self, blocks) -> None:
        """Sweep on every block from ``blocks`` until cancelled."""
        async for block in blocks:
            await self.on_block(block)
