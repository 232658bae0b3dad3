"""Simulated buy-then-sell round trip on an ephemeral fork."""

from collections.abc import Callable

import structlog

from ..chain.rpc import EthRpcError, is_transient_error
from ..core.interfaces import (
    ChainGateway,
    SimulationEnvironment,
    SimulationFactory,
    SwapVenue,
)
from ..core.types import Slippage, SwapCall, Token, TokenVerdict, TxReceipt, TxRequest
from ..market.liquidity import apply_slippage

logger = structlog.get_logger(__name__)

VenueFactory = Callable[[ChainGateway], SwapVenue]


class DryRunSimulator:
    """Buys and sells a token on a throwaway fork to catch honeypots.

    Each run spawns a fresh fork, so a failed run never touches real
    balances. Transport failures and rate limits propagate, including
    those answered as JSON-RPC errors; trade failures become verdicts.
    """

    def __init__(
        self,
        factory: SimulationFactory,
        venue_factory: VenueFactory,
        fork_url: str,
        buy_amount: int,
        fund_amount: int,
        account: str,
        slippage: Slippage = Slippage.TEN_PERCENT,
        swap_gas_limit: int = 300_000,
        approve_gas_limit: int = 100_000,
        deadline_seconds: int = 300,
    ) -> None:
        """Initialize the simulator.

        Args:
            factory: Spawns simulation environments
            venue_factory: Builds the swap venue bound to a fork's gateway
            fork_url: RPC URL to fork
            buy_amount: Wei spent on the simulated buy
            fund_amount: Synthetic ETH balance given to the account
            account: Account impersonated on the fork
            slippage: Slippage applied to both legs
            swap_gas_limit: Gas limit for swaps
            approve_gas_limit: Gas limit for the approval
            deadline_seconds: Swap deadline offset from the fork's block time
        """
        self.factory = factory
        self.venue_factory = venue_factory
        self.fork_url = fork_url
        self.buy_amount = buy_amount
        self.fund_amount = fund_amount
        self.account = account.lower()
        self.slippage = slippage
        self.swap_gas_limit = swap_gas_limit
        self.approve_gas_limit = approve_gas_limit
        self.deadline_seconds = deadline_seconds

    async def simulate(self, token: Token) -> TokenVerdict:
        """Run the round trip for ``token`` and return the verdict."""
        env = await self.factory.spawn(self.fork_url)
        try:
            snapshot_id = await env.snapshot()
            try:
                verdict = await self._round_trip(env, token)
            finally:
                await env.revert(snapshot_id)
        finally:
            await env.close()

        logger.info("Dry run completed", verdict=verdict.value, **token.log_fields())
        return verdict

    async def _submit(
        self, env: SimulationEnvironment, call: SwapCall, gas: int
    ) -> TxReceipt | None:
        tx = TxRequest(
            to=call.to, data=call.data, value=call.value, gas=gas, sender=self.account
        )
        try:
            return await env.submit_and_wait(tx)
        except EthRpcError as e:
            if is_transient_error(e):
                raise
            logger.debug("Simulated transaction rejected", error=str(e))
            return None

    async def _round_trip(self, env: SimulationEnvironment, token: Token) -> TokenVerdict:
        await env.fund(self.account, self.fund_amount)
        await env.impersonate(self.account)

        venue = self.venue_factory(env.gateway)
        deadline = await env.get_current_timestamp() + self.deadline_seconds

        # Buy
        try:
            quoted = await venue.quote_buy(token, self.buy_amount)
        except EthRpcError as e:
            if is_transient_error(e):
                raise
            logger.info("Buy quote failed", error=str(e), **token.log_fields())
            return TokenVerdict.CANNOT_BUY
        if quoted == 0:
            return TokenVerdict.CANNOT_BUY

        buy_call = venue.build_buy(
            token,
            self.buy_amount,
            apply_slippage(quoted, self.slippage),
            self.account,
            deadline,
        )
        receipt = await self._submit(env, buy_call, self.swap_gas_limit)
        if receipt is None or not receipt.succeeded:
            logger.info("Simulated buy failed", **token.log_fields())
            return TokenVerdict.CANNOT_BUY

        balance = await env.get_token_balance(token.address)
        if balance == 0:
            logger.info("Simulated buy returned no tokens", **token.log_fields())
            return TokenVerdict.CANNOT_BUY

        # Approve and sell the full balance
        approve_receipt = await self._submit(
            env, venue.build_approve(token, balance), self.approve_gas_limit
        )
        if approve_receipt is None or not approve_receipt.succeeded:
            logger.info("Simulated approval failed", **token.log_fields())
            return TokenVerdict.CANNOT_SELL

        try:
            quoted_sell = await venue.quote_sell(token, balance)
        except EthRpcError as e:
            if is_transient_error(e):
                raise
            logger.info("Sell quote failed", error=str(e), **token.log_fields())
            return TokenVerdict.CANNOT_SELL

        sell_call = venue.build_sell(
            token,
            balance,
            apply_slippage(quoted_sell, self.slippage),
            self.account,
            deadline,
        )
        sell_receipt = await self._submit(env, sell_call, self.swap_gas_limit)
        if sell_receipt is None or not sell_receipt.succeeded:
            logger.info("Simulated sell failed", **token.log_fields())
            return TokenVerdict.CANNOT_SELL

        residual = await env.get_token_balance(token.address)
        if residual > 0:
            logger.info(
                "Simulated sell left a residual balance",
                residual=residual,
                **token.log_fields(),
            )
            return TokenVerdict.CANNOT_SELL

        return TokenVerdict.LEGIT
