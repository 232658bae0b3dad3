"""Live trade execution through the public mempool."""

import httpx
import structlog
from eth_abi.exceptions import DecodingError

from ..chain.rpc import EthRpcError
from ..core.interfaces import ChainGateway, SwapVenue, TradeExecutor
from ..core.types import Block, Slippage, SwapCall, Token, TxReceipt, TxRequest
from ..market.liquidity import apply_slippage
from ..registry.nonce import NonceManager
from ..registry.tokens import TokenRegistry
from .gas import fee_params, tier_for_attempt, tx_gas_cost
from .wallet import LiveWallet

logger = structlog.get_logger(__name__)


class TxError(Exception):
    """A trade could not be submitted or did not execute."""


# Failures converted into a zero-amount trade result. ValueError and
# DecodingError cover quotes against empty pools and malformed call returns.
TRADE_ERRORS = (TxError, EthRpcError, httpx.HTTPError, TimeoutError, ValueError, DecodingError)


class LiveTradeExecutor(TradeExecutor):
    """Signs swaps with the trading wallet and broadcasts them.

    Buys and sells never raise for trade failures: a failed or reverted
    trade is logged and reported as zero. Gas paid by mined transactions is
    added to the token's cost even when they revert.
    """

    def __init__(
        self,
        gateway: ChainGateway,
        wallet: LiveWallet,
        venue: SwapVenue,
        registry: TokenRegistry,
        nonces: NonceManager,
        chain: str = "mainnet",
        buy_slippage: Slippage = Slippage.TWO_PERCENT,
        sell_slippage: Slippage = Slippage.TEN_PERCENT,
        swap_gas_limit: int = 300_000,
        approve_gas_limit: int = 100_000,
        deadline_seconds: int = 300,
        fee_buffer_percent: int = 5,
    ) -> None:
        """Initialize the executor.

        Args:
            gateway: Chain gateway
            wallet: Trading wallet
            venue: Swap venue
            registry: Token registry, for gas accounting
            nonces: Nonce manager of the trading wallet
            chain: Chain name, selects the fee schedule
            buy_slippage: Slippage for buys
            sell_slippage: Slippage for sells
            swap_gas_limit: Gas limit for swaps
            approve_gas_limit: Gas limit for approvals
            deadline_seconds: Swap deadline offset
            fee_buffer_percent: Buffer over the next base fee
        """
        self.gateway = gateway
        self.wallet = wallet
        self.venue = venue
        self.registry = registry
        self.nonces = nonces
        self.chain = chain
        self.buy_slippage = buy_slippage
        self.sell_slippage = sell_slippage
        self.swap_gas_limit = swap_gas_limit
        self.approve_gas_limit = approve_gas_limit
        self.deadline_seconds = deadline_seconds
        self.fee_buffer_percent = fee_buffer_percent

    def _build_tx(
        self, call: SwapCall, gas: int, nonce: int, block: Block, attempts: int
    ) -> TxRequest:
        max_fee, priority_fee = fee_params(
            block, tier_for_attempt(attempts), self.chain, self.fee_buffer_percent
        )
        return TxRequest(
            to=call.to,
            data=call.data,
            value=call.value,
            gas=gas,
            max_fee_per_gas=max_fee,
            max_priority_fee_per_gas=priority_fee,
            nonce=nonce,
            chain_id=self.wallet.chain_id,
        )

    async def _submit(self, txs: list[TxRequest], block: Block) -> list[TxReceipt]:
        """Broadcast ``txs`` in nonce order and wait for every receipt.

        Nonces of transactions that never reached the mempool are handed
        back, so a rejected swap after an accepted approve does not leave
        a gap that stalls every later transaction of the wallet.

        Raises:
            TxError: If a transaction cannot be signed or broadcast
        """
        hashes = []
        for tx in txs:
            try:
                hashes.append(await self.wallet.broadcast(tx))
            except (EthRpcError, ValueError) as e:
                await self.nonces.release([t.nonce for t in txs[len(hashes) :]])
                raise TxError(f"Broadcast failed: {e}") from e
        return [await self.gateway.wait_for_receipt(tx_hash) for tx_hash in hashes]

    async def _record_gas(self, token: Token, receipts: list[TxReceipt]) -> int:
        gas_cost = sum(tx_gas_cost(receipt) for receipt in receipts)
        if gas_cost:
            await self.registry.add_gas_cost(token.address, gas_cost)
        return gas_cost

    async def buy(self, token: Token, eth_amount: int) -> int:
        """Swap ``eth_amount`` wei for the token.

        Returns:
            Token units received, measured as the wallet's balance change
        """
        try:
            block = await self.gateway.get_block("latest")
            quoted = await self.venue.quote_buy(token, eth_amount)
            if quoted == 0:
                raise TxError("Buy quote returned zero")

            call = self.venue.build_buy(
                token,
                eth_amount,
                apply_slippage(quoted, self.buy_slippage),
                self.wallet.address,
                block.timestamp + self.deadline_seconds,
            )
            balance_before = await self.wallet.get_token_balance(token.address)

            nonce = await self.nonces.next()
            tx = self._build_tx(
                call, self.swap_gas_limit, nonce, block, token.purchase_attempts
            )
            logger.info(
                "Submitting buy",
                eth_amount=eth_amount,
                min_out=apply_slippage(quoted, self.buy_slippage),
                nonce=nonce,
                attempt=token.purchase_attempts,
                **token.log_fields(),
            )

            (receipt,) = await self._submit([tx], block)
            gas_cost = await self._record_gas(token, [receipt])
            if not receipt.succeeded:
                raise TxError(f"Buy reverted: {receipt.transaction_hash}")

            received = await self.wallet.get_token_balance(token.address) - balance_before
            logger.info(
                "Buy executed",
                tx_hash=receipt.transaction_hash,
                amount_bought=received,
                gas_cost=gas_cost,
                **token.log_fields(),
            )
            return max(received, 0)

        except TRADE_ERRORS as e:
            logger.error(
                "Buy failed",
                error=str(e),
                error_type=type(e).__name__,
                **token.log_fields(),
            )
            return 0

    async def sell(self, token: Token, token_amount: int) -> int:
        """Approve the router and swap ``token_amount`` units for ETH.

        Returns:
            Wei received, read from the pool's Swap log
        """
        try:
            if token_amount <= 0:
                raise TxError("Nothing to sell")

            block = await self.gateway.get_block("latest")
            quoted = await self.venue.quote_sell(token, token_amount)
            min_out = apply_slippage(quoted, self.sell_slippage)
            call = self.venue.build_sell(
                token,
                token_amount,
                min_out,
                self.wallet.address,
                block.timestamp + self.deadline_seconds,
            )

            approve_nonce, sell_nonce = await self.nonces.reserve(2)
            txs = [
                self._build_tx(
                    self.venue.build_approve(token, token_amount),
                    self.approve_gas_limit,
                    approve_nonce,
                    block,
                    token.sell_attempts,
                ),
                self._build_tx(
                    call, self.swap_gas_limit, sell_nonce, block, token.sell_attempts
                ),
            ]
            logger.info(
                "Submitting sell",
                token_amount=token_amount,
                min_out=min_out,
                nonces=[approve_nonce, sell_nonce],
                attempt=token.sell_attempts,
                **token.log_fields(),
            )

            receipts = await self._submit(txs, block)
            gas_cost = await self._record_gas(token, receipts)
            receipt = receipts[-1]
            if not receipt.succeeded:
                raise TxError(f"Sell reverted: {receipt.transaction_hash}")

            eth_received = self.venue.eth_out_from_receipt(token, receipt)
            logger.info(
                "Sell executed",
                tx_hash=receipt.transaction_hash,
                eth_received=eth_received,
                gas_cost=gas_cost,
                **token.log_fields(),
            )
            return eth_received

        except TRADE_ERRORS as e:
            logger.error(
                "Sell failed",
                error=str(e),
                error_type=type(e).__name__,
                **token.log_fields(),
            )
            return 0
