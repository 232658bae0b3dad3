"""Tests for live trade execution."""

import pytest
from eth_abi.exceptions import DecodingError

from sniper.chain.rpc import EthRpcError
from sniper.core.types import Block, SwapCall, Token, TokenState, TxReceipt, TxRequest
from sniper.exec.executor import LiveTradeExecutor
from sniper.exec.gas import GWEI
from sniper.registry.nonce import NonceManager
from sniper.registry.tokens import TokenRegistry

TOKEN = "0x" + "ab" * 20
PAIR = "0x" + "cd" * 20
ROUTER = "0x" + "0a" * 20
WALLET = "0x" + "f3" * 20


class MockGateway:
    """Chain gateway with a fixed block and scripted receipts."""

    def __init__(self, statuses: list[int] | None = None):
        self.statuses = list(statuses or [])
        self.waited: list[str] = []

    async def get_block(self, tag="latest") -> Block:
        return Block(
            number=100,
            timestamp=1_700_000_000,
            base_fee_per_gas=10 * GWEI,
            gas_used=15_000_000,
            gas_limit=30_000_000,
        )

    async def wait_for_receipt(self, tx_hash: str) -> TxReceipt:
        self.waited.append(tx_hash)
        status = self.statuses.pop(0) if self.statuses else 1
        return TxReceipt(
            transaction_hash=tx_hash,
            status=status,
            gas_used=100_000,
            effective_gas_price=10 * GWEI,
        )

    async def get_transaction_count(self, address: str) -> int:
        return 5


class MockWallet:
    """Wallet recording broadcast transactions."""

    chain_id = 1

    def __init__(
        self,
        token_balances: list[int] | None = None,
        reject: bool = False,
        accept_count: int | None = None,
    ):
        self.token_balances = list(token_balances or [0, 0])
        self.reject = reject
        self.accept_count = accept_count
        self.broadcast_txs: list[TxRequest] = []

    @property
    def address(self) -> str:
        return WALLET

    async def get_token_balance(self, token: str) -> int:
        return self.token_balances.pop(0)

    async def broadcast(self, tx: TxRequest) -> str:
        if self.reject or len(self.broadcast_txs) == self.accept_count:
            raise EthRpcError(-32000, "insufficient funds for gas * price + value")
        self.broadcast_txs.append(tx)
        return f"0x{tx.nonce:064x}"


class MockVenue:
    """Venue with fixed quotes and swap proceeds."""

    def __init__(
        self,
        buy_quote: int = 1000,
        sell_quote: int = 10**16,
        eth_out: int = 10**16,
        quote_error: Exception | None = None,
    ):
        self.buy_quote = buy_quote
        self.sell_quote = sell_quote
        self.eth_out = eth_out
        self.quote_error = quote_error

    async def quote_buy(self, token: Token, eth_in: int) -> int:
        if self.quote_error:
            raise self.quote_error
        return self.buy_quote

    async def quote_sell(self, token: Token, amount_in: int) -> int:
        if self.quote_error:
            raise self.quote_error
        return self.sell_quote

    def build_buy(self, token, eth_in, min_out, recipient, deadline) -> SwapCall:
        return SwapCall(to=ROUTER, data="0xb0", value=eth_in)

    def build_sell(self, token, amount_in, min_out, recipient, deadline) -> SwapCall:
        return SwapCall(to=ROUTER, data="0x5e")

    def build_approve(self, token, amount) -> SwapCall:
        return SwapCall(to=token.address, data="0xa9")

    def eth_out_from_receipt(self, token: Token, receipt: TxReceipt) -> int:
        return self.eth_out


async def make_executor(
    gateway: MockGateway | None = None,
    wallet: MockWallet | None = None,
    venue: MockVenue | None = None,
    state: TokenState = TokenState.BUYING,
) -> tuple[LiveTradeExecutor, TokenRegistry, NonceManager, Token]:
    gateway = gateway or MockGateway()
    registry = TokenRegistry()
    token = await registry.insert_or_get(
        TOKEN,
        Token(address=TOKEN, pair_address=PAIR, is_token_0=True, symbol="X", state=state),
    )
    nonces = NonceManager(WALLET)
    await nonces.initialize(gateway)
    executor = LiveTradeExecutor(
        gateway=gateway,
        wallet=wallet or MockWallet(),
        venue=venue or MockVenue(),
        registry=registry,
        nonces=nonces,
    )
    return executor, registry, nonces, token


class TestLiveBuy:
    """Test buys through the public mempool."""

    @pytest.mark.asyncio
    async def test_buy_measures_balance_change(self):
        wallet = MockWallet(token_balances=[200, 1200])
        executor, registry, _, token = await make_executor(wallet=wallet)

        received = await executor.buy(token, 10**16)

        assert received == 1000
        (tx,) = wallet.broadcast_txs
        assert tx.nonce == 5
        assert tx.value == 10**16
        assert tx.max_priority_fee_per_gas == tx.max_fee_per_gas // 10

        stored = await registry.get(TOKEN)
        assert stored.tx_gas_cost == 100_000 * 10 * GWEI

    @pytest.mark.asyncio
    async def test_reverted_buy_still_pays_gas(self):
        executor, registry, _, token = await make_executor(gateway=MockGateway(statuses=[0]))

        assert await executor.buy(token, 10**16) == 0

        stored = await registry.get(TOKEN)
        assert stored.tx_gas_cost == 100_000 * 10 * GWEI

    @pytest.mark.asyncio
    async def test_rejected_broadcast_releases_nonce(self):
        executor, _, nonces, token = await make_executor(wallet=MockWallet(reject=True))

        assert await executor.buy(token, 10**16) == 0
        assert await nonces.next() == 5

    @pytest.mark.asyncio
    async def test_zero_quote_sends_nothing(self):
        wallet = MockWallet()
        executor, _, _, token = await make_executor(wallet=wallet, venue=MockVenue(buy_quote=0))

        assert await executor.buy(token, 10**16) == 0
        assert wallet.broadcast_txs == []

    @pytest.mark.asyncio
    async def test_undecodable_quote_fails_buy(self):
        """A quoter returning garbage reads as a failed buy, not an exception."""
        wallet = MockWallet()
        venue = MockVenue(quote_error=DecodingError("Tried to read 32 bytes, only got 0 bytes"))
        executor, _, nonces, token = await make_executor(wallet=wallet, venue=venue)

        assert await executor.buy(token, 10**16) == 0
        assert wallet.broadcast_txs == []
        assert await nonces.next() == 5

    @pytest.mark.asyncio
    async def test_retry_escalates_fees(self):
        """Later purchase attempts pay the high fee tier."""
        wallet = MockWallet(token_balances=[0, 10])
        executor, _, _, token = await make_executor(wallet=wallet)

        await executor.buy(token.model_copy(update={"purchase_attempts": 2}), 10**16)

        (tx,) = wallet.broadcast_txs
        assert tx.max_priority_fee_per_gas == 2 * GWEI


class TestLiveSell:
    """Test approve-and-sell submissions."""

    @pytest.mark.asyncio
    async def test_sell_uses_consecutive_nonces(self):
        wallet = MockWallet()
        executor, registry, _, token = await make_executor(
            wallet=wallet, state=TokenState.BOUGHT
        )

        eth_received = await executor.sell(token, 1000)

        assert eth_received == 10**16
        approve, sell = wallet.broadcast_txs
        assert (approve.nonce, sell.nonce) == (5, 6)
        assert approve.to == TOKEN
        assert approve.gas == 100_000
        assert sell.gas == 300_000

        stored = await registry.get(TOKEN)
        assert stored.tx_gas_cost == 2 * 100_000 * 10 * GWEI

    @pytest.mark.asyncio
    async def test_reverted_sell(self):
        executor, _, _, token = await make_executor(
            gateway=MockGateway(statuses=[1, 0]), state=TokenState.BOUGHT
        )

        assert await executor.sell(token, 1000) == 0

    @pytest.mark.asyncio
    async def test_nothing_to_sell(self):
        wallet = MockWallet()
        executor, _, _, token = await make_executor(wallet=wallet, state=TokenState.BOUGHT)

        assert await executor.sell(token, 0) == 0
        assert wallet.broadcast_txs == []

    @pytest.mark.asyncio
    async def test_rejected_swap_after_approve_releases_its_nonce(self):
        """The approve is in the mempool; only the swap's nonce is handed back."""
        wallet = MockWallet(accept_count=1)
        executor, _, nonces, token = await make_executor(
            wallet=wallet, state=TokenState.BOUGHT
        )

        assert await executor.sell(token, 1000) == 0

        (approve,) = wallet.broadcast_txs
        assert approve.nonce == 5
        assert await nonces.next() == 6
