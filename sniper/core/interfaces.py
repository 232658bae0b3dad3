"""Core interfaces for the token sniper."""

from collections.abc import AsyncIterator
from typing import Any, Protocol, runtime_checkable

from .types import (
    Block,
    CodeAudit,
    HolderEntry,
    HoneypotReport,
    LogEntry,
    SwapCall,
    Token,
    TxReceipt,
    TxRequest,
)


class ChainGateway(Protocol):
    """Read/write access to the chain node."""

    def subscribe_new_blocks(self) -> AsyncIterator[Block]:
        """Stream new block headers."""
        ...

    def subscribe_logs(self, address: str, topics: list[str]) -> AsyncIterator[LogEntry]:
        """Stream logs emitted by ``address`` matching ``topics``."""
        ...

    async def get_block(self, tag: str | int = "latest") -> Block:
        """Fetch a block header."""
        ...

    async def call(self, to: str, data: str) -> bytes:
        """Execute a read-only contract call."""
        ...

    async def get_reserves(self, pool: str) -> tuple[int, int]:
        """Return (reserve0, reserve1) of a V2-style pair."""
        ...

    async def get_total_supply(self, token: str) -> int:
        """Return the total supply of an ERC-20 or LP token."""
        ...

    async def get_balance(self, address: str, token: str | None = None) -> int:
        """Return the ETH balance, or the ERC-20 balance when ``token`` is set."""
        ...

    async def get_token_metadata(self, token: str) -> tuple[str, str, int]:
        """Return (name, symbol, decimals)."""
        ...

    async def send_transaction(self, signed_tx: bytes) -> str:
        """Broadcast a signed transaction and return its hash."""
        ...

    async def wait_for_receipt(self, tx_hash: str) -> TxReceipt:
        """Wait until a transaction is mined."""
        ...

    async def get_transaction_count(self, address: str) -> int:
        """Return the pending nonce of ``address``."""
        ...


@runtime_checkable
class TxCapable(Protocol):
    """An account able to submit transactions and report balances.

    Implemented by the live wallet and by the ephemeral simulator.
    """

    @property
    def address(self) -> str:
        """Account address."""
        ...

    async def get_eth_balance(self) -> int:
        """ETH balance of the account."""
        ...

    async def get_token_balance(self, token: str) -> int:
        """ERC-20 balance of the account."""
        ...

    async def get_current_timestamp(self) -> int:
        """Timestamp of the latest block."""
        ...

    async def submit(self, tx: TxRequest) -> TxReceipt:
        """Submit a transaction and wait for its receipt."""
        ...


class SimulationEnvironment(TxCapable, Protocol):
    """Ephemeral forked chain used for dry runs."""

    gateway: ChainGateway

    async def fund(self, address: str, amount: int) -> None:
        """Set the ETH balance of ``address``."""
        ...

    async def impersonate(self, address: str) -> None:
        """Allow unsigned submits from ``address``."""
        ...

    async def submit_and_wait(self, tx: TxRequest) -> TxReceipt:
        """Submit an unsigned transaction and wait for the receipt."""
        ...

    async def snapshot(self) -> str:
        """Snapshot chain state and return its id."""
        ...

    async def revert(self, snapshot_id: str) -> bool:
        """Revert to a snapshot."""
        ...

    async def close(self) -> None:
        """Tear the environment down."""
        ...


class SimulationFactory(Protocol):
    """Spawns isolated simulation environments."""

    async def spawn(self, fork_url: str) -> SimulationEnvironment:
        """Start a fresh fork of ``fork_url``."""
        ...


class SwapVenue(Protocol):
    """DEX venue able to quote and build swaps for a token/WETH pool."""

    name: str
    creation_address: str
    creation_topic: str

    def decode_creation(self, log: LogEntry) -> tuple[str, str, str, int | None]:
        """Return (token0, token1, pool, fee) from a creation log."""
        ...

    async def base_liquidity(self, token: Token) -> int:
        """Wei of base asset held by the token's pool."""
        ...

    async def quote_buy(self, token: Token, eth_in: int) -> int:
        """Tokens received for ``eth_in`` wei."""
        ...

    async def quote_sell(self, token: Token, amount_in: int) -> int:
        """Wei received for ``amount_in`` token units."""
        ...

    def build_buy(
        self, token: Token, eth_in: int, min_out: int, recipient: str, deadline: int
    ) -> SwapCall:
        """Build the swap call for a buy."""
        ...

    def build_sell(
        self, token: Token, amount_in: int, min_out: int, recipient: str, deadline: int
    ) -> SwapCall:
        """Build the swap call for a sell."""
        ...

    def build_approve(self, token: Token, amount: int) -> SwapCall:
        """Build the approval call letting the router spend ``amount``."""
        ...

    def eth_out_from_receipt(self, token: Token, receipt: TxReceipt) -> int:
        """Base asset received by a sell, read from the pool's Swap log."""
        ...


class HoneypotSource(Protocol):
    """Honeypot reputation API."""

    async def check(self, token: Token) -> HoneypotReport:
        """Check a token's honeypot status."""
        ...


class HolderSource(Protocol):
    """Holder-list API."""

    async def get_holders(self, contract: str) -> list[HolderEntry]:
        """Return the holders of ``contract``."""
        ...


class SourceCodeSource(Protocol):
    """Verified source-code API."""

    async def get_source_code(self, address: str) -> str:
        """Return verified source, or an empty string when unverified."""
        ...


class CodeAuditor(Protocol):
    """LLM code-review endpoint."""

    async def audit(self, token: Token) -> CodeAudit:
        """Review the token's source code."""
        ...


class BundleRelay(Protocol):
    """Private relay accepting transaction bundles."""

    async def simulate_bundle(
        self, signed_txs: list[str], block_number: int
    ) -> dict[str, Any]:
        """Simulate a bundle against ``block_number``."""
        ...

    async def send_bundle(self, signed_txs: list[str], block_number: int) -> dict[str, Any]:
        """Submit a bundle targeting ``block_number``."""
        ...


class TradeExecutor(Protocol):
    """Buys and sells tokens."""

    async def buy(self, token: Token, eth_amount: int) -> int:
        """Buy with ``eth_amount`` wei; return token units received (0 on failure)."""
        ...

    async def sell(self, token: Token, token_amount: int) -> int:
        """Sell ``token_amount`` units; return wei received (0 on failure)."""
        ...


class AlertSink(Protocol):
    """Alert sink protocol."""

    async def push(self, message: str) -> None:
        """Push alert message."""
        ...


class Persistence(Protocol):
    """Data persistence protocol."""

    async def record_trade(
        self,
        token_address: str,
        symbol: str,
        side: str,
        amount_eth: int,
        amount_token: int,
        gas_cost: int = 0,
        ts: float | None = None,
    ) -> int:
        """Store a trade and return its id."""
        ...

    async def record_sale(self, token: Token, ts: float | None = None) -> None:
        """Store a settled token in the portfolio."""
        ...

    async def load_portfolio(self) -> list[dict]:
        """Load settled tokens."""
        ...

    async def save_state_json(self, key: str, data: Any) -> None:
        """Save JSON-serializable state."""
        ...

    async def close(self) -> None:
        """Release resources."""
        ...
