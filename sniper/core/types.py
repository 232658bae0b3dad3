"""Core data types for the token sniper."""

from enum import Enum

from pydantic import BaseModel, Field, field_validator

# Number of staged-exit buckets tracked per token
TIME_ROUNDS = 10
VOLUME_ROUNDS = 5

# Per-token API/attempt counters saturate at the u8 ceiling
COUNTER_MAX = 255

WEI_PER_ETH = 10**18


class TokenState(str, Enum):
    """Lifecycle state of a tracked token."""

    DETECTED = "detected"
    CHECKING_HONEYPOT = "checking_honeypot"
    CHECKING_LOCK = "checking_lock"
    VALIDATING = "validating"
    VALIDATED = "validated"
    BUYING = "buying"
    BOUGHT = "bought"
    SELLING = "selling"
    SOLD = "sold"
    REMOVED = "removed"


# Legal lifecycle edges. Selling -> Bought is the only backward edge: a staged
# bucket sale completed, or a failed sell that will be retried.
LEGAL_TRANSITIONS: dict[TokenState, frozenset[TokenState]] = {
    TokenState.DETECTED: frozenset({TokenState.CHECKING_HONEYPOT}),
    TokenState.CHECKING_HONEYPOT: frozenset({TokenState.CHECKING_LOCK}),
    TokenState.CHECKING_LOCK: frozenset({TokenState.VALIDATING}),
    TokenState.VALIDATING: frozenset({TokenState.VALIDATED}),
    TokenState.VALIDATED: frozenset({TokenState.BUYING}),
    TokenState.BUYING: frozenset({TokenState.BOUGHT}),
    TokenState.BOUGHT: frozenset({TokenState.SELLING}),
    TokenState.SELLING: frozenset({TokenState.SOLD, TokenState.BOUGHT}),
    TokenState.SOLD: frozenset(),
    TokenState.REMOVED: frozenset(),
}

TERMINAL_STATES = frozenset({TokenState.SOLD, TokenState.REMOVED})


def is_legal_transition(current: TokenState, new: TokenState) -> bool:
    """Check whether a token may move from ``current`` to ``new``.

    Removal is reachable from every non-terminal state.
    """
    if new == TokenState.REMOVED:
        return current not in TERMINAL_STATES
    return new in LEGAL_TRANSITIONS[current]


def saturating_increment(value: int) -> int:
    """Increment a per-token counter without exceeding COUNTER_MAX."""
    return min(value + 1, COUNTER_MAX)


class LiquidityTier(str, Enum):
    """Liquidity classification of a pool's base-asset side."""

    ZERO = "zero"
    MICRO = "micro"
    VERY_LOW = "very_low"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Liquidity(BaseModel):
    """Tiered liquidity reading carrying the raw base-asset amount."""

    tier: LiquidityTier = Field(default=LiquidityTier.ZERO, description="Tier")
    amount: int = Field(default=0, ge=0, description="Raw base-asset amount in wei")

    @property
    def raw_amount(self) -> int:
        """Raw amount regardless of tier."""
        return self.amount

    @property
    def is_tradable(self) -> bool:
        """Whether this tier is above zero/micro."""
        return self.tier not in (LiquidityTier.ZERO, LiquidityTier.MICRO)


class Slippage(str, Enum):
    """Slippage tolerance applied as a haircut on the quoted minimum-out."""

    NONE = "none"
    ONE_PERCENT = "1%"
    TWO_PERCENT = "2%"
    FIVE_PERCENT = "5%"
    TEN_PERCENT = "10%"

    @property
    def keep_percent(self) -> int:
        """Percentage of the quote that must be received."""
        return {
            Slippage.NONE: 100,
            Slippage.ONE_PERCENT: 99,
            Slippage.TWO_PERCENT: 98,
            Slippage.FIVE_PERCENT: 95,
            Slippage.TEN_PERCENT: 90,
        }[self]


class TokenVerdict(str, Enum):
    """Outcome of the simulated buy/sell dry run."""

    LEGIT = "legit"
    CANNOT_BUY = "cannot_buy"
    CANNOT_SELL = "cannot_sell"


class Token(BaseModel):
    """ERC-20 candidate under observation."""

    address: str = Field(description="Token address, lowercase")
    name: str = Field(default="", description="Token name")
    symbol: str = Field(default="", description="Token symbol")
    decimals: int = Field(default=18, description="Token decimals")
    pair_address: str = Field(description="Pool/pair address, lowercase")
    is_token_0: bool = Field(description="Whether the token is token0 of the pool")
    fee: int | None = Field(default=None, description="Pool fee tier (V3 only)")
    venue: str = Field(default="uniswap_v2", description="Swap venue identifier")
    source_code: str = Field(default="", description="Verified contract source")
    state: TokenState = Field(default=TokenState.DETECTED, description="State")
    liquidity: Liquidity = Field(default_factory=Liquidity, description="Liquidity")
    is_tradable: bool = Field(default=False, description="Liquidity confirmed")

    eth_spent: int = Field(default=0, description="Wei spent on the purchase")
    amount_bought: int = Field(default=0, description="Token units bought")
    time_of_purchase: int = Field(default=0, description="Purchase unix time")
    eth_received_at_sale: int = Field(default=0, description="Wei received")
    tx_gas_cost: int = Field(default=0, description="Cumulative gas cost in wei")

    purchase_attempts: int = Field(default=0, ge=0, le=COUNTER_MAX)
    sell_attempts: int = Field(default=0, ge=0, le=COUNTER_MAX)
    honeypot_checks: int = Field(default=0, ge=0, le=COUNTER_MAX)
    graphql_checks: int = Field(default=0, ge=0, le=COUNTER_MAX)

    amount_sold_at_time: list[int] = Field(
        default_factory=lambda: [0] * TIME_ROUNDS,
        description="Wei received per time bucket",
    )
    is_sold_at_time: list[bool] = Field(
        default_factory=lambda: [False] * TIME_ROUNDS,
        description="Whether each time bucket has been sold",
    )
    amounts_bought: list[int] = Field(
        default_factory=lambda: [0] * VOLUME_ROUNDS,
        description="Token units bought per volume bucket",
    )
    amounts_sold: list[int] = Field(
        default_factory=lambda: [0] * VOLUME_ROUNDS,
        description="Wei received per volume bucket",
    )
    is_sold_at_volume: list[bool] = Field(
        default_factory=lambda: [False] * VOLUME_ROUNDS,
        description="Whether each volume bucket has been sold",
    )

    removal_reason: str | None = Field(default=None, description="Why it was removed")

    @field_validator("address", "pair_address")
    @classmethod
    def _lowercase(cls, value: str) -> str:
        return value.lower()

    @property
    def cost_basis(self) -> int:
        """Wei spent on purchase plus gas."""
        return self.eth_spent + self.tx_gas_cost

    def profit(self) -> int:
        """Realized profit in wei (0 when nothing was received)."""
        if self.eth_received_at_sale == 0:
            return 0
        return self.eth_received_at_sale - self.cost_basis

    def roi(self) -> float:
        """Return on investment as a fraction of the cost basis."""
        if self.eth_received_at_sale == 0 or self.cost_basis == 0:
            return 0.0
        return self.profit() / self.cost_basis

    def log_fields(self) -> dict[str, str]:
        """Fields identifying the token in log lines."""
        return {"name": self.name, "symbol": self.symbol, "address": self.address}


class PairCreatedEvent(BaseModel):
    """Decoded Uniswap V2 PairCreated log."""

    token0: str = Field(description="token0 address")
    token1: str = Field(description="token1 address")
    pair: str = Field(description="Pair address")
    pair_index: int = Field(description="Factory pair counter")


class PoolCreatedEvent(BaseModel):
    """Decoded Uniswap V3 PoolCreated log."""

    token0: str = Field(description="token0 address")
    token1: str = Field(description="token1 address")
    fee: int = Field(description="Fee tier in hundredths of a bip")
    tick_spacing: int = Field(description="Tick spacing (signed)")
    pool: str = Field(description="Pool address")


class SwapEvent(BaseModel):
    """Decoded swap amounts from a pool Swap log."""

    amount0_in: int = Field(description="token0 in")
    amount1_in: int = Field(description="token1 in")
    amount0_out: int = Field(description="token0 out")
    amount1_out: int = Field(description="token1 out")


class Block(BaseModel):
    """Block header fields used by the sniper."""

    number: int = Field(description="Block number")
    timestamp: int = Field(description="Block unix timestamp")
    base_fee_per_gas: int = Field(default=0, description="Base fee in wei")
    gas_used: int = Field(default=0, description="Gas used")
    gas_limit: int = Field(default=0, description="Gas limit")


class LogEntry(BaseModel):
    """Raw chain log."""

    address: str = Field(description="Emitting contract")
    topics: list[str] = Field(default_factory=list, description="Hex topics")
    data: str = Field(default="0x", description="Hex data blob")
    block_number: int | None = Field(default=None, description="Block number")
    transaction_hash: str | None = Field(default=None, description="Tx hash")


class TxReceipt(BaseModel):
    """Transaction receipt fields used by the sniper."""

    transaction_hash: str = Field(description="Tx hash")
    status: int = Field(description="1 success, 0 reverted")
    gas_used: int = Field(default=0, description="Gas used")
    effective_gas_price: int = Field(default=0, description="Effective gas price")
    block_number: int | None = Field(default=None, description="Block number")
    logs: list[LogEntry] = Field(default_factory=list, description="Emitted logs")

    @property
    def succeeded(self) -> bool:
        return self.status == 1


class TxRequest(BaseModel):
    """EIP-1559 transaction request."""

    to: str = Field(description="Destination address")
    data: str = Field(default="0x", description="Hex calldata")
    value: int = Field(default=0, description="Wei value")
    gas: int = Field(description="Gas limit")
    max_fee_per_gas: int = Field(default=0, description="Max fee per gas")
    max_priority_fee_per_gas: int = Field(default=0, description="Priority fee")
    nonce: int | None = Field(default=None, description="Sender nonce")
    chain_id: int = Field(default=1, description="Chain id")
    sender: str | None = Field(default=None, description="Sender (unsigned submits)")

    def to_signable(self) -> dict:
        """Dictionary accepted by eth_account for signing."""
        return {
            "type": 2,
            "to": self.to,
            "data": self.data,
            "value": self.value,
            "gas": self.gas,
            "maxFeePerGas": self.max_fee_per_gas,
            "maxPriorityFeePerGas": self.max_priority_fee_per_gas,
            "nonce": self.nonce,
            "chainId": self.chain_id,
        }

    def to_rpc(self) -> dict:
        """Hex-encoded dictionary for eth_sendTransaction / eth_call."""
        params = {
            "to": self.to,
            "data": self.data,
            "value": hex(self.value),
            "gas": hex(self.gas),
        }
        if self.sender:
            params["from"] = self.sender
        if self.max_fee_per_gas:
            params["maxFeePerGas"] = hex(self.max_fee_per_gas)
            params["maxPriorityFeePerGas"] = hex(self.max_priority_fee_per_gas)
        if self.nonce is not None:
            params["nonce"] = hex(self.nonce)
        return params


class SwapCall(BaseModel):
    """Target, calldata and value of a venue call."""

    to: str = Field(description="Contract to call")
    data: str = Field(description="Hex calldata")
    value: int = Field(default=0, description="Wei value")


class HolderEntry(BaseModel):
    """One holder of an ERC-20 (or LP) token."""

    address: str = Field(description="Holder address")
    quantity: int = Field(description="Raw token units held")

    @field_validator("address")
    @classmethod
    def _lowercase(cls, value: str) -> str:
        return value.lower()


class HoneypotReport(BaseModel):
    """Normalized honeypot reputation response."""

    is_honeypot: bool = Field(description="Whether the token is a honeypot")
    reason: str | None = Field(default=None, description="Honeypot reason")
    risk: str | None = Field(default=None, description="Risk label")
    risk_level: int | None = Field(default=None, description="Risk level")
    flags: list[str] = Field(default_factory=list, description="Risk flags")


class CodeAudit(BaseModel):
    """LLM review of a token contract."""

    possible_scam: bool = Field(description="Whether the code looks malicious")
    reason: str = Field(default="", description="Free-text reasoning")


class ValidationOutcome(BaseModel):
    """Result of advancing a token through the validation pipeline."""

    address: str = Field(description="Token address")
    state: TokenState = Field(description="State reached")
    verdict: TokenVerdict | None = Field(default=None, description="Dry-run verdict")
    reasons: list[str] = Field(default_factory=list, description="Decision notes")


class TaskOutcome(BaseModel):
    """Outcome of one per-token task dispatched by the scheduler."""

    address: str = Field(description="Token address")
    action: str = Field(description="Action attempted")
    ok: bool = Field(description="Whether the task completed without error")
    state: TokenState | None = Field(default=None, description="State afterwards")
    error: str | None = Field(default=None, description="Error text on failure")
