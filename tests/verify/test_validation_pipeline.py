"""End-to-end tests for the validation pipeline."""

import pytest

from sniper.chain import abi
from sniper.config.settings import DEAD_ADDRESS
from sniper.core.types import (
    CodeAudit,
    HolderEntry,
    HoneypotReport,
    LiquidityTier,
    Token,
    TokenState,
    TokenVerdict,
    TxReceipt,
    TxRequest,
)
from sniper.market.venues import UniswapV2Venue
from sniper.registry.tokens import TokenRegistry
from sniper.sim.dry_run import DryRunSimulator
from sniper.verify.lock import LiquidityLockChecker
from sniper.verify.pipeline import ValidationPipeline

WETH = "0x" + "ee" * 20
TOKEN = "0x" + "ab" * 20
PAIR = "0x" + "cd" * 20
FACTORY = "0x" + "0f" * 20
ROUTER = "0x" + "0a" * 20
ACCOUNT = "0x" + "f3" * 20
ETH = 10**18
THRESHOLDS = (2 * ETH, 10 * ETH, 15 * ETH, 20 * ETH)

BUY_SELECTOR = abi.selector(
    "swapExactETHForTokensSupportingFeeOnTransferTokens(uint256,address[],address,uint256)"
)
SELL_SELECTOR = abi.selector(
    "swapExactTokensForETHSupportingFeeOnTransferTokens(uint256,uint256,address[],address,uint256)"
)


class MockGateway:
    """Chain gateway serving one pool's reserves and LP supply."""

    def __init__(self, reserves=(10 * ETH, 1_000_000 * ETH), lp_supply: int = 100):
        self.reserves = reserves
        self.lp_supply = lp_supply

    async def get_reserves(self, pool: str) -> tuple[int, int]:
        return self.reserves

    async def get_total_supply(self, token: str) -> int:
        return self.lp_supply


class MockHoneypot:
    """Honeypot source with a fixed verdict."""

    def __init__(self, is_honeypot: bool = False):
        self.is_honeypot = is_honeypot
        self.calls = 0

    async def check(self, token: Token) -> HoneypotReport:
        self.calls += 1
        return HoneypotReport(is_honeypot=self.is_honeypot, reason="test")


class MockHolderSource:
    """LP holders with most of the supply burned."""

    def __init__(self, holders: list[HolderEntry]):
        self.holders = holders

    async def get_holders(self, contract: str) -> list[HolderEntry]:
        return self.holders


class MockAuditor:
    """Auditor with a fixed verdict."""

    def __init__(self, possible_scam: bool):
        self.possible_scam = possible_scam
        self.audited: list[str] = []

    async def audit(self, token: Token) -> CodeAudit:
        self.audited.append(token.address)
        return CodeAudit(possible_scam=self.possible_scam, reason="hidden mint")


class MockEnv:
    """Fork environment whose sells can leave a residual balance."""

    def __init__(self, gateway: MockGateway, residual: int = 0):
        self.gateway = gateway
        self.residual = residual
        self.balance = 0
        self.closed = False

    @property
    def address(self) -> str:
        return ACCOUNT

    async def fund(self, address: str, amount: int) -> None:
        pass

    async def impersonate(self, address: str) -> None:
        pass

    async def snapshot(self) -> str:
        return "0x1"

    async def revert(self, snapshot_id: str) -> bool:
        return True

    async def close(self) -> None:
        self.closed = True

    async def get_current_timestamp(self) -> int:
        return 1_700_000_000

    async def get_eth_balance(self) -> int:
        return 100 * ETH

    async def get_token_balance(self, token: str) -> int:
        return self.balance

    async def submit(self, tx: TxRequest) -> TxReceipt:
        return await self.submit_and_wait(tx)

    async def submit_and_wait(self, tx: TxRequest) -> TxReceipt:
        if tx.data.startswith(BUY_SELECTOR):
            self.balance += 1000
        elif tx.data.startswith(SELL_SELECTOR):
            self.balance = self.residual
        return TxReceipt(transaction_hash="0x" + "00" * 32, status=1)


class MockFactory:
    def __init__(self, env: MockEnv):
        self.env = env
        self.spawned = 0

    async def spawn(self, fork_url: str) -> MockEnv:
        self.spawned += 1
        return self.env


def make_venue(gateway) -> UniswapV2Venue:
    return UniswapV2Venue(gateway, FACTORY, ROUTER, WETH)


def make_pipeline(
    registry: TokenRegistry,
    gateway: MockGateway | None = None,
    residual: int = 0,
    honeypot: MockHoneypot | None = None,
    lock_holders: list[HolderEntry] | None = None,
    auditor: MockAuditor | None = None,
    api_check_limit: int = 10,
) -> tuple[ValidationPipeline, MockFactory]:
    gateway = gateway or MockGateway()
    factory = MockFactory(MockEnv(gateway, residual=residual))
    simulator = DryRunSimulator(
        factory=factory,
        venue_factory=make_venue,
        fork_url="http://fork:8545",
        buy_amount=ETH // 100,
        fund_amount=100 * ETH,
        account=ACCOUNT,
    )
    lock_checker = LiquidityLockChecker(
        gateway,
        MockHolderSource(
            lock_holders
            if lock_holders is not None
            else [HolderEntry(address=DEAD_ADDRESS, quantity=95)]
        ),
        [DEAD_ADDRESS],
        threshold_percent=90,
    )
    pipeline = ValidationPipeline(
        registry=registry,
        venue=make_venue(gateway),
        simulator=simulator,
        tier_thresholds=THRESHOLDS,
        honeypot=honeypot or MockHoneypot(),
        lock_checker=lock_checker,
        auditor=auditor,
        api_check_limit=api_check_limit,
    )
    return pipeline, factory


async def track(registry: TokenRegistry, **overrides) -> Token:
    fields = {"address": TOKEN, "pair_address": PAIR, "is_token_0": False, "symbol": "X"}
    fields.update(overrides)
    return await registry.insert_or_get(TOKEN, Token(**fields))


class TestValidationPipeline:
    """Test the detected-to-validated path."""

    @pytest.mark.asyncio
    async def test_legit_token_validated(self):
        """A liquid, locked and sellable token ends Validated."""
        transitions = []
        registry = TokenRegistry(
            on_transition=lambda address, old, new: transitions.append((old, new))
        )
        await track(registry)
        pipeline, factory = make_pipeline(registry)

        outcome = await pipeline.advance(TOKEN)

        assert outcome.state == TokenState.VALIDATED
        assert outcome.verdict == TokenVerdict.LEGIT
        token = await registry.get(TOKEN)
        assert token.liquidity.tier == LiquidityTier.LOW
        assert token.liquidity.amount == 10 * ETH
        assert token.honeypot_checks == 1
        assert token.graphql_checks == 1
        assert factory.spawned == 1
        assert transitions == [
            (TokenState.DETECTED, TokenState.CHECKING_HONEYPOT),
            (TokenState.CHECKING_HONEYPOT, TokenState.CHECKING_LOCK),
            (TokenState.CHECKING_LOCK, TokenState.VALIDATING),
            (TokenState.VALIDATING, TokenState.VALIDATED),
        ]

    @pytest.mark.asyncio
    async def test_residual_balance_removes_token(self):
        """A sell that leaves tokens behind is a CannotSell verdict."""
        registry = TokenRegistry()
        await track(registry)
        pipeline, _ = make_pipeline(registry, residual=1)

        outcome = await pipeline.advance(TOKEN)

        assert outcome.state == TokenState.REMOVED
        assert outcome.verdict == TokenVerdict.CANNOT_SELL
        assert "cannot_sell" in outcome.reasons
        assert await registry.get(TOKEN) is None

    @pytest.mark.asyncio
    async def test_empty_pool_stays_detected(self):
        """Zero liquidity parks the token without spending API calls."""
        registry = TokenRegistry()
        await track(registry)
        honeypot = MockHoneypot()
        pipeline, factory = make_pipeline(
            registry, gateway=MockGateway(reserves=(0, 0)), honeypot=honeypot
        )

        outcome = await pipeline.advance(TOKEN)

        assert outcome.state == TokenState.DETECTED
        token = await registry.get(TOKEN)
        assert token.liquidity.tier == LiquidityTier.ZERO
        assert honeypot.calls == 0
        assert factory.spawned == 0

    @pytest.mark.asyncio
    async def test_micro_liquidity_parked(self):
        registry = TokenRegistry()
        await track(registry)
        pipeline, _ = make_pipeline(
            registry, gateway=MockGateway(reserves=(ETH, 1_000_000 * ETH))
        )

        outcome = await pipeline.advance(TOKEN)

        assert outcome.state == TokenState.DETECTED
        assert outcome.reasons == ["liquidity micro"]

    @pytest.mark.asyncio
    async def test_honeypot_removed(self):
        registry = TokenRegistry()
        await track(registry)
        pipeline, factory = make_pipeline(registry, honeypot=MockHoneypot(is_honeypot=True))

        outcome = await pipeline.advance(TOKEN)

        assert outcome.state == TokenState.REMOVED
        assert outcome.reasons == ["honeypot"]
        assert factory.spawned == 0

    @pytest.mark.asyncio
    async def test_honeypot_budget_exhausted(self):
        """A token out of API budget waits instead of calling the API."""
        registry = TokenRegistry()
        await track(registry, state=TokenState.CHECKING_HONEYPOT, honeypot_checks=3)
        honeypot = MockHoneypot()
        pipeline, _ = make_pipeline(registry, honeypot=honeypot, api_check_limit=3)

        outcome = await pipeline.advance(TOKEN)

        assert outcome.state == TokenState.CHECKING_HONEYPOT
        assert honeypot.calls == 0
        assert "honeypot check budget exhausted" in outcome.reasons

    @pytest.mark.asyncio
    async def test_unlocked_liquidity_waits(self):
        """Insufficient lock leaves the token in CheckingLock for a later sweep."""
        registry = TokenRegistry()
        await track(registry)
        pipeline, factory = make_pipeline(
            registry, lock_holders=[HolderEntry(address=DEAD_ADDRESS, quantity=50)]
        )

        outcome = await pipeline.advance(TOKEN)

        assert outcome.state == TokenState.CHECKING_LOCK
        assert outcome.reasons == ["liquidity not locked"]
        assert factory.spawned == 0

        token = await registry.get(TOKEN)
        assert token.graphql_checks == 1

    @pytest.mark.asyncio
    async def test_missing_lp_holders_pending(self):
        registry = TokenRegistry()
        await track(registry)
        pipeline, _ = make_pipeline(registry, lock_holders=[])

        outcome = await pipeline.advance(TOKEN)

        assert outcome.state == TokenState.CHECKING_LOCK
        assert outcome.reasons == ["lock pending"]

    @pytest.mark.asyncio
    async def test_scam_audit_removes(self):
        registry = TokenRegistry()
        await track(registry, source_code="contract X {}")
        auditor = MockAuditor(possible_scam=True)
        pipeline, _ = make_pipeline(registry, auditor=auditor)

        outcome = await pipeline.advance(TOKEN)

        assert outcome.state == TokenState.REMOVED
        assert outcome.reasons == ["possible scam: hidden mint"]
        assert auditor.audited == [TOKEN]

    @pytest.mark.asyncio
    async def test_audit_skipped_without_source(self):
        registry = TokenRegistry()
        await track(registry)
        auditor = MockAuditor(possible_scam=True)
        pipeline, _ = make_pipeline(registry, auditor=auditor)

        outcome = await pipeline.advance(TOKEN)

        assert outcome.state == TokenState.VALIDATED
        assert auditor.audited == []

    @pytest.mark.asyncio
    async def test_untracked_token(self):
        registry = TokenRegistry()
        pipeline, _ = make_pipeline(registry)

        outcome = await pipeline.advance(TOKEN)

        assert outcome.state == TokenState.REMOVED
        assert outcome.reasons == ["not tracked"]
