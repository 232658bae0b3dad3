"""Validation pipeline: liquidity, honeypot, lock and dry-run checks."""

from collections.abc import Awaitable, Callable

import structlog

from ..core.interfaces import CodeAuditor, HoneypotSource, SwapVenue
from ..core.types import Token, TokenState, TokenVerdict, ValidationOutcome
from ..market.liquidity import classify_liquidity
from ..registry.tokens import TokenRegistry
from ..sim.dry_run import DryRunSimulator
from .holders import HolderConcentrationChecker
from .lock import LiquidityLockChecker

logger = structlog.get_logger(__name__)

Step = Callable[[Token, ValidationOutcome], Awaitable[bool]]


class ValidationPipeline:
    """Advances detected tokens towards Validated.

    Each step handles one state and returns True when it moved the token
    on. :meth:`advance` keeps stepping until a step parks, removes or
    leaves the token pending. Transport errors propagate to the caller;
    the next sweep retries from the state the token was left in.
    """

    def __init__(
        self,
        registry: TokenRegistry,
        venue: SwapVenue,
        simulator: DryRunSimulator,
        tier_thresholds: tuple[int, int, int, int],
        honeypot: HoneypotSource | None = None,
        lock_checker: LiquidityLockChecker | None = None,
        holder_checker: HolderConcentrationChecker | None = None,
        auditor: CodeAuditor | None = None,
        api_check_limit: int = 10,
        contract_size_limit: int = 15_000,
    ) -> None:
        """Initialize the pipeline.

        Args:
            registry: Token registry
            venue: Swap venue for liquidity readings
            simulator: Dry-run simulator
            tier_thresholds: VeryLow, Low, Medium and High bounds in wei
            honeypot: Honeypot source; the check is skipped when None
            lock_checker: LP lock checker; skipped when None
            holder_checker: Holder concentration checker; skipped when None
            auditor: LLM code auditor; skipped when None
            api_check_limit: Per-token budget for each reputation API
            contract_size_limit: Largest source (characters) sent for audit
        """
        self.registry = registry
        self.venue = venue
        self.simulator = simulator
        self.tier_thresholds = tier_thresholds
        self.honeypot = honeypot
        self.lock_checker = lock_checker
        self.holder_checker = holder_checker
        self.auditor = auditor
        self.api_check_limit = api_check_limit
        self.contract_size_limit = contract_size_limit

        self._steps: dict[TokenState, Step] = {
            TokenState.DETECTED: self._check_liquidity,
            TokenState.CHECKING_HONEYPOT: self._check_honeypot,
            TokenState.CHECKING_LOCK: self._check_lock,
            TokenState.VALIDATING: self._dry_run,
        }

    @staticmethod
    def pending_states() -> tuple[TokenState, ...]:
        """States the pipeline acts on."""
        return (
            TokenState.DETECTED,
            TokenState.CHECKING_HONEYPOT,
            TokenState.CHECKING_LOCK,
            TokenState.VALIDATING,
        )

    async def advance(self, address: str) -> ValidationOutcome:
        """Run checks for ``address`` until the token stops advancing.

        Returns:
            Where the token ended up and why
        """
        outcome = ValidationOutcome(address=address.lower(), state=TokenState.REMOVED)

        while True:
            token = await self.registry.get(address)
            if token is None:
                outcome.reasons.append("not tracked")
                return outcome

            outcome.state = token.state
            step = self._steps.get(token.state)
            if step is None or not await step(token, outcome):
                break

        token = await self.registry.get(address)
        if token is not None:
            outcome.state = token.state
        else:
            outcome.state = TokenState.REMOVED
        return outcome

    async def _move(self, token: Token, new_state: TokenState) -> bool:
        return await self.registry.set_state(token.address, new_state)

    async def _remove(self, token: Token, outcome: ValidationOutcome, reason: str) -> bool:
        outcome.reasons.append(reason)
        await self.registry.remove(token.address, reason)
        return False

    async def _check_liquidity(self, token: Token, outcome: ValidationOutcome) -> bool:
        raw_amount = await self.venue.base_liquidity(token)
        liquidity = classify_liquidity(raw_amount, self.tier_thresholds)
        await self.registry.set_liquidity(token.address, liquidity)

        if not liquidity.is_tradable:
            outcome.reasons.append(f"liquidity {liquidity.tier.value}")
            logger.debug(
                "Token parked on liquidity",
                tier=liquidity.tier.value,
                amount=raw_amount,
                **token.log_fields(),
            )
            return False

        logger.info(
            "Token tradable",
            tier=liquidity.tier.value,
            amount=raw_amount,
            **token.log_fields(),
        )
        return await self._move(token, TokenState.CHECKING_HONEYPOT)

    async def _check_honeypot(self, token: Token, outcome: ValidationOutcome) -> bool:
        if self.honeypot is not None:
            if token.honeypot_checks >= self.api_check_limit:
                outcome.reasons.append("honeypot check budget exhausted")
                logger.warning(
                    "Honeypot check budget exhausted",
                    checks=token.honeypot_checks,
                    **token.log_fields(),
                )
                return False

            await self.registry.increment(token.address, "honeypot_checks")
            report = await self.honeypot.check(token)
            if report.is_honeypot:
                logger.info(
                    "Honeypot detected",
                    reason=report.reason,
                    flags=report.flags,
                    **token.log_fields(),
                )
                return await self._remove(token, outcome, "honeypot")
            logger.info("Token is not a honeypot", risk=report.risk, **token.log_fields())

        if self.auditor is not None and token.source_code:
            if len(token.source_code) > self.contract_size_limit:
                logger.info(
                    "Source too large for audit",
                    size=len(token.source_code),
                    **token.log_fields(),
                )
            else:
                audit = await self.auditor.audit(token)
                if audit.possible_scam:
                    return await self._remove(token, outcome, f"possible scam: {audit.reason}")

        return await self._move(token, TokenState.CHECKING_LOCK)

    async def _check_lock(self, token: Token, outcome: ValidationOutcome) -> bool:
        if self.lock_checker is None and self.holder_checker is None:
            return await self._move(token, TokenState.VALIDATING)

        if token.graphql_checks >= self.api_check_limit:
            outcome.reasons.append("holder check budget exhausted")
            logger.warning(
                "Holder check budget exhausted",
                checks=token.graphql_checks,
                **token.log_fields(),
            )
            return False
        await self.registry.increment(token.address, "graphql_checks")

        if self.lock_checker is not None:
            locked = await self.lock_checker.check(token)
            if not locked:
                outcome.reasons.append(
                    "lock pending" if locked is None else "liquidity not locked"
                )
                return False
            logger.info("Liquidity locked", **token.log_fields())

        if self.holder_checker is not None:
            acceptable = await self.holder_checker.check(token)
            if acceptable is None:
                outcome.reasons.append("holders pending")
                return False
            if not acceptable:
                return await self._remove(token, outcome, "holder concentration")

        return await self._move(token, TokenState.VALIDATING)

    async def _dry_run(self, token: Token, outcome: ValidationOutcome) -> bool:
        verdict = await self.simulator.simulate(token)
        outcome.verdict = verdict

        if verdict != TokenVerdict.LEGIT:
            return await self._remove(token, outcome, verdict.value)

        logger.info("Token validated", **token.log_fields())
        return await self._move(token, TokenState.VALIDATED)
