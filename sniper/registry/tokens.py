"""In-memory registry of tokens under observation."""

import asyncio
from collections.abc import Callable

import structlog

from ..core.types import (
    TIME_ROUNDS,
    VOLUME_ROUNDS,
    Liquidity,
    Token,
    TokenState,
    is_legal_transition,
    saturating_increment,
)

logger = structlog.get_logger(__name__)

COUNTERS = ("purchase_attempts", "sell_attempts", "honeypot_checks", "graphql_checks")

TransitionListener = Callable[[str, TokenState, TokenState], None]


class TokenRegistry:
    """Keyed store of Token records guarded by a single lock.

    Every accessor acquires the lock, performs an in-memory read or write and
    releases it. Callers fetch network data first and only then mutate.
    Reads hand out deep copies so callers never alias stored records.
    """

    def __init__(self, on_transition: TransitionListener | None = None) -> None:
        """Initialize an empty registry.

        Args:
            on_transition: Optional callback invoked with (address, old, new)
                for every state change
        """
        self._tokens: dict[str, Token] = {}
        self._lock = asyncio.Lock()
        self._on_transition = on_transition

    @staticmethod
    def _key(address: str) -> str:
        return address.lower()

    def _transition(self, token: Token, new_state: TokenState) -> bool:
        """Apply a state change in place. Caller must hold the lock."""
        old_state = token.state
        if not is_legal_transition(old_state, new_state):
            logger.error(
                "Illegal state transition",
                from_state=old_state.value,
                to_state=new_state.value,
                **token.log_fields(),
            )
            return False

        token.state = new_state
        if self._on_transition:
            self._on_transition(token.address, old_state, new_state)
        return True

    async def insert_or_get(self, address: str, token: Token) -> Token:
        """Insert ``token`` unless the address is already tracked.

        Returns:
            The stored record; the existing one when already present
        """
        key = self._key(address)
        if token.address != key:
            raise ValueError(f"Token address {token.address} does not match key {key}")

        async with self._lock:
            existing = self._tokens.get(key)
            if existing is None:
                self._tokens[key] = token.model_copy(deep=True)
                existing = self._tokens[key]
                inserted = True
            else:
                inserted = False
            snapshot = existing.model_copy(deep=True)

        if inserted:
            logger.info("Token added to registry", **snapshot.log_fields())
        return snapshot

    async def get(self, address: str) -> Token | None:
        """Return a snapshot copy of the token, or None."""
        async with self._lock:
            token = self._tokens.get(self._key(address))
            return token.model_copy(deep=True) if token else None

    async def contains(self, address: str) -> bool:
        async with self._lock:
            return self._key(address) in self._tokens

    async def mutate(self, address: str, fn: Callable[[Token], None]) -> Token | None:
        """Apply ``fn`` to the stored record atomically.

        ``fn`` works on a copy which replaces the record only when it returns
        without raising. State changes must go through :meth:`set_state`.

        Returns:
            Snapshot of the updated token, or None when the address is absent
        """
        key = self._key(address)
        async with self._lock:
            token = self._tokens.get(key)
            if token is None:
                logger.error("Token not found for mutation", address=key)
                return None

            working = token.model_copy(deep=True)
            fn(working)
            if working.state != token.state:
                raise ValueError("State changes must go through set_state")
            if working.address != token.address:
                raise ValueError("Token address is immutable")

            self._tokens[key] = working
            return working.model_copy(deep=True)

    async def set_state(self, address: str, new_state: TokenState) -> bool:
        """Move a token to ``new_state`` if the lifecycle allows it.

        Returns:
            True when the transition was applied
        """
        key = self._key(address)
        async with self._lock:
            token = self._tokens.get(key)
            if token is None:
                logger.error(
                    "Token not found for state change", address=key, state=new_state.value
                )
                return False
            changed = self._transition(token, new_state)

        if changed:
            logger.debug("Token state updated", address=key, state=new_state.value)
        return changed

    async def remove(self, address: str, reason: str | None = None) -> Token | None:
        """Remove a token and return its final record.

        Tokens that were not sold are marked Removed with ``reason``.
        """
        key = self._key(address)
        async with self._lock:
            token = self._tokens.pop(key, None)
            if token is None:
                logger.warning("Token not found for removal", address=key)
                return None
            if token.state != TokenState.SOLD:
                self._transition(token, TokenState.REMOVED)
                token.removal_reason = reason

        logger.info(
            "Token removed from registry",
            reason=reason,
            state=token.state.value,
            **token.log_fields(),
        )
        return token

    async def all(self) -> list[Token]:
        """Snapshot copies of every tracked token."""
        async with self._lock:
            return [token.model_copy(deep=True) for token in self._tokens.values()]

    async def count(self) -> int:
        async with self._lock:
            return len(self._tokens)

    async def by_state(self, *states: TokenState) -> list[Token]:
        """Snapshot copies of tokens in any of ``states``."""
        async with self._lock:
            return [
                token.model_copy(deep=True)
                for token in self._tokens.values()
                if token.state in states
            ]

    async def counts_by_state(self) -> dict[str, int]:
        async with self._lock:
            counts: dict[str, int] = {}
            for token in self._tokens.values():
                counts[token.state.value] = counts.get(token.state.value, 0) + 1
            return counts

    # Field accessors

    async def increment(self, address: str, counter: str) -> int:
        """Saturating increment of a per-token counter.

        Returns:
            The new counter value (0 when the token is absent)
        """
        if counter not in COUNTERS:
            raise ValueError(f"Unknown counter: {counter}")

        def _bump(token: Token) -> None:
            setattr(token, counter, saturating_increment(getattr(token, counter)))

        token = await self.mutate(address, _bump)
        return getattr(token, counter) if token else 0

    async def set_liquidity(self, address: str, liquidity: Liquidity) -> Token | None:
        """Record a liquidity reading; marks the token tradable above zero/micro."""

        def _apply(token: Token) -> None:
            token.liquidity = liquidity
            if liquidity.is_tradable:
                token.is_tradable = True

        return await self.mutate(address, _apply)

    async def add_gas_cost(self, address: str, gas_cost: int) -> Token | None:
        """Add ``gas_cost`` wei to the token's cumulative gas cost."""

        def _apply(token: Token) -> None:
            token.tx_gas_cost += gas_cost

        return await self.mutate(address, _apply)

    async def record_purchase(
        self, address: str, eth_spent: int, amount_bought: int, time_of_purchase: int
    ) -> bool:
        """Record a filled buy and move Buying -> Bought."""
        key = self._key(address)
        async with self._lock:
            token = self._tokens.get(key)
            if token is None:
                logger.error("Token not found for purchase update", address=key)
                return False
            if not self._transition(token, TokenState.BOUGHT):
                return False
            token.eth_spent = eth_spent
            token.amount_bought = amount_bought
            token.time_of_purchase = time_of_purchase
            return True

    async def record_sale(self, address: str, eth_received: int, final: bool) -> bool:
        """Record wei received by a sell and leave Selling.

        Args:
            address: Token address
            eth_received: Wei received by this sale
            final: Move to Sold when True, back to Bought otherwise
        """
        key = self._key(address)
        async with self._lock:
            token = self._tokens.get(key)
            if token is None:
                logger.error("Token not found for sale update", address=key)
                return False
            new_state = TokenState.SOLD if final else TokenState.BOUGHT
            if not self._transition(token, new_state):
                return False
            token.eth_received_at_sale += eth_received
            return True

    async def record_time_sale(self, address: str, index: int, eth_received: int) -> bool:
        """Fill time bucket ``index`` unless it has already been sold.

        Returns:
            True when the bucket was filled by this call
        """
        if not 0 <= index < TIME_ROUNDS:
            raise IndexError(f"Time bucket out of range: {index}")

        key = self._key(address)
        async with self._lock:
            token = self._tokens.get(key)
            if token is None:
                logger.error("Token not found for time sale", address=key)
                return False
            if token.is_sold_at_time[index]:
                return False
            token.is_sold_at_time[index] = True
            token.amount_sold_at_time[index] = eth_received
            return True

    async def record_volume_sale(
        self, address: str, index: int, eth_received: int
    ) -> bool:
        """Fill volume bucket ``index`` unless it has already been sold."""
        if not 0 <= index < VOLUME_ROUNDS:
            raise IndexError(f"Volume bucket out of range: {index}")

        key = self._key(address)
        async with self._lock:
            token = self._tokens.get(key)
            if token is None:
                logger.error("Token not found for volume sale", address=key)
                return False
            if token.is_sold_at_volume[index]:
                return False
            token.is_sold_at_volume[index] = True
            token.amounts_sold[index] = eth_received
            return True

    async def set_amounts_bought(self, address: str, amounts: list[int]) -> Token | None:
        """Record per-volume-bucket purchase quotes."""
        if len(amounts) != VOLUME_ROUNDS:
            raise ValueError(f"Expected {VOLUME_ROUNDS} amounts, got {len(amounts)}")

        def _apply(token: Token) -> None:
            token.amounts_bought = list(amounts)

        return await self.mutate(address, _apply)
