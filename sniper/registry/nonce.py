"""Process-wide nonce counter for the trading wallet."""

import asyncio

import structlog

from ..core.interfaces import ChainGateway

logger = structlog.get_logger(__name__)


class NonceManager:
    """Hands out consecutive nonces without re-querying the chain.

    Initialized once from the chain's transaction count, then incremented
    locally under its own lock.
    """

    def __init__(self, address: str) -> None:
        self.address = address
        self._nonce: int | None = None
        self._lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._nonce is not None

    async def initialize(self, gateway: ChainGateway) -> int:
        """Load the starting nonce from the chain (only once)."""
        count = await gateway.get_transaction_count(self.address)
        async with self._lock:
            if self._nonce is None:
                self._nonce = count
                logger.info("Nonce initialized", address=self.address, nonce=count)
            return self._nonce

    async def next(self) -> int:
        """Return the current nonce and advance the counter.

        Raises:
            RuntimeError: If the manager has not been initialized
        """
        async with self._lock:
            if self._nonce is None:
                raise RuntimeError("NonceManager used before initialize()")
            nonce = self._nonce
            self._nonce += 1
            return nonce

    async def reserve(self, count: int) -> list[int]:
        """Reserve ``count`` consecutive nonces in one step."""
        async with self._lock:
            if self._nonce is None:
                raise RuntimeError("NonceManager used before initialize()")
            start = self._nonce
            self._nonce += count
            return list(range(start, start + count))

    async def release(self, nonces: list[int]) -> bool:
        """Hand back nonces that were never broadcast.

        Only the most recently issued nonces can be released; anything else
        has been followed by later submissions and is left alone.

        Returns:
            True when the counter was rolled back
        """
        if not nonces:
            return False
        async with self._lock:
            if self._nonce is None or max(nonces) != self._nonce - 1:
                return False
            if sorted(nonces) != list(range(min(nonces), self._nonce)):
                return False
            self._nonce = min(nonces)
        logger.info("Nonces released", address=self.address, nonces=nonces)
        return True
