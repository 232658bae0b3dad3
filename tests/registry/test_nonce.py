"""Tests for the wallet nonce counter."""

import asyncio

import pytest

from sniper.registry.nonce import NonceManager

WALLET = "0x" + "99" * 20


class MockGateway:
    """Mock gateway reporting a fixed transaction count."""

    def __init__(self, count: int):
        self.count = count
        self.queries = 0

    async def get_transaction_count(self, address: str) -> int:
        self.queries += 1
        return self.count


class TestNonceManager:
    """Test nonce issuance."""

    @pytest.mark.asyncio
    async def test_requires_initialize(self):
        nonces = NonceManager(WALLET)

        assert not nonces.initialized
        with pytest.raises(RuntimeError):
            await nonces.next()

    @pytest.mark.asyncio
    async def test_initialized_once(self):
        """The chain is queried on startup only."""
        gateway = MockGateway(5)
        nonces = NonceManager(WALLET)

        assert await nonces.initialize(gateway) == 5
        gateway.count = 50
        assert await nonces.initialize(gateway) == 5
        assert await nonces.next() == 5
        assert await nonces.next() == 6

    @pytest.mark.asyncio
    async def test_concurrent_next_unique(self):
        nonces = NonceManager(WALLET)
        await nonces.initialize(MockGateway(0))

        issued = await asyncio.gather(*(nonces.next() for _ in range(50)))

        assert sorted(issued) == list(range(50))

    @pytest.mark.asyncio
    async def test_reserve_consecutive(self):
        nonces = NonceManager(WALLET)
        await nonces.initialize(MockGateway(3))

        assert await nonces.reserve(2) == [3, 4]
        assert await nonces.next() == 5

    @pytest.mark.asyncio
    async def test_release_latest(self):
        """Unbroadcast nonces at the head of the counter are reused."""
        nonces = NonceManager(WALLET)
        await nonces.initialize(MockGateway(3))
        reserved = await nonces.reserve(2)

        assert await nonces.release(reserved)
        assert await nonces.next() == 3

    @pytest.mark.asyncio
    async def test_release_ignored_after_later_issue(self):
        """Nonces followed by later submissions are not handed out again."""
        nonces = NonceManager(WALLET)
        await nonces.initialize(MockGateway(3))
        first = await nonces.next()
        await nonces.next()

        assert not await nonces.release([first])
        assert not await nonces.release([])
        assert await nonces.next() == 5
