"""Tests for pool-creation and swap log decoding."""

import pytest
from eth_abi import encode

from sniper.chain.events import (
    PAIR_CREATED_TOPIC,
    POOL_CREATED_TOPIC,
    DecodeError,
    MalformedDataError,
    base_out_from_swap,
    decode_pair_created,
    decode_pool_created,
    decode_swap,
    decode_v3_swap,
)
from sniper.core.types import LogEntry

TOKEN0 = "0x" + "11" * 20
TOKEN1 = "0x" + "22" * 20
POOL = "0x" + "33" * 20


def address_topic(address: str) -> str:
    return "0x" + "0" * 24 + address[2:]


def pair_created_log(data: bytes) -> LogEntry:
    return LogEntry(
        address="0x" + "ff" * 20,
        topics=[PAIR_CREATED_TOPIC, address_topic(TOKEN0), address_topic(TOKEN1)],
        data="0x" + data.hex(),
    )


class TestPairCreated:
    """Test V2 PairCreated decoding."""

    def test_decode(self):
        log = pair_created_log(encode(["address", "uint256"], [POOL, 42]))

        event = decode_pair_created(log)

        assert event.token0 == TOKEN0
        assert event.token1 == TOKEN1
        assert event.pair == POOL
        assert event.pair_index == 42

    def test_short_data(self):
        """Data shorter than 64 bytes is malformed."""
        log = pair_created_log(b"\x00" * 63)

        with pytest.raises(MalformedDataError):
            decode_pair_created(log)

    def test_missing_topic(self):
        log = pair_created_log(encode(["address", "uint256"], [POOL, 1]))
        log.topics = log.topics[:2]

        with pytest.raises(DecodeError):
            decode_pair_created(log)


class TestPoolCreated:
    """Test V3 PoolCreated decoding."""

    def make_log(self, tick_spacing: int, fee: int = 3000) -> LogEntry:
        return LogEntry(
            address="0x" + "ff" * 20,
            topics=[
                POOL_CREATED_TOPIC,
                address_topic(TOKEN0),
                address_topic(TOKEN1),
                "0x" + fee.to_bytes(32, "big").hex(),
            ],
            data="0x" + encode(["int24", "address"], [tick_spacing, POOL]).hex(),
        )

    def test_decode(self):
        event = decode_pool_created(self.make_log(60))

        assert event.token0 == TOKEN0
        assert event.token1 == TOKEN1
        assert event.fee == 3000
        assert event.tick_spacing == 60
        assert event.pool == POOL

    def test_negative_tick_spacing_sign_extended(self):
        event = decode_pool_created(self.make_log(-10, fee=500))

        assert event.tick_spacing == -10
        assert event.fee == 500


class TestSwap:
    """Test swap log decoding."""

    def test_v2_swap(self):
        log = LogEntry(
            address=POOL,
            data="0x" + encode(["uint256"] * 4, [100, 0, 0, 5]).hex(),
        )

        swap = decode_swap(log)

        assert swap.amount0_in == 100
        assert swap.amount1_out == 5
        assert base_out_from_swap(swap, is_token_0=True) == 5
        assert base_out_from_swap(swap, is_token_0=False) == 0

    def test_v2_swap_short_data(self):
        log = LogEntry(address=POOL, data="0x" + "00" * 96)

        with pytest.raises(MalformedDataError):
            decode_swap(log)

    def test_v3_swap_signed_amounts(self):
        """Positive deltas flow into the pool, negative ones out."""
        log = LogEntry(
            address=POOL,
            data="0x" + encode(["int256", "int256"], [1000, -250]).hex(),
        )

        swap = decode_v3_swap(log)

        assert swap.amount0_in == 1000
        assert swap.amount0_out == 0
        assert swap.amount1_in == 0
        assert swap.amount1_out == 250
