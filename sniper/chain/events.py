"""Decoding of pool-creation and swap logs."""

from eth_utils import decode_hex

from ..core.types import LogEntry, PairCreatedEvent, PoolCreatedEvent, SwapEvent
from .abi import event_topic

PAIR_CREATED_TOPIC = event_topic("PairCreated(address,address,address,uint256)")
POOL_CREATED_TOPIC = event_topic("PoolCreated(address,address,uint24,int24,address)")
SWAP_TOPIC = event_topic("Swap(address,uint256,uint256,uint256,uint256,address)")
V3_SWAP_TOPIC = event_topic("Swap(address,address,int256,int256,uint160,uint128,int24)")

_UINT24_MASK = 0xFFFFFF
_INT24_SIGN_BIT = 0x800000


class DecodeError(Exception):
    """A log could not be decoded into a typed event."""


class MalformedDataError(DecodeError):
    """The log's data segment is shorter than the fixed-width encoding."""


def _data(log: LogEntry, min_length: int) -> bytes:
    data = decode_hex(log.data)
    if len(data) < min_length:
        raise MalformedDataError(
            f"Log data is {len(data)} bytes, expected at least {min_length}"
        )
    return data


def _topic(log: LogEntry, index: int) -> str:
    if len(log.topics) <= index:
        raise DecodeError(f"Log has {len(log.topics)} topics, missing index {index}")
    return log.topics[index]


def _topic_address(log: LogEntry, index: int) -> str:
    return "0x" + _topic(log, index)[-40:].lower()


def _word(data: bytes, index: int) -> int:
    return int.from_bytes(data[32 * index : 32 * (index + 1)], "big")


def _signed_word(data: bytes, index: int) -> int:
    return int.from_bytes(data[32 * index : 32 * (index + 1)], "big", signed=True)


def decode_pair_created(log: LogEntry) -> PairCreatedEvent:
    """Decode ``PairCreated(token0 indexed, token1 indexed, pair, uint)``.

    Raises:
        MalformedDataError: If the data segment is shorter than two words
        DecodeError: If indexed topics are missing
    """
    data = _data(log, 64)
    return PairCreatedEvent(
        token0=_topic_address(log, 1),
        token1=_topic_address(log, 2),
        pair="0x" + data[12:32].hex(),
        pair_index=_word(data, 1),
    )


def decode_pool_created(log: LogEntry) -> PoolCreatedEvent:
    """Decode ``PoolCreated(token0 indexed, token1 indexed, fee indexed, tickSpacing, pool)``.

    Tick spacing is a signed 24-bit value and is sign-extended.

    Raises:
        MalformedDataError: If the data segment is shorter than two words
        DecodeError: If indexed topics are missing
    """
    data = _data(log, 64)

    tick_spacing = _word(data, 0) & _UINT24_MASK
    if tick_spacing & _INT24_SIGN_BIT:
        tick_spacing -= 1 << 24

    return PoolCreatedEvent(
        token0=_topic_address(log, 1),
        token1=_topic_address(log, 2),
        fee=int(_topic(log, 3), 16) & _UINT24_MASK,
        tick_spacing=tick_spacing,
        pool="0x" + data[44:64].hex(),
    )


def decode_swap(log: LogEntry) -> SwapEvent:
    """Decode a V2 ``Swap`` log (four uint256 amounts in the data segment)."""
    data = _data(log, 128)
    return SwapEvent(
        amount0_in=_word(data, 0),
        amount1_in=_word(data, 1),
        amount0_out=_word(data, 2),
        amount1_out=_word(data, 3),
    )


def decode_v3_swap(log: LogEntry) -> SwapEvent:
    """Decode a V3 ``Swap`` log into in/out amounts.

    V3 reports signed pool deltas: positive flows into the pool, negative out.
    """
    data = _data(log, 64)
    amount0 = _signed_word(data, 0)
    amount1 = _signed_word(data, 1)
    return SwapEvent(
        amount0_in=max(amount0, 0),
        amount1_in=max(amount1, 0),
        amount0_out=max(-amount0, 0),
        amount1_out=max(-amount1, 0),
    )


def base_out_from_swap(swap: SwapEvent, is_token_0: bool) -> int:
    """Base asset paid out by a swap selling the tracked token."""
    return swap.amount1_out if is_token_0 else swap.amount0_out
