"""Calldata encoding and return decoding for the contracts the sniper touches."""

from typing import Any

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector, keccak

MAX_UINT256 = 2**256 - 1


def selector(signature: str) -> str:
    """Hex 4-byte selector of a function signature."""
    return "0x" + function_signature_to_4byte_selector(signature).hex()


def event_topic(signature: str) -> str:
    """Hex topic0 of an event signature."""
    return "0x" + keccak(text=signature).hex()


def encode_call(signature: str, arg_types: list[str], args: list[Any]) -> str:
    """Encode a function call as hex calldata."""
    return selector(signature) + encode(arg_types, args).hex()


def decode_uint(output: bytes) -> int:
    return decode(["uint256"], output)[0]


# ERC-20


def balance_of(owner: str) -> str:
    return encode_call("balanceOf(address)", ["address"], [owner])


def total_supply() -> str:
    return selector("totalSupply()")


def approve(spender: str, amount: int) -> str:
    return encode_call("approve(address,uint256)", ["address", "uint256"], [spender, amount])


def decode_string(output: bytes) -> str:
    """Decode a string return, falling back to bytes32 for legacy tokens."""
    try:
        return decode(["string"], output)[0]
    except (DecodingError, OverflowError):
        return decode(["bytes32"], output)[0].rstrip(b"\x00").decode("utf-8", "replace")


# Uniswap V2


def get_reserves() -> str:
    return selector("getReserves()")


def decode_reserves(output: bytes) -> tuple[int, int]:
    reserve0, reserve1, _ = decode(["uint112", "uint112", "uint32"], output)
    return reserve0, reserve1


def swap_exact_eth_for_tokens(
    amount_out_min: int, path: list[str], to: str, deadline: int
) -> str:
    return encode_call(
        "swapExactETHForTokensSupportingFeeOnTransferTokens(uint256,address[],address,uint256)",
        ["uint256", "address[]", "address", "uint256"],
        [amount_out_min, path, to, deadline],
    )


def swap_exact_tokens_for_eth(
    amount_in: int, amount_out_min: int, path: list[str], to: str, deadline: int
) -> str:
    return encode_call(
        "swapExactTokensForETHSupportingFeeOnTransferTokens(uint256,uint256,address[],address,uint256)",
        ["uint256", "uint256", "address[]", "address", "uint256"],
        [amount_in, amount_out_min, path, to, deadline],
    )


# Uniswap V3

_EXACT_INPUT_SINGLE = "(address,address,uint24,address,uint256,uint256,uint160)"
_QUOTE_EXACT_INPUT_SINGLE = "(address,address,uint256,uint24,uint160)"


def exact_input_single(
    token_in: str,
    token_out: str,
    fee: int,
    recipient: str,
    amount_in: int,
    amount_out_min: int,
) -> str:
    """SwapRouter02.exactInputSingle calldata."""
    return encode_call(
        f"exactInputSingle({_EXACT_INPUT_SINGLE})",
        [_EXACT_INPUT_SINGLE],
        [(token_in, token_out, fee, recipient, amount_in, amount_out_min, 0)],
    )


def quote_exact_input_single(token_in: str, token_out: str, amount_in: int, fee: int) -> str:
    """QuoterV2.quoteExactInputSingle calldata."""
    return encode_call(
        f"quoteExactInputSingle({_QUOTE_EXACT_INPUT_SINGLE})",
        [_QUOTE_EXACT_INPUT_SINGLE],
        [(token_in, token_out, amount_in, fee, 0)],
    )


def decode_quote(output: bytes) -> int:
    amount_out, _, _, _ = decode(["uint256", "uint160", "uint32", "uint256"], output)
    return amount_out
