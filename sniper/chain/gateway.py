"""Chain gateway backed by JSON-RPC polling."""

import asyncio
from collections.abc import AsyncIterator
from typing import Any

import structlog
from eth_utils import decode_hex

from ..core.interfaces import ChainGateway
from ..core.types import Block, LogEntry, TxReceipt
from . import abi
from .rpc import EthRpcClient

logger = structlog.get_logger(__name__)


def _to_int(value: str | int | None) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    return int(value, 16)


def parse_block(raw: dict[str, Any]) -> Block:
    """Convert an RPC block object into a Block."""
    return Block(
        number=_to_int(raw.get("number")),
        timestamp=_to_int(raw.get("timestamp")),
        base_fee_per_gas=_to_int(raw.get("baseFeePerGas")),
        gas_used=_to_int(raw.get("gasUsed")),
        gas_limit=_to_int(raw.get("gasLimit")),
    )


def parse_log(raw: dict[str, Any]) -> LogEntry:
    """Convert an RPC log object into a LogEntry."""
    block_number = raw.get("blockNumber")
    return LogEntry(
        address=raw["address"].lower(),
        topics=[topic.lower() for topic in raw.get("topics", [])],
        data=raw.get("data", "0x"),
        block_number=_to_int(block_number) if block_number is not None else None,
        transaction_hash=raw.get("transactionHash"),
    )


def parse_receipt(raw: dict[str, Any]) -> TxReceipt:
    """Convert an RPC receipt object into a TxReceipt."""
    block_number = raw.get("blockNumber")
    return TxReceipt(
        transaction_hash=raw["transactionHash"],
        status=_to_int(raw.get("status")),
        gas_used=_to_int(raw.get("gasUsed")),
        effective_gas_price=_to_int(raw.get("effectiveGasPrice")),
        block_number=_to_int(block_number) if block_number is not None else None,
        logs=[parse_log(log) for log in raw.get("logs", [])],
    )


class RpcChainGateway(ChainGateway):
    """ChainGateway polling a JSON-RPC node for new blocks and logs."""

    def __init__(
        self,
        rpc: EthRpcClient,
        poll_interval: float = 2.0,
        receipt_timeout: float = 120.0,
    ) -> None:
        """Initialize the gateway.

        Args:
            rpc: JSON-RPC client
            poll_interval: Seconds between block-number polls
            receipt_timeout: Seconds to wait for a receipt
        """
        self.rpc = rpc
        self.poll_interval = poll_interval
        self.receipt_timeout = receipt_timeout

    async def subscribe_new_blocks(self) -> AsyncIterator[Block]:
        """Yield every new block header, in order."""
        last_seen = await self.rpc.block_number()
        logger.info("Subscribed to new blocks", from_block=last_seen)

        while True:
            await asyncio.sleep(self.poll_interval)
            latest = await self.rpc.block_number()
            for number in range(last_seen + 1, latest + 1):
                raw = await self.rpc.get_block(number)
                if raw is None:
                    break
                last_seen = number
                yield parse_block(raw)

    async def subscribe_logs(
        self, address: str, topics: list[str]
    ) -> AsyncIterator[LogEntry]:
        """Yield logs from ``address`` matching ``topics`` as blocks arrive."""
        last_seen = await self.rpc.block_number()
        logger.info(
            "Subscribed to logs", address=address, topics=topics, from_block=last_seen
        )

        while True:
            await asyncio.sleep(self.poll_interval)
            latest = await self.rpc.block_number()
            if latest <= last_seen:
                continue

            raw_logs = await self.rpc.get_logs(
                {
                    "address": address,
                    "topics": topics,
                    "fromBlock": hex(last_seen + 1),
                    "toBlock": hex(latest),
                }
            )
            last_seen = latest
            for raw in raw_logs:
                yield parse_log(raw)

    async def get_block(self, tag: str | int = "latest") -> Block:
        raw = await self.rpc.get_block(tag)
        if raw is None:
            raise ValueError(f"Block not found: {tag}")
        return parse_block(raw)

    async def call(self, to: str, data: str) -> bytes:
        result = await self.rpc.call({"to": to, "data": data})
        return decode_hex(result or "0x")

    async def get_reserves(self, pool: str) -> tuple[int, int]:
        return abi.decode_reserves(await self.call(pool, abi.get_reserves()))

    async def get_total_supply(self, token: str) -> int:
        return abi.decode_uint(await self.call(token, abi.total_supply()))

    async def get_balance(self, address: str, token: str | None = None) -> int:
        if token is None:
            return await self.rpc.get_balance(address)
        return abi.decode_uint(await self.call(token, abi.balance_of(address)))

    async def get_token_metadata(self, token: str) -> tuple[str, str, int]:
        name, symbol, decimals = await asyncio.gather(
            self.call(token, abi.selector("name()")),
            self.call(token, abi.selector("symbol()")),
            self.call(token, abi.selector("decimals()")),
        )
        return abi.decode_string(name), abi.decode_string(symbol), abi.decode_uint(decimals)

    async def send_transaction(self, signed_tx: bytes) -> str:
        return await self.rpc.send_raw_transaction("0x" + bytes(signed_tx).hex())

    async def send_unsigned(self, tx: dict[str, Any]) -> str:
        """Submit an unsigned transaction from an unlocked/impersonated sender."""
        return await self.rpc.send_transaction(tx)

    async def wait_for_receipt(self, tx_hash: str) -> TxReceipt:
        raw = await self.rpc.wait_for_receipt(tx_hash, timeout=self.receipt_timeout)
        return parse_receipt(raw)

    async def get_transaction_count(self, address: str) -> int:
        return await self.rpc.get_transaction_count(address)
