"""Async JSON-RPC transport to an Ethereum execution node."""

import asyncio
import time
from itertools import count
from typing import Any

import httpx
import structlog
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

logger = structlog.get_logger(__name__)

# Node error codes worth another attempt: internal error, limit exceeded, rate limited
TRANSIENT_RPC_CODES = frozenset({-32603, -32005, 429})


def is_transient_error(exception: BaseException) -> bool:
    """True for network failures and rate limits, False for reverts and bad requests."""
    if isinstance(exception, (httpx.TimeoutException, httpx.NetworkError)):
        return True
    return isinstance(exception, EthRpcError) and exception.code in TRANSIENT_RPC_CODES


class EthRpcError(Exception):
    """The node answered with a JSON-RPC ``error`` object."""

    def __init__(self, code: int, message: str, data: Any = None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"RPC error {code}: {message}")

    @classmethod
    def from_response(cls, error: dict[str, Any]) -> "EthRpcError":
        return cls(
            code=error.get("code", -1),
            message=error.get("message", "unknown error"),
            data=error.get("data"),
        )


class EthRpcClient:
    """Thin wrapper over the ``eth_*`` methods the sniper needs.

    Transient failures are retried three times with exponential backoff;
    every other error propagates to the caller unchanged.
    """

    def __init__(
        self,
        rpc_url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        """Create a client for ``rpc_url``.

        Args:
            rpc_url: HTTP(S) JSON-RPC endpoint
            client: Shared httpx client; one is created when omitted
            timeout: Per-request timeout in seconds
        """
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self._ids = count(1)
        logger.info("RPC endpoint configured", rpc_url=rpc_url, timeout=timeout)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        await self.client.aclose()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception(is_transient_error),
        reraise=True,
    )
    async def request(self, method: str, params: list[Any]) -> Any:
        """Call ``method`` and return its ``result`` field.

        Raises:
            EthRpcError: The node reported an error
            httpx.HTTPError: Transport failure or non-2xx status
        """
        request_id = next(self._ids)
        started = time.monotonic()
        try:
            response = await self.client.post(
                self.rpc_url,
                json={"jsonrpc": "2.0", "id": request_id, "method": method, "params": params},
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            logger.error(
                "RPC transport failure",
                method=method,
                request_id=request_id,
                elapsed=round(time.monotonic() - started, 3),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        if "error" in body:
            error = EthRpcError.from_response(body["error"])
            logger.debug("RPC call rejected", method=method, code=error.code, message=error.message)
            raise error

        logger.debug(
            "RPC call done",
            method=method,
            request_id=request_id,
            elapsed=round(time.monotonic() - started, 3),
        )
        return body.get("result")

    async def block_number(self) -> int:
        """Latest block number."""
        return int(await self.request("eth_blockNumber", []), 16)

    async def chain_id(self) -> int:
        """Chain id reported by the node."""
        return int(await self.request("eth_chainId", []), 16)

    async def get_block(self, tag: str | int = "latest") -> dict[str, Any] | None:
        """Block header by number or tag (without transactions)."""
        block_tag = hex(tag) if isinstance(tag, int) else tag
        return await self.request("eth_getBlockByNumber", [block_tag, False])

    async def get_logs(self, log_filter: dict[str, Any]) -> list[dict[str, Any]]:
        """Logs matching a filter object."""
        return await self.request("eth_getLogs", [log_filter]) or []

    async def call(self, tx: dict[str, Any], tag: str = "latest") -> str:
        """eth_call returning hex output."""
        return await self.request("eth_call", [tx, tag])

    async def get_balance(self, address: str, tag: str = "latest") -> int:
        """ETH balance in wei."""
        return int(await self.request("eth_getBalance", [address, tag]), 16)

    async def get_transaction_count(self, address: str, tag: str = "pending") -> int:
        """Transaction count (nonce) of an address."""
        return int(await self.request("eth_getTransactionCount", [address, tag]), 16)

    async def send_raw_transaction(self, raw_tx_hex: str) -> str:
        """Broadcast a signed transaction."""
        return await self.request("eth_sendRawTransaction", [raw_tx_hex])

    async def send_transaction(self, tx: dict[str, Any]) -> str:
        """Submit an unsigned transaction (node-managed or impersonated account)."""
        return await self.request("eth_sendTransaction", [tx])

    async def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        """Receipt of a mined transaction, or None while pending."""
        return await self.request("eth_getTransactionReceipt", [tx_hash])

    async def wait_for_receipt(
        self,
        tx_hash: str,
        timeout: float = 120.0,
        poll_interval: float = 1.0,
    ) -> dict[str, Any]:
        """Poll for the receipt of ``tx_hash`` every ``poll_interval`` seconds.

        Raises:
            TimeoutError: Not mined within ``timeout`` seconds
        """
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            receipt = await self.get_transaction_receipt(tx_hash)
            if receipt is not None:
                logger.debug(
                    "Transaction mined",
                    tx_hash=tx_hash,
                    status=receipt.get("status"),
                    block_number=receipt.get("blockNumber"),
                )
                return receipt
            await asyncio.sleep(poll_interval)

        logger.error("Transaction not mined in time", tx_hash=tx_hash, timeout=timeout)
        raise TimeoutError(f"Transaction not mined after {timeout}s: {tx_hash}")
