"""Private bundle submission through a Flashbots-style relay."""

import json
import time
from typing import Any

import httpx
import structlog
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import keccak
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from ..chain.rpc import EthRpcError, is_transient_error
from ..core.interfaces import BundleRelay
from ..core.types import Block, TxReceipt, TxRequest
from .executor import LiveTradeExecutor, TxError
from .gas import bribe, next_base_fee, transaction_cost

logger = structlog.get_logger(__name__)


class FlashbotsRelay(BundleRelay):
    """JSON-RPC client for eth_callBundle / eth_sendBundle."""

    def __init__(
        self,
        relay_url: str,
        signing_key: str | None = None,
        session: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        """Initialize the relay client.

        Args:
            relay_url: Relay endpoint
            signing_key: Key identifying the searcher to the relay; a fresh
                random key is used when omitted
            session: Optional HTTP session
            timeout: Request timeout in seconds
        """
        self.relay_url = relay_url
        self.signer = Account.from_key(signing_key) if signing_key else Account.create()
        self.session = session or httpx.AsyncClient(timeout=timeout)
        self._request_id = 0
        logger.info(
            "Flashbots relay initialized",
            relay_url=relay_url,
            signature_address=self.signer.address,
        )

    def sign_body(self, body: str) -> str:
        """X-Flashbots-Signature header value for a request body."""
        message = encode_defunct(text="0x" + keccak(text=body).hex())
        signed = self.signer.sign_message(message)
        return f"{self.signer.address}:0x{bytes(signed.signature).hex()}"

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        retry=retry_if_exception(is_transient_error),
        reraise=True,
    )
    async def _request(self, method: str, params: list[Any]) -> Any:
        self._request_id += 1
        body = json.dumps(
            {"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params}
        )
        response = await self.session.post(
            self.relay_url,
            content=body,
            headers={
                "Content-Type": "application/json",
                "X-Flashbots-Signature": self.sign_body(body),
            },
        )
        response.raise_for_status()
        result = response.json()

        if "error" in result:
            raise EthRpcError.from_response(result["error"])
        return result.get("result")

    async def simulate_bundle(
        self, signed_txs: list[str], block_number: int
    ) -> dict[str, Any]:
        """Simulate ``signed_txs`` on top of the latest state for ``block_number``."""
        result = await self._request(
            "eth_callBundle",
            [
                {
                    "txs": signed_txs,
                    "blockNumber": hex(block_number),
                    "stateBlockNumber": "latest",
                }
            ],
        )
        logger.debug("Bundle simulated", block_number=block_number, result=result)
        return result or {}

    async def send_bundle(self, signed_txs: list[str], block_number: int) -> dict[str, Any]:
        """Submit ``signed_txs`` for inclusion in ``block_number``."""
        result = await self._request(
            "eth_sendBundle", [{"txs": signed_txs, "blockNumber": hex(block_number)}]
        )
        logger.info("Bundle submitted", block_number=block_number, result=result)
        return result or {}

    async def close(self) -> None:
        await self.session.aclose()


def simulation_gas_used(simulation: dict[str, Any]) -> list[int]:
    """Per-transaction gas used from an eth_callBundle result.

    Raises:
        TxError: If any transaction in the bundle failed or reverted
    """
    results = simulation.get("results") or []
    if not results:
        raise TxError("Bundle simulation returned no results")

    gas_used = []
    for index, tx_result in enumerate(results):
        if tx_result.get("error") or tx_result.get("revert"):
            raise TxError(
                f"Bundle tx {index} failed in simulation: "
                f"{tx_result.get('error') or tx_result.get('revert')}"
            )
        value = tx_result.get("gasUsed", 0)
        gas_used.append(int(value, 16) if isinstance(value, str) else int(value))
    return gas_used


class FlashbotsTradeExecutor(LiveTradeExecutor):
    """Trade executor that submits buys and sells as private bundles.

    Each bundle is simulated first. The priority fee is then set so the
    builder receives ``bribe_fraction`` of the simulated cost, and the
    re-signed bundle targets the next block.
    """

    def __init__(
        self,
        *args: Any,
        relay: BundleRelay,
        bribe_fraction: float = 0.10,
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.relay = relay
        self.bribe_fraction = bribe_fraction

    def _sign_all(self, txs: list[TxRequest]) -> list[str]:
        return ["0x" + self.wallet.sign(tx).hex() for tx in txs]

    async def _submit(self, txs: list[TxRequest], block: Block) -> list[TxReceipt]:
        target_block = block.number + 1
        nonces = [tx.nonce for tx in txs]

        try:
            simulation = await self.relay.simulate_bundle(self._sign_all(txs), target_block)
            gas_used = simulation_gas_used(simulation)
        except (TxError, EthRpcError, httpx.HTTPError, ValueError) as e:
            await self.nonces.release(nonces)
            raise TxError(f"Bundle simulation failed: {e}") from e

        next_base = next_base_fee(block)
        total_gas = sum(gas_used)
        cost = transaction_cost(gas_used, [tx.max_fee_per_gas for tx in txs], next_base)
        priority_fee = bribe(cost, total_gas, self.bribe_fraction)

        final_txs = [
            tx.model_copy(
                update={
                    "max_priority_fee_per_gas": priority_fee,
                    "max_fee_per_gas": max(tx.max_fee_per_gas, next_base + priority_fee),
                }
            )
            for tx in txs
        ]
        signed = self._sign_all(final_txs)

        logger.info(
            "Sending bundle",
            target_block=target_block,
            gas_used=total_gas,
            simulated_cost=cost,
            priority_fee=priority_fee,
            tx_count=len(signed),
        )
        try:
            await self.relay.send_bundle(signed, target_block)
        except (EthRpcError, httpx.HTTPError) as e:
            await self.nonces.release(nonces)
            raise TxError(f"Bundle submission failed: {e}") from e

        start = time.time()
        receipts = []
        for raw in signed:
            tx_hash = "0x" + keccak(hexstr=raw).hex()
            try:
                receipts.append(await self.gateway.wait_for_receipt(tx_hash))
            except TimeoutError as e:
                if not receipts:
                    await self.nonces.release(nonces)
                raise TxError(
                    f"Bundle not included after {time.time() - start:.0f}s"
                ) from e
        return receipts
