"""Ephemeral anvil forks used for dry-run simulations."""

import asyncio
import socket
import time

import httpx
import structlog

from ..chain.gateway import RpcChainGateway
from ..chain.rpc import EthRpcClient, EthRpcError
from ..core.interfaces import SimulationEnvironment, SimulationFactory
from ..core.types import TxReceipt, TxRequest

logger = structlog.get_logger(__name__)


class SimulationError(Exception):
    """The simulation environment could not be started."""


def _free_port(host: str) -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return sock.getsockname()[1]


class AnvilFork(SimulationEnvironment):
    """A running anvil process forking a live chain."""

    def __init__(
        self,
        rpc: EthRpcClient,
        account: str,
        process: asyncio.subprocess.Process | None = None,
    ) -> None:
        """Wrap a running fork.

        Args:
            rpc: JSON-RPC client pointed at the fork
            account: Account the simulation trades from
            process: anvil process owned by this fork, if any
        """
        self.rpc = rpc
        self.process = process
        self.gateway = RpcChainGateway(rpc, poll_interval=0.2, receipt_timeout=30.0)
        self._account = account.lower()

    @property
    def address(self) -> str:
        return self._account

    async def fund(self, address: str, amount: int) -> None:
        await self.rpc.request("anvil_setBalance", [address, hex(amount)])
        logger.debug("Fork account funded", address=address, amount=amount)

    async def impersonate(self, address: str) -> None:
        await self.rpc.request("anvil_impersonateAccount", [address])

    async def submit_and_wait(self, tx: TxRequest) -> TxReceipt:
        params = tx.to_rpc()
        params.setdefault("from", self._account)
        tx_hash = await self.gateway.send_unsigned(params)
        return await self.gateway.wait_for_receipt(tx_hash)

    async def submit(self, tx: TxRequest) -> TxReceipt:
        return await self.submit_and_wait(tx)

    async def get_eth_balance(self) -> int:
        return await self.gateway.get_balance(self._account)

    async def get_token_balance(self, token: str) -> int:
        return await self.gateway.get_balance(self._account, token)

    async def get_current_timestamp(self) -> int:
        return (await self.gateway.get_block("latest")).timestamp

    async def snapshot(self) -> str:
        return await self.rpc.request("evm_snapshot", [])

    async def revert(self, snapshot_id: str) -> bool:
        return bool(await self.rpc.request("evm_revert", [snapshot_id]))

    async def close(self) -> None:
        """Stop the anvil process and release the RPC client."""
        await self.rpc.close()
        if self.process and self.process.returncode is None:
            self.process.terminate()
            try:
                await asyncio.wait_for(self.process.wait(), timeout=5.0)
            except asyncio.TimeoutError:
                self.process.kill()
                await self.process.wait()
        logger.debug("Fork closed", rpc_url=self.rpc.rpc_url)


class AnvilFactory(SimulationFactory):
    """Spawns a fresh anvil fork per simulation."""

    def __init__(
        self,
        account: str,
        anvil_path: str = "anvil",
        host: str = "127.0.0.1",
        startup_timeout: float = 30.0,
    ) -> None:
        self.account = account
        self.anvil_path = anvil_path
        self.host = host
        self.startup_timeout = startup_timeout

    async def spawn(self, fork_url: str) -> AnvilFork:
        """Start anvil forking ``fork_url`` and wait until it answers RPC.

        Raises:
            SimulationError: If anvil cannot be started or never becomes ready
        """
        port = _free_port(self.host)
        try:
            process = await asyncio.create_subprocess_exec(
                self.anvil_path,
                "--fork-url",
                fork_url,
                "--host",
                self.host,
                "--port",
                str(port),
                "--silent",
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            raise SimulationError(f"Failed to start {self.anvil_path}: {e}") from e

        fork = AnvilFork(
            EthRpcClient(f"http://{self.host}:{port}", timeout=10.0),
            account=self.account,
            process=process,
        )

        deadline = time.time() + self.startup_timeout
        while time.time() < deadline:
            if process.returncode is not None:
                await fork.close()
                raise SimulationError(f"anvil exited with code {process.returncode}")
            try:
                await fork.rpc.chain_id()
                logger.debug("Fork ready", port=port, fork_url=fork_url[:50])
                return fork
            except (httpx.HTTPError, EthRpcError):
                await asyncio.sleep(0.25)

        await fork.close()
        raise SimulationError(f"anvil not ready after {self.startup_timeout}s")
