"""Live trading wallet."""

import structlog

from ..core.interfaces import ChainGateway, TxCapable
from ..core.types import TxReceipt, TxRequest
from .signers import TxnSigner

logger = structlog.get_logger(__name__)


class LiveWallet(TxCapable):
    """Signs with a local key and broadcasts through the chain gateway."""

    def __init__(self, gateway: ChainGateway, signer: TxnSigner, chain_id: int) -> None:
        self.gateway = gateway
        self.signer = signer
        self.chain_id = chain_id

    @property
    def address(self) -> str:
        return self.signer.address

    async def get_eth_balance(self) -> int:
        return await self.gateway.get_balance(self.address)

    async def get_token_balance(self, token: str) -> int:
        return await self.gateway.get_balance(self.address, token)

    async def get_current_timestamp(self) -> int:
        return (await self.gateway.get_block("latest")).timestamp

    def sign(self, tx: TxRequest) -> bytes:
        """Sign ``tx`` for this wallet's chain.

        Raises:
            ValueError: If the transaction has no nonce
        """
        if tx.nonce is None:
            raise ValueError("Transaction nonce must be set before signing")
        return self.signer.sign_transaction(
            tx.model_copy(update={"chain_id": self.chain_id}).to_signable()
        )

    async def broadcast(self, tx: TxRequest) -> str:
        """Sign and broadcast ``tx`` without waiting; return the hash."""
        tx_hash = await self.gateway.send_transaction(self.sign(tx))
        logger.info("Transaction broadcast", tx_hash=tx_hash, nonce=tx.nonce, to=tx.to)
        return tx_hash

    async def submit(self, tx: TxRequest) -> TxReceipt:
        """Sign, broadcast and wait for the receipt."""
        tx_hash = await self.broadcast(tx)
        receipt = await self.gateway.wait_for_receipt(tx_hash)
        logger.info(
            "Transaction mined",
            tx_hash=tx_hash,
            status=receipt.status,
            gas_used=receipt.gas_used,
            block_number=receipt.block_number,
        )
        return receipt
