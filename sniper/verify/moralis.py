"""Moralis client for ERC-20 holder lists."""

import httpx
import structlog

from ..core.interfaces import HolderSource
from ..core.types import HolderEntry
from .client import ApiClient

logger = structlog.get_logger(__name__)

MORALIS_CHAINS = {1: "eth", 8453: "base"}


class MoralisClient(ApiClient, HolderSource):
    """Moralis token-owner lookups."""

    source = "moralis"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://deep-index.moralis.io/api/v2.2",
        chain_id: int = 1,
        session: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(base_url, session=session, requests_per_second=5.0)
        self.api_key = api_key
        self.chain = MORALIS_CHAINS.get(chain_id, "eth")

    async def get_holders(self, contract: str) -> list[HolderEntry]:
        """Top holders of ``contract``, largest first."""
        data = await self._make_request(
            "GET",
            f"erc20/{contract}/owners",
            params={"chain": self.chain, "order": "DESC"},
            headers={"X-API-Key": self.api_key, "accept": "application/json"},
        )
        holders = [
            HolderEntry(address=entry["owner_address"], quantity=int(entry["balance"]))
            for entry in data.get("result", [])
        ]

        logger.debug("Fetched holders", contract=contract, count=len(holders))
        return holders
