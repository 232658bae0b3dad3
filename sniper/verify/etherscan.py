"""Etherscan client for verified source code and holder lists."""

from typing import Any

import httpx
import structlog

from ..core.interfaces import HolderSource, SourceCodeSource
from ..core.types import HolderEntry
from .client import ApiClient, ReputationApiError

logger = structlog.get_logger(__name__)


def _result(data: dict[str, Any], allow_empty: bool = False) -> Any:
    """Unwrap an Etherscan envelope.

    Raises:
        ReputationApiError: If status is not "1"
    """
    if data.get("status") == "1":
        return data.get("result")
    message = data.get("message", "")
    if allow_empty and message.lower().startswith("no "):
        return []
    raise ReputationApiError(f"Etherscan error: {message} {data.get('result')}")


class EtherscanClient(ApiClient, SourceCodeSource, HolderSource):
    """Etherscan v2 multichain API client; one key serves mainnet and Base."""

    source = "etherscan"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.etherscan.io/v2/api",
        chain_id: int = 1,
        session: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(base_url, session=session, requests_per_second=5.0)
        self.api_key = api_key
        self.chain_id = chain_id

    async def get_source_code(self, address: str) -> str:
        """Verified source of ``address``; empty string when unverified."""
        data = await self._make_request(
            "GET",
            "",
            params={
                "chainid": self.chain_id,
                "module": "contract",
                "action": "getsourcecode",
                "address": address,
                "apikey": self.api_key,
            },
        )
        entries = _result(data) or []
        source_code = entries[0].get("SourceCode", "") if entries else ""

        logger.debug(
            "Fetched contract source", address=address, length=len(source_code)
        )
        return source_code

    async def get_holders(self, contract: str) -> list[HolderEntry]:
        """Holders of an ERC-20 or LP token."""
        data = await self._make_request(
            "GET",
            "",
            params={
                "chainid": self.chain_id,
                "module": "token",
                "action": "tokenholderlist",
                "contractaddress": contract,
                "apikey": self.api_key,
            },
        )
        entries = _result(data, allow_empty=True) or []
        return [
            HolderEntry(
                address=entry["TokenHolderAddress"],
                quantity=int(entry["TokenHolderQuantity"]),
            )
            for entry in entries
        ]
