"""honeypot.is reputation client."""

from typing import Any

import httpx
import structlog

from ..core.interfaces import HoneypotSource
from ..core.types import HoneypotReport, Token
from .client import ApiClient, ReputationApiError

logger = structlog.get_logger(__name__)


def map_honeypot_response(data: dict[str, Any]) -> HoneypotReport:
    """Map an IsHoneypot response into a HoneypotReport.

    Raises:
        ReputationApiError: If the response carries no honeypot verdict
    """
    result = data.get("honeypotResult")
    if not isinstance(result, dict) or "isHoneypot" not in result:
        raise ReputationApiError("honeypot.is response has no honeypotResult")

    summary = data.get("summary") or {}
    flags = summary.get("flags") or []

    return HoneypotReport(
        is_honeypot=bool(result["isHoneypot"]),
        reason=result.get("honeypotReason"),
        risk=summary.get("risk"),
        risk_level=summary.get("riskLevel"),
        flags=[
            str(flag.get("flag")) if isinstance(flag, dict) else str(flag)
            for flag in flags
        ],
    )


class HoneypotIsClient(ApiClient, HoneypotSource):
    """Queries honeypot.is for a pair's honeypot status."""

    source = "honeypot.is"

    def __init__(
        self,
        base_url: str = "https://api.honeypot.is/v2",
        chain_id: int = 1,
        session: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(base_url, session=session, requests_per_second=2.0)
        self.chain_id = chain_id

    async def check(self, token: Token) -> HoneypotReport:
        """Check a token via its pair address.

        Raises:
            httpx.HTTPError: On transport failures
            ReputationApiError: On responses without a verdict
        """
        data = await self._make_request(
            "GET",
            "IsHoneypot",
            params={"address": token.pair_address, "chainID": self.chain_id},
        )
        report = map_honeypot_response(data)

        logger.info(
            "Honeypot check completed",
            is_honeypot=report.is_honeypot,
            reason=report.reason,
            risk=report.risk,
            **token.log_fields(),
        )
        return report
