"""LLM review of token contract source code."""

import json

import httpx
import structlog

from ..core.interfaces import CodeAuditor
from ..core.types import CodeAudit, Token
from .client import ApiClient, ReputationApiError

logger = structlog.get_logger(__name__)

AUDIT_PROMPT = (
    "You are a smart contract security reviewer. Review the ERC-20 token "
    "contract below for scam patterns: hidden mint functions, blacklists, "
    "adjustable or excessive taxes, trading switches, owner-only transfer "
    "restrictions, balance manipulation or anything that stops holders from "
    "selling. Reply with JSON only: "
    '{"possible_scam": true|false, "reason": "<short explanation>"}'
)


def parse_audit_content(content: str) -> CodeAudit:
    """Parse the model's JSON answer.

    Raises:
        ReputationApiError: If the answer is not the expected JSON object
    """
    try:
        payload = json.loads(content)
    except json.JSONDecodeError as e:
        raise ReputationApiError(f"Audit response is not JSON: {content[:200]}") from e

    if not isinstance(payload, dict) or "possible_scam" not in payload:
        raise ReputationApiError("Audit response has no possible_scam field")

    return CodeAudit(
        possible_scam=bool(payload["possible_scam"]),
        reason=str(payload.get("reason", "")),
    )


class OpenAICodeAuditor(ApiClient, CodeAuditor):
    """Chat-completions based contract reviewer."""

    source = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        session: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(base_url, session=session, requests_per_second=1.0, timeout=120.0)
        self.api_key = api_key
        self.model = model

    async def audit(self, token: Token) -> CodeAudit:
        """Ask the model whether the token's source looks like a scam."""
        data = await self._make_request(
            "POST",
            "chat/completions",
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={
                "model": self.model,
                "response_format": {"type": "json_object"},
                "temperature": 0,
                "messages": [
                    {"role": "system", "content": AUDIT_PROMPT},
                    {"role": "user", "content": token.source_code},
                ],
            },
        )

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ReputationApiError("Malformed chat completion response") from e

        audit = parse_audit_content(content)
        logger.info(
            "Code audit completed",
            possible_scam=audit.possible_scam,
            reason=audit.reason,
            **token.log_fields(),
        )
        return audit
