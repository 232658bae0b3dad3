"""New-pool detection."""

import httpx
import structlog

from ..chain.events import DecodeError
from ..chain.rpc import EthRpcError
from ..core.interfaces import ChainGateway, SourceCodeSource, SwapVenue
from ..core.types import LogEntry, Token
from ..registry.tokens import TokenRegistry
from ..verify.client import ReputationApiError

logger = structlog.get_logger(__name__)


class TokenDetector:
    """Turns pool-creation logs into registry entries.

    Only pools pairing a new token with WETH are tracked. When a source-code
    client is configured, tokens without verified source are skipped.
    """

    def __init__(
        self,
        registry: TokenRegistry,
        venue: SwapVenue,
        gateway: ChainGateway,
        weth: str,
        source_code: SourceCodeSource | None = None,
        blacklist: list[str] | None = None,
    ) -> None:
        self.registry = registry
        self.venue = venue
        self.gateway = gateway
        self.weth = weth.lower()
        self.source_code = source_code
        self.blacklist = {symbol.upper() for symbol in blacklist or []}

    async def handle_log(self, log: LogEntry) -> Token | None:
        """Decode a creation log and register the new token.

        Returns:
            The registry entry, or None when the pool is skipped

        Raises:
            EthRpcError: If on-chain metadata cannot be read
            ReputationApiError: If the source-code lookup fails
        """
        try:
            token0, token1, pool, fee = self.venue.decode_creation(log)
        except DecodeError as e:
            logger.warning(
                "Skipping undecodable creation log",
                error=str(e),
                tx_hash=log.transaction_hash,
            )
            return None

        if self.weth not in (token0, token1):
            logger.debug("Pool not paired with WETH", token0=token0, token1=token1)
            return None

        address = token1 if token0 == self.weth else token0
        existing = await self.registry.get(address)
        if existing is not None:
            return existing

        source_code = ""
        if self.source_code is not None:
            source_code = await self.source_code.get_source_code(address)
            if not source_code:
                logger.info("Skipping unverified token", address=address, pool=pool)
                return None

        name, symbol, decimals = await self.gateway.get_token_metadata(address)
        if symbol.upper() in self.blacklist:
            logger.info("Skipping blacklisted token", name=name, symbol=symbol, address=address)
            return None

        token = Token(
            address=address,
            name=name,
            symbol=symbol,
            decimals=decimals,
            pair_address=pool,
            is_token_0=address == token0,
            fee=fee,
            venue=self.venue.name,
            source_code=source_code,
        )
        token = await self.registry.insert_or_get(address, token)
        logger.info(
            "New token detected",
            pool=pool,
            fee=fee,
            venue=self.venue.name,
            **token.log_fields(),
        )
        return token

    async def run(self) -> None:
        """Follow creation logs forever, registering every new token."""
        logger.info(
            "Token detector started",
            venue=self.venue.name,
            factory=self.venue.creation_address,
        )
        async for log in self.gateway.subscribe_logs(
            self.venue.creation_address, [self.venue.creation_topic]
        ):
            try:
                await self.handle_log(log)
            except (EthRpcError, ReputationApiError, httpx.HTTPError) as e:
                logger.error(
                    "Failed to register token",
                    error=str(e),
                    error_type=type(e).__name__,
                    tx_hash=log.transaction_hash,
                )
