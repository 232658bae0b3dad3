"""Swap venues: Uniswap V2 pairs and Uniswap V3 pools paired with WETH."""

import structlog

from ..chain import abi
from ..chain.events import (
    PAIR_CREATED_TOPIC,
    POOL_CREATED_TOPIC,
    SWAP_TOPIC,
    V3_SWAP_TOPIC,
    base_out_from_swap,
    decode_pair_created,
    decode_pool_created,
    decode_swap,
    decode_v3_swap,
)
from ..config.settings import AppSettings
from ..core.interfaces import ChainGateway, SwapVenue
from ..core.types import LogEntry, SwapCall, Token, TxReceipt
from .liquidity import quote_amount_out

logger = structlog.get_logger(__name__)


class _WethVenue:
    """Behaviour shared by venues trading token/WETH pools."""

    name = ""
    creation_topic = ""
    swap_topic = ""

    def __init__(
        self, gateway: ChainGateway, factory: str, router: str, weth: str
    ) -> None:
        self.gateway = gateway
        self.creation_address = factory.lower()
        self.router = router.lower()
        self.weth = weth.lower()

    def build_approve(self, token: Token, amount: int) -> SwapCall:
        return SwapCall(to=token.address, data=abi.approve(self.router, amount))

    def _decode_swap_log(self, log: LogEntry):
        raise NotImplementedError

    def eth_out_from_receipt(self, token: Token, receipt: TxReceipt) -> int:
        for log in receipt.logs:
            if (
                log.address == token.pair_address
                and log.topics
                and log.topics[0] == self.swap_topic
            ):
                return base_out_from_swap(self._decode_swap_log(log), token.is_token_0)

        logger.warning(
            "No swap log found in receipt",
            tx_hash=receipt.transaction_hash,
            **token.log_fields(),
        )
        return 0


class UniswapV2Venue(_WethVenue, SwapVenue):
    """Constant-product pairs quoted locally from reserves."""

    name = "uniswap_v2"
    creation_topic = PAIR_CREATED_TOPIC
    swap_topic = SWAP_TOPIC

    def decode_creation(self, log: LogEntry) -> tuple[str, str, str, int | None]:
        event = decode_pair_created(log)
        return event.token0, event.token1, event.pair, None

    def _decode_swap_log(self, log: LogEntry):
        return decode_swap(log)

    async def reserves(self, token: Token) -> tuple[int, int]:
        """Return (base_reserve, token_reserve) of the token's pair."""
        reserve0, reserve1 = await self.gateway.get_reserves(token.pair_address)
        if token.is_token_0:
            return reserve1, reserve0
        return reserve0, reserve1

    async def base_liquidity(self, token: Token) -> int:
        base_reserve, _ = await self.reserves(token)
        return base_reserve

    async def quote_buy(self, token: Token, eth_in: int) -> int:
        base_reserve, token_reserve = await self.reserves(token)
        if base_reserve == 0 or token_reserve == 0:
            return 0
        return quote_amount_out(eth_in, base_reserve, token_reserve)

    async def quote_sell(self, token: Token, amount_in: int) -> int:
        base_reserve, token_reserve = await self.reserves(token)
        if base_reserve == 0 or token_reserve == 0:
            return 0
        return quote_amount_out(amount_in, token_reserve, base_reserve)

    def build_buy(
        self, token: Token, eth_in: int, min_out: int, recipient: str, deadline: int
    ) -> SwapCall:
        data = abi.swap_exact_eth_for_tokens(
            min_out, [self.weth, token.address], recipient, deadline
        )
        return SwapCall(to=self.router, data=data, value=eth_in)

    def build_sell(
        self, token: Token, amount_in: int, min_out: int, recipient: str, deadline: int
    ) -> SwapCall:
        data = abi.swap_exact_tokens_for_eth(
            amount_in, min_out, [token.address, self.weth], recipient, deadline
        )
        return SwapCall(to=self.router, data=data)


class UniswapV3Venue(_WethVenue, SwapVenue):
    """Concentrated-liquidity pools quoted through QuoterV2.

    Sells settle in WETH; SwapRouter02 single-hop swaps carry no deadline.
    """

    name = "uniswap_v3"
    creation_topic = POOL_CREATED_TOPIC
    swap_topic = V3_SWAP_TOPIC

    def __init__(
        self,
        gateway: ChainGateway,
        factory: str,
        router: str,
        weth: str,
        quoter: str,
    ) -> None:
        super().__init__(gateway, factory, router, weth)
        self.quoter = quoter.lower()

    def decode_creation(self, log: LogEntry) -> tuple[str, str, str, int | None]:
        event = decode_pool_created(log)
        return event.token0, event.token1, event.pool, event.fee

    def _decode_swap_log(self, log: LogEntry):
        return decode_v3_swap(log)

    def _fee(self, token: Token) -> int:
        if token.fee is None:
            raise ValueError(f"Token {token.address} has no pool fee tier")
        return token.fee

    async def base_liquidity(self, token: Token) -> int:
        return await self.gateway.get_balance(token.pair_address, self.weth)

    async def quote_buy(self, token: Token, eth_in: int) -> int:
        data = abi.quote_exact_input_single(self.weth, token.address, eth_in, self._fee(token))
        return abi.decode_quote(await self.gateway.call(self.quoter, data))

    async def quote_sell(self, token: Token, amount_in: int) -> int:
        data = abi.quote_exact_input_single(
            token.address, self.weth, amount_in, self._fee(token)
        )
        return abi.decode_quote(await self.gateway.call(self.quoter, data))

    def build_buy(
        self, token: Token, eth_in: int, min_out: int, recipient: str, deadline: int
    ) -> SwapCall:
        data = abi.exact_input_single(
            self.weth, token.address, self._fee(token), recipient, eth_in, min_out
        )
        return SwapCall(to=self.router, data=data, value=eth_in)

    def build_sell(
        self, token: Token, amount_in: int, min_out: int, recipient: str, deadline: int
    ) -> SwapCall:
        data = abi.exact_input_single(
            token.address, self.weth, self._fee(token), recipient, amount_in, min_out
        )
        return SwapCall(to=self.router, data=data)


def make_venue(settings: AppSettings, gateway: ChainGateway) -> SwapVenue:
    """Build the venue selected by configuration, bound to ``gateway``."""
    if settings.venue == "uniswap_v3":
        return UniswapV3Venue(
            gateway,
            factory=settings.contract("uniswap_v3_factory"),
            router=settings.contract("uniswap_v3_router"),
            weth=settings.contract("weth"),
            quoter=settings.contract("uniswap_v3_quoter"),
        )
    return UniswapV2Venue(
        gateway,
        factory=settings.contract("uniswap_v2_factory"),
        router=settings.contract("uniswap_v2_router"),
        weth=settings.contract("weth"),
    )
