"""Sniper settings: YAML profile merged with environment variables and .env secrets."""

from pathlib import Path
from typing import Literal
from urllib.parse import urlsplit

import structlog
import yaml
from eth_utils import to_wei
from pydantic import Field, SecretStr, ValidationError, model_validator
from pydantic_settings import BaseSettings

from ..core.types import Slippage

logger = structlog.get_logger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
DEAD_ADDRESS = "0x000000000000000000000000000000000000dead"

CHAIN_IDS = {"mainnet": 1, "base": 8453}

# Forced dry_run per profile; None leaves the file value
PROFILE_DRY_RUN = {"dev": None, "paper": True, "prod": False}

# Well-known contract addresses per chain
CHAIN_CONTRACTS: dict[str, dict[str, str]] = {
    "mainnet": {
        "weth": "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2",
        "uniswap_v2_factory": "0x5c69bee701ef814a2b6a3edd4b1652cb9cc5aa6f",
        "uniswap_v2_router": "0x7a250d5630b4cf539739df2c5dacb4c659f2488d",
        "uniswap_v3_factory": "0x1f98431c8ad98523631ae4a59f267346ea31f984",
        "uniswap_v3_router": "0x68b3465833fb72a70ecdf485e0e4c7bd8665fc45",
        "uniswap_v3_quoter": "0x61ffe014ba17989e743c5f6cb21bf9697530b21e",
    },
    "base": {
        "weth": "0x4200000000000000000000000000000000000006",
        "uniswap_v2_factory": "0x8909dc15e40173ff4699343b6eb8132c65e18ec6",
        "uniswap_v2_router": "0x4752ba5dbc23f44d87826276bf6fd6b1c372ad24",
        "uniswap_v3_factory": "0x33128a8fc17869897dce68ed026d694621f6fdfd",
        "uniswap_v3_router": "0x2626664c2603336e57b271c5c0b26f421741e481",
        "uniswap_v3_quoter": "0x3d4e44eb1374240ce5f1b871ab261cd16335b76a",
    },
}

# Burn and lock-contract addresses that count towards locked LP supply
TOKEN_LOCKERS: dict[str, list[str]] = {
    "mainnet": [
        "0xe2fe530c047f2d85298b07d9333c05737f1435fb",  # team finance
        "0x663a5c229c09b049e36dcc11a9b0d4a8eb9db214",  # uncx
        DEAD_ADDRESS,
        ZERO_ADDRESS,
    ],
    "base": [
        "0xc4e637d37113192f4f1f060daebd7758de7f4131",  # uncx
        DEAD_ADDRESS,
        ZERO_ADDRESS,
    ],
}


class AppSettings(BaseSettings):
    """Every tunable of the sniper.

    Environment variables override the YAML profile; secrets are held as
    ``SecretStr`` so they never reach the logs.
    """

    # Environment and mode
    env: Literal["dev", "paper", "prod"] = Field(
        description="Environment: dev, paper, prod"
    )
    dry_run: bool = Field(
        default=True, description="Simulation mode (quote-priced trades, no wallet)"
    )

    # Chain and venue
    chain: Literal["mainnet", "base"] = Field(
        default="mainnet", description="Target chain"
    )
    venue: Literal["uniswap_v2", "uniswap_v3"] = Field(
        default="uniswap_v2", description="Swap venue to snipe on"
    )
    rpc_url: str = Field(description="Ethereum JSON-RPC URL")
    fork_url: str | None = Field(
        default=None, description="URL forked by dry-run simulations (defaults to rpc_url)"
    )
    allow_devnet: bool = Field(
        default=False, description="Allow live trading against a localhost RPC"
    )
    block_poll_interval: float = Field(
        default=2.0, description="Seconds between new-block polls"
    )
    contracts: dict[str, str] = Field(
        default_factory=dict, description="Contract address overrides"
    )
    token_lockers: list[str] | None = Field(
        default=None, description="LP lock/burn addresses (defaults per chain)"
    )

    # Wallet
    private_key: SecretStr | None = Field(default=None, description="Wallet private key")
    keystore_path: str | None = Field(default=None, description="Encrypted keystore JSON")
    keystore_password: SecretStr | None = Field(
        default=None, description="Keystore password"
    )

    # Reputation APIs
    etherscan_api_key: str | None = Field(default=None, description="Etherscan API key")
    etherscan_base: str = Field(
        default="https://api.etherscan.io/v2/api", description="Etherscan v2 API base URL"
    )
    moralis_api_key: str | None = Field(default=None, description="Moralis API key")
    moralis_base: str = Field(
        default="https://deep-index.moralis.io/api/v2.2",
        description="Moralis API base URL",
    )
    honeypot_base: str = Field(
        default="https://api.honeypot.is/v2", description="honeypot.is API base URL"
    )
    openai_api_key: str | None = Field(default=None, description="OpenAI API key")
    openai_base: str = Field(
        default="https://api.openai.com/v1", description="OpenAI API base URL"
    )
    openai_model: str = Field(default="gpt-4o-mini", description="Audit model")
    holder_source: Literal["etherscan", "moralis"] = Field(
        default="etherscan", description="Holder-list provider"
    )

    # Trading
    purchase_amount_eth: float = Field(
        default=0.01, gt=0, description="ETH spent per purchase"
    )
    sell_after_seconds: int = Field(
        default=300, ge=0, description="Hold duration before selling"
    )
    exit_strategy: Literal["hold", "time_buckets", "volume_buckets"] = Field(
        default="hold", description="How positions are exited"
    )
    time_bucket_seconds: int = Field(
        default=60, gt=0, description="Width of each staged-exit time bucket"
    )
    buy_slippage: Slippage = Field(
        default=Slippage.TWO_PERCENT, description="Buy slippage tolerance"
    )
    sell_slippage: Slippage = Field(
        default=Slippage.TEN_PERCENT, description="Sell slippage tolerance"
    )
    swap_gas_limit: int = Field(default=300_000, description="Gas limit for swaps")
    approve_gas_limit: int = Field(default=100_000, description="Gas limit for approvals")
    deadline_seconds: int = Field(default=300, description="Swap deadline offset")
    fee_buffer_percent: int = Field(
        default=5, ge=0, description="Buffer added to the next base fee"
    )
    use_flashbots: bool = Field(default=False, description="Submit via bundle relay")
    flashbots_relay_url: str = Field(
        default="https://relay.flashbots.net", description="Bundle relay URL"
    )
    flashbots_signing_key: SecretStr | None = Field(
        default=None, description="Relay reputation key"
    )
    bribe_fraction: float = Field(
        default=0.10, ge=0, le=1, description="Share of simulated cost paid as priority fee"
    )

    # Rate limits
    api_check_limit: int = Field(
        default=10, ge=0, le=255, description="Per-token reputation API budget"
    )
    sell_attempt_limit: int = Field(
        default=10, ge=1, le=255, description="Per-token sell attempts"
    )

    # Validation
    check_honeypot: bool = Field(default=True, description="Run honeypot check")
    check_liquidity_locked: bool = Field(default=True, description="Run LP lock check")
    check_holder_concentration: bool = Field(
        default=False, description="Run holder concentration check"
    )
    check_code_audit: bool = Field(default=False, description="Run LLM code audit")
    liquidity_lock_percent: int = Field(
        default=90, ge=0, le=100, description="Required locked share of LP supply"
    )
    holder_threshold_percent: int = Field(
        default=10, ge=0, le=100, description="Max share held by a single holder"
    )
    contract_size_limit: int = Field(
        default=15_000, description="Largest source sent for audit (characters)"
    )
    token_blacklist: list[str] = Field(
        default_factory=lambda: ["CHILLI"], description="Symbols never traded"
    )
    simulation_fund_eth: float = Field(
        default=100.0, description="Synthetic ETH given to the dry-run account"
    )
    simulation_account: str = Field(
        default="0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266",
        description="Account impersonated by dry runs",
    )
    anvil_path: str = Field(default="anvil", description="anvil executable")

    # Liquidity tiers (ETH, inclusive lower bounds)
    liquidity_very_low_eth: float = Field(default=2.0, description="VeryLow threshold")
    liquidity_low_eth: float = Field(default=10.0, description="Low threshold")
    liquidity_medium_eth: float = Field(default=15.0, description="Medium threshold")
    liquidity_high_eth: float = Field(default=20.0, description="High threshold")
    min_reserve_eth_factor: int = Field(
        default=10, description="Reserve must exceed trade size by this factor"
    )

    # Notifications
    telegram_bot_token: str | None = Field(
        default=None, description="Telegram bot token"
    )
    telegram_admin_ids: list[int] = Field(
        default_factory=list, description="Telegram admin user IDs"
    )
    stats_every_blocks: int = Field(
        default=30, gt=0, description="Blocks between stats log lines"
    )

    # Data storage
    database_url: str = Field(
        default="sqlite+aiosqlite:///./sniper.sqlite",
        description="Database connection URL",
    )
    parquet_dir: str = Field(
        default="./data_parquet", description="Directory for Parquet data files"
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def _check_consistency(self) -> "AppSettings":
        if not (
            self.liquidity_very_low_eth
            <= self.liquidity_low_eth
            <= self.liquidity_medium_eth
            <= self.liquidity_high_eth
        ):
            raise ValueError("Liquidity tier thresholds must be non-decreasing")
        if self.exit_strategy == "volume_buckets" and not self.dry_run:
            raise ValueError("volume_buckets exit strategy is only valid with dry_run")
        return self

    @property
    def chain_id(self) -> int:
        return CHAIN_IDS[self.chain]

    @property
    def purchase_amount_wei(self) -> int:
        return to_wei(self.purchase_amount_eth, "ether")

    @property
    def simulation_fund_wei(self) -> int:
        return to_wei(self.simulation_fund_eth, "ether")

    @property
    def effective_fork_url(self) -> str:
        return self.fork_url or self.rpc_url

    def contract(self, name: str) -> str:
        """Resolve a contract address, honouring overrides."""
        address = self.contracts.get(name) or CHAIN_CONTRACTS[self.chain][name]
        return address.lower()

    def lockers(self) -> list[str]:
        """Lowercase LP lock/burn addresses for the configured chain."""
        lockers = self.token_lockers or TOKEN_LOCKERS[self.chain]
        return [address.lower() for address in lockers]

    def tier_thresholds_wei(self) -> tuple[int, int, int, int]:
        """VeryLow, Low, Medium, High thresholds in wei."""
        return (
            to_wei(self.liquidity_very_low_eth, "ether"),
            to_wei(self.liquidity_low_eth, "ether"),
            to_wei(self.liquidity_medium_eth, "ether"),
            to_wei(self.liquidity_high_eth, "ether"),
        )


def load_settings(profile: str, yaml_path: str) -> AppSettings:
    """Build settings for ``profile`` from a YAML file.

    The paper profile always simulates and the prod profile always trades;
    dev keeps whatever ``dry_run`` the file sets.

    Args:
        profile: One of dev, paper, prod
        yaml_path: YAML file with the base values

    Raises:
        FileNotFoundError: The YAML file is missing
        ValueError: Unknown profile or unparseable YAML
        ValidationError: Values fail validation
    """
    if profile not in PROFILE_DRY_RUN:
        raise ValueError(f"Invalid profile {profile!r}, expected dev, paper or prod")

    yaml_file = Path(yaml_path)
    if not yaml_file.is_file():
        raise FileNotFoundError(f"No settings file at {yaml_path}")

    try:
        with open(yaml_file, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        yaml_config["env"] = profile
        if PROFILE_DRY_RUN[profile] is not None:
            yaml_config["dry_run"] = PROFILE_DRY_RUN[profile]

        settings = AppSettings(**yaml_config)

        logger.info(
            "Settings loaded",
            profile=profile,
            source=yaml_path,
            dry_run=settings.dry_run,
            chain=settings.chain,
            venue=settings.venue,
            rpc_host=urlsplit(settings.rpc_url).hostname,
        )

        return settings

    except yaml.YAMLError as e:
        logger.error("Settings file is not valid YAML", source=yaml_path, error=str(e))
        raise ValueError(f"Invalid YAML in {yaml_path}: {e}") from e
    except ValidationError as e:
        logger.error("Settings rejected", profile=profile, errors=e.error_count())
        raise
