"""Process entry point: builds the sniper from settings and runs it until signalled."""

import argparse
import asyncio
import signal
import sys
from typing import Any

import structlog

from ..alerts.telegram import TelegramAlertSink
from ..chain.gateway import RpcChainGateway
from ..chain.rpc import EthRpcClient
from ..config.settings import AppSettings, load_settings
from ..core.interfaces import AlertSink, HolderSource, TradeExecutor
from ..exec.executor import LiveTradeExecutor
from ..exec.flashbots import FlashbotsRelay, FlashbotsTradeExecutor
from ..exec.paper import PaperTradeExecutor
from ..exec.signers import WalletSigner
from ..exec.strategy import ExitStrategy
from ..exec.wallet import LiveWallet
from ..market.venues import make_venue
from ..persist.storage import SQLiteStorage
from ..registry.nonce import NonceManager
from ..registry.tokens import TokenRegistry
from ..sim.anvil import AnvilFactory
from ..sim.dry_run import DryRunSimulator
from ..verify.etherscan import EtherscanClient
from ..verify.holders import HolderConcentrationChecker
from ..verify.honeypot import HoneypotIsClient
from ..verify.lock import LiquidityLockChecker
from ..verify.moralis import MoralisClient
from ..verify.openai_audit import OpenAICodeAuditor
from ..verify.pipeline import ValidationPipeline
from .detector import TokenDetector
from .scheduler import LifecycleScheduler

logger = structlog.get_logger(__name__)


class NoopAlertSink(AlertSink):
    """Writes alerts to the log when no Telegram bot is configured."""

    async def push(self, message: str) -> None:
        logger.info("Alert", message=message, delivered=False)


class SniperApp:
    """Wires every component together and runs detection and the scheduler."""

    def __init__(self, settings: AppSettings) -> None:
        """Initialize the sniper with assembled components."""
        self.settings = settings
        self.running = False
        self._stopped = False
        self._tasks: list[asyncio.Task] = []

        if not settings.dry_run:
            self._check_live_settings(settings)

        self.components = self._assemble(settings)

        logger.info(
            "Sniper initialized",
            dry_run=settings.dry_run,
            chain=settings.chain,
            venue=settings.venue,
            exit_strategy=settings.exit_strategy,
        )

    def _check_live_settings(self, settings: AppSettings) -> None:
        """Reject live settings that would trade unsafely.

        Raises:
            ValueError: On the first failed check
        """
        if settings.private_key is None and settings.keystore_path is None:
            raise ValueError(
                "Live trading requires a wallet. Configure private_key or keystore_path."
            )

        local_node = any(host in settings.rpc_url for host in ("localhost", "127.0.0.1"))
        if local_node and not settings.allow_devnet:
            raise ValueError(
                f"Refusing to send real transactions through a localhost node ({settings.rpc_url}); "
                "set allow_devnet=true for a devnet"
            )
        if local_node:
            logger.warning("Live trades go to a local devnet", rpc_url=settings.rpc_url)

        if settings.use_flashbots and settings.chain != "mainnet":
            raise ValueError("Flashbots bundles are only available on mainnet")

        logger.critical(
            "Live trading: real ETH will be spent",
            chain=settings.chain,
            venue=settings.venue,
            rpc_url=settings.rpc_url,
            purchase_amount_eth=settings.purchase_amount_eth,
            buy_slippage=settings.buy_slippage.value,
            sell_slippage=settings.sell_slippage.value,
            use_flashbots=settings.use_flashbots,
        )

    def _assemble(self, settings: AppSettings) -> dict[str, Any]:
        """Build the component graph, keyed by role."""
        components: dict[str, Any] = {}

        # Chain access
        rpc = EthRpcClient(rpc_url=settings.rpc_url)
        gateway = RpcChainGateway(rpc, poll_interval=settings.block_poll_interval)
        venue = make_venue(settings, gateway)
        registry = TokenRegistry()
        components.update(rpc=rpc, gateway=gateway, venue=venue, registry=registry)
        logger.info("Using venue", venue=venue.name, factory=venue.creation_address)

        # Reputation APIs
        etherscan = None
        if settings.etherscan_api_key:
            etherscan = EtherscanClient(
                api_key=settings.etherscan_api_key,
                base_url=settings.etherscan_base,
                chain_id=settings.chain_id,
            )
            logger.info("Added Etherscan client")
        else:
            logger.warning("Etherscan API key not provided, unverified tokens are not skipped")

        holder_source: HolderSource | None = etherscan
        if settings.holder_source == "moralis":
            if settings.moralis_api_key:
                holder_source = MoralisClient(
                    api_key=settings.moralis_api_key,
                    base_url=settings.moralis_base,
                    chain_id=settings.chain_id,
                )
                logger.info("Using Moralis holder source")
            else:
                holder_source = None
                logger.warning("Moralis API key not provided, holder checks disabled")

        honeypot = None
        if settings.check_honeypot:
            honeypot = HoneypotIsClient(
                base_url=settings.honeypot_base, chain_id=settings.chain_id
            )
            logger.info("Added honeypot check")

        lock_checker = None
        if settings.check_liquidity_locked:
            if settings.venue != "uniswap_v2":
                logger.warning("LP lock check needs an LP token, skipping it", venue=settings.venue)
            elif holder_source is None:
                logger.warning("No holder source configured, skipping LP lock check")
            else:
                lock_checker = LiquidityLockChecker(
                    gateway,
                    holder_source,
                    lockers=settings.lockers(),
                    threshold_percent=settings.liquidity_lock_percent,
                )
                logger.info("Added LP lock check")

        holder_checker = None
        if settings.check_holder_concentration:
            if holder_source is None:
                logger.warning("No holder source configured, skipping holder check")
            else:
                holder_checker = HolderConcentrationChecker(
                    gateway,
                    holder_source,
                    excluded=settings.lockers(),
                    threshold_percent=settings.holder_threshold_percent,
                )
                logger.info("Added holder concentration check")

        auditor = None
        if settings.check_code_audit:
            if settings.openai_api_key:
                auditor = OpenAICodeAuditor(
                    api_key=settings.openai_api_key,
                    model=settings.openai_model,
                    base_url=settings.openai_base,
                )
                logger.info("Added code audit", model=settings.openai_model)
            else:
                logger.warning("OpenAI API key not provided, skipping code audit")

        # holder_source may be the Etherscan client itself
        components["api_clients"] = list(
            dict.fromkeys(
                client
                for client in (etherscan, holder_source, honeypot, auditor)
                if client is not None
            )
        )

        # Dry-run simulation
        simulator = DryRunSimulator(
            factory=AnvilFactory(
                account=settings.simulation_account, anvil_path=settings.anvil_path
            ),
            venue_factory=lambda fork_gateway: make_venue(settings, fork_gateway),
            fork_url=settings.effective_fork_url,
            buy_amount=settings.purchase_amount_wei,
            fund_amount=settings.simulation_fund_wei,
            account=settings.simulation_account,
            swap_gas_limit=settings.swap_gas_limit,
            approve_gas_limit=settings.approve_gas_limit,
            deadline_seconds=settings.deadline_seconds,
        )

        pipeline = ValidationPipeline(
            registry,
            venue,
            simulator,
            tier_thresholds=settings.tier_thresholds_wei(),
            honeypot=honeypot,
            lock_checker=lock_checker,
            holder_checker=holder_checker,
            auditor=auditor,
            api_check_limit=settings.api_check_limit,
            contract_size_limit=settings.contract_size_limit,
        )
        components["pipeline"] = pipeline

        executor = self._create_executor(settings, components)
        components["executor"] = executor

        strategy = ExitStrategy(
            executor,
            registry,
            mode=settings.exit_strategy,
            hold_seconds=settings.sell_after_seconds,
            bucket_seconds=settings.time_bucket_seconds,
            sell_attempt_limit=settings.sell_attempt_limit,
        )

        telegram_ready = bool(settings.telegram_bot_token and settings.telegram_admin_ids)
        components["alerts"] = (
            TelegramAlertSink(settings.telegram_bot_token, settings.telegram_admin_ids)
            if telegram_ready
            else NoopAlertSink()
        )
        logger.info("Alerts routed", telegram=telegram_ready)

        components["storage"] = SQLiteStorage(
            db_path=settings.database_url.removeprefix("sqlite+aiosqlite:///"),
            parquet_dir=settings.parquet_dir,
            enable_parquet=settings.parquet_dir is not None,
        )

        components["scheduler"] = LifecycleScheduler(
            registry,
            pipeline,
            executor,
            strategy,
            components["storage"],
            components["alerts"],
            purchase_amount=settings.purchase_amount_wei,
            stats_every_blocks=settings.stats_every_blocks,
        )
        components["detector"] = TokenDetector(
            registry,
            venue,
            gateway,
            weth=settings.contract("weth"),
            source_code=etherscan,
            blacklist=settings.token_blacklist,
        )

        return components

    def _create_executor(
        self, settings: AppSettings, components: dict[str, Any]
    ) -> TradeExecutor:
        """Create the trade executor for the configured mode.

        Raises:
            ValueError: If live trading has no usable wallet
        """
        venue = components["venue"]
        if settings.dry_run:
            logger.info("Trading on paper", executor="paper")
            return PaperTradeExecutor(venue, min_reserve_factor=settings.min_reserve_eth_factor)

        signer = WalletSigner(
            private_key=settings.private_key.get_secret_value()
            if settings.private_key
            else None,
            keystore_path=settings.keystore_path,
            keystore_password=settings.keystore_password.get_secret_value()
            if settings.keystore_password
            else None,
        )
        gateway = components["gateway"]
        wallet = LiveWallet(gateway, signer, chain_id=settings.chain_id)
        nonces = NonceManager(wallet.address)
        components.update(wallet=wallet, nonces=nonces)

        executor_args = dict(
            chain=settings.chain,
            buy_slippage=settings.buy_slippage,
            sell_slippage=settings.sell_slippage,
            swap_gas_limit=settings.swap_gas_limit,
            approve_gas_limit=settings.approve_gas_limit,
            deadline_seconds=settings.deadline_seconds,
            fee_buffer_percent=settings.fee_buffer_percent,
        )

        logger.critical(
            "Live wallet loaded",
            address=wallet.address,
            chain_id=settings.chain_id,
            use_flashbots=settings.use_flashbots,
        )

        if settings.use_flashbots:
            relay = FlashbotsRelay(
                settings.flashbots_relay_url,
                signing_key=settings.flashbots_signing_key.get_secret_value()
                if settings.flashbots_signing_key
                else None,
            )
            components["relay"] = relay
            logger.info("Trading through private bundles", executor="flashbots")
            return FlashbotsTradeExecutor(
                gateway,
                wallet,
                venue,
                components["registry"],
                nonces,
                relay=relay,
                bribe_fraction=settings.bribe_fraction,
                **executor_args,
            )

        logger.info("Trading through the public mempool", executor="live")
        return LiveTradeExecutor(
            gateway, wallet, venue, components["registry"], nonces, **executor_args
        )

    async def start(self) -> None:
        """Prepare storage and the wallet nonce before the first block."""
        await self.components["storage"].initialize()
        if "nonces" in self.components:
            await self.components["nonces"].initialize(self.components["gateway"])

    async def run_forever(self) -> None:
        """Run detection and the lifecycle scheduler until stopped."""
        logger.info("Starting sniper", dry_run=self.settings.dry_run)
        self.running = True

        await self.start()
        await self.components["alerts"].push(
            f"🤖 Sniper started in {'simulation' if self.settings.dry_run else 'live'} mode "
            f"on {self.settings.chain} ({self.settings.venue})"
        )

        gateway = self.components["gateway"]
        scheduler = self.components["scheduler"]
        self._tasks = [
            asyncio.create_task(self.components["detector"].run()),
            asyncio.create_task(scheduler.run(gateway.subscribe_new_blocks())),
        ]

        try:
            await asyncio.gather(*self._tasks)
        except asyncio.CancelledError:
            logger.info("Sniper cancelled")
        except Exception as e:
            logger.error("Sniper error", error=str(e), error_type=type(e).__name__)
            await self.components["alerts"].push(f"🚨 Sniper error: {str(e)}")
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop the sniper, snapshotting the registry for the next run."""
        if self._stopped:
            return
        self._stopped = True
        logger.info("Stopping sniper")
        self.running = False

        for task in self._tasks:
            task.cancel()

        registry = self.components["registry"]
        storage = self.components["storage"]
        tokens = await registry.all()
        await storage.save_state_json(
            "registry", [token.model_dump(mode="json") for token in tokens]
        )
        logger.info("Registry snapshot saved", tokens=len(tokens))

        await self.components["scheduler"].log_stats()
        await self.components["alerts"].push("🛑 Sniper stopped")

        # Close network clients and storage
        for client in self.components["api_clients"]:
            await client.close()
        for name in ("relay", "rpc"):
            if name in self.components:
                await self.components[name].close()
        if isinstance(self.components["alerts"], TelegramAlertSink):
            await self.components["alerts"].close()
        await storage.close()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Snipe newly created Uniswap pairs and exit on a schedule"
    )
    parser.add_argument("--config", default="configs/paper.yaml", help="YAML settings file")
    parser.add_argument(
        "--profile",
        choices=["dev", "paper", "prod"],
        default="paper",
        help="Settings section to load",
    )
    return parser.parse_args(argv)


async def main() -> None:
    args = parse_args()

    try:
        settings = load_settings(args.profile, args.config)
        app = SniperApp(settings)

        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, lambda: asyncio.create_task(app.stop()))

        await app.run_forever()

    except Exception as e:
        logger.error("Sniper failed to start", profile=args.profile, error=str(e))
        sys.exit(1)


def cli() -> None:
    """Console-script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    cli()
