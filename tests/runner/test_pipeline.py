"""Tests for sniper assembly and lifecycle."""

from unittest.mock import AsyncMock

import pytest

from sniper.config.settings import AppSettings
from sniper.core.types import Token, TokenState
from sniper.exec.executor import LiveTradeExecutor
from sniper.exec.flashbots import FlashbotsTradeExecutor
from sniper.exec.paper import PaperTradeExecutor
from sniper.runner.pipeline import NoopAlertSink, SniperApp
from sniper.verify.etherscan import EtherscanClient
from sniper.verify.honeypot import HoneypotIsClient

RPC_URL = "https://eth.example.org"
PRIVATE_KEY = "0x" + "4c" * 32


@pytest.fixture
def make_settings(tmp_path, monkeypatch):
    """Settings factory writing storage under a temp directory."""
    for name in ("ETHERSCAN_API_KEY", "MORALIS_API_KEY", "OPENAI_API_KEY", "PRIVATE_KEY"):
        monkeypatch.delenv(name, raising=False)

    def _make(**overrides) -> AppSettings:
        fields = {
            "env": "paper",
            "rpc_url": RPC_URL,
            "database_url": f"sqlite+aiosqlite:///{tmp_path / 'sniper.sqlite'}",
            "parquet_dir": str(tmp_path / "parquet"),
        }
        fields.update(overrides)
        return AppSettings(**fields)

    return _make


class TestAssembly:
    """Test component wiring from settings."""

    def test_paper_mode(self, make_settings):
        app = SniperApp(make_settings())

        components = app.components
        assert isinstance(components["executor"], PaperTradeExecutor)
        assert isinstance(components["alerts"], NoopAlertSink)
        assert [type(client) for client in components["api_clients"]] == [HoneypotIsClient]
        assert components["pipeline"].lock_checker is None
        assert components["detector"].source_code is None
        assert "wallet" not in components

    def test_etherscan_shared_as_holder_source(self, make_settings):
        """Etherscan serves both source code and LP holders and is closed once."""
        app = SniperApp(make_settings(etherscan_api_key="key"))

        clients = app.components["api_clients"]
        assert sum(isinstance(client, EtherscanClient) for client in clients) == 1
        assert app.components["pipeline"].lock_checker is not None
        assert isinstance(app.components["detector"].source_code, EtherscanClient)

    def test_v3_skips_lock_check(self, make_settings):
        app = SniperApp(make_settings(venue="uniswap_v3", etherscan_api_key="key"))

        assert app.components["pipeline"].lock_checker is None

    def test_holder_check_enabled(self, make_settings):
        app = SniperApp(
            make_settings(etherscan_api_key="key", check_holder_concentration=True)
        )

        assert app.components["pipeline"].holder_checker is not None


class TestLiveTradingSafety:
    """Test live-mode guards."""

    def test_requires_wallet(self, make_settings):
        with pytest.raises(ValueError, match="requires a wallet"):
            SniperApp(make_settings(env="prod", dry_run=False))

    def test_rejects_localhost(self, make_settings):
        with pytest.raises(ValueError, match="localhost"):
            SniperApp(
                make_settings(
                    env="prod",
                    dry_run=False,
                    rpc_url="http://127.0.0.1:8545",
                    private_key=PRIVATE_KEY,
                )
            )

    def test_devnet_override(self, make_settings):
        app = SniperApp(
            make_settings(
                env="prod",
                dry_run=False,
                rpc_url="http://127.0.0.1:8545",
                allow_devnet=True,
                private_key=PRIVATE_KEY,
            )
        )

        assert type(app.components["executor"]) is LiveTradeExecutor
        assert "nonces" in app.components

    def test_flashbots_mainnet_only(self, make_settings):
        with pytest.raises(ValueError, match="only available on mainnet"):
            SniperApp(
                make_settings(
                    env="prod",
                    dry_run=False,
                    chain="base",
                    use_flashbots=True,
                    private_key=PRIVATE_KEY,
                )
            )

    def test_flashbots_executor(self, make_settings):
        app = SniperApp(
            make_settings(
                env="prod", dry_run=False, use_flashbots=True, private_key=PRIVATE_KEY
            )
        )

        assert isinstance(app.components["executor"], FlashbotsTradeExecutor)
        assert "relay" in app.components


class TestShutdown:
    """Test stop behaviour."""

    @pytest.mark.asyncio
    async def test_stop_snapshots_registry(self, make_settings):
        app = SniperApp(make_settings())
        await app.start()
        registry = app.components["registry"]
        await registry.insert_or_get(
            "0x" + "ab" * 20,
            Token(address="0x" + "ab" * 20, pair_address="0x" + "cd" * 20, is_token_0=True),
        )

        await app.stop()
        await app.stop()

        snapshot = await app.components["storage"].load_state_json("registry")
        assert len(snapshot) == 1
        assert snapshot[0]["state"] == TokenState.DETECTED.value
        assert app.running is False

    @pytest.mark.asyncio
    async def test_stop_alerts_and_closes_clients(self, make_settings):
        app = SniperApp(make_settings(etherscan_api_key="key"))
        await app.start()
        alerts = AsyncMock(spec=NoopAlertSink)
        app.components["alerts"] = alerts
        for client in app.components["api_clients"]:
            client.close = AsyncMock()

        await app.stop()

        alerts.push.assert_awaited_once_with("🛑 Sniper stopped")
        for client in app.components["api_clients"]:
            client.close.assert_awaited_once()
