"""Tests for Telegram alert delivery."""

import json

import httpx
import pytest
import respx

from sniper.alerts.telegram import MAX_MESSAGE_LENGTH, TelegramAlertSink

SEND_URL = "https://api.telegram.org/bottest_token_123/sendMessage"


class TestTelegramAlertSink:
    """Alerts fan out to every operator chat."""

    @pytest.fixture
    def alert_sink(self):
        """Sink with two operator chats."""
        return TelegramAlertSink(bot_token="test_token_123", admin_user_ids=[12345, 67890])

    def test_initialization(self, alert_sink):
        assert alert_sink.admin_user_ids == [12345, 67890]
        assert alert_sink.base_url == "https://api.telegram.org/bottest_token_123"

    @pytest.mark.asyncio
    async def test_push_to_every_admin(self, alert_sink):
        with respx.mock as respx_mock:
            route = respx_mock.post(SEND_URL).mock(
                return_value=httpx.Response(200, json={"ok": True, "result": {}})
            )

            await alert_sink.push("🟢 <b>Bought</b> SNP")
            await alert_sink.close()

        assert route.call_count == 2
        payloads = [json.loads(call.request.content) for call in route.calls]
        assert [payload["chat_id"] for payload in payloads] == [12345, 67890]
        assert payloads[0]["text"] == "🟢 <b>Bought</b> SNP"
        assert payloads[0]["parse_mode"] == "HTML"

    @pytest.mark.asyncio
    async def test_long_message_truncated(self, alert_sink):
        with respx.mock as respx_mock:
            route = respx_mock.post(SEND_URL).mock(
                return_value=httpx.Response(200, json={"ok": True})
            )

            await alert_sink.push("x" * (MAX_MESSAGE_LENGTH + 100))
            await alert_sink.close()

        text = json.loads(route.calls[0].request.content)["text"]
        assert text.endswith("... (truncated)")
        assert len(text) < MAX_MESSAGE_LENGTH + 100

    @pytest.mark.asyncio
    async def test_failures_do_not_raise(self, alert_sink):
        """One admin failing does not stop delivery to the others."""
        with respx.mock as respx_mock:
            route = respx_mock.post(SEND_URL).mock(
                side_effect=[
                    httpx.Response(200, json={"ok": False, "description": "chat not found"}),
                    httpx.Response(500),
                ]
            )

            await alert_sink.push("alert")
            await alert_sink.close()

        assert route.call_count == 2

    @pytest.mark.asyncio
    async def test_no_admins(self):
        with respx.mock as respx_mock:
            route = respx_mock.post(SEND_URL).mock(
                return_value=httpx.Response(200, json={"ok": True})
            )
            async with TelegramAlertSink("test_token_123", []) as sink:
                await sink.push("alert")

        assert route.call_count == 0
