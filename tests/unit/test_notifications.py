"""
BETSYNC - Notification Service Unit Tests
"""

import json

import httpx
import pytest

from app.services.notifications.notification_service import (
    LogProvider,
    NotificationEvent,
    NotificationProvider,
    NotificationService,
    NotificationType,
    WebhookProvider,
)

# Test configuration
pytestmark = pytest.mark.unit


class BrokenProvider(NotificationProvider):
    def is_configured(self) -> bool:
        return True

    async def send(self, event):
        raise RuntimeError("smtp down")


BET = {"id": "bet-1", "bet_type": "parlay", "total_stake": 50.0, "potential_payout": 238.5}


class TestNotificationService:
    """Test fire-and-forget dispatch."""

    @pytest.mark.asyncio
    async def test_bet_placed_is_recorded_after_drain(self):
        service = NotificationService(LogProvider())

        service.bet_placed("user-1", BET)
        await service.drain()

        history = service.get_history()
        assert len(history) == 1
        assert history[0]["type"] == "bet_placed"
        assert history[0]["payload"]["bet_id"] == "bet-1"

    @pytest.mark.asyncio
    async def test_failing_provider_never_raises(self):
        service = NotificationService(BrokenProvider())

        delivered = await service.notify(NotificationEvent(NotificationType.BET_PLACED, "user-1"))
        service.bet_placed("user-1", BET)
        await service.drain()

        assert delivered is False
        assert service.get_history() == []

    def test_defaults_to_log_provider_without_webhook(self):
        assert isinstance(NotificationService().provider, LogProvider)


class TestWebhookProvider:
    """Test webhook delivery."""

    @pytest.mark.asyncio
    async def test_posts_event_payload(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(204)

        provider = WebhookProvider(url="https://hooks.test/bets", transport=httpx.MockTransport(handler))
        service = NotificationService(provider)

        service.bet_placed("user-1", BET)
        await service.drain()

        assert seen[0]["type"] == "bet_placed"
        assert seen[0]["user_id"] == "user-1"
        assert seen[0]["payload"]["potential_payout"] == 238.5

    @pytest.mark.asyncio
    async def test_http_error_is_a_failed_delivery(self):
        provider = WebhookProvider(
            url="https://hooks.test/bets",
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )
        service = NotificationService(provider)

        assert await service.notify(NotificationEvent(NotificationType.BET_PLACED, "user-1")) is False

    def test_unconfigured_without_url(self):
        assert not WebhookProvider(url="").is_configured()
