"""
BETSYNC - Notification Dispatch
Fire-and-forget delivery of bettor events to the notification collaborator
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    """Notification event types"""
    BET_PLACED = "bet_placed"


@dataclass
class NotificationEvent:
    """Notification data structure"""
    event_type: NotificationType
    user_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.event_type.value,
            "user_id": self.user_id,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }


class NotificationProvider(ABC):
    """Abstract base class for notification providers"""

    @abstractmethod
    async def send(self, event: NotificationEvent) -> bool:
        """Deliver an event; raise or return False on failure"""

    @abstractmethod
    def is_configured(self) -> bool:
        """Check if provider is configured"""


class WebhookProvider(NotificationProvider):
    """Notification delivery via HTTP webhook"""

    def __init__(self, url: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url if url is not None else settings.NOTIFICATION_WEBHOOK_URL
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.url)

    async def send(self, event: NotificationEvent) -> bool:
        async with httpx.AsyncClient(timeout=settings.NOTIFICATION_TIMEOUT, transport=self._transport) as client:
            response = await client.post(self.url, json=event.to_dict())
            response.raise_for_status()
        logger.info(f"Notification sent: {event.event_type.value} for user {event.user_id}")
        return True


class LogProvider(NotificationProvider):
    """Fallback provider that only records the event in the log"""

    def is_configured(self) -> bool:
        return True

    async def send(self, event: NotificationEvent) -> bool:
        logger.info(f"Notification (log only): {event.event_type.value} for user {event.user_id}")
        return True


class NotificationService:
    """Non-blocking notification dispatch; failures are logged, never raised to callers"""

    def __init__(self, provider: Optional[NotificationProvider] = None):
        if provider is None:
            webhook = WebhookProvider()
            provider = webhook if webhook.is_configured() else LogProvider()
        self.provider = provider
        self._pending: Set[asyncio.Task] = set()
        self._history: List[NotificationEvent] = []
        self._max_history = 1000

    async def notify(self, event: NotificationEvent) -> bool:
        """Deliver one event, returning False instead of raising on failure"""
        try:
            delivered = await self.provider.send(event)
        except Exception as e:
            logger.error(f"Notification {event.event_type.value} for user {event.user_id} failed: {e}")
            return False

        self._history.append(event)
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history:]
        return delivered

    def dispatch(self, event: NotificationEvent) -> asyncio.Task:
        """Schedule delivery without waiting for it"""
        task = asyncio.create_task(self.notify(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for in-flight notifications (shutdown and tests)"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def get_history(self, limit: int = 100) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self._history[-limit:]]

    def bet_placed(self, user_id: str, bet: Dict[str, Any]) -> asyncio.Task:
        return self.dispatch(NotificationEvent(
            event_type=NotificationType.BET_PLACED,
            user_id=user_id,
            payload={
                "bet_id": bet.get("id"),
                "bet_type": bet.get("bet_type"),
                "total_stake": bet.get("total_stake"),
                "potential_payout": bet.get("potential_payout"),
            },
        ))


notification_service: Optional[NotificationService] = None


def get_notification_service() -> NotificationService:
    global notification_service
    if notification_service is None:
        notification_service = NotificationService()
    return notification_service
