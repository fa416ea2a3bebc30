"""Notification dispatch module."""

from .notification_service import (
    NotificationType,
    NotificationEvent,
    NotificationProvider,
    WebhookProvider,
    LogProvider,
    NotificationService,
    get_notification_service,
)

__all__ = [
    "NotificationType",
    "NotificationEvent",
    "NotificationProvider",
    "WebhookProvider",
    "LogProvider",
    "NotificationService",
    "get_notification_service",
]
