"""
Outbound notification port - the core only defines the contract; adapters deliver
"""
from frontdesk.notification.port import (
    NotificationPort, LoggingNotificationPort, WebhookNotificationPort,
    build_notification_port
)
from frontdesk.notification.handlers import register_notification_handlers

__all__ = [
    "NotificationPort", "LoggingNotificationPort", "WebhookNotificationPort",
    "build_notification_port", "register_notification_handlers",
]
