"""
Notification port - outbound, fire-and-forget
The ledger never waits on delivery: adapters report success as a bool and log their
own failures.
"""
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class NotificationPort(ABC):
    """Outbound notification channel"""

    @abstractmethod
    def send(
        self,
        recipient: str,
        subject: str,
        content: str,
        extra: Optional[Dict] = None,
    ) -> bool:
        """Deliver one message

        Args:
            recipient: phone number of the guest or operator
            subject: message title
            content: rendered message body
            extra: event type and raw payload, for adapters that forward structured data

        Returns:
            whether the message was accepted by the channel
        """

    @abstractmethod
    def get_channel_type(self) -> str:
        """Channel identifier, e.g. 'log' or 'webhook'"""


class LoggingNotificationPort(NotificationPort):
    """Writes messages to the application log; the default adapter"""

    def send(self, recipient: str, subject: str, content: str,
             extra: Optional[Dict] = None) -> bool:
        logger.info(f"Notification to {recipient}: [{subject}]\n{content}")
        return True

    def get_channel_type(self) -> str:
        return "log"


class WebhookNotificationPort(NotificationPort):
    """POSTs each message as JSON to a messaging gateway"""

    def __init__(
        self,
        webhook_url: str = "",
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 5.0,
    ):
        self.webhook_url = webhook_url
        self.headers = headers or {"Content-Type": "application/json"}
        self.timeout = timeout

    def send(self, recipient: str, subject: str, content: str,
             extra: Optional[Dict] = None) -> bool:
        extra = extra or {}
        url = extra.get("webhook_url", self.webhook_url)
        if not url:
            logger.error("Webhook URL not configured")
            return False

        payload = {
            "recipient": recipient,
            "subject": subject,
            "message": content,
            "event_type": extra.get("event_type"),
            "data": extra.get("data", {}),
        }

        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(url, json=payload, headers=self.headers)
                resp.raise_for_status()
            logger.info(f"Webhook notification sent to {recipient}: {subject}")
            return True
        except httpx.HTTPError as e:
            logger.warning(f"Failed to send webhook notification to {url}: {e}")
            return False

    def get_channel_type(self) -> str:
        return "webhook"


def build_notification_port(config=None) -> NotificationPort:
    """Adapter selected by NOTIFICATION_BACKEND"""
    if config is None:
        from frontdesk.config import settings as config

    if config.NOTIFICATION_BACKEND == "webhook":
        if not config.NOTIFICATION_WEBHOOK_URL:
            logger.warning("NOTIFICATION_BACKEND=webhook without NOTIFICATION_WEBHOOK_URL, using log")
            return LoggingNotificationPort()
        return WebhookNotificationPort(
            webhook_url=config.NOTIFICATION_WEBHOOK_URL,
            timeout=config.NOTIFICATION_TIMEOUT_SECONDS,
        )
    return LoggingNotificationPort()
