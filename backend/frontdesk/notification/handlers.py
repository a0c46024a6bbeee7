"""
Bridges the event bus to the notification port
Runs after the ledger transaction committed; nothing here can fail the operation.
"""
import logging
from typing import Optional

from frontdesk.models.events import NOTIFICATION_EVENTS
from frontdesk.notification.messages import render_message
from frontdesk.notification.port import NotificationPort, build_notification_port
from frontdesk.services.event_bus import Event, EventBus, event_bus

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Renders notification events and hands them to the port"""

    def __init__(self, port: NotificationPort):
        self.port = port

    def __call__(self, event: Event) -> bool:
        data = event.data or {}
        recipient = data.get("recipient_phone")
        if not recipient:
            logger.info(f"No recipient phone for {event.event_type} ({data.get('booking_code')}), skipped")
            return False

        try:
            subject, content = render_message(event.event_type, data)
            return self.port.send(
                recipient, subject, content,
                extra={"event_type": _event_name(event.event_type), "data": data}
            )
        except Exception as e:
            logger.warning(
                f"Notification for {event.event_type} via {self.port.get_channel_type()} failed: {e}"
            )
            return False


def _event_name(event_type) -> str:
    return getattr(event_type, "value", event_type)


def register_notification_handlers(bus: Optional[EventBus] = None,
                                   port: Optional[NotificationPort] = None) -> NotificationDispatcher:
    """Subscribe a dispatcher to every notification event"""
    bus = bus or event_bus
    dispatcher = NotificationDispatcher(port or build_notification_port())
    for event_type in NOTIFICATION_EVENTS:
        bus.subscribe(event_type, dispatcher)
    logger.info(f"Notification handlers registered ({dispatcher.port.get_channel_type()})")
    return dispatcher
