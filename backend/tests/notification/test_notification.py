"""
Notification tests.

Covers:
- LoggingNotificationPort / WebhookNotificationPort: send, failure, no URL
- build_notification_port: adapter selection from settings
- render_message: the four notification events
- NotificationDispatcher: recipient handling, port failures never propagate
- register_notification_handlers: wiring onto an event bus
"""
from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import httpx
import pytest

from frontdesk.models.events import (
    EventType, CheckoutCompletedData, OperatorCheckoutSummaryData, PaymentRecordedData
)
from frontdesk.notification import (
    LoggingNotificationPort, NotificationPort, WebhookNotificationPort,
    build_notification_port, register_notification_handlers
)
from frontdesk.notification.handlers import NotificationDispatcher
from frontdesk.notification.messages import render_message
from frontdesk.services.event_bus import Event, EventBus


class RecordingPort(NotificationPort):
    """Collects messages instead of sending them"""

    def __init__(self, result=True, error=None):
        self.sent = []
        self.result = result
        self.error = error

    def send(self, recipient, subject, content, extra=None):
        if self.error:
            raise self.error
        self.sent.append((recipient, subject, content, extra))
        return self.result

    def get_channel_type(self):
        return "recording"


def payment_event(recipient="+59171111111"):
    return Event(
        event_type=EventType.PAYMENT_RECORDED,
        timestamp=datetime.now(),
        data=PaymentRecordedData(
            booking_id=1, booking_code="BK1", payment_id=7, room_number="R101",
            customer_name="Ana Rojas", recipient_phone=recipient,
            amount=Decimal("40.00"), payment_method="cash", total_paid=Decimal("40.00"),
            total_amount=Decimal("100.00"), balance=Decimal("60.00"), cashier_id=2
        ).to_dict(),
        source="ledger_service",
        operator_id=1
    )


# ── Ports ────────────────────────────────────


class TestLoggingPort:

    def test_send(self):
        port = LoggingNotificationPort()
        assert port.send("+591", "Subject", "Body") is True
        assert port.get_channel_type() == "log"


class TestWebhookPort:

    def _mock_client(self):
        mock_client = MagicMock()
        mock_client.post.return_value = MagicMock()
        return mock_client

    def test_send_success(self):
        port = WebhookNotificationPort(webhook_url="https://gateway.example.com/send")
        mock_client = self._mock_client()

        with patch("frontdesk.notification.port.httpx.Client") as MockClient:
            MockClient.return_value.__enter__ = MagicMock(return_value=mock_client)
            MockClient.return_value.__exit__ = MagicMock(return_value=False)

            result = port.send("+59171111111", "Payment confirmation", "Hello",
                               extra={"event_type": "payment_recorded", "data": {"booking_id": 1}})

        assert result is True
        payload = mock_client.post.call_args.kwargs["json"]
        assert payload == {
            "recipient": "+59171111111",
            "subject": "Payment confirmation",
            "message": "Hello",
            "event_type": "payment_recorded",
            "data": {"booking_id": 1},
        }

    def test_http_error_returns_false(self):
        port = WebhookNotificationPort(webhook_url="https://gateway.example.com/send")
        mock_client = self._mock_client()
        mock_client.post.side_effect = httpx.ConnectError("connection refused")

        with patch("frontdesk.notification.port.httpx.Client") as MockClient:
            MockClient.return_value.__enter__ = MagicMock(return_value=mock_client)
            MockClient.return_value.__exit__ = MagicMock(return_value=False)

            assert port.send("+591", "S", "C") is False

    def test_no_url(self):
        assert WebhookNotificationPort().send("+591", "S", "C") is False


class TestBuildPort:

    def test_default_is_log(self):
        config = SimpleNamespace(NOTIFICATION_BACKEND="log", NOTIFICATION_WEBHOOK_URL=None,
                                 NOTIFICATION_TIMEOUT_SECONDS=5.0)
        assert build_notification_port(config).get_channel_type() == "log"

    def test_webhook(self):
        config = SimpleNamespace(NOTIFICATION_BACKEND="webhook",
                                 NOTIFICATION_WEBHOOK_URL="https://gateway.example.com",
                                 NOTIFICATION_TIMEOUT_SECONDS=2.0)
        port = build_notification_port(config)
        assert isinstance(port, WebhookNotificationPort)
        assert port.timeout == 2.0

    def test_webhook_without_url_falls_back_to_log(self):
        config = SimpleNamespace(NOTIFICATION_BACKEND="webhook", NOTIFICATION_WEBHOOK_URL=None,
                                 NOTIFICATION_TIMEOUT_SECONDS=5.0)
        assert build_notification_port(config).get_channel_type() == "log"


# ── Messages ────────────────────────────────────


class TestMessages:

    def test_payment_message(self):
        subject, content = render_message(EventType.PAYMENT_RECORDED, payment_event().data)
        assert subject == "Payment confirmation"
        assert "Bs. 40.00" in content
        assert "Balance: Bs. 60.00" in content

    def test_mixed_payment_message_lists_splits(self):
        data = dict(payment_event().data, splits=[
            {"payment_method": "cash", "amount": "15.00"},
            {"payment_method": "card", "amount": "25.00"},
        ])
        _, content = render_message(EventType.PAYMENT_RECORDED, data)
        assert "- Paid with: cash Bs. 15.00, card Bs. 25.00" in content

    def test_checkout_message(self):
        data = CheckoutCompletedData(
            booking_code="BK1", room_number="R101", customer_name="Ana Rojas",
            check_in=datetime(2026, 3, 1, 14, 0), check_out=datetime(2026, 3, 2, 11, 0),
            total_amount=Decimal("122.00")
        ).to_dict()
        subject, content = render_message("checkout_completed", data)
        assert subject == "Check-out completed"
        assert "01/03/2026" in content
        assert "Bs. 122.00" in content

    def test_operator_summary_lists_charges(self):
        data = OperatorCheckoutSummaryData(
            booking_code="BK1", customer_name="Ana Rojas", document_type="CI",
            document_number="7654321", room_number="R101", total_amount=Decimal("122.00"),
            payment_methods=["cash", "card"],
            charges=[{"description": "Soda", "quantity": 1, "total_amount": Decimal("22.00")}]
        ).to_dict()
        _, content = render_message(EventType.OPERATOR_CHECKOUT_SUMMARY, data)
        assert "Document: CI 7654321" in content
        assert "Payment method: cash, card" in content
        assert "- Soda x1: Bs. 22.00" in content
        assert "Age: N/A" in content

    def test_unknown_event(self):
        with pytest.raises(KeyError):
            render_message(EventType.SHIFT_OPENED, {})


# ── Dispatcher ────────────────────────────────────


class TestDispatcher:

    def test_sends_to_recipient(self):
        port = RecordingPort()
        assert NotificationDispatcher(port)(payment_event()) is True
        recipient, subject, _, extra = port.sent[0]
        assert recipient == "+59171111111"
        assert subject == "Payment confirmation"
        assert extra["event_type"] == "payment_recorded"

    def test_missing_recipient_is_skipped(self):
        port = RecordingPort()
        assert NotificationDispatcher(port)(payment_event(recipient=None)) is False
        assert port.sent == []

    def test_port_failure_is_contained(self):
        port = RecordingPort(error=RuntimeError("gateway down"))
        assert NotificationDispatcher(port)(payment_event()) is False

    def test_registered_on_bus(self):
        bus = EventBus()
        port = RecordingPort()
        register_notification_handlers(bus=bus, port=port)

        bus.publish(payment_event())
        bus.publish(Event(event_type=EventType.SHIFT_OPENED, timestamp=datetime.now(),
                          data={"shift_id": 1}, source="cash_register_service"))

        assert len(port.sent) == 1
        assert bus.get_subscribers()[EventType.CHARGE_ADDED] == ["NotificationDispatcher"]


def test_checkout_notifies_guest_and_operator(db_session, cashier_ctx, room_101, customer):
    """End to end: ledger events reach the port after commit"""
    from frontdesk.models.ontology import PaymentMethod
    from frontdesk.models.schemas import BookingCreate
    from frontdesk.services.ledger_service import LedgerService

    bus = EventBus()
    port = RecordingPort()
    register_notification_handlers(bus=bus, port=port)
    ledger = LedgerService(db_session, event_publisher=bus.publish)

    booking = ledger.create_booking(
        cashier_ctx, BookingCreate(customer_id=customer.id, room_id=room_101.id)
    )
    ledger.apply_payment(cashier_ctx, booking.id, Decimal("100"), PaymentMethod.CASH)
    ledger.checkout(cashier_ctx, booking.id)

    recipients = [(r, s) for r, s, _, _ in port.sent]
    assert recipients == [
        ("+59171111111", "Payment confirmation"),
        ("+59171111111", "Check-out completed"),
        ("+59170000001", "Stay closed"),
    ]
