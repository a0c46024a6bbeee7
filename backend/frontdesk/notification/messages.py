"""
Message templates for the notification events
Payload values arrive already JSON-encoded (amounts as strings, dates as ISO text).
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Tuple

from frontdesk.config import settings
from frontdesk.models.events import EventType


def _amount(value: Any) -> str:
    return f"{settings.CURRENCY_LABEL} {Decimal(str(value or 0)):.2f}"


def _when(value: Any, with_time: bool = False) -> str:
    if not value:
        return "N/A"
    moment = datetime.fromisoformat(value) if isinstance(value, str) else value
    return moment.strftime("%d/%m/%Y %H:%M" if with_time else "%d/%m/%Y")


def _payment_recorded(data: Dict[str, Any]) -> Tuple[str, str]:
    lines = [
        f"Hello {data['customer_name']},",
        "",
        "Your payment was registered.",
        f"- Booking: {data['booking_code']}",
        f"- Room: {data['room_number']}",
        f"- Amount paid: {_amount(data['amount'])}",
    ]
    splits = data.get("splits") or []
    if splits:
        lines.append("- Paid with: " + ", ".join(
            f"{s['payment_method']} {_amount(s['amount'])}" for s in splits
        ))
    lines += [
        f"- Total: {_amount(data['total_amount'])}",
        f"- Balance: {_amount(data['balance'])}",
        "",
        "Thank you!",
    ]
    return "Payment confirmation", "\n".join(lines)


def _charge_added(data: Dict[str, Any]) -> Tuple[str, str]:
    return "Additional charge", "\n".join([
        f"Hello {data['customer_name']},",
        "",
        "A charge was added to your account.",
        f"- Booking: {data['booking_code']}",
        f"- Charge: {_amount(data['charge_amount'])}",
        f"- New total: {_amount(data['total_amount'])}",
    ])


def _checkout_completed(data: Dict[str, Any]) -> Tuple[str, str]:
    return "Check-out completed", "\n".join([
        f"Hello {data['customer_name']},",
        "",
        "Your check-out was processed.",
        f"- Booking: {data['booking_code']}",
        f"- Room: {data['room_number']}",
        f"- Check-in: {_when(data.get('check_in'))}",
        f"- Check-out: {_when(data.get('check_out'))}",
        f"- Total: {_amount(data['total_amount'])}",
        "",
        "We hope to see you again soon.",
    ])


def _operator_checkout_summary(data: Dict[str, Any]) -> Tuple[str, str]:
    lines = [
        f"Guest: {data['customer_name']}",
        f"Room: {data['room_number']}",
        f"Total collected: {_amount(data['total_amount'])}",
        f"Payment method: {', '.join(data.get('payment_methods') or []) or 'N/A'}",
        "",
        f"Document: {data.get('document_type') or ''} {data.get('document_number') or 'N/A'}".strip(),
        f"Age: {data.get('age') or 'N/A'}",
        f"Nationality: {data.get('nationality') or 'N/A'}",
        f"Origin: {data.get('origin') or 'N/A'}",
        "",
        f"Check-in: {_when(data.get('check_in'), with_time=True)}",
        f"Check-out: {_when(data.get('check_out'), with_time=True)}",
    ]
    charges = data.get("charges") or []
    if charges:
        lines.append("")
        lines.append("Extra charges:")
        lines.extend(
            f"- {c['description']} x{c['quantity']}: {_amount(c['total_amount'])}"
            for c in charges
        )
    return "Stay closed", "\n".join(lines)


_TEMPLATES = {
    EventType.PAYMENT_RECORDED.value: _payment_recorded,
    EventType.CHARGE_ADDED.value: _charge_added,
    EventType.CHECKOUT_COMPLETED.value: _checkout_completed,
    EventType.OPERATOR_CHECKOUT_SUMMARY.value: _operator_checkout_summary,
}


def render_message(event_type: str, data: Dict[str, Any]) -> Tuple[str, str]:
    """(subject, content) for a notification event"""
    template = _TEMPLATES.get(getattr(event_type, "value", event_type))
    if template is None:
        raise KeyError(f"No message template for {event_type}")
    return template(data)
