"""Best-effort WhatsApp notifications for bills and payments.

Messages go through a WAHA-compatible HTTP API (``POST /api/sendText``).
Sending is disabled unless ``WHATSAPP_API_URL`` is configured. Nothing in
here raises: callers get a ``NotificationResult`` and the ledger write
that triggered the notification is never affected by it.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

import httpx

from app.config import settings
from app.metrics import NOTIFICATIONS_SENT

logger = logging.getLogger(__name__)

KIND_BILL = "bill_issued"
KIND_PAYMENT = "payment_received"


@dataclass(frozen=True)
class NotificationResult:
    sent: bool
    message_id: str | None = None
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {"sent": self.sent, "message_id": self.message_id, "error": self.error}


def format_amount(value: int) -> str:
    return f"{value:,}".replace(",", ".")


def format_chat_id(phone: str | None, country_code: str | None = None) -> str | None:
    """Normalize a local phone number to a WhatsApp chat id (``62812...@c.us``)."""
    if not phone:
        return None
    digits = re.sub(r"\D", "", phone)
    if not digits:
        return None
    code = country_code or settings.whatsapp_default_country_code
    if digits.startswith("0"):
        digits = code + digits[1:]
    elif not digits.startswith(code):
        digits = code + digits
    return f"{digits}@c.us"


def bill_message(bill, customer) -> str:
    lines = [
        "*Bill issued*",
        "",
        f"Customer: {customer.name}",
        f"Bill number: {bill.bill_number}",
        f"Period: {bill.billing_month:02d}/{bill.billing_year}",
        f"Monthly fee: {format_amount(bill.amount)}",
        f"Previous debt: {format_amount(bill.previous_debt)}",
    ]
    if bill.compensation:
        lines.append(f"Compensation: -{format_amount(bill.compensation)}")
    lines.append(f"Total due: {format_amount(bill.total_amount)}")
    lines.append(f"Due date: {bill.due_date.isoformat()}")
    return "\n".join(lines)


def payment_message(payment, bill, customer) -> str:
    status = "Paid in full" if bill.remaining_amount == 0 else "Partially paid"
    return "\n".join(
        [
            "*Payment received*",
            "",
            f"Customer: {customer.name}",
            f"Payment number: {payment.payment_number}",
            f"Bill number: {bill.bill_number}",
            f"Amount paid: {format_amount(payment.amount)}",
            f"Remaining: {format_amount(bill.remaining_amount)}",
            f"Status: {status}",
        ]
    )


def _send_text(chat_id: str, text: str, kind: str) -> NotificationResult:
    headers = {"Content-Type": "application/json"}
    if settings.whatsapp_api_key:
        headers["X-Api-Key"] = settings.whatsapp_api_key
    endpoint = f"{settings.whatsapp_api_url.rstrip('/')}/api/sendText"
    payload = {"session": settings.whatsapp_session, "chatId": chat_id, "text": text}
    try:
        response = httpx.post(
            endpoint,
            json=payload,
            headers=headers,
            timeout=settings.whatsapp_timeout_seconds,
        )
        response.raise_for_status()
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        logger.warning("WhatsApp %s notification to %s failed: %s", kind, chat_id, exc)
        NOTIFICATIONS_SENT.labels(kind=kind, result="error").inc()
        return NotificationResult(sent=False, error=str(exc))

    message_id = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        raw_id = body.get("id")
        if isinstance(raw_id, dict):
            raw_id = raw_id.get("_serialized") or raw_id.get("id")
        message_id = str(raw_id) if raw_id else None
    NOTIFICATIONS_SENT.labels(kind=kind, result="sent").inc()
    return NotificationResult(sent=True, message_id=message_id)


def _notify(customer, text: str, kind: str) -> NotificationResult:
    if not settings.notifications_enabled:
        NOTIFICATIONS_SENT.labels(kind=kind, result="disabled").inc()
        return NotificationResult(sent=False, error="notifications disabled")
    chat_id = format_chat_id(getattr(customer, "phone", None))
    if not chat_id:
        NOTIFICATIONS_SENT.labels(kind=kind, result="no_phone").inc()
        return NotificationResult(sent=False, error="customer has no phone number")
    return _send_text(chat_id, text, kind)


def send_bill_notification(bill, customer) -> NotificationResult:
    return _notify(customer, bill_message(bill, customer), KIND_BILL)


def send_payment_confirmation(payment, bill, customer) -> NotificationResult:
    return _notify(customer, payment_message(payment, bill, customer), KIND_PAYMENT)
