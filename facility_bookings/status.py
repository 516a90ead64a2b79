"""
Status normalization.

Clients send booking status in several shapes: canonical booking tokens,
payment-provider words ("succeeded", "paid"), or short forms ("cancel").
Everything here is pure and deterministic; nothing touches the store.
"""

from __future__ import annotations

from typing import Any, Mapping

from facility_bookings.errors import ValidationError
from facility_bookings.models import BookingStatus, PaymentStatus, TrainerBookingStatus

BOOKING_SOURCE_CUSTOMER = "customer_web"
BOOKING_SOURCE_CONSOLE = "admin_manual"

_BOOKING_STATUS_ALIASES: dict[str, BookingStatus] = {
    # payment-ish words mean the booking is confirmed
    "succeeded": BookingStatus.CONFIRMED,
    "success": BookingStatus.CONFIRMED,
    "paid": BookingStatus.CONFIRMED,
    "payment_success": BookingStatus.CONFIRMED,
    "cancel": BookingStatus.CANCELLED,
    "complete": BookingStatus.COMPLETED,
    **{s.value: s for s in BookingStatus},
}

_PAYMENT_STATUS_ALIASES: dict[str, PaymentStatus] = {
    "success": PaymentStatus.SUCCEEDED,
    "paid": PaymentStatus.SUCCEEDED,
    **{s.value: s for s in PaymentStatus},
}

_HINT_KEYS = ("booking_status", "status", "bookingStatus")
_ITEM_HINT_KEYS = ("booking_status", "status")


def _clean(raw: Any) -> str | None:
    if not isinstance(raw, str):
        return None
    token = raw.strip().lower()
    return token or None


def extract_status_hint(payload: Mapping[str, Any]) -> str | None:
    """First status-looking value from the payload or its first item."""
    for key in _HINT_KEYS:
        if payload.get(key) is not None:
            return payload[key]

    items = payload.get("items") or []
    first = items[0] if items else None
    if isinstance(first, Mapping):
        for key in _ITEM_HINT_KEYS:
            if first.get(key) is not None:
                return first[key]
    return None


def normalize_booking_status(
    raw: Any, default: BookingStatus = BookingStatus.PENDING
) -> BookingStatus:
    token = _clean(raw)
    if token is None:
        return default
    return _BOOKING_STATUS_ALIASES.get(token, BookingStatus.PENDING)


def normalize_payment_status(raw: Any) -> PaymentStatus:
    token = _clean(raw)
    if token is None:
        return PaymentStatus.PENDING
    return _PAYMENT_STATUS_ALIASES.get(token, PaymentStatus.PENDING)


def resolve_booking_statuses(
    raw: Any, default: BookingStatus = BookingStatus.PENDING
) -> tuple[BookingStatus, PaymentStatus]:
    return normalize_booking_status(raw, default), normalize_payment_status(raw)


def normalize_trainer_status(raw: Any) -> TrainerBookingStatus:
    if raw is None:
        return TrainerBookingStatus.BOOKED
    token = _clean(raw)
    try:
        return TrainerBookingStatus(token)
    except ValueError:
        raise ValidationError.single(
            "status",
            f"must be one of {[s.value for s in TrainerBookingStatus]}",
        ) from None


def normalize_currency(raw: str | None, default: str) -> str:
    if not raw:
        return default.upper()
    code = str(raw).strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValidationError.single("currency", "must be a 3-letter code (e.g. USD)")
    return code
