from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from facility_bookings.errors import InvalidInterval, ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_utc(dt: datetime) -> datetime:
    """Ensure a datetime is UTC-aware, handling both aware and naive inputs."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PriceQuote:
    duration_minutes: int
    duration_hours: Decimal
    subtotal: Decimal  # unrounded; round with money() when persisting


@dataclass(frozen=True)
class PriceAdjustments:
    """Discount / tax / fee supplied by an external pricing collaborator."""

    discount: Decimal = ZERO
    tax: Decimal = ZERO
    fee: Decimal = ZERO


def duration_hours(start: datetime, end: datetime) -> Decimal:
    start, end = to_utc(start), to_utc(end)
    if end <= start:
        raise InvalidInterval()
    seconds = Decimal(str((end - start).total_seconds()))
    return seconds / Decimal(3600)


def quote(rate: Decimal, start: datetime, end: datetime) -> PriceQuote:
    hours = duration_hours(start, end)
    minutes = int((hours * 60).to_integral_value(rounding=ROUND_HALF_UP))
    return PriceQuote(
        duration_minutes=minutes,
        duration_hours=hours,
        subtotal=Decimal(rate) * hours,
    )


def booking_total(
    subtotals: Iterable[Decimal], adjustments: PriceAdjustments | None = None
) -> tuple[Decimal, Decimal]:
    """
    Return (subtotal, total) for a multi-item booking, both rounded.
    Item subtotals are summed unrounded; rounding happens once at the end.
    """
    adj = adjustments or PriceAdjustments()
    errors = [
        (name, "must not be negative")
        for name, value in (
            ("discount_amount", adj.discount),
            ("tax_amount", adj.tax),
            ("fee_amount", adj.fee),
        )
        if value < 0
    ]
    if errors:
        raise ValidationError(errors)

    subtotal = sum(subtotals, ZERO)
    total = subtotal - adj.discount + adj.tax + adj.fee
    if total < 0:
        raise ValidationError.single("discount_amount", "must not exceed the subtotal")
    return money(subtotal), money(total)
