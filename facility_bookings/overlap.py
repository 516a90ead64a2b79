"""
Overlap detection for court booking items and trainer bookings.

Windows are half-open: [start, end). Back-to-back reservations (one ends
exactly when the next starts) do not overlap.

The store queries must run inside the same transaction as the write they
guard, after the resource row has been locked (see directory.py).
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from facility_bookings.errors import SlotConflict
from facility_bookings.models import (
    BLOCKING_TRAINER_STATUSES,
    NON_BLOCKING_BOOKING_STATUSES,
    BookingItem,
    TrainerBooking,
)


def intervals_overlap(
    start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime
) -> bool:
    """Return True if [start_a, end_a) and [start_b, end_b) share an instant."""
    return start_a < end_b and end_a > start_b


async def find_court_conflict(
    court_id: UUID,
    start: datetime,
    end: datetime,
    exclude_item_id: UUID | None = None,
) -> BookingItem | None:
    """First active booking item on the court that intersects the window."""
    qs = BookingItem.filter(
        court_id=court_id,
        deleted_at__isnull=True,
        booking__deleted_at__isnull=True,
        booking__status__not_in=NON_BLOCKING_BOOKING_STATUSES,
        start_datetime__lt=end,
        end_datetime__gt=start,
    )
    if exclude_item_id is not None:
        qs = qs.exclude(id=exclude_item_id)
    return await qs.first()


async def find_trainer_conflict(
    company_id: UUID,
    trainer_id: UUID,
    start: datetime,
    end: datetime,
    exclude_id: UUID | None = None,
) -> TrainerBooking | None:
    """First booked, non-deleted trainer booking that intersects the window."""
    qs = TrainerBooking.filter(
        company_id=company_id,
        trainer_id=trainer_id,
        deleted_at__isnull=True,
        status__in=BLOCKING_TRAINER_STATUSES,
        start_datetime__lt=end,
        end_datetime__gt=start,
    )
    if exclude_id is not None:
        qs = qs.exclude(id=exclude_id)
    return await qs.first()


async def ensure_court_free(
    court_id: UUID,
    start: datetime,
    end: datetime,
    exclude_item_id: UUID | None = None,
) -> None:
    clash = await find_court_conflict(court_id, start, end, exclude_item_id)
    if clash is not None:
        raise SlotConflict(
            "Court is already booked for this time slot", conflicting_id=clash.id
        )


async def ensure_trainer_free(
    company_id: UUID,
    trainer_id: UUID,
    start: datetime,
    end: datetime,
    exclude_id: UUID | None = None,
) -> None:
    clash = await find_trainer_conflict(company_id, trainer_id, start, end, exclude_id)
    if clash is not None:
        raise SlotConflict(
            "Trainer already booked for this time slot", conflicting_id=clash.id
        )
