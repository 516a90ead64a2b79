"""
Append-only change log writers.

Callers invoke these inside their own `in_transaction()` block so the record
commits or rolls back together with the state change it documents. Nothing
in this service updates or deletes a change record.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from facility_bookings.models import BookingChangeLog, ChangeType, TrainerBookingChangeLog


async def record_booking_change(
    booking_id: UUID,
    change_type: ChangeType,
    changed_by: UUID,
    old_value: dict[str, Any] | None = None,
    new_value: dict[str, Any] | None = None,
    reason: str | None = None,
) -> BookingChangeLog:
    return await BookingChangeLog.create(
        booking_id=booking_id,
        change_type=change_type,
        changed_by=changed_by,
        old_value=old_value,
        new_value=new_value,
        reason=reason,
    )


async def record_trainer_booking_change(
    trainer_booking_id: UUID,
    change_type: ChangeType,
    changed_by: UUID,
    old_value: dict[str, Any] | None = None,
    new_value: dict[str, Any] | None = None,
    reason: str | None = None,
) -> TrainerBookingChangeLog:
    return await TrainerBookingChangeLog.create(
        trainer_booking_id=trainer_booking_id,
        change_type=change_type,
        changed_by=changed_by,
        old_value=old_value,
        new_value=new_value,
        reason=reason,
    )
