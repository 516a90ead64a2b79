from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from facility_bookings.models import (
    BookingStatus,
    ChangeType,
    PaymentStatus,
    TrainerBookingStatus,
)


def _require_timezone(v: datetime | None) -> datetime | None:
    if v is None:
        return v
    if v.tzinfo is None:
        raise ValueError("datetime must be timezone-aware (include UTC offset)")
    return v.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Court bookings: requests
# ---------------------------------------------------------------------------


class BookingItemCreate(BaseModel):
    court_id: UUID
    service_id: UUID
    start_datetime: datetime
    end_datetime: datetime

    # some UIs put the status on the first line item
    status: str | None = None
    booking_status: str | None = None

    require_timezone = field_validator("start_datetime", "end_datetime", mode="after")(
        _require_timezone
    )


class ParticipantCreate(BaseModel):
    user_id: UUID | None = None
    guest_name: str | None = Field(default=None, max_length=255)
    guest_email: str | None = Field(default=None, max_length=255)
    guest_phone: str | None = Field(default=None, max_length=50)
    is_primary: bool = False


class BookingCreate(BaseModel):
    """
    Status may arrive under `booking_status`, `status`, `bookingStatus` or on
    the first item; see status.extract_status_hint for precedence.
    """

    model_config = ConfigDict(populate_by_name=True)

    branch_id: UUID
    items: list[BookingItemCreate] = Field(min_length=1)
    participants: list[ParticipantCreate] = Field(default_factory=list)
    promo_code: str | None = Field(default=None, max_length=64)
    notes: str | None = Field(default=None, max_length=1000)
    booking_source: str | None = Field(default=None, max_length=32)

    status: str | None = None
    booking_status: str | None = None
    booking_status_camel: str | None = Field(default=None, alias="bookingStatus")


class BookingCancel(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)


class BookingStatusUpdate(BaseModel):
    status: BookingStatus
    reason: str | None = Field(default=None, max_length=1000)


class BookingItemReschedule(BaseModel):
    start_datetime: datetime
    end_datetime: datetime
    reason: str | None = Field(default=None, max_length=1000)

    require_timezone = field_validator("start_datetime", "end_datetime", mode="after")(
        _require_timezone
    )


class BookingFilters(BaseModel):
    """Bind to a FastAPI route via Depends(BookingFilters)."""

    branch_id: UUID | None = None
    status: BookingStatus | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None

    # Pagination
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


# ---------------------------------------------------------------------------
# Court bookings: responses
# ---------------------------------------------------------------------------


class BookingItemResponse(BaseModel):
    id: UUID
    court_id: UUID
    service_id: UUID
    start_datetime: datetime
    end_datetime: datetime
    duration_minutes: int
    unit_price: Decimal
    quantity: int
    subtotal: Decimal
    total_amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class ParticipantResponse(BaseModel):
    id: UUID
    user_id: UUID | None
    guest_name: str | None
    guest_email: str | None
    guest_phone: str | None
    is_primary: bool

    model_config = ConfigDict(from_attributes=True)


class BookingResponse(BaseModel):
    id: UUID
    company_id: UUID
    branch_id: UUID
    user_id: UUID
    booking_number: str
    status: BookingStatus
    payment_status: PaymentStatus
    booking_source: str
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    fee_amount: Decimal
    total_amount: Decimal
    currency: str
    promo_code: str | None
    notes: str | None
    cancelled_at: datetime | None
    cancellation_reason: str | None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookingDetail(BookingResponse):
    items: list[BookingItemResponse] = Field(default_factory=list)
    participants: list[ParticipantResponse] = Field(default_factory=list)


class ChangeRecordResponse(BaseModel):
    id: UUID
    change_type: ChangeType
    changed_by: UUID
    old_value: dict | None
    new_value: dict | None
    reason: str | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookingSlot(BaseModel):
    """Minimal occupied slot, reveals no user identity."""

    start_datetime: datetime
    end_datetime: datetime

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Trainer bookings
# ---------------------------------------------------------------------------


class TrainerBookingCreate(BaseModel):
    branch_id: UUID
    trainer_id: UUID
    customer_id: UUID | None = None
    class_id: UUID | None = None
    start_datetime: datetime
    end_datetime: datetime
    hourly_rate: Decimal
    total_amount: Decimal | None = None
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    status: str | None = None

    require_timezone = field_validator("start_datetime", "end_datetime", mode="after")(
        _require_timezone
    )


class TrainerBookingUpdate(BaseModel):
    """Partial update; only fields that are set are applied."""

    branch_id: UUID | None = None
    trainer_id: UUID | None = None
    customer_id: UUID | None = None
    class_id: UUID | None = None
    start_datetime: datetime | None = None
    end_datetime: datetime | None = None
    hourly_rate: Decimal | None = None
    total_amount: Decimal | None = None
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    status: str | None = None

    require_timezone = field_validator("start_datetime", "end_datetime", mode="after")(
        _require_timezone
    )


class TrainerBookingFilters(BaseModel):
    branch_id: UUID | None = None
    trainer_id: UUID | None = None
    status: TrainerBookingStatus | None = None


class TrainerBookingResponse(BaseModel):
    id: UUID
    company_id: UUID
    branch_id: UUID
    trainer_id: UUID
    class_id: UUID | None
    customer_id: UUID | None
    start_datetime: datetime
    end_datetime: datetime
    hourly_rate: Decimal
    total_amount: Decimal
    currency: str
    status: TrainerBookingStatus
    created_by: UUID
    updated_by: UUID | None
    deleted_at: datetime | None

    model_config = ConfigDict(from_attributes=True)
