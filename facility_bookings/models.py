from enum import StrEnum

from tortoise import fields
from tortoise.models import Model


class BookingStatus(StrEnum):
    PENDING = "pending"  # created, awaiting payment or staff confirmation
    CONFIRMED = "confirmed"  # paid or accepted by staff
    CANCELLED = "cancelled"  # cancelled by customer or staff, terminal
    COMPLETED = "completed"  # booking period elapsed, marked done
    NO_SHOW = "no_show"  # customer didn't show up
    EXPIRED = "expired"  # pending booking never confirmed


class PaymentStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


class TrainerBookingStatus(StrEnum):
    BOOKED = "booked"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class CourtStatus(StrEnum):
    ACTIVE = "active"
    MAINTENANCE = "maintenance"
    CLOSED = "closed"
    DELETED = "deleted"


class TrainerStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    DELETED = "deleted"


class ChangeType(StrEnum):
    CREATED = "created"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"
    STATUS_CHANGED = "status_changed"


# Parent booking statuses that never block a court slot.
NON_BLOCKING_BOOKING_STATUSES = [BookingStatus.CANCELLED, BookingStatus.EXPIRED]
# The only trainer booking status that blocks a trainer slot.
BLOCKING_TRAINER_STATUSES = [TrainerBookingStatus.BOOKED]


class TimestampedModel(Model):
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:  # type: ignore
        abstract = True


# ---------------------------------------------------------------------------
# Bookable resources (read side; their CRUD lives in the facilities service)
# ---------------------------------------------------------------------------


class Court(TimestampedModel):
    id = fields.UUIDField(primary_key=True)
    company_id = fields.UUIDField()
    branch_id = fields.UUIDField()

    name = fields.CharField(max_length=255)
    hourly_rate = fields.DecimalField(max_digits=10, decimal_places=2)
    status = fields.CharEnumField(CourtStatus, default=CourtStatus.ACTIVE)

    deleted_at = fields.DatetimeField(null=True)

    class Meta:  # type: ignore
        table = "courts"


class Trainer(TimestampedModel):
    id = fields.UUIDField(primary_key=True)
    company_id = fields.UUIDField()
    branch_id = fields.UUIDField(null=True)  # null = company-wide trainer

    name = fields.CharField(max_length=255)
    hourly_rate = fields.DecimalField(max_digits=10, decimal_places=2, null=True)
    currency = fields.CharField(max_length=3, default="USD")
    status = fields.CharEnumField(TrainerStatus, default=TrainerStatus.ACTIVE)

    deleted_at = fields.DatetimeField(null=True)

    class Meta:  # type: ignore
        table = "trainers"


# ---------------------------------------------------------------------------
# Court bookings
# ---------------------------------------------------------------------------


class Booking(TimestampedModel):
    id = fields.UUIDField(primary_key=True)

    company_id = fields.UUIDField()
    branch_id = fields.UUIDField()
    user_id = fields.UUIDField()  # the customer (or staff member) who booked

    booking_number = fields.CharField(max_length=40, unique=True)
    status = fields.CharEnumField(BookingStatus, default=BookingStatus.PENDING)
    payment_status = fields.CharEnumField(PaymentStatus, default=PaymentStatus.PENDING)
    booking_source = fields.CharField(max_length=32, default="customer_web")

    subtotal = fields.DecimalField(max_digits=10, decimal_places=2)
    discount_amount = fields.DecimalField(max_digits=10, decimal_places=2, default=0)
    tax_amount = fields.DecimalField(max_digits=10, decimal_places=2, default=0)
    fee_amount = fields.DecimalField(max_digits=10, decimal_places=2, default=0)
    total_amount = fields.DecimalField(max_digits=10, decimal_places=2)
    currency = fields.CharField(max_length=3, default="MYR")

    promo_code = fields.CharField(max_length=64, null=True)  # passthrough only
    notes = fields.TextField(null=True)

    cancelled_at = fields.DatetimeField(null=True)
    cancelled_by = fields.UUIDField(null=True)
    cancellation_reason = fields.TextField(null=True)

    created_by = fields.UUIDField()
    updated_at = fields.DatetimeField(auto_now=True)
    deleted_at = fields.DatetimeField(null=True)

    class Meta:  # type: ignore
        table = "bookings"
        ordering = ["-created_at"]


class BookingItem(TimestampedModel):
    id = fields.UUIDField(primary_key=True)
    booking: fields.ForeignKeyRelation[Booking] = fields.ForeignKeyField(
        "models.Booking", related_name="items", on_delete=fields.CASCADE
    )

    company_id = fields.UUIDField()
    branch_id = fields.UUIDField()
    court_id = fields.UUIDField(db_index=True)
    service_id = fields.UUIDField()

    start_datetime = fields.DatetimeField()
    end_datetime = fields.DatetimeField()
    duration_minutes = fields.IntField()

    unit_price = fields.DecimalField(max_digits=10, decimal_places=2)  # snapshot
    quantity = fields.IntField(default=1)
    subtotal = fields.DecimalField(max_digits=10, decimal_places=2)
    discount_amount = fields.DecimalField(max_digits=10, decimal_places=2, default=0)
    total_amount = fields.DecimalField(max_digits=10, decimal_places=2)

    created_by = fields.UUIDField()
    deleted_at = fields.DatetimeField(null=True)

    class Meta:  # type: ignore
        table = "booking_items"
        ordering = ["start_datetime"]


class BookingParticipant(TimestampedModel):
    id = fields.UUIDField(primary_key=True)
    booking: fields.ForeignKeyRelation[Booking] = fields.ForeignKeyField(
        "models.Booking", related_name="participants", on_delete=fields.CASCADE
    )

    user_id = fields.UUIDField(null=True)
    guest_name = fields.CharField(max_length=255, null=True)
    guest_email = fields.CharField(max_length=255, null=True)
    guest_phone = fields.CharField(max_length=50, null=True)
    is_primary = fields.BooleanField(default=False)

    created_by = fields.UUIDField()

    class Meta:  # type: ignore
        table = "booking_participants"


class BookingChangeLog(TimestampedModel):
    """Append-only. Weakly linked to the booking by id."""

    id = fields.UUIDField(primary_key=True)
    booking_id = fields.UUIDField(db_index=True)
    change_type = fields.CharEnumField(ChangeType)
    changed_by = fields.UUIDField()
    old_value = fields.JSONField(null=True)
    new_value = fields.JSONField(null=True)
    reason = fields.TextField(null=True)

    class Meta:  # type: ignore
        table = "booking_change_logs"
        ordering = ["created_at"]


# ---------------------------------------------------------------------------
# Trainer bookings
# ---------------------------------------------------------------------------


class TrainerBooking(TimestampedModel):
    id = fields.UUIDField(primary_key=True)

    company_id = fields.UUIDField()
    branch_id = fields.UUIDField()
    trainer_id = fields.UUIDField(db_index=True)
    class_id = fields.UUIDField(null=True)
    customer_id = fields.UUIDField(null=True)  # staff may book without a customer

    start_datetime = fields.DatetimeField()
    end_datetime = fields.DatetimeField()

    hourly_rate = fields.DecimalField(max_digits=10, decimal_places=2)
    total_amount = fields.DecimalField(max_digits=10, decimal_places=2)
    currency = fields.CharField(max_length=3, default="USD")

    status = fields.CharEnumField(
        TrainerBookingStatus, default=TrainerBookingStatus.BOOKED
    )

    created_by = fields.UUIDField()
    updated_by = fields.UUIDField(null=True)
    updated_at = fields.DatetimeField(auto_now=True)
    deleted_at = fields.DatetimeField(null=True)

    class Meta:  # type: ignore
        table = "trainer_bookings"
        ordering = ["-start_datetime"]


class TrainerBookingChangeLog(TimestampedModel):
    id = fields.UUIDField(primary_key=True)
    trainer_booking_id = fields.UUIDField(db_index=True)
    change_type = fields.CharEnumField(ChangeType)
    changed_by = fields.UUIDField()
    old_value = fields.JSONField(null=True)
    new_value = fields.JSONField(null=True)
    reason = fields.TextField(null=True)

    class Meta:  # type: ignore
        table = "trainer_booking_change_logs"
        ordering = ["created_at"]
