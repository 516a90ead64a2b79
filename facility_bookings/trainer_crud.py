from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from loguru import logger
from tortoise.transactions import in_transaction

from facility_bookings import settings
from facility_bookings.audit import record_trainer_booking_change
from facility_bookings.directory import ResourceDirectory, resource_directory
from facility_bookings.errors import (
    AssignmentMismatch,
    InvalidTransition,
    NotFound,
    ResourceUnavailable,
    ValidationError,
)
from facility_bookings.models import (
    ChangeType,
    Trainer,
    TrainerBooking,
    TrainerBookingStatus,
    TrainerStatus,
)
from facility_bookings.overlap import ensure_trainer_free
from facility_bookings.pricing import duration_hours, money, quote, to_utc
from facility_bookings.schemas import (
    TrainerBookingCreate,
    TrainerBookingFilters,
    TrainerBookingResponse,
    TrainerBookingUpdate,
)
from facility_bookings.status import normalize_currency, normalize_trainer_status


def _snapshot(booking: TrainerBooking) -> dict[str, str]:
    return {
        "trainer_id": str(booking.trainer_id),
        "branch_id": str(booking.branch_id),
        "start_datetime": to_utc(booking.start_datetime).isoformat(),
        "end_datetime": to_utc(booking.end_datetime).isoformat(),
        "status": TrainerBookingStatus(booking.status).value,
        "total_amount": str(booking.total_amount),
    }


def _validate_rate(rate: Decimal) -> Decimal:
    if rate < 0:
        raise ValidationError.single("hourly_rate", "must be a non-negative number")
    return money(rate)


class TrainerBookingCRUD:
    """
    Create / update / remove trainer bookings.

    Each mutation runs in one transaction with the trainer row locked, so the
    overlap check and the write it guards cannot interleave with another
    request for the same trainer.
    """

    def __init__(
        self,
        directory: ResourceDirectory = resource_directory,
        currency: str = settings.trainer_currency,
    ) -> None:
        self.directory = directory
        self.currency = currency

    async def _assignable_trainer(
        self, company_id: UUID, trainer_id: UUID, branch_id: UUID
    ) -> Trainer:
        trainer = await self.directory.find_trainer(company_id, trainer_id, lock=True)
        if trainer.status and trainer.status != TrainerStatus.ACTIVE:
            raise ResourceUnavailable(
                "Trainer is not active", {"trainer_id": str(trainer_id)}
            )
        # branch-pinned trainers can only be booked at their own branch
        if trainer.branch_id and trainer.branch_id != branch_id:
            raise AssignmentMismatch(
                "Trainer does not belong to this branch",
                {"trainer_id": str(trainer_id), "branch_id": str(branch_id)},
            )
        return trainer

    @staticmethod
    def _resolve_total(
        explicit: Decimal | None, rate: Decimal, start: datetime, end: datetime
    ) -> Decimal:
        computed = money(quote(rate, start, end).subtotal)
        if explicit is None:
            return computed
        if explicit < 0:
            raise ValidationError.single("total_amount", "must not be negative")
        explicit = money(explicit)
        if explicit != computed:
            logger.warning(
                "Explicit trainer booking total {} differs from computed {}",
                explicit,
                computed,
            )
        return explicit

    async def _get_for_update(
        self, company_id: UUID, booking_id: UUID
    ) -> TrainerBooking | None:
        return (
            await TrainerBooking.filter(
                id=booking_id, company_id=company_id, deleted_at__isnull=True
            )
            .select_for_update()
            .first()
        )

    async def create(
        self, company_id: UUID, actor_id: UUID, payload: TrainerBookingCreate
    ) -> TrainerBookingResponse:
        duration_hours(payload.start_datetime, payload.end_datetime)
        rate = _validate_rate(payload.hourly_rate)
        status = normalize_trainer_status(payload.status)
        currency = normalize_currency(payload.currency, self.currency)

        async with in_transaction():
            await self._assignable_trainer(
                company_id, payload.trainer_id, payload.branch_id
            )
            if status == TrainerBookingStatus.BOOKED:
                await ensure_trainer_free(
                    company_id,
                    payload.trainer_id,
                    payload.start_datetime,
                    payload.end_datetime,
                )

            booking = await TrainerBooking.create(
                company_id=company_id,
                branch_id=payload.branch_id,
                trainer_id=payload.trainer_id,
                class_id=payload.class_id,
                customer_id=payload.customer_id,
                start_datetime=payload.start_datetime,
                end_datetime=payload.end_datetime,
                hourly_rate=rate,
                total_amount=self._resolve_total(
                    payload.total_amount,
                    rate,
                    payload.start_datetime,
                    payload.end_datetime,
                ),
                currency=currency,
                status=status,
                created_by=actor_id,
                updated_by=actor_id,
            )
            await record_trainer_booking_change(
                booking.id, ChangeType.CREATED, actor_id, new_value=_snapshot(booking)
            )

        logger.info(
            "Trainer booking {} created: trainer_id={} {} - {}",
            booking.id,
            booking.trainer_id,
            booking.start_datetime,
            booking.end_datetime,
        )
        return TrainerBookingResponse.model_validate(booking, from_attributes=True)

    async def update(
        self,
        company_id: UUID,
        actor_id: UUID,
        booking_id: UUID,
        payload: TrainerBookingUpdate,
    ) -> TrainerBookingResponse:
        # explicit nulls are treated as "not provided"
        patch = {
            k: v
            for k, v in payload.model_dump(exclude_unset=True).items()
            if v is not None
        }

        async with in_transaction():
            booking = await self._get_for_update(company_id, booking_id)
            if booking is None:
                raise NotFound(
                    "Trainer booking not found", {"trainer_booking_id": str(booking_id)}
                )
            before = _snapshot(booking)
            old_status = TrainerBookingStatus(booking.status)

            patch["currency"] = normalize_currency(
                patch.get("currency") or booking.currency, self.currency
            )
            new_status = normalize_trainer_status(patch.get("status", old_status.value))
            if (
                old_status == TrainerBookingStatus.CANCELLED
                and new_status != TrainerBookingStatus.CANCELLED
            ):
                raise InvalidTransition("A cancelled trainer booking cannot be reopened")
            patch["status"] = new_status

            trainer_id = patch.get("trainer_id", booking.trainer_id)
            branch_id = patch.get("branch_id", booking.branch_id)
            start = patch.get("start_datetime", booking.start_datetime)
            end = patch.get("end_datetime", booking.end_datetime)
            rate = _validate_rate(patch.get("hourly_rate", booking.hourly_rate))

            reassigned = "trainer_id" in patch or "branch_id" in patch
            moved = any(k in patch for k in ("start_datetime", "end_datetime", "trainer_id"))
            reactivated = (
                new_status == TrainerBookingStatus.BOOKED
                and old_status != TrainerBookingStatus.BOOKED
            )

            if reassigned:
                await self._assignable_trainer(company_id, trainer_id, branch_id)
            elif moved or reactivated:
                await self.directory.find_trainer(company_id, trainer_id, lock=True)

            if moved or reactivated:
                duration_hours(start, end)
                # only a booked window can collide with another booking
                if new_status == TrainerBookingStatus.BOOKED:
                    await ensure_trainer_free(
                        company_id, trainer_id, start, end, exclude_id=booking.id
                    )

            if "total_amount" in patch:
                patch["total_amount"] = self._resolve_total(
                    patch["total_amount"], rate, start, end
                )
            elif moved or "hourly_rate" in patch:
                patch["total_amount"] = self._resolve_total(None, rate, start, end)
            if "hourly_rate" in patch:
                patch["hourly_rate"] = rate

            for key, value in patch.items():
                setattr(booking, key, value)
            booking.updated_by = actor_id
            await booking.save()

            if moved:
                await record_trainer_booking_change(
                    booking.id,
                    ChangeType.RESCHEDULED,
                    actor_id,
                    old_value=before,
                    new_value=_snapshot(booking),
                )
            if new_status != old_status:
                await record_trainer_booking_change(
                    booking.id,
                    ChangeType.CANCELLED
                    if new_status == TrainerBookingStatus.CANCELLED
                    else ChangeType.STATUS_CHANGED,
                    actor_id,
                    old_value={"status": old_status.value},
                    new_value={"status": new_status.value},
                )

        logger.info("Trainer booking {} updated by {}", booking.id, actor_id)
        return TrainerBookingResponse.model_validate(booking, from_attributes=True)

    async def remove(
        self, company_id: UUID, actor_id: UUID, booking_id: UUID
    ) -> TrainerBookingResponse | None:
        """
        Cancel and soft-delete. Returns None if the booking is already gone.
        A booking that was already cancelled is only soft-deleted; its
        cancellation is not recorded a second time.
        """
        async with in_transaction():
            booking = await self._get_for_update(company_id, booking_id)
            if booking is None:
                return None

            old_status = TrainerBookingStatus(booking.status)
            booking.status = TrainerBookingStatus.CANCELLED
            booking.deleted_at = datetime.now(timezone.utc)
            booking.updated_by = actor_id
            await booking.save(
                update_fields=["status", "deleted_at", "updated_by", "updated_at"]
            )
            if old_status != TrainerBookingStatus.CANCELLED:
                await record_trainer_booking_change(
                    booking.id,
                    ChangeType.CANCELLED,
                    actor_id,
                    old_value={"status": old_status.value},
                    new_value={"status": TrainerBookingStatus.CANCELLED.value},
                )

        logger.info("Trainer booking {} removed by {}", booking.id, actor_id)
        return TrainerBookingResponse.model_validate(booking, from_attributes=True)

    async def get(
        self, company_id: UUID, booking_id: UUID
    ) -> TrainerBookingResponse | None:
        booking = await TrainerBooking.get_or_none(
            id=booking_id, company_id=company_id, deleted_at__isnull=True
        )
        if not booking:
            return None
        return TrainerBookingResponse.model_validate(booking, from_attributes=True)

    async def list_bookings(
        self, company_id: UUID, filters: TrainerBookingFilters
    ) -> list[TrainerBookingResponse]:
        qs = TrainerBooking.filter(company_id=company_id, deleted_at__isnull=True)
        if filters.branch_id is not None:
            qs = qs.filter(branch_id=filters.branch_id)
        if filters.trainer_id is not None:
            qs = qs.filter(trainer_id=filters.trainer_id)
        if filters.status is not None:
            qs = qs.filter(status=filters.status)

        bookings = await qs.order_by("-start_datetime")
        return [
            TrainerBookingResponse.model_validate(b, from_attributes=True)
            for b in bookings
        ]


trainer_booking_crud = TrainerBookingCRUD()
