from __future__ import annotations

import secrets
import string
import time
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from loguru import logger
from tortoise.transactions import in_transaction

from facility_bookings import settings
from facility_bookings.audit import record_booking_change
from facility_bookings.directory import ResourceDirectory, resource_directory
from facility_bookings.errors import (
    AlreadyCancelled,
    AssignmentMismatch,
    InvalidTransition,
    NotFound,
    ResourceUnavailable,
    SlotConflict,
)
from facility_bookings.models import (
    NON_BLOCKING_BOOKING_STATUSES,
    Booking,
    BookingChangeLog,
    BookingItem,
    BookingParticipant,
    BookingStatus,
    ChangeType,
    Court,
    CourtStatus,
)
from facility_bookings.overlap import ensure_court_free, intervals_overlap
from facility_bookings.pricing import (
    PriceAdjustments,
    booking_total,
    duration_hours,
    money,
    quote,
    to_utc,
)
from facility_bookings.schemas import (
    BookingCreate,
    BookingDetail,
    BookingFilters,
    BookingItemReschedule,
    BookingItemResponse,
    BookingResponse,
    BookingSlot,
    ChangeRecordResponse,
    ParticipantResponse,
)
from facility_bookings.status import (
    BOOKING_SOURCE_CUSTOMER,
    extract_status_hint,
    resolve_booking_statuses,
)

_VALID_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
        BookingStatus.EXPIRED,
    },
    BookingStatus.CONFIRMED: {
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
        BookingStatus.NO_SHOW,
    },
    BookingStatus.CANCELLED: set(),
    BookingStatus.COMPLETED: set(),
    BookingStatus.NO_SHOW: set(),
    BookingStatus.EXPIRED: set(),
}

_REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


def generate_booking_number() -> str:
    """Human-readable reference: BK-<epoch millis>-<9 random chars>."""
    suffix = "".join(secrets.choice(_REFERENCE_ALPHABET) for _ in range(9))
    return f"BK-{int(time.time() * 1000)}-{suffix}"


def _window(item: BookingItem) -> dict[str, str]:
    return {
        "start_datetime": to_utc(item.start_datetime).isoformat(),
        "end_datetime": to_utc(item.end_datetime).isoformat(),
    }


class BookingCRUD:
    def __init__(
        self,
        directory: ResourceDirectory = resource_directory,
        currency: str = settings.booking_currency,
    ) -> None:
        self.directory = directory
        self.currency = currency

    @staticmethod
    def _ensure_bookable(court: Court) -> None:
        if court.status != CourtStatus.ACTIVE:
            raise ResourceUnavailable(
                f"Court is not available for booking (status: {court.status})",
                {"court_id": str(court.id)},
            )

    async def _hydrate(self, booking: Booking) -> BookingDetail:
        items = await BookingItem.filter(booking_id=booking.id, deleted_at__isnull=True)
        participants = await BookingParticipant.filter(booking_id=booking.id)
        base = BookingResponse.model_validate(booking, from_attributes=True)
        return BookingDetail(
            **base.model_dump(),
            items=[
                BookingItemResponse.model_validate(i, from_attributes=True)
                for i in items
            ],
            participants=[
                ParticipantResponse.model_validate(p, from_attributes=True)
                for p in participants
            ],
        )

    async def _get_for_update(self, company_id: UUID, booking_id: UUID) -> Booking:
        booking = (
            await Booking.filter(
                id=booking_id, company_id=company_id, deleted_at__isnull=True
            )
            .select_for_update()
            .first()
        )
        if booking is None:
            raise NotFound("Booking not found", {"booking_id": str(booking_id)})
        return booking

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_booking(
        self,
        company_id: UUID,
        actor_id: UUID,
        payload: BookingCreate,
        default_status: BookingStatus = BookingStatus.PENDING,
        booking_source: str = BOOKING_SOURCE_CUSTOMER,
        adjustments: PriceAdjustments | None = None,
    ) -> BookingDetail:
        """
        Create a booking with all of its items atomically.

        Every court referenced by the request is row-locked (in id order)
        before any overlap scan, so two requests for the same court cannot
        both pass the check. Any failing item aborts the whole request.
        """
        hint = extract_status_hint(payload.model_dump(by_alias=True))
        status, payment_status = resolve_booking_statuses(hint, default_status)

        async with in_transaction():
            # lookup failures are raised at the position of the item that
            # references the court, so the first failing item decides the error
            courts: dict[UUID, Court | NotFound] = {}
            for court_id in sorted({i.court_id for i in payload.items}, key=str):
                try:
                    courts[court_id] = await self.directory.find_court(
                        company_id, court_id, lock=True
                    )
                except NotFound as exc:
                    courts[court_id] = exc

            accepted: list[dict] = []
            subtotals: list[Decimal] = []
            for item in payload.items:
                duration_hours(item.start_datetime, item.end_datetime)

                court = courts[item.court_id]
                if isinstance(court, NotFound):
                    raise court
                self._ensure_bookable(court)
                if court.branch_id != payload.branch_id:
                    raise AssignmentMismatch(
                        "Court does not belong to this branch",
                        {
                            "court_id": str(court.id),
                            "branch_id": str(payload.branch_id),
                        },
                    )
                await ensure_court_free(
                    item.court_id, item.start_datetime, item.end_datetime
                )
                for prev in accepted:
                    if prev["court_id"] == item.court_id and intervals_overlap(
                        prev["start_datetime"],
                        prev["end_datetime"],
                        item.start_datetime,
                        item.end_datetime,
                    ):
                        raise SlotConflict(
                            "Booking items overlap each other on the same court"
                        )

                price = quote(court.hourly_rate, item.start_datetime, item.end_datetime)
                subtotals.append(price.subtotal)
                accepted.append(
                    dict(
                        company_id=company_id,
                        branch_id=payload.branch_id,
                        court_id=item.court_id,
                        service_id=item.service_id,
                        start_datetime=item.start_datetime,
                        end_datetime=item.end_datetime,
                        duration_minutes=price.duration_minutes,
                        unit_price=money(Decimal(court.hourly_rate)),
                        quantity=1,
                        subtotal=money(price.subtotal),
                        discount_amount=Decimal("0.00"),
                        total_amount=money(price.subtotal),
                        created_by=actor_id,
                    )
                )

            adj = adjustments or PriceAdjustments()
            subtotal, total = booking_total(subtotals, adj)

            booking = await Booking.create(
                company_id=company_id,
                branch_id=payload.branch_id,
                user_id=actor_id,
                booking_number=generate_booking_number(),
                status=status,
                payment_status=payment_status,
                booking_source=booking_source,
                subtotal=subtotal,
                discount_amount=money(adj.discount),
                tax_amount=money(adj.tax),
                fee_amount=money(adj.fee),
                total_amount=total,
                currency=self.currency,
                promo_code=payload.promo_code,
                notes=payload.notes,
                created_by=actor_id,
            )

            for fields in accepted:
                await BookingItem.create(booking=booking, **fields)

            for participant in payload.participants:
                await BookingParticipant.create(
                    booking=booking, created_by=actor_id, **participant.model_dump()
                )

            await record_booking_change(
                booking.id,
                ChangeType.CREATED,
                actor_id,
                new_value={
                    "status": status.value,
                    "payment_status": payment_status.value,
                },
            )

            result = await self._hydrate(booking)

        logger.info(
            "Booking {} created: company_id={} items={} status={} total={}",
            booking.booking_number,
            company_id,
            len(accepted),
            status,
            total,
        )
        return result

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def _transition(
        self,
        booking: Booking,
        new_status: BookingStatus,
        actor_id: UUID,
        reason: str | None,
    ) -> None:
        old_status = BookingStatus(booking.status)
        if new_status == BookingStatus.CANCELLED and old_status == BookingStatus.CANCELLED:
            raise AlreadyCancelled("Booking is already cancelled")
        if new_status not in _VALID_TRANSITIONS[old_status]:
            raise InvalidTransition(
                f"Cannot transition from '{old_status}' to '{new_status}'. "
                f"Allowed: {[s.value for s in _VALID_TRANSITIONS[old_status]]}"
            )

        booking.status = new_status
        update_fields = ["status", "updated_at"]
        if new_status == BookingStatus.CANCELLED:
            booking.cancelled_at = datetime.now(timezone.utc)
            booking.cancelled_by = actor_id
            booking.cancellation_reason = reason
            update_fields += ["cancelled_at", "cancelled_by", "cancellation_reason"]
        await booking.save(update_fields=update_fields)

        await record_booking_change(
            booking.id,
            ChangeType.CANCELLED
            if new_status == BookingStatus.CANCELLED
            else ChangeType.STATUS_CHANGED,
            actor_id,
            old_value={"status": old_status.value},
            new_value={"status": new_status.value},
            reason=reason,
        )

    async def cancel_booking(
        self,
        company_id: UUID,
        booking_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> BookingDetail:
        async with in_transaction():
            booking = await self._get_for_update(company_id, booking_id)
            await self._transition(booking, BookingStatus.CANCELLED, actor_id, reason)
            result = await self._hydrate(booking)

        logger.info("Booking {} cancelled by {}", booking.booking_number, actor_id)
        return result

    async def update_booking_status(
        self,
        company_id: UUID,
        booking_id: UUID,
        actor_id: UUID,
        new_status: BookingStatus,
        reason: str | None = None,
    ) -> BookingDetail:
        async with in_transaction():
            booking = await self._get_for_update(company_id, booking_id)
            await self._transition(booking, new_status, actor_id, reason)
            result = await self._hydrate(booking)

        logger.info(
            "Booking {} moved to {} by {}", booking.booking_number, new_status, actor_id
        )
        return result

    async def reschedule_item(
        self,
        company_id: UUID,
        booking_id: UUID,
        item_id: UUID,
        actor_id: UUID,
        payload: BookingItemReschedule,
    ) -> BookingDetail:
        """
        Move one item to a new window on the same court. The item keeps its
        unit price snapshot; item and booking totals are recomputed.
        """
        duration_hours(payload.start_datetime, payload.end_datetime)

        async with in_transaction():
            booking = await self._get_for_update(company_id, booking_id)
            if booking.status in NON_BLOCKING_BOOKING_STATUSES:
                raise InvalidTransition(
                    f"Cannot reschedule a booking in status '{booking.status}'"
                )

            item = await BookingItem.get_or_none(
                id=item_id, booking_id=booking.id, deleted_at__isnull=True
            )
            if item is None:
                raise NotFound("Booking item not found", {"item_id": str(item_id)})

            court = await self.directory.find_court(company_id, item.court_id, lock=True)
            self._ensure_bookable(court)
            await ensure_court_free(
                item.court_id,
                payload.start_datetime,
                payload.end_datetime,
                exclude_item_id=item.id,
            )

            old_window = _window(item)
            price = quote(item.unit_price, payload.start_datetime, payload.end_datetime)
            item.start_datetime = payload.start_datetime
            item.end_datetime = payload.end_datetime
            item.duration_minutes = price.duration_minutes
            item.subtotal = money(price.subtotal)
            item.total_amount = money(price.subtotal)
            await item.save()

            items = await BookingItem.filter(
                booking_id=booking.id, deleted_at__isnull=True
            )
            booking.subtotal, booking.total_amount = booking_total(
                [quote(i.unit_price, i.start_datetime, i.end_datetime).subtotal for i in items],
                PriceAdjustments(
                    discount=booking.discount_amount,
                    tax=booking.tax_amount,
                    fee=booking.fee_amount,
                ),
            )
            await booking.save(update_fields=["subtotal", "total_amount", "updated_at"])

            await record_booking_change(
                booking.id,
                ChangeType.RESCHEDULED,
                actor_id,
                old_value={"item_id": str(item.id), **old_window},
                new_value={"item_id": str(item.id), **_window(item)},
                reason=payload.reason,
            )
            result = await self._hydrate(booking)

        logger.info(
            "Booking {} item {} rescheduled to {} - {}",
            booking.booking_number,
            item.id,
            payload.start_datetime,
            payload.end_datetime,
        )
        return result

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_booking(
        self,
        company_id: UUID,
        booking_id: UUID,
        user_id: UUID | None = None,
    ) -> BookingDetail | None:
        qs = Booking.filter(id=booking_id, company_id=company_id, deleted_at__isnull=True)
        if user_id is not None:
            qs = qs.filter(user_id=user_id)
        booking = await qs.first()
        if not booking:
            return None
        return await self._hydrate(booking)

    async def list_bookings(
        self,
        company_id: UUID,
        filters: BookingFilters,
        user_id: UUID | None = None,
    ) -> list[BookingResponse]:
        qs = Booking.filter(company_id=company_id, deleted_at__isnull=True)

        if user_id is not None:
            qs = qs.filter(user_id=user_id)
        if filters.branch_id is not None:
            qs = qs.filter(branch_id=filters.branch_id)
        if filters.status is not None:
            qs = qs.filter(status=filters.status)
        if filters.created_from is not None:
            qs = qs.filter(created_at__gte=filters.created_from)
        if filters.created_to is not None:
            qs = qs.filter(created_at__lte=filters.created_to)

        offset = (filters.page - 1) * filters.page_size
        qs = qs.offset(offset).limit(filters.page_size)

        bookings = await qs
        return [
            BookingResponse.model_validate(b, from_attributes=True) for b in bookings
        ]

    async def list_changes(
        self, company_id: UUID, booking_id: UUID
    ) -> list[ChangeRecordResponse]:
        if not await Booking.filter(id=booking_id, company_id=company_id).exists():
            raise NotFound("Booking not found", {"booking_id": str(booking_id)})
        changes = await BookingChangeLog.filter(booking_id=booking_id)
        return [
            ChangeRecordResponse.model_validate(c, from_attributes=True)
            for c in changes
        ]

    async def list_occupied_slots(
        self,
        court_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[BookingSlot]:
        """Return booked time windows for a court, no user info exposed."""
        qs = BookingItem.filter(
            court_id=court_id,
            deleted_at__isnull=True,
            booking__deleted_at__isnull=True,
            booking__status__not_in=NON_BLOCKING_BOOKING_STATUSES,
        )
        if start is not None:
            qs = qs.filter(end_datetime__gt=start)
        if end is not None:
            qs = qs.filter(start_datetime__lt=end)
        items = await qs
        return [BookingSlot.model_validate(i, from_attributes=True) for i in items]


booking_crud = BookingCRUD()
