from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger

from facility_bookings.cache import (
    get_slots_cache,
    invalidate_slots_cache,
    set_slots_cache,
)
from facility_bookings.crud import booking_crud
from facility_bookings.deps import (
    ActivityClient,
    CurrentUser,
    can_cancel_or_manage_booking,
    can_manage_booking,
    can_read_or_manage_booking,
    can_write_booking,
    get_activity_client,
    get_current_user,
)
from facility_bookings.directory import resource_directory
from facility_bookings.models import BookingStatus
from facility_bookings.schemas import (
    BookingCancel,
    BookingCreate,
    BookingDetail,
    BookingFilters,
    BookingItemReschedule,
    BookingResponse,
    BookingSlot,
    BookingStatusUpdate,
    ChangeRecordResponse,
)
from facility_bookings.status import BOOKING_SOURCE_CONSOLE, BOOKING_SOURCE_CUSTOMER

router = APIRouter(prefix="/companies/{company_id}/bookings", tags=["bookings"])
slots_router = APIRouter(prefix="/companies/{company_id}/courts", tags=["bookings"])


def _court_ids(booking: BookingDetail) -> set[UUID]:
    return {item.court_id for item in booking.items}


@slots_router.get("/{court_id}/slots", response_model=list[BookingSlot])
async def get_court_slots(
    company_id: UUID,
    court_id: UUID,
    _: CurrentUser = Depends(get_current_user),
) -> list[BookingSlot]:
    """
    Returns occupied time windows for a court.
    Any authenticated user can call this, response contains NO user identity.
    """
    await resource_directory.find_court(company_id, court_id)

    cached = await get_slots_cache(court_id)
    if cached is not None:
        logger.debug("Cache hit for slots: court_id={}", court_id)
        return [BookingSlot(**s) for s in cached]

    logger.debug("Cache miss for slots: court_id={}", court_id)
    slots = await booking_crud.list_occupied_slots(court_id)
    await set_slots_cache(court_id, [s.model_dump(mode="json") for s in slots])
    return slots


@router.get("", response_model=list[BookingResponse])
async def list_bookings(
    company_id: UUID,
    filters: BookingFilters = Depends(),
    current_user: CurrentUser = Depends(can_read_or_manage_booking),
) -> list[BookingResponse]:
    if current_user.is_console:
        return await booking_crud.list_bookings(company_id, filters=filters)
    return await booking_crud.list_bookings(
        company_id, filters=filters, user_id=current_user.id
    )


@router.post("", response_model=BookingDetail, status_code=status.HTTP_201_CREATED)
async def create_booking(
    company_id: UUID,
    payload: BookingCreate,
    current_user: CurrentUser = Depends(can_write_booking),
    activity: ActivityClient = Depends(get_activity_client),
) -> BookingDetail:
    # console users book on behalf of customers: confirmed unless told otherwise;
    # only they may name the booking source
    if current_user.is_console:
        default_status = BookingStatus.CONFIRMED
        source = payload.booking_source or BOOKING_SOURCE_CONSOLE
    else:
        default_status, source = BookingStatus.PENDING, BOOKING_SOURCE_CUSTOMER

    booking = await booking_crud.create_booking(
        company_id,
        current_user.id,
        payload,
        default_status=default_status,
        booking_source=source,
    )

    await invalidate_slots_cache(*_court_ids(booking))
    await activity.track(
        "booking_created",
        company_id,
        "booking",
        booking.id,
        current_user,
        metadata={"branch_id": str(booking.branch_id), "status": booking.status},
    )
    return booking


@router.get("/{booking_id}", response_model=BookingDetail)
async def get_booking(
    company_id: UUID,
    booking_id: UUID,
    current_user: CurrentUser = Depends(can_read_or_manage_booking),
) -> BookingDetail:
    if current_user.is_console:
        booking = await booking_crud.get_booking(company_id, booking_id)
    else:
        booking = await booking_crud.get_booking(
            company_id, booking_id, user_id=current_user.id
        )

    if not booking:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found"
        )
    return booking


@router.post("/{booking_id}/cancel", response_model=BookingDetail)
async def cancel_booking(
    company_id: UUID,
    booking_id: UUID,
    payload: BookingCancel,
    current_user: CurrentUser = Depends(can_cancel_or_manage_booking),
    activity: ActivityClient = Depends(get_activity_client),
) -> BookingDetail:
    # customers may only cancel their own bookings
    if not current_user.is_console:
        own = await booking_crud.get_booking(
            company_id, booking_id, user_id=current_user.id
        )
        if not own:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found"
            )

    booking = await booking_crud.cancel_booking(
        company_id, booking_id, current_user.id, payload.reason
    )

    await invalidate_slots_cache(*_court_ids(booking))
    await activity.track(
        "booking_cancelled",
        company_id,
        "booking",
        booking.id,
        current_user,
        metadata={"reason": payload.reason},
    )
    return booking


@router.patch("/{booking_id}/status", response_model=BookingDetail)
async def update_booking_status(
    company_id: UUID,
    booking_id: UUID,
    payload: BookingStatusUpdate,
    current_user: CurrentUser = Depends(can_manage_booking),
) -> BookingDetail:
    booking = await booking_crud.update_booking_status(
        company_id, booking_id, current_user.id, payload.status, payload.reason
    )
    await invalidate_slots_cache(*_court_ids(booking))
    return booking


@router.patch("/{booking_id}/items/{item_id}", response_model=BookingDetail)
async def reschedule_booking_item(
    company_id: UUID,
    booking_id: UUID,
    item_id: UUID,
    payload: BookingItemReschedule,
    current_user: CurrentUser = Depends(can_manage_booking),
) -> BookingDetail:
    booking = await booking_crud.reschedule_item(
        company_id, booking_id, item_id, current_user.id, payload
    )
    await invalidate_slots_cache(*_court_ids(booking))
    return booking


@router.get("/{booking_id}/changes", response_model=list[ChangeRecordResponse])
async def list_booking_changes(
    company_id: UUID,
    booking_id: UUID,
    _: CurrentUser = Depends(can_manage_booking),
) -> list[ChangeRecordResponse]:
    return await booking_crud.list_changes(company_id, booking_id)
