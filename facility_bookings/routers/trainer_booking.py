from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from facility_bookings.deps import (
    ActivityClient,
    CurrentUser,
    can_manage_trainer_booking,
    can_read_trainer_booking,
    get_activity_client,
)
from facility_bookings.schemas import (
    TrainerBookingCreate,
    TrainerBookingFilters,
    TrainerBookingResponse,
    TrainerBookingUpdate,
)
from facility_bookings.trainer_crud import trainer_booking_crud

router = APIRouter(
    prefix="/companies/{company_id}/trainer-bookings", tags=["trainer-bookings"]
)


@router.get("", response_model=list[TrainerBookingResponse])
async def list_trainer_bookings(
    company_id: UUID,
    filters: TrainerBookingFilters = Depends(),
    _: CurrentUser = Depends(can_read_trainer_booking),
) -> list[TrainerBookingResponse]:
    return await trainer_booking_crud.list_bookings(company_id, filters)


@router.post(
    "", response_model=TrainerBookingResponse, status_code=status.HTTP_201_CREATED
)
async def create_trainer_booking(
    company_id: UUID,
    payload: TrainerBookingCreate,
    current_user: CurrentUser = Depends(can_manage_trainer_booking),
    activity: ActivityClient = Depends(get_activity_client),
) -> TrainerBookingResponse:
    booking = await trainer_booking_crud.create(company_id, current_user.id, payload)
    await activity.track(
        "trainer_booking_created",
        company_id,
        "trainer_booking",
        booking.id,
        current_user,
        metadata={"trainer_id": str(booking.trainer_id)},
    )
    return booking


@router.get("/{booking_id}", response_model=TrainerBookingResponse)
async def get_trainer_booking(
    company_id: UUID,
    booking_id: UUID,
    _: CurrentUser = Depends(can_read_trainer_booking),
) -> TrainerBookingResponse:
    booking = await trainer_booking_crud.get(company_id, booking_id)
    if not booking:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Trainer booking not found"
        )
    return booking


@router.patch("/{booking_id}", response_model=TrainerBookingResponse)
async def update_trainer_booking(
    company_id: UUID,
    booking_id: UUID,
    payload: TrainerBookingUpdate,
    current_user: CurrentUser = Depends(can_manage_trainer_booking),
) -> TrainerBookingResponse:
    return await trainer_booking_crud.update(
        company_id, current_user.id, booking_id, payload
    )


@router.delete("/{booking_id}", response_model=TrainerBookingResponse | None)
async def remove_trainer_booking(
    company_id: UUID,
    booking_id: UUID,
    current_user: CurrentUser = Depends(can_manage_trainer_booking),
    activity: ActivityClient = Depends(get_activity_client),
) -> TrainerBookingResponse | None:
    """Idempotent: removing an already-removed booking returns null."""
    booking = await trainer_booking_crud.remove(company_id, current_user.id, booking_id)
    if booking is not None:
        await activity.track(
            "trainer_booking_cancelled",
            company_id,
            "trainer_booking",
            booking.id,
            current_user,
        )
    return booking
