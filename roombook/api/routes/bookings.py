# roombook/api/routes/bookings.py
from http import HTTPStatus
from typing import List

from fastapi import APIRouter, Depends, Query

from roombook.api.dependencies.caller_auth import verify_internal_api_key
from roombook.schemas.booking import Booking, BookingRequest
from roombook.schemas.meeting import RoomMailbox
from roombook.services.scheduling import SchedulingFacade, get_scheduler

router = APIRouter(
    prefix="/api",
    tags=["Bookings"],
    dependencies=[Depends(verify_internal_api_key)],
)


@router.get(
    "/rooms",
    response_model=List[RoomMailbox],
    summary="List configured meeting rooms",
)
async def list_rooms(
    scheduler: SchedulingFacade = Depends(get_scheduler),
) -> List[RoomMailbox]:
    return scheduler.list_rooms()


@router.post(
    "/bookings",
    response_model=Booking,
    status_code=HTTPStatus.CREATED,
    summary="Book a meeting room",
    description=(
        "Creates the meeting in the organizer's calendar with the room invited as "
        "a resource.\n\n"
        "- **409** with an organizer conflict message when the organizer already "
        "holds an overlapping booking.\n"
        "- **409** with a room conflict message when the room is already booked."
    ),
)
async def create_booking(
    payload: BookingRequest,
    scheduler: SchedulingFacade = Depends(get_scheduler),
) -> Booking:
    return await scheduler.create_booking(payload)


@router.get(
    "/bookings",
    response_model=List[Booking],
    summary="List bookings accepted by this service instance",
)
async def list_bookings(
    organizer_email: str | None = Query(
        default=None,
        description="Only return bookings of this organizer.",
    ),
    scheduler: SchedulingFacade = Depends(get_scheduler),
) -> List[Booking]:
    return scheduler.list_bookings(organizer_email)
