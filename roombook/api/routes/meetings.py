# roombook/api/routes/meetings.py
from typing import List

from fastapi import APIRouter, Depends, Query

from roombook.api.dependencies.caller_auth import get_caller_identity, verify_internal_api_key
from roombook.core.config import get_settings
from roombook.core.errors import ValidationError
from roombook.schemas.meeting import CallerIdentity, DayMeetings, MeetingPatch
from roombook.schemas.time_window import parse_civil_date
from roombook.services.scheduling import SchedulingFacade, get_scheduler

router = APIRouter(
    prefix="/api/meetings",
    tags=["Meetings"],
    dependencies=[Depends(verify_internal_api_key)],
)


@router.get(
    "",
    response_model=DayMeetings,
    summary="List the meetings of one day across all rooms",
    description=(
        "Queries every room mailbox in parallel and merges copies of the same "
        "meeting into one entry listing all its rooms.\n\n"
        "`date` accepts `yyyy-MM-dd`, `dd-MM-yyyy`, `M/d/yyyy` or `d/M/yyyy` and "
        "defaults to today in the service timezone. Rooms whose calendar cannot "
        "be read are left out of the result."
    ),
    responses={
        200: {
            "description": "Meetings of the day, sorted by start time.",
            "content": {
                "application/json": {
                    "example": {
                        "status": "success",
                        "date": "2024-01-10",
                        "count": 1,
                        "meetings": [
                            {
                                "identity_key": "040000008200E00074C5B7101A82E008",
                                "subject": "Sync",
                                "start_local": "2024-01-10T09:00:00",
                                "end_local": "2024-01-10T09:30:00",
                                "organizer": "Alice",
                                "organizer_email": "alice@example.com",
                                "rooms": ["Conference Room", "Ground Floor Meeting Room"],
                                "attendee_count": 4,
                                "is_multi_room": True,
                            }
                        ],
                    }
                }
            },
        }
    },
)
async def list_meetings(
    date: str | None = Query(default=None, description="Day to list.", examples=["2024-01-10"]),
    room: List[str] | None = Query(
        default=None,
        description="Room mailbox addresses to include. Defaults to every configured room.",
    ),
    scheduler: SchedulingFacade = Depends(get_scheduler),
) -> DayMeetings:
    day = parse_civil_date(date, get_settings().timezone)

    rooms = None
    if room:
        if any("@" not in address for address in room):
            raise ValidationError("Invalid room mailbox addresses.")
        wanted = {address.strip().casefold() for address in room}
        rooms = [r for r in scheduler.list_rooms() if r.address.casefold() in wanted]

    meetings = await scheduler.list_day(day, rooms=rooms)
    return DayMeetings(date=day, count=len(meetings), meetings=meetings)


@router.patch(
    "/{identity_key:path}",
    summary="Change the subject and/or time of a meeting",
)
async def modify_meeting(
    identity_key: str,
    patch: MeetingPatch,
    organizer_email: str = Query(..., description="Mailbox of the meeting organizer."),
    caller: CallerIdentity = Depends(get_caller_identity),
    scheduler: SchedulingFacade = Depends(get_scheduler),
) -> dict:
    await scheduler.modify_meeting(identity_key, organizer_email, caller, patch)
    return {"status": "success", "message": "Meeting updated successfully."}


@router.delete(
    "/{identity_key:path}",
    summary="Cancel a meeting",
)
async def cancel_meeting(
    identity_key: str,
    organizer_email: str = Query(..., description="Mailbox of the meeting organizer."),
    caller: CallerIdentity = Depends(get_caller_identity),
    scheduler: SchedulingFacade = Depends(get_scheduler),
) -> dict:
    await scheduler.cancel_meeting(identity_key, organizer_email, caller)
    return {"status": "success", "message": "Meeting cancelled successfully."}
