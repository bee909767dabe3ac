# roombook/schemas/meeting.py
from __future__ import annotations

from datetime import date as date_type, datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field, computed_field

from roombook.schemas.recurrence import RecurrenceRule
from roombook.schemas.time_window import TimeWindow

UNKNOWN_ROOM = "Unknown"
UNTITLED_SUBJECT = "[No Title]"
COMPOSITE_KEY_PREFIX = "composite"


class RoomMailbox(BaseModel):
    """
    A physical room resource mailbox known to the service.
    """

    model_config = ConfigDict(frozen=True)

    address: str = Field(..., description="SMTP address of the room mailbox.")
    display_name: str = Field(..., description="Human-friendly room name.")


class RawAttendee(BaseModel):
    email: str | None = None
    name: str | None = None
    type: str = Field("required", description="required / optional / resource")

    @property
    def is_resource(self) -> bool:
        return self.type.lower() == "resource"


class RawEvent(BaseModel):
    """
    One event as returned by the calendar provider for a single mailbox.

    `start_local` / `end_local` are civil timestamps in the fixed zone,
    without offset.
    """

    event_id: str = Field(..., description="Provider id, unique per mailbox copy.")
    series_id: str | None = Field(
        None,
        description="Identifier shared by every mailbox copy of the same meeting (Graph iCalUId).",
    )
    subject: str | None = None
    start_local: str | None = None
    end_local: str | None = None
    location: str | None = Field(None, description="Primary location display name.")
    locations: List[str] = Field(default_factory=list)
    attendees: List[RawAttendee] = Field(default_factory=list)
    organizer_name: str | None = None
    organizer_email: str | None = None
    is_cancelled: bool = False


class CanonicalMeeting(BaseModel):
    """
    One logical meeting, merged across every room mailbox it appears in.
    """

    identity_key: str = Field(
        ...,
        description=(
            "Series id when the provider supplied one, otherwise the composite "
            "`composite|subject|start|end|organizer` heuristic."
        ),
    )
    series_id: str | None = None
    subject: str
    window: TimeWindow
    start_local: str
    end_local: str
    organizer: str | None = None
    organizer_email: str | None = None
    rooms: List[str] = Field(default_factory=list)
    attendee_count: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_multi_room(self) -> bool:
        return len(self.rooms) > 1


class EventSpec(BaseModel):
    """
    Everything the provider needs to create an event in an organizer's calendar.
    """

    subject: str
    body: str
    window: TimeWindow
    location: str
    room_email: str
    organizer_email: str
    organizer_name: str
    attendees: List[RawAttendee] = Field(default_factory=list)
    recurrence: RecurrenceRule | None = None


class MeetingPatch(BaseModel):
    """
    Partial update of a meeting.

    A field is applied only when it was explicitly provided; an explicitly
    empty subject is distinct from an absent one.
    """

    subject: str | None = None
    start: datetime | None = None
    end: datetime | None = None

    def has(self, field: str) -> bool:
        return field in self.model_fields_set

    @property
    def is_empty(self) -> bool:
        return not self.model_fields_set


class CallerIdentity(BaseModel):
    email: str
    is_admin: bool = False

    def may_act_for(self, organizer_email: str) -> bool:
        return self.is_admin or self.email.casefold() == organizer_email.casefold()


class DayMeetings(BaseModel):
    status: str = "success"
    date: date_type
    count: int
    meetings: List[CanonicalMeeting]
