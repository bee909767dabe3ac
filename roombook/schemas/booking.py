# roombook/schemas/booking.py
from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from roombook.schemas.recurrence import RecurrenceRule
from roombook.schemas.time_window import TimeWindow


class AttendeeIn(BaseModel):
    email: str = Field(..., examples=["bob@example.com"])
    name: str | None = Field(None, examples=["Bob"])


class BookingRequest(BaseModel):
    """
    Incoming request to reserve a room.

    Start/end without an offset are read as civil time in the configured
    timezone.
    """

    title: str | None = Field(None, examples=["Sprint planning"])
    description: str | None = None
    start_time: datetime = Field(..., examples=["2024-01-10T09:00:00"])
    end_time: datetime = Field(..., examples=["2024-01-10T10:00:00"])
    organizer_email: str | None = Field(None, examples=["alice@example.com"])
    organizer_name: str | None = None
    room_email: str | None = Field(None, examples=["room1@example.com"])
    room_display_name: str | None = Field(
        None,
        description="Defaults to the configured display name of room_email.",
    )
    attendees: List[AttendeeIn] = Field(default_factory=list)
    recurrence: RecurrenceRule | None = None


class Booking(BaseModel):
    """
    A reservation accepted by the in-process ledger.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Opaque unique identifier, never reused.")
    title: str
    window: TimeWindow
    organizer_email: str
    organizer_name: str
    room_email: str
    room_display_name: str
    created_at: datetime
    recurrence: RecurrenceRule | None = None
    provider_event_id: str | None = None
    series_id: str | None = None


class BookingDraft(BaseModel):
    """
    A validated booking that has not yet been accepted by the ledger.
    """

    model_config = ConfigDict(frozen=True)

    title: str
    window: TimeWindow
    organizer_email: str
    organizer_name: str
    room_email: str
    room_display_name: str
    recurrence: RecurrenceRule | None = None
