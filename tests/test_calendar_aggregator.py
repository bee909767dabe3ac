# tests/test_calendar_aggregator.py
from datetime import date

import pytest

from roombook.core.errors import ProviderAuthError, ProviderIOError
from roombook.schemas.meeting import RawAttendee, RoomMailbox
from roombook.services.calendar_aggregator import (
    CalendarAggregator,
    composite_identity_key,
    parse_composite_identity_key,
)
from fakes import IST, ROOMS, FakeCalendarService, raw_event

DAY = date(2024, 1, 10)
ROOM_A, ROOM_B, ROOM_C = (room.address for room in ROOMS)


def _aggregator(calendar: FakeCalendarService, mailbox_timeout: float = 1.0) -> CalendarAggregator:
    return CalendarAggregator(calendar, known_rooms=ROOMS, tz=IST, mailbox_timeout=mailbox_timeout)


@pytest.mark.asyncio
async def test_copies_sharing_a_series_id_merge_into_one_multi_room_meeting():
    calendar = FakeCalendarService(
        {
            ROOM_A: [raw_event("a-1", series_id="S1", attendees=[RawAttendee(email="x@example.com")])],
            ROOM_B: [raw_event("b-1", series_id="S1", attendees=[RawAttendee(email="x@example.com")])],
        }
    )

    meetings = await _aggregator(calendar).list_meetings(ROOMS[:2], DAY)

    assert len(meetings) == 1
    meeting = meetings[0]
    assert meeting.identity_key == "S1"
    assert set(meeting.rooms) == {"Room A", "Room B"}
    assert meeting.is_multi_room is True
    assert meeting.attendee_count == 1
    assert meeting.subject == "Sync"


@pytest.mark.asyncio
async def test_all_mailboxes_are_queried_for_the_civil_day():
    calendar = FakeCalendarService()

    await _aggregator(calendar).list_meetings(ROOMS, DAY)

    assert sorted(call[0] for call in calendar.list_calls) == sorted([ROOM_A, ROOM_B, ROOM_C])
    assert {call[1:] for call in calendar.list_calls} == {("2024-01-10T00:00:00", "2024-01-11T00:00:00")}


@pytest.mark.asyncio
async def test_series_meeting_sorts_before_later_meetings():
    calendar = FakeCalendarService(
        {
            ROOM_A: [
                raw_event("a-2", subject="Review", start="2024-01-10T11:00:00", end="2024-01-10T12:00:00", series_id="S2"),
                raw_event("a-1", series_id="S1"),
            ],
            ROOM_B: [raw_event("b-1", series_id="S1")],
            ROOM_C: [raw_event("c-1", series_id="S1")],
        }
    )

    meetings = await _aggregator(calendar).list_meetings(ROOMS, DAY)

    assert [m.identity_key for m in meetings] == ["S1", "S2"]
    assert len(meetings[0].rooms) == 3
    assert meetings[1].is_multi_room is False


@pytest.mark.asyncio
async def test_one_failing_mailbox_does_not_hide_the_others():
    calendar = FakeCalendarService(
        {
            ROOM_A: [raw_event("a-1", subject="Standup", series_id="S1")],
            ROOM_C: [raw_event("c-1", subject="Retro", start="2024-01-10T15:00:00", end="2024-01-10T16:00:00", series_id="S3")],
        }
    )
    calendar.failures[ROOM_B] = ProviderIOError("mailbox unavailable")

    meetings = await _aggregator(calendar).list_meetings(ROOMS, DAY)

    assert [m.subject for m in meetings] == ["Standup", "Retro"]


@pytest.mark.asyncio
async def test_unexpected_exceptions_are_also_absorbed():
    calendar = FakeCalendarService({ROOM_A: [raw_event("a-1", series_id="S1")]})
    calendar.failures[ROOM_B] = RuntimeError("boom")

    meetings = await _aggregator(calendar).list_meetings(ROOMS[:2], DAY)

    assert len(meetings) == 1


@pytest.mark.asyncio
async def test_slow_mailbox_times_out_without_aborting_siblings():
    calendar = FakeCalendarService({ROOM_A: [raw_event("a-1", series_id="S1")]})
    calendar.delays[ROOM_B] = 5

    meetings = await _aggregator(calendar, mailbox_timeout=0.05).list_meetings(ROOMS[:2], DAY)

    assert [m.identity_key for m in meetings] == ["S1"]
    assert meetings[0].rooms == ["Room A"]


@pytest.mark.asyncio
async def test_overall_deadline_bounds_the_join():
    calendar = FakeCalendarService({ROOM_A: [raw_event("a-1", series_id="S1")]})
    calendar.delays[ROOM_C] = 5

    meetings = await _aggregator(calendar, mailbox_timeout=10).list_meetings(ROOMS, DAY, deadline=0.1)

    assert [m.identity_key for m in meetings] == ["S1"]


@pytest.mark.asyncio
async def test_credential_failure_fails_the_whole_listing():
    calendar = FakeCalendarService({ROOM_A: [raw_event("a-1", series_id="S1")]})
    calendar.failures[ROOM_B] = ProviderAuthError("token rejected")

    with pytest.raises(ProviderAuthError):
        await _aggregator(calendar).list_meetings(ROOMS, DAY)


@pytest.mark.asyncio
async def test_events_starting_on_another_day_are_dropped():
    calendar = FakeCalendarService(
        {
            ROOM_A: [
                raw_event("a-0", subject="Overnight", start="2024-01-09T23:00:00", end="2024-01-10T01:00:00"),
                raw_event("a-1", subject="Today"),
                raw_event("a-2", subject="Broken", start="not-a-date"),
            ]
        }
    )

    meetings = await _aggregator(calendar).list_meetings(ROOMS[:1], DAY)

    assert [m.subject for m in meetings] == ["Today"]


@pytest.mark.asyncio
async def test_events_without_series_id_merge_on_composite_key():
    calendar = FakeCalendarService(
        {
            ROOM_A: [raw_event("a-1", subject="Interview")],
            ROOM_B: [raw_event("b-1", subject="Interview", organizer_email="ALICE@example.com")],
            ROOM_C: [raw_event("c-1", subject="Interview", organizer_email="bob@example.com")],
        }
    )

    meetings = await _aggregator(calendar).list_meetings(ROOMS, DAY)

    assert len(meetings) == 2
    by_organizer = {m.identity_key.rsplit("|", 1)[-1]: m for m in meetings}
    assert set(by_organizer["alice@example.com"].rooms) == {"Room A", "Room B"}
    assert by_organizer["bob@example.com"].rooms == ["Room C"]


@pytest.mark.asyncio
async def test_cancelled_copies_are_left_out_of_the_day_view():
    calendar = FakeCalendarService(
        {
            ROOM_A: [raw_event("a-1", series_id="S1")],
            ROOM_B: [raw_event("b-1", series_id="S1", is_cancelled=True)],
            ROOM_C: [raw_event("c-1", subject="Dropped", series_id="S2", is_cancelled=True)],
        }
    )

    meetings = await _aggregator(calendar).list_meetings(ROOMS, DAY)

    assert [m.identity_key for m in meetings] == ["S1"]
    assert meetings[0].rooms == ["Room A"]


@pytest.mark.asyncio
async def test_untitled_events_get_a_placeholder_subject():
    calendar = FakeCalendarService({ROOM_A: [raw_event("a-1", subject="  ")]})

    meetings = await _aggregator(calendar).list_meetings(ROOMS[:1], DAY)

    assert meetings[0].subject == "[No Title]"


def test_room_attribution_falls_back_through_mentions_and_location():
    aggregator = _aggregator(FakeCalendarService())
    unnamed = RoomMailbox(address="mystery@example.com", display_name="")

    via_resource = raw_event(
        "x-1",
        location="Somewhere",
        attendees=[RawAttendee(email="room-c@example.com", name="room c", type="resource")],
    )
    via_location = raw_event("x-2", location="Cafeteria")
    nothing = raw_event("x-3")

    assert aggregator.attribute_room(via_resource, ROOMS[0]) == "Room A"
    assert aggregator.attribute_room(via_resource, unnamed) == "Room C"
    assert aggregator.attribute_room(via_location, unnamed) == "Cafeteria"
    assert aggregator.attribute_room(nothing, unnamed) == "Unknown"


def test_mentioned_rooms_intersect_with_known_rooms():
    aggregator = _aggregator(FakeCalendarService())
    event = raw_event(
        "x-1",
        location="Room B",
        locations=["Room B", "Room A", "Hallway"],
        attendees=[RawAttendee(name="Room C", type="resource"), RawAttendee(name="Room A", type="required")],
    )

    assert aggregator.mentioned_rooms(event) == ["Room B", "Room A", "Room C"]


def test_composite_key_round_trips_subjects_with_separators():
    key = composite_identity_key("A|B", "2024-01-10T09:00:00", "2024-01-10T09:30:00", "Alice@Example.com")

    parts = parse_composite_identity_key(key)

    assert parts == {
        "subject": "A|B",
        "start_local": "2024-01-10T09:00:00",
        "end_local": "2024-01-10T09:30:00",
        "organizer_email": "alice@example.com",
    }
    assert parse_composite_identity_key("040000008200E0") is None
