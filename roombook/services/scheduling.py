# roombook/services/scheduling.py
from __future__ import annotations

import logging
from datetime import date as date_type, datetime, timedelta, tzinfo
from functools import lru_cache
from typing import Any, Dict, List, Optional, Sequence

from roombook.core.config import get_settings
from roombook.core.errors import (
    AuthorizationError,
    NotFoundError,
    ProviderConflictError,
    RoomConflictError,
    ValidationError,
)
from roombook.schemas.booking import Booking, BookingDraft, BookingRequest
from roombook.schemas.meeting import (
    CallerIdentity,
    CanonicalMeeting,
    EventSpec,
    MeetingPatch,
    RawAttendee,
    RawEvent,
    RoomMailbox,
    UNTITLED_SUBJECT,
)
from roombook.schemas.recurrence import PatternType
from roombook.schemas.time_window import (
    TimeWindow,
    align_to_weekly_mask,
    format_local,
    parse_local,
    to_fixed_zone,
)
from roombook.services.booking_ledger import BookingLedger
from roombook.services.calendar_aggregator import (
    CalendarAggregator,
    parse_composite_identity_key,
)
from roombook.services.calendar_service import CalendarService, GraphCalendarService
from roombook.services.graph_client import get_graph_client

logger = logging.getLogger(__name__)


def _is_email(value: str | None) -> bool:
    return bool(value) and "@" in value.strip()  # type: ignore[union-attr]


class SchedulingFacade:
    """
    Entry point of the booking core for the HTTP layer.

    Responsibilities
    ----------------
    - Validate and record bookings in the ledger, then create them on the
      provider.
    - Build the merged day view of all rooms.
    - Cancel/modify provider meetings on behalf of their organizer or an
      administrator.

    Every operation either returns its result or raises one of the errors in
    `roombook.core.errors`.
    """

    def __init__(
        self,
        calendar: CalendarService,
        ledger: BookingLedger,
        aggregator: CalendarAggregator,
        rooms: Sequence[RoomMailbox],
        tz: tzinfo,
        list_day_deadline: Optional[float] = None,
    ) -> None:
        self.calendar = calendar
        self.ledger = ledger
        self.aggregator = aggregator
        self.rooms = tuple(rooms)
        self.tz = tz
        self.list_day_deadline = list_day_deadline

    # ------------------------------------------------------------------ #
    # Bookings
    # ------------------------------------------------------------------ #

    def list_rooms(self) -> List[RoomMailbox]:
        return list(self.rooms)

    def list_bookings(self, organizer_email: str | None = None) -> List[Booking]:
        if organizer_email:
            return self.ledger.list_for_organizer(organizer_email)
        return self.ledger.list_all()

    def _build_draft(self, request: BookingRequest) -> BookingDraft:
        if not _is_email(request.organizer_email) or not _is_email(request.room_email):
            raise ValidationError("organizer_email and room_email are required")

        organizer_email = request.organizer_email.strip()  # type: ignore[union-attr]
        room_email = request.room_email.strip()  # type: ignore[union-attr]

        start = to_fixed_zone(request.start_time, self.tz)
        end = to_fixed_zone(request.end_time, self.tz)

        recurrence = request.recurrence
        if recurrence is not None and recurrence.pattern_type is PatternType.WEEKLY:
            # The series starts on the first selected weekday.
            shifted = align_to_weekly_mask(start, recurrence.weekly_days_mask)
            end = end + (shifted - start)
            start = shifted

        if not start < end:
            raise ValidationError("start_time must be before end_time")

        if (
            recurrence is not None
            and recurrence.range.end_date is not None
            and recurrence.range.end_date < start.date()
        ):
            raise ValidationError("recurrence end_date is before the first occurrence")

        room_display_name = request.room_display_name or self._room_name(room_email)
        title = (request.title or "").strip() or room_display_name

        return BookingDraft(
            title=title,
            window=TimeWindow(start=start, end=end),
            organizer_email=organizer_email,
            organizer_name=request.organizer_name or organizer_email.split("@")[0],
            room_email=room_email,
            room_display_name=room_display_name,
            recurrence=recurrence,
        )

    def _room_name(self, room_email: str) -> str:
        for room in self.rooms:
            if room.address.casefold() == room_email.casefold():
                return room.display_name
        return room_email

    async def create_booking(self, request: BookingRequest) -> Booking:
        """
        Reserve a room for the organizer.

        The ledger rejects overlaps with the organizer's own bookings
        (ConflictError); the provider rejects room double-booking
        (RoomConflictError). A provider failure leaves no ledger entry.
        """
        draft = self._build_draft(request)
        booking = await self.ledger.create(draft)

        spec = EventSpec(
            subject=draft.title,
            body=request.description or draft.title,
            window=draft.window,
            location=draft.room_display_name,
            room_email=draft.room_email,
            organizer_email=draft.organizer_email,
            organizer_name=draft.organizer_name,
            attendees=[RawAttendee(email=a.email, name=a.name) for a in request.attendees],
            recurrence=draft.recurrence,
        )

        try:
            created = await self.calendar.create_event(draft.organizer_email, spec)
        except ProviderConflictError as exc:
            await self.ledger.cancel(booking.id)
            logger.info("Room %s already booked for %s", draft.room_email, booking.id)
            raise RoomConflictError(
                "Time conflict: the room is already booked at this time"
            ) from exc
        except Exception:
            await self.ledger.cancel(booking.id)
            raise

        return await self.ledger.attach_provider_refs(
            booking.id,
            provider_event_id=created.event_id or None,
            series_id=created.series_id,
        )

    # ------------------------------------------------------------------ #
    # Meetings
    # ------------------------------------------------------------------ #

    async def list_day(
        self,
        day: date_type,
        rooms: Sequence[RoomMailbox] | None = None,
        deadline: Optional[float] = None,
    ) -> List[CanonicalMeeting]:
        return await self.aggregator.list_meetings(
            rooms if rooms is not None else self.rooms,
            day,
            deadline=deadline if deadline is not None else self.list_day_deadline,
        )

    async def cancel_meeting(
        self,
        identity_key: str,
        organizer_email: str,
        caller: CallerIdentity,
    ) -> None:
        event = await self._authorized_event(identity_key, organizer_email, caller)

        await self.calendar.delete_event(organizer_email, event.event_id)

        booking = self._ledger_entry(identity_key, event)
        if booking is not None:
            await self.ledger.cancel(booking.id)

        logger.info("Meeting %s cancelled by %s", identity_key, caller.email)

    async def modify_meeting(
        self,
        identity_key: str,
        organizer_email: str,
        caller: CallerIdentity,
        patch: MeetingPatch,
    ) -> None:
        if patch.is_empty:
            raise ValidationError("Nothing to update")

        event = await self._authorized_event(identity_key, organizer_email, caller)

        partial: Dict[str, Any] = {}
        if patch.has("subject"):
            partial["subject"] = patch.subject or ""

        new_window: Optional[TimeWindow] = None
        if patch.has("start") or patch.has("end"):
            new_window = self._patched_window(event, patch)
            partial["start"] = {
                "dateTime": format_local(new_window.start),
                "timeZone": self._provider_timezone_name(),
            }
            partial["end"] = {
                "dateTime": format_local(new_window.end),
                "timeZone": self._provider_timezone_name(),
            }

        booking = self._ledger_entry(identity_key, event)
        if booking is not None and (new_window is not None or "subject" in partial):
            await self.ledger.modify(
                booking.id,
                new_window or booking.window,
                title=partial.get("subject"),
            )

        try:
            await self.calendar.patch_event(organizer_email, event.event_id, partial)
        except Exception:
            if booking is not None:
                await self.ledger.restore(booking)
            raise

        logger.info("Meeting %s updated by %s", identity_key, caller.email)

    def _patched_window(self, event: RawEvent, patch: MeetingPatch) -> TimeWindow:
        if (patch.has("start") and patch.start is None) or (patch.has("end") and patch.end is None):
            raise ValidationError("start and end cannot be cleared")

        current = self._event_window(event)
        start = to_fixed_zone(patch.start, self.tz) if patch.start else current.start
        end = to_fixed_zone(patch.end, self.tz) if patch.end else current.end
        if not start < end:
            raise ValidationError("start must be before end")
        return TimeWindow(start=start, end=end)

    def _provider_timezone_name(self) -> str:
        return getattr(self.calendar, "timezone_name", None) or str(self.tz)

    def _event_window(self, event: RawEvent) -> TimeWindow:
        try:
            start = parse_local(event.start_local or "").replace(tzinfo=self.tz)
            end = parse_local(event.end_local or "").replace(tzinfo=self.tz)
            return TimeWindow(start=start, end=end)
        except ValueError as exc:
            raise ValidationError(f"Event {event.event_id} has no usable time window") from exc

    def _ledger_entry(self, identity_key: str, event: RawEvent) -> Optional[Booking]:
        return (
            self.ledger.find_by_provider_ref(identity_key)
            or self.ledger.find_by_provider_ref(event.event_id)
        )

    async def _authorized_event(
        self,
        identity_key: str,
        organizer_email: str,
        caller: CallerIdentity,
    ) -> RawEvent:
        """
        Resolve the organizer's copy of the meeting and check the caller may change it.

        Only the organizer or an administrator may act; regular users cannot
        touch a meeting that has already ended.
        """
        if not identity_key or not _is_email(organizer_email):
            raise ValidationError("identity_key and organizer_email are required")

        if not caller.may_act_for(organizer_email):
            raise AuthorizationError("Only the organizer or an administrator may change this meeting")

        event = await self._resolve_event(identity_key, organizer_email)

        if not caller.is_admin:
            window = self._event_window(event)
            if window.end <= datetime.now(tz=self.tz):
                raise AuthorizationError("Completed meetings can no longer be changed")

        return event

    async def _resolve_event(self, identity_key: str, organizer_email: str) -> RawEvent:
        composite = parse_composite_identity_key(identity_key)
        if composite is None:
            event_id = await self.calendar.find_event_by_series_id(organizer_email, identity_key)
            return await self.calendar.get_event(organizer_email, event_id)

        # No series id: look for the organizer's copy by subject and times.
        try:
            start = parse_local(composite["start_local"])
        except ValueError as exc:
            raise ValidationError(f"Malformed identity key: {identity_key}") from exc

        day_start = start.replace(hour=0, minute=0, second=0)
        events = await self.calendar.list_events(
            organizer_email,
            format_local(day_start),
            format_local(day_start + timedelta(days=1)),
        )
        for event in events:
            subject = (event.subject or "").strip() or UNTITLED_SUBJECT
            if (
                subject == composite["subject"]
                and (event.start_local or "")[:19] == composite["start_local"]
                and (event.end_local or "")[:19] == composite["end_local"]
            ):
                return event

        raise NotFoundError(f"Meeting {identity_key} not found for {organizer_email}")


@lru_cache()
def get_scheduler() -> SchedulingFacade:
    """
    Process-wide facade wired to application settings and the shared Graph client.
    """
    settings = get_settings()
    calendar = GraphCalendarService(get_graph_client(), timezone_name=settings.OUTLOOK_TIMEZONE)
    rooms = settings.room_mailboxes
    aggregator = CalendarAggregator(
        calendar,
        known_rooms=rooms,
        tz=settings.timezone,
        mailbox_timeout=settings.MAILBOX_QUERY_TIMEOUT_SECONDS,
    )
    return SchedulingFacade(
        calendar=calendar,
        ledger=BookingLedger(),
        aggregator=aggregator,
        rooms=rooms,
        tz=settings.timezone,
        list_day_deadline=settings.LIST_DAY_DEADLINE_SECONDS,
    )
