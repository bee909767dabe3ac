# roombook/services/calendar_aggregator.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date as date_type, datetime, tzinfo
from typing import Dict, Iterable, List, Optional, Sequence

from roombook.core.errors import ProviderAuthError
from roombook.schemas.meeting import (
    COMPOSITE_KEY_PREFIX,
    UNKNOWN_ROOM,
    UNTITLED_SUBJECT,
    CanonicalMeeting,
    RawEvent,
    RoomMailbox,
)
from roombook.schemas.time_window import TimeWindow, day_window, format_local, parse_local
from roombook.services.calendar_service import CalendarService

logger = logging.getLogger(__name__)


def composite_identity_key(
    subject: str, start_local: str, end_local: str, organizer_email: str | None
) -> str:
    """
    Fallback identity for events without a series id.

    This is a heuristic: two distinct meetings sharing subject, times and
    organizer collapse into one, and copies whose subject differs between
    mailboxes stay apart.
    """
    return "|".join(
        [COMPOSITE_KEY_PREFIX, subject, start_local, end_local, (organizer_email or "").casefold()]
    )


def parse_composite_identity_key(key: str) -> Optional[Dict[str, str]]:
    """
    Split a composite identity key back into its parts.

    Returns None for series-id keys. The subject may itself contain `|`.
    """
    if not key.startswith(COMPOSITE_KEY_PREFIX + "|"):
        return None
    rest = key[len(COMPOSITE_KEY_PREFIX) + 1:]
    parts = rest.rsplit("|", 3)
    if len(parts) != 4:
        return None
    subject, start_local, end_local, organizer_email = parts
    return {
        "subject": subject,
        "start_local": start_local,
        "end_local": end_local,
        "organizer_email": organizer_email,
    }


@dataclass
class NormalizedEvent:
    identity_key: str
    series_id: Optional[str]
    subject: str
    start: datetime
    end: datetime
    organizer: Optional[str]
    organizer_email: Optional[str]
    room: str
    attendee_count: int

    @property
    def start_local(self) -> str:
        return format_local(self.start)

    @property
    def end_local(self) -> str:
        return format_local(self.end)


@dataclass
class _Group:
    representative: NormalizedEvent
    rooms: List[str] = field(default_factory=list)

    def add_room(self, room: str) -> None:
        if room not in self.rooms:
            self.rooms.append(room)


class CalendarAggregator:
    """
    Builds the day view of every configured room.

    Each room mailbox is queried concurrently; the raw events are then
    normalized and merged so that one meeting booked in several rooms is
    reported once, with all its rooms.

    The aggregator keeps no state between calls besides its configuration.
    """

    def __init__(
        self,
        calendar: CalendarService,
        known_rooms: Sequence[RoomMailbox],
        tz: tzinfo,
        mailbox_timeout: float = 8.0,
    ) -> None:
        self.calendar = calendar
        self.known_rooms = tuple(known_rooms)
        self.tz = tz
        self.mailbox_timeout = mailbox_timeout
        # casefolded display name -> configured display name
        self._room_names: Dict[str, str] = {
            room.display_name.casefold(): room.display_name for room in self.known_rooms
        }

    async def list_meetings(
        self,
        rooms: Sequence[RoomMailbox],
        day: date_type,
        deadline: Optional[float] = None,
    ) -> List[CanonicalMeeting]:
        """
        Return the merged meetings of `day` across `rooms`, sorted by start.

        Parameters
        ----------
        rooms:
            Mailboxes to query. A failing or timed-out mailbox contributes
            no events.
        day:
            Civil date in the configured timezone.
        deadline:
            Seconds to wait for all mailbox queries together. Queries still
            running at the deadline are cancelled and treated as failed.

        Raises
        ------
        ProviderAuthError
            If any mailbox query failed because the provider rejected our
            credentials.
        """
        window = day_window(day, self.tz)
        start_local = format_local(window.start)
        end_local = format_local(window.end)

        tasks = [
            asyncio.create_task(self._query_mailbox(room, start_local, end_local))
            for room in rooms
        ]
        if not tasks:
            return []

        done, pending = await asyncio.wait(tasks, timeout=deadline)
        for task, room in zip(tasks, rooms):
            if task in pending:
                task.cancel()
                logger.warning(
                    "Calendar query for %s did not finish before the %ss deadline",
                    room.address,
                    deadline,
                )
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        normalized: List[NormalizedEvent] = []
        auth_error: Optional[ProviderAuthError] = None

        # Mailbox order, not completion order, so merging is deterministic.
        for task, room in zip(tasks, rooms):
            if task not in done:
                continue
            exc = task.exception()
            if isinstance(exc, ProviderAuthError):
                auth_error = auth_error or exc
                continue
            if exc is not None:
                logger.warning("Calendar query for %s failed: %s", room.address, exc)
                continue
            for raw in task.result():
                event = self.normalize_event(raw, room, day)
                if event is not None:
                    normalized.append(event)

        if auth_error is not None:
            logger.error("Calendar provider rejected credentials: %s", auth_error)
            raise auth_error

        return merge_events(normalized)

    async def _query_mailbox(
        self, room: RoomMailbox, start_local: str, end_local: str
    ) -> List[RawEvent]:
        try:
            return await asyncio.wait_for(
                self.calendar.list_events(room.address, start_local, end_local),
                timeout=self.mailbox_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise TimeoutError(
                f"query timed out after {self.mailbox_timeout}s"
            ) from exc

    def normalize_event(
        self, raw: RawEvent, room: RoomMailbox, day: date_type
    ) -> Optional[NormalizedEvent]:
        """
        Turn one mailbox's copy of an event into a NormalizedEvent.

        Returns None for cancelled events, events with unparseable or empty
        time ranges, and events starting on another day.
        """
        try:
            start = parse_local(raw.start_local or "").replace(tzinfo=self.tz)
            end = parse_local(raw.end_local or "").replace(tzinfo=self.tz)
        except ValueError:
            logger.debug("Skipping event %s with unparseable times", raw.event_id)
            return None

        if start.date() != day or end <= start:
            return None

        if raw.is_cancelled:
            logger.debug("Skipping cancelled event %s in %s", raw.event_id, room.address)
            return None

        subject = (raw.subject or "").strip() or UNTITLED_SUBJECT
        start_local = format_local(start)
        end_local = format_local(end)

        if raw.series_id:
            identity_key = raw.series_id
        else:
            identity_key = composite_identity_key(
                subject, start_local, end_local, raw.organizer_email
            )

        return NormalizedEvent(
            identity_key=identity_key,
            series_id=raw.series_id,
            subject=subject,
            start=start,
            end=end,
            organizer=raw.organizer_name,
            organizer_email=raw.organizer_email,
            room=self.attribute_room(raw, room),
            attendee_count=len(raw.attendees),
        )

    def mentioned_rooms(self, raw: RawEvent) -> List[str]:
        """
        Known room names referenced by the event's locations or resource attendees.
        """
        candidates: List[Optional[str]] = [raw.location, *raw.locations]
        candidates.extend(att.name for att in raw.attendees if att.is_resource)

        hits: List[str] = []
        for name in candidates:
            if not name:
                continue
            known = self._room_names.get(name.strip().casefold())
            if known and known not in hits:
                hits.append(known)
        return hits

    def attribute_room(self, raw: RawEvent, room: RoomMailbox) -> str:
        if room.display_name:
            return room.display_name
        hits = self.mentioned_rooms(raw)
        if hits:
            return hits[0]
        if raw.location:
            return raw.location
        return UNKNOWN_ROOM


def merge_events(events: Iterable[NormalizedEvent]) -> List[CanonicalMeeting]:
    """
    Group normalized events by identity key and build canonical meetings.

    The first event of each group supplies subject, organizer and attendee
    count; rooms are the union over the group in first-seen order.
    """
    groups: Dict[str, _Group] = {}
    for event in events:
        group = groups.get(event.identity_key)
        if group is None:
            group = groups[event.identity_key] = _Group(representative=event)
        group.add_room(event.room)

    meetings = []
    for key, group in groups.items():
        rep = group.representative
        meetings.append(
            CanonicalMeeting(
                identity_key=key,
                series_id=rep.series_id,
                subject=rep.subject,
                window=TimeWindow(start=rep.start, end=rep.end),
                start_local=rep.start_local,
                end_local=rep.end_local,
                organizer=rep.organizer,
                organizer_email=rep.organizer_email,
                rooms=group.rooms,
                attendee_count=rep.attendee_count,
            )
        )

    meetings.sort(key=lambda m: (m.start_local, m.subject, m.identity_key))
    return meetings
