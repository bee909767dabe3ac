# roombook/services/calendar_service.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import quote

from roombook.core.errors import NotFoundError
from roombook.schemas.meeting import EventSpec, RawAttendee, RawEvent
from roombook.schemas.time_window import format_local
from roombook.services.graph_client import GraphClient

logger = logging.getLogger(__name__)

EVENT_SELECT = "id,iCalUId,subject,organizer,start,end,location,locations,attendees,isCancelled"


class CalendarService(Protocol):
    """
    Operations the scheduling core needs from the calendar provider.
    """

    async def list_events(
        self, mailbox: str, window_start_local: str, window_end_local: str
    ) -> List[RawEvent]: ...

    async def create_event(self, organizer_mailbox: str, spec: EventSpec) -> RawEvent: ...

    async def find_event_by_series_id(self, organizer_mailbox: str, series_id: str) -> str: ...

    async def get_event(self, organizer_mailbox: str, event_id: str) -> RawEvent: ...

    async def delete_event(self, organizer_mailbox: str, event_id: str) -> None: ...

    async def patch_event(
        self, organizer_mailbox: str, event_id: str, partial: Dict[str, Any]
    ) -> None: ...


def _user_path(mailbox: str) -> str:
    return f"/v1.0/users/{quote(mailbox, safe='@')}"


def parse_graph_event(ev: Dict[str, Any]) -> RawEvent:
    """
    Convert a Graph event resource into a RawEvent.

    Missing sections are tolerated; the aggregator decides what to drop.
    """
    organizer = (ev.get("organizer") or {}).get("emailAddress") or {}
    location = (ev.get("location") or {}).get("displayName")

    locations = [
        ((loc or {}).get("displayName") or "").strip()
        for loc in ev.get("locations") or []
    ]

    attendees: List[RawAttendee] = []
    for att in ev.get("attendees") or []:
        address = (att or {}).get("emailAddress") or {}
        attendees.append(
            RawAttendee(
                email=address.get("address"),
                name=address.get("name"),
                type=(att or {}).get("type") or "required",
            )
        )

    return RawEvent(
        event_id=ev.get("id") or "",
        series_id=ev.get("iCalUId") or None,
        subject=ev.get("subject"),
        start_local=(ev.get("start") or {}).get("dateTime"),
        end_local=(ev.get("end") or {}).get("dateTime"),
        location=location.strip() if location else None,
        locations=[name for name in locations if name],
        attendees=attendees,
        organizer_name=organizer.get("name"),
        organizer_email=organizer.get("address"),
        is_cancelled=bool(ev.get("isCancelled", False)),
    )


def build_event_payload(spec: EventSpec, timezone_name: str) -> Dict[str, Any]:
    """
    Build the Graph `event` body for a physical room booking.
    """
    attendees: List[Dict[str, Any]] = [
        {
            "emailAddress": {"address": spec.organizer_email, "name": spec.organizer_name},
            "type": "required",
        },
        {
            "emailAddress": {"address": spec.room_email, "name": spec.location},
            "type": "resource",
        },
    ]
    seen = {spec.organizer_email.casefold(), spec.room_email.casefold()}
    for extra in spec.attendees:
        if not extra.email or extra.email.casefold() in seen:
            continue
        seen.add(extra.email.casefold())
        attendees.append(
            {
                "emailAddress": {"address": extra.email, "name": extra.name or extra.email},
                "type": "required",
            }
        )

    payload: Dict[str, Any] = {
        "subject": spec.subject,
        "body": {"contentType": "HTML", "content": spec.body},
        "start": {"dateTime": format_local(spec.window.start), "timeZone": timezone_name},
        "end": {"dateTime": format_local(spec.window.end), "timeZone": timezone_name},
        "location": {
            "displayName": spec.location,
            "locationEmailAddress": spec.room_email,
        },
        "attendees": attendees,
        "isOnlineMeeting": False,
        "allowNewTimeProposals": False,
    }
    if spec.recurrence is not None:
        payload["recurrence"] = spec.recurrence.to_graph(spec.window.start, timezone_name)
    return payload


class GraphCalendarService:
    """
    CalendarService backed by Microsoft Graph.

    All civil timestamps exchanged with Graph are expressed in one Windows
    timezone, requested through the `Prefer: outlook.timezone` header, so
    no UTC conversion happens on either side.
    """

    def __init__(self, graph_client: GraphClient, timezone_name: str, page_size: int = 200):
        self.graph = graph_client
        self.timezone_name = timezone_name
        self.page_size = page_size

    @property
    def _prefer_headers(self) -> Dict[str, str]:
        return {"Prefer": f'outlook.timezone="{self.timezone_name}"'}

    async def list_events(
        self, mailbox: str, window_start_local: str, window_end_local: str
    ) -> List[RawEvent]:
        path: Optional[str] = f"{_user_path(mailbox)}/calendar/calendarView"
        params: Optional[Dict[str, Any]] = {
            "startDateTime": window_start_local,
            "endDateTime": window_end_local,
            "$top": self.page_size,
            "$orderby": "start/dateTime",
            "$select": EVENT_SELECT,
        }

        events: List[RawEvent] = []
        while path:
            payload = await self.graph.get_json(path, params=params, headers=self._prefer_headers)
            events.extend(parse_graph_event(ev) for ev in payload.get("value", []))
            # nextLink already carries the query string.
            path = payload.get("@odata.nextLink")
            params = None

        logger.debug("Fetched %d events for %s", len(events), mailbox)
        return events

    async def create_event(self, organizer_mailbox: str, spec: EventSpec) -> RawEvent:
        payload = build_event_payload(spec, self.timezone_name)
        created = await self.graph.post_json(
            f"{_user_path(organizer_mailbox)}/calendar/events",
            json=payload,
            headers=self._prefer_headers,
        )
        return parse_graph_event(created)

    async def find_event_by_series_id(self, organizer_mailbox: str, series_id: str) -> str:
        escaped = series_id.replace("'", "''")
        payload = await self.graph.get_json(
            f"{_user_path(organizer_mailbox)}/events",
            params={"$filter": f"iCalUId eq '{escaped}'", "$select": "id"},
        )
        for ev in payload.get("value", []):
            if ev.get("id"):
                return ev["id"]
        raise NotFoundError(f"No event with series id {series_id} in {organizer_mailbox}")

    async def get_event(self, organizer_mailbox: str, event_id: str) -> RawEvent:
        payload = await self.graph.get_json(
            f"{_user_path(organizer_mailbox)}/events/{quote(event_id, safe='')}",
            params={"$select": EVENT_SELECT},
            headers=self._prefer_headers,
        )
        return parse_graph_event(payload)

    async def delete_event(self, organizer_mailbox: str, event_id: str) -> None:
        await self.graph.delete(f"{_user_path(organizer_mailbox)}/events/{quote(event_id, safe='')}")

    async def patch_event(
        self, organizer_mailbox: str, event_id: str, partial: Dict[str, Any]
    ) -> None:
        await self.graph.patch_json(
            f"{_user_path(organizer_mailbox)}/events/{quote(event_id, safe='')}",
            json=partial,
            headers=self._prefer_headers,
        )
