# roombook/services/booking_ledger.py
from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from roombook.core.errors import ConflictError, NotFoundError
from roombook.schemas.booking import Booking, BookingDraft
from roombook.schemas.time_window import TimeWindow
from roombook.services.conflict_detector import check_conflict

logger = logging.getLogger(__name__)


def _organizer_key(email: str) -> str:
    return email.strip().casefold()


def _sort_key(booking: Booking):
    return (booking.window.start, booking.created_at)


class BookingLedger:
    """
    In-process record of confirmed bookings, bucketed per organizer.

    Responsibilities
    ----------------
    - Reject a booking that overlaps another booking of the same organizer.
    - Keep each organizer's bookings ordered by start time.
    - Make check-then-insert atomic per organizer.

    Notes
    -----
    - State lives for the lifetime of the process only.
    - Mutations for one organizer are serialized by a lock created lazily
      for that organizer; different organizers never wait on each other.
    - Emptied buckets are dropped. Locks are kept, so the lock table is
      bounded by the number of distinct organizers; a lock may still have
      waiters when its bucket empties.
    """

    def __init__(self) -> None:
        self._buckets: Dict[str, List[Booking]] = {}
        self._index: Dict[str, str] = {}  # booking id -> organizer key
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks.setdefault(key, asyncio.Lock())
        return lock

    async def create(self, candidate: BookingDraft) -> Booking:
        """
        Accept `candidate` unless it overlaps one of the organizer's bookings.

        Raises
        ------
        ConflictError
            When the window overlaps an existing booking. Nothing is stored.
        """
        key = _organizer_key(candidate.organizer_email)

        async with self._lock_for(key):
            bucket = self._buckets.get(key, [])
            if check_conflict(candidate.window, (b.window for b in bucket)):
                raise ConflictError(
                    f"{candidate.organizer_email} already has a booking overlapping "
                    f"{candidate.window.start.isoformat()} - {candidate.window.end.isoformat()}"
                )

            booking = Booking(
                id=uuid.uuid4().hex,
                created_at=datetime.now(tz=timezone.utc),
                **dict(candidate),
            )
            bucket = sorted([*bucket, booking], key=_sort_key)
            self._buckets[key] = bucket
            self._index[booking.id] = key

        logger.info("Booking %s accepted for %s", booking.id, candidate.organizer_email)
        return booking

    def get(self, booking_id: str) -> Booking:
        return self._find_in(self._buckets.get(self._key_of(booking_id), []), booking_id)

    def find_by_provider_ref(self, ref: str) -> Optional[Booking]:
        """
        Locate a booking by its provider series id or provider event id.
        """
        for bucket in self._buckets.values():
            for booking in bucket:
                if ref and ref in (booking.series_id, booking.provider_event_id):
                    return booking
        return None

    def list_for_organizer(self, email: str) -> List[Booking]:
        return list(self._buckets.get(_organizer_key(email), []))

    def list_all(self) -> List[Booking]:
        everything = [b for bucket in self._buckets.values() for b in bucket]
        return sorted(everything, key=_sort_key)

    async def attach_provider_refs(
        self,
        booking_id: str,
        provider_event_id: str | None,
        series_id: str | None,
    ) -> Booking:
        return await self._replace(
            booking_id,
            lambda b: b.model_copy(
                update={"provider_event_id": provider_event_id, "series_id": series_id}
            ),
        )

    async def modify(
        self,
        booking_id: str,
        new_window: TimeWindow,
        title: str | None = None,
    ) -> Booking:
        """
        Move a booking to `new_window` (and optionally retitle it).

        The new window is checked against the organizer's other bookings;
        the booking being moved never conflicts with itself.
        """
        key = self._key_of(booking_id)

        async with self._lock_for(key):
            bucket = self._buckets.get(key, [])
            current = self._find_in(bucket, booking_id)
            others = (b.window for b in bucket if b.id != booking_id)
            if check_conflict(new_window, others):
                raise ConflictError(
                    f"{current.organizer_email} already has a booking overlapping "
                    f"{new_window.start.isoformat()} - {new_window.end.isoformat()}"
                )

            update: dict = {"window": new_window}
            if title is not None:
                update["title"] = title
            updated = current.model_copy(update=update)
            self._buckets[key] = sorted(
                [updated if b.id == booking_id else b for b in bucket],
                key=_sort_key,
            )

        logger.info("Booking %s moved to %s", booking_id, new_window.start.isoformat())
        return updated

    async def restore(self, booking: Booking) -> None:
        """
        Put back a previously stored version of a booking without re-checking.

        Used to undo a ledger change when the matching provider write failed.
        """
        key = _organizer_key(booking.organizer_email)
        async with self._lock_for(key):
            bucket = [b for b in self._buckets.get(key, []) if b.id != booking.id]
            self._buckets[key] = sorted([*bucket, booking], key=_sort_key)
            self._index[booking.id] = key

    async def cancel(self, booking_id: str) -> Booking:
        key = self._key_of(booking_id)

        async with self._lock_for(key):
            bucket = self._buckets.get(key, [])
            removed = self._find_in(bucket, booking_id)
            remaining = [b for b in bucket if b.id != booking_id]
            if remaining:
                self._buckets[key] = remaining
            else:
                self._buckets.pop(key, None)
            self._index.pop(booking_id, None)

        logger.info("Booking %s cancelled", booking_id)
        return removed

    def _key_of(self, booking_id: str) -> str:
        key = self._index.get(booking_id)
        if key is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        return key

    @staticmethod
    def _find_in(bucket: List[Booking], booking_id: str) -> Booking:
        for booking in bucket:
            if booking.id == booking_id:
                return booking
        raise NotFoundError(f"Booking {booking_id} not found")

    async def _replace(self, booking_id: str, change) -> Booking:
        key = self._key_of(booking_id)
        async with self._lock_for(key):
            bucket = self._buckets.get(key, [])
            updated = change(self._find_in(bucket, booking_id))
            self._buckets[key] = [updated if b.id == booking_id else b for b in bucket]
        return updated
