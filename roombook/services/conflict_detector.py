# roombook/services/conflict_detector.py
from typing import Iterable, List

from roombook.schemas.time_window import TimeWindow, overlaps


def find_conflicts(candidate: TimeWindow, existing: Iterable[TimeWindow]) -> List[TimeWindow]:
    """
    Return every window in `existing` that overlaps `candidate`.
    """
    return [window for window in existing if overlaps(candidate, window)]


def check_conflict(candidate: TimeWindow, existing: Iterable[TimeWindow]) -> bool:
    """
    True if `candidate` overlaps any of the organizer's existing windows.

    Only the organizer's own bookings are considered here; room occupancy
    is enforced by the calendar provider.
    """
    return any(overlaps(candidate, window) for window in existing)
