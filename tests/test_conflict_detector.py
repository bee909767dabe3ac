# tests/test_conflict_detector.py
from datetime import datetime

from roombook.schemas.time_window import TimeWindow
from roombook.services.conflict_detector import check_conflict, find_conflicts


def _w(start_hour: float, end_hour: float) -> TimeWindow:
    def at(hour: float) -> datetime:
        return datetime(2024, 1, 10, int(hour), int(round((hour % 1) * 60)))

    return TimeWindow(start=at(start_hour), end=at(end_hour))


def test_no_existing_bookings_never_conflicts():
    assert check_conflict(_w(9, 10), []) is False


def test_any_overlap_is_a_conflict():
    existing = [_w(8, 9), _w(11, 12), _w(9.5, 10.5)]
    assert check_conflict(_w(10, 11), existing) is True
    assert find_conflicts(_w(10, 11), existing) == [_w(9.5, 10.5)]


def test_touching_bookings_are_not_conflicts():
    existing = [_w(8, 9), _w(10, 11)]
    assert check_conflict(_w(9, 10), existing) is False
