# roombook/schemas/time_window.py
from __future__ import annotations

from datetime import date as date_type, datetime, time, timedelta, tzinfo

from pydantic import BaseModel, ConfigDict, Field, model_validator

from roombook.core.errors import ValidationError

LOCAL_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Tried in order; the first format that parses wins.
ACCEPTED_DATE_FORMATS = (
    "%Y-%m-%d",
    "%d-%m-%Y",
    "%m/%d/%Y",
    "%d/%m/%Y",
)


class TimeWindow(BaseModel):
    """
    Half-open time span `[start, end)` of a meeting.

    Both bounds must be either naive (civil time in the configured zone) or
    timezone-aware. Instances are immutable.
    """

    model_config = ConfigDict(frozen=True)

    start: datetime = Field(..., description="Inclusive start of the window.")
    end: datetime = Field(..., description="Exclusive end of the window.")

    @model_validator(mode="after")
    def _check_bounds(self) -> "TimeWindow":
        if (self.start.tzinfo is None) != (self.end.tzinfo is None):
            raise ValueError("start and end must both be naive or both be timezone-aware")
        if not self.start < self.end:
            raise ValueError("start must be before end")
        return self

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


def overlaps(a: TimeWindow, b: TimeWindow) -> bool:
    """
    True when the two windows share at least one instant.

    Touching endpoints (`a.end == b.start`) do not overlap.
    """
    return a.start < b.end and b.start < a.end


def sunday_based_weekday(value: datetime | date_type) -> int:
    """
    Weekday index with Sunday = 0 … Saturday = 6 (the weekly mask bit order).
    """
    return (value.weekday() + 1) % 7


def align_to_weekly_mask(base: datetime, mask: int) -> datetime:
    """
    Shift `base` forward by 0–6 days to the first day selected by `mask`.

    Bit 0 of the mask is Sunday, bit 6 is Saturday. Time of day is kept.
    An empty mask leaves `base` unchanged.
    """
    mask &= 0x7F
    if mask == 0:
        return base

    for offset in range(7):
        candidate = base + timedelta(days=offset)
        if mask & (1 << sunday_based_weekday(candidate)):
            return candidate

    return base


def to_fixed_zone(value: datetime, tz: tzinfo) -> datetime:
    """
    Interpret naive datetimes as civil time in `tz`; convert aware ones to `tz`.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def day_window(day: date_type, tz: tzinfo) -> TimeWindow:
    """
    Return `[00:00 of day, 00:00 of the next day)` in the given zone.
    """
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return TimeWindow(start=start, end=end)


def format_local(value: datetime) -> str:
    """
    Fixed-width `YYYY-MM-DDTHH:MM:SS` form without offset.

    Lexicographic order of these strings equals chronological order.
    """
    return value.strftime(LOCAL_TIMESTAMP_FORMAT)


def parse_local(value: str) -> datetime:
    """
    Parse a provider civil timestamp into a naive datetime.

    Graph returns up to seven fractional-second digits
    (`2024-01-10T09:00:00.0000000`); anything past the seconds is ignored.
    """
    if not value:
        raise ValueError("empty timestamp")
    return datetime.strptime(value[:19], LOCAL_TIMESTAMP_FORMAT)


def parse_civil_date(value: str | None, tz: tzinfo) -> date_type:
    """
    Parse a requested calendar date.

    Accepted forms are `yyyy-MM-dd`, `dd-MM-yyyy` (single-digit day/month
    allowed), `M/d/yyyy` and `d/M/yyyy`. A missing value means today in
    the fixed zone.
    """
    if value is None or not value.strip():
        return datetime.now(tz=tz).date()

    text = value.strip()
    for fmt in ACCEPTED_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    raise ValidationError(f"Unrecognised date: {value!r}")
