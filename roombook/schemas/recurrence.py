# roombook/schemas/recurrence.py
from __future__ import annotations

from datetime import date as date_type, datetime
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, model_validator

from roombook.schemas.time_window import sunday_based_weekday

GRAPH_DAY_NAMES = (
    "sunday",
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
)


class PatternType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class RangeType(str, Enum):
    NO_END = "no_end"
    END_DATE = "end_date"
    NUMBERED = "numbered"


_GRAPH_PATTERN_TYPES = {
    PatternType.DAILY: "daily",
    PatternType.WEEKLY: "weekly",
    PatternType.MONTHLY: "absoluteMonthly",
    PatternType.YEARLY: "absoluteYearly",
}

_GRAPH_RANGE_TYPES = {
    RangeType.NO_END: "noEnd",
    RangeType.END_DATE: "endDate",
    RangeType.NUMBERED: "numbered",
}


class RecurrenceRange(BaseModel):
    """
    Termination rule of a recurring series.
    """

    model_config = ConfigDict(frozen=True)

    type: RangeType = Field(RangeType.NO_END, description="How the series ends.")
    end_date: date_type | None = Field(
        None, description="Last date of the series (end_date ranges only)."
    )
    number_of_occurrences: int | None = Field(
        None, ge=1, description="Occurrence count (numbered ranges only)."
    )

    @model_validator(mode="after")
    def _check_range(self) -> "RecurrenceRange":
        if self.type is RangeType.END_DATE and self.end_date is None:
            raise ValueError("end_date is required for an end_date range")
        if self.type is RangeType.NUMBERED and self.number_of_occurrences is None:
            raise ValueError("number_of_occurrences is required for a numbered range")
        return self


class RecurrenceRule(BaseModel):
    """
    Repetition of a booking's window.

    Only the rule is carried here; turning it into concrete occurrences is
    left to the calendar provider.
    """

    model_config = ConfigDict(frozen=True)

    pattern_type: PatternType = Field(..., description="Unit of repetition.")
    interval: int = Field(1, ge=1, description="Repeat every N units.")
    weekly_days_mask: int = Field(
        0,
        ge=0,
        le=0x7F,
        description="Weekday bitmask, bit 0 = Sunday … bit 6 = Saturday (weekly only).",
    )
    month_day: int | None = Field(None, ge=1, le=31, description="Day of month (monthly/yearly).")
    month: int | None = Field(None, ge=1, le=12, description="Month (yearly).")
    range: RecurrenceRange = Field(default_factory=RecurrenceRange)

    def effective_days_mask(self, first_occurrence: datetime) -> int:
        """
        Weekly mask actually used for the series.

        An empty mask falls back to the weekday of the first occurrence.
        """
        if self.weekly_days_mask:
            return self.weekly_days_mask
        return 1 << sunday_based_weekday(first_occurrence)

    def to_graph(self, first_occurrence: datetime, timezone_name: str) -> Dict[str, Any]:
        """
        Translate into Graph's `patternedRecurrence` resource.
        """
        pattern: Dict[str, Any] = {
            "type": _GRAPH_PATTERN_TYPES[self.pattern_type],
            "interval": self.interval,
        }

        if self.pattern_type is PatternType.WEEKLY:
            mask = self.effective_days_mask(first_occurrence)
            pattern["daysOfWeek"] = [
                name for bit, name in enumerate(GRAPH_DAY_NAMES) if mask & (1 << bit)
            ]
            pattern["firstDayOfWeek"] = "sunday"
        elif self.pattern_type is PatternType.MONTHLY:
            pattern["dayOfMonth"] = self.month_day or first_occurrence.day
        elif self.pattern_type is PatternType.YEARLY:
            pattern["dayOfMonth"] = self.month_day or first_occurrence.day
            pattern["month"] = self.month or first_occurrence.month

        range_payload: Dict[str, Any] = {
            "type": _GRAPH_RANGE_TYPES[self.range.type],
            "startDate": first_occurrence.date().isoformat(),
            "recurrenceTimeZone": timezone_name,
        }
        if self.range.type is RangeType.END_DATE and self.range.end_date is not None:
            range_payload["endDate"] = self.range.end_date.isoformat()
        if self.range.type is RangeType.NUMBERED:
            range_payload["numberOfOccurrences"] = self.range.number_of_occurrences

        return {"pattern": pattern, "range": range_payload}
