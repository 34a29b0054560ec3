"""Half-open stay intervals.

An interval ``[start, end)`` covers the nights from check-in up to, but
not including, check-out. Two stays that share a turnover day
(``a.end == b.start``) do not overlap.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from staybook.domain.errors import InvalidRangeError

ONE_DAY = timedelta(days=1)


def _to_datetime(value: date, tzinfo) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min, tzinfo=tzinfo)


@dataclass(frozen=True)
class Interval:
    """Immutable ``[start, end)`` range of dates or timestamps."""

    start: date
    end: date

    def __post_init__(self) -> None:
        start, end = self.start, self.end
        # datetime vs date comparisons raise TypeError; promote both sides
        if isinstance(start, datetime) != isinstance(end, datetime):
            aware = start if isinstance(start, datetime) else end
            start = _to_datetime(start, aware.tzinfo)
            end = _to_datetime(end, aware.tzinfo)
            object.__setattr__(self, "start", start)
            object.__setattr__(self, "end", end)

        if isinstance(start, datetime) and (start.tzinfo is None) != (end.tzinfo is None):
            raise InvalidRangeError("cannot mix naive and timezone-aware timestamps")
        if end <= start:
            raise InvalidRangeError(f"end ({end}) must be after start ({start})")

    @property
    def nights(self) -> int:
        return nights(self)

    def overlaps(self, other: Interval) -> bool:
        return overlaps(self, other)

    def as_days(self) -> tuple[date, date]:
        """Return the whole-day checkpoints used for persistence.

        The start is truncated to its calendar day and the end is placed
        ``nights`` days later, so the stored range bills the same number
        of nights as this interval.
        """
        start_day = self.start.date() if isinstance(self.start, datetime) else self.start
        return start_day, start_day + timedelta(days=self.nights)

    def whole_days(self) -> Interval:
        """Same stay expressed on calendar-day checkpoints."""
        return Interval(*self.as_days())

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}

    @classmethod
    def parse(cls, start: str, end: str) -> Interval:
        """Build an interval from ISO-8601 date or datetime strings.

        Raises:
            InvalidRangeError: If either value is not ISO-8601 or end <= start.
        """
        return cls(start=parse_iso(start), end=parse_iso(end))


def parse_iso(value: str) -> date:
    if not isinstance(value, str) or not value:
        raise InvalidRangeError("date value must be a non-empty ISO-8601 string")
    try:
        if len(value) == 10:
            return date.fromisoformat(value)
        # fromisoformat only accepts a trailing "Z" from 3.11 on
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise InvalidRangeError(f"malformed ISO-8601 date: {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def overlaps(a: Interval, b: Interval) -> bool:
    """True iff the half-open ranges share at least one instant."""
    return a.start < b.end and a.end > b.start


def nights(interval: Interval) -> int:
    """Number of billable nights; a partial day counts as a full night."""
    whole, remainder = divmod(interval.end - interval.start, ONE_DAY)
    return whole + (1 if remainder else 0)
