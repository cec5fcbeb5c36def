"""Calendar-day helpers. All range comparisons use the date component only."""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Union

from .exceptions import ValidationError

DateLike = Union[date, datetime, str]


def to_date(value: DateLike) -> date:
    """
    Strip time-of-day and timezone from a date-like value.

    Strings are read as ISO dates; a trailing time part is ignored.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()[:10]
        try:
            return date.fromisoformat(text)
        except ValueError as e:
            raise ValidationError(f"Invalid date: {value!r}") from e
    raise ValidationError(f"Invalid date: {value!r}")


def days_between(a: date, b: date) -> int:
    """Absolute number of calendar days between two dates."""
    return abs((a - b).days)


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar-day range."""

    start: date
    end: date

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", to_date(self.start))
        object.__setattr__(self, "end", to_date(self.end))
        if self.start > self.end:
            raise ValidationError(
                f"Date range start {self.start} is after end {self.end}"
            )

    @classmethod
    def of(cls, start: DateLike, end: DateLike) -> "DateRange":
        return cls(start, end)

    def contains(self, value: DateLike) -> bool:
        return self.start <= to_date(value) <= self.end


def within(value: DateLike, date_range: Optional[DateRange]) -> bool:
    """True when no range is given or the value falls inside it."""
    return date_range is None or date_range.contains(value)
