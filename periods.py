from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings
from errors import InvalidArgument


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


def month_bounds(year: int, month: int) -> tuple[date, date]:
    first = date(year, month, 1)
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return first, next_month - date.resolution


def resolve_period(
    reference: date,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> Period:
    if start is not None and end is not None:
        return Period("custom", start, end)
    first, last = month_bounds(reference.year, reference.month)
    return Period("month", first, last)


def today_local() -> date:
    return datetime.now(ZoneInfo(get_settings().timezone)).date()


def parse_date(value: Optional[str], field: str) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise InvalidArgument(f"{field} must be a date in YYYY-MM-DD format") from exc


def parse_period_bounds(
    start: Optional[str], end: Optional[str]
) -> tuple[Optional[date], Optional[date]]:
    start_date = parse_date(start, "startDate")
    end_date = parse_date(end, "endDate")
    if start_date and end_date and start_date > end_date:
        raise InvalidArgument("Start date must be before end date")
    return start_date, end_date
