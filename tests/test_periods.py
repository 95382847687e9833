from datetime import date

import pytest

from errors import InvalidArgument
from periods import month_bounds, parse_period_bounds, resolve_period


def test_default_period_is_calendar_month_of_reference() -> None:
    period = resolve_period(date(2023, 9, 15))
    assert period.slug == "month"
    assert period.start == date(2023, 9, 1)
    assert period.end == date(2023, 9, 30)
    assert period.days == 30


def test_december_and_leap_february_bounds() -> None:
    assert month_bounds(2023, 12) == (date(2023, 12, 1), date(2023, 12, 31))
    assert month_bounds(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))
    assert month_bounds(2023, 2) == (date(2023, 2, 1), date(2023, 2, 28))


def test_explicit_bounds_are_used_verbatim() -> None:
    period = resolve_period(date(2023, 9, 15), date(2023, 1, 3), date(2023, 3, 17))
    assert period.slug == "custom"
    assert (period.start, period.end) == (date(2023, 1, 3), date(2023, 3, 17))


def test_single_bound_falls_back_to_month() -> None:
    period = resolve_period(date(2024, 5, 20), start=date(2024, 5, 10))
    assert (period.start, period.end) == (date(2024, 5, 1), date(2024, 5, 31))


def test_resolution_is_deterministic() -> None:
    assert resolve_period(date(2025, 1, 31)) == resolve_period(date(2025, 1, 31))


def test_parse_period_bounds_validates_input() -> None:
    assert parse_period_bounds("2024-01-01", "2024-01-31") == (
        date(2024, 1, 1),
        date(2024, 1, 31),
    )
    assert parse_period_bounds(None, "") == (None, None)

    with pytest.raises(InvalidArgument):
        parse_period_bounds("2024-13-01", None)
    with pytest.raises(InvalidArgument, match="Start date must be before end date"):
        parse_period_bounds("2024-02-01", "2024-01-01")
