"""
Dashboard period resolution.

Clients send a `"YYYY-MM"` month key and a 1-based week-of-month.
Bad or out-of-range values are corrected here, never rejected:
an invalid month means the current month, and the week is clamped
to the weeks the month actually has.
"""

import re
from typing import Optional, Union

from catatuang.clock import FixedOffsetClock
from catatuang.models.ledger import DashboardPeriod


MONTH_KEY_PATTERN = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")

# Civil ranges of these years, padded by the UTC offset and a trailing
# week bucket, stay inside what datetime can represent.
MIN_MONTH_YEAR = 2
MAX_MONTH_YEAR = 9998


def parse_month_key(month_key: Optional[str]) -> Optional[tuple[int, int]]:
    """`"2025-02"` -> `(2025, 2)`; anything else -> None."""
    if not month_key:
        return None
    match = MONTH_KEY_PATTERN.match(month_key.strip())
    if not match:
        return None
    year = int(match.group(1))
    if not MIN_MONTH_YEAR <= year <= MAX_MONTH_YEAR:
        return None
    return year, int(match.group(2))


def parse_week(week: Union[int, str, None]) -> Optional[int]:
    """Integer week index, or None if the value is not an integer."""
    if isinstance(week, bool):
        return None
    if isinstance(week, int):
        return week
    if isinstance(week, str) and re.fullmatch(r"-?\d+", week.strip()):
        return int(week.strip())
    return None


def resolve_period(
    clock: FixedOffsetClock,
    month_key: Optional[str] = None,
    week: Union[int, str, None] = None,
) -> DashboardPeriod:
    """
    Turn client period parameters into concrete ranges.

    Without a usable week, the current week is selected when the month
    is the current month, else week 1.
    """
    today = clock.civil_date()
    year, month = parse_month_key(month_key) or (today.year, today.month)
    is_current_month = (year, month) == (today.year, today.month)

    requested = parse_week(week)
    if requested is None:
        requested = clock.current_week_index(year, month, today) if is_current_month else 1
    selected = clock.clamp_week_index(year, month, requested)

    return DashboardPeriod(
        month_key=f"{year:04d}-{month:02d}",
        year=year,
        month=month,
        week=selected,
        weeks_in_month=clock.weeks_in_month(year, month),
        is_current_month=is_current_month,
        month_range=clock.month_range(year, month),
        week_range=clock.week_range_for_index(year, month, selected),
    )
