"""
Fixed-Offset Civil Calendar

DESIGN DECISION: Every day, week and month boundary is computed in a
single fixed UTC offset (UTC+7, Asia/Jakarta, which has no DST) and
then expressed as absolute UTC instants. Range queries against the
store only ever see UTC, so there is one place where civil time exists.

Weeks are Monday-aligned. A month has
`ceil((weekday_of_day_1 + days_in_month) / 7)` week buckets; week 1 is
the Monday-to-Sunday week that contains day 1 of the month.
"""

import calendar
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

from catatuang.models.ledger import DateRange, ensure_utc


# Short Indonesian weekday labels, Monday first
WEEKDAY_LABELS = ["Sen", "Sel", "Rab", "Kam", "Jum", "Sab", "Min"]

ONE_DAY = timedelta(days=1)
ONE_WEEK = timedelta(days=7)


class FixedOffsetClock:
    """
    Converts instants to a fixed-offset civil calendar.

    `now` can be injected so tests and quota evaluation can pin time.
    """

    def __init__(
        self,
        offset_hours: int = 7,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self._offset_hours = offset_hours
        self._tz = timezone(timedelta(hours=offset_hours))
        self._now = now

    @property
    def offset_hours(self) -> int:
        return self._offset_hours

    @property
    def tzinfo(self) -> timezone:
        return self._tz

    def now(self) -> datetime:
        """Current instant in UTC."""
        if self._now is not None:
            return ensure_utc(self._now())
        return datetime.now(timezone.utc)

    def to_local(self, instant: Optional[datetime] = None) -> datetime:
        instant = self.now() if instant is None else ensure_utc(instant)
        return instant.astimezone(self._tz)

    def civil_date(self, instant: Optional[datetime] = None) -> date:
        return self.to_local(instant).date()

    def weekday_index(self, instant: Optional[datetime] = None) -> int:
        """Monday=0 .. Sunday=6."""
        return self.civil_date(instant).weekday()

    def day_key(self, instant: Optional[datetime] = None) -> str:
        """`YYYY-MM-DD` in the fixed zone. Partition key for daily buckets and quotas."""
        return self.civil_date(instant).isoformat()

    def civil_midnight(self, day: date) -> datetime:
        """Civil midnight of `day`, as a UTC instant."""
        return datetime(day.year, day.month, day.day, tzinfo=self._tz).astimezone(timezone.utc)

    def day_range(self, instant: Optional[datetime] = None) -> DateRange:
        start = self.civil_midnight(self.civil_date(instant))
        return DateRange(start=start, end=start + ONE_DAY)

    def month_range(self, year: int, month: int) -> DateRange:
        """`[civil midnight of day 1, civil midnight of next month's day 1)`."""
        first = date(year, month, 1)
        next_first = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
        return DateRange(
            start=self.civil_midnight(first),
            end=self.civil_midnight(next_first),
        )

    def week_range_containing(self, reference: Optional[datetime] = None) -> DateRange:
        """Monday-to-Sunday week containing `reference`."""
        local_day = self.civil_date(reference)
        monday = local_day - timedelta(days=local_day.weekday())
        start = self.civil_midnight(monday)
        return DateRange(start=start, end=start + ONE_WEEK)

    def weeks_in_month(self, year: int, month: int) -> int:
        first_weekday = date(year, month, 1).weekday()
        days_in_month = calendar.monthrange(year, month)[1]
        return -(-(first_weekday + days_in_month) // 7)

    def clamp_week_index(self, year: int, month: int, week: int) -> int:
        return min(self.weeks_in_month(year, month), max(1, week))

    def week_start_for_index(self, year: int, month: int, week: int) -> datetime:
        """
        Monday of the Nth (1-based) week bucket of a month.

        Out-of-range indexes are clamped: 0 behaves as 1, and anything
        past the last bucket behaves as the last bucket.
        """
        week = self.clamp_week_index(year, month, week)
        first = date(year, month, 1)
        first_monday = first - timedelta(days=first.weekday())
        return self.civil_midnight(first_monday + (week - 1) * ONE_WEEK)

    def week_range_for_index(self, year: int, month: int, week: int) -> DateRange:
        start = self.week_start_for_index(year, month, week)
        return DateRange(start=start, end=start + ONE_WEEK)

    def current_week_index(self, year: int, month: int, today: Optional[date] = None) -> int:
        """Week bucket of `today` within the given month (today must be in that month)."""
        today = today or self.civil_date()
        first_weekday = date(year, month, 1).weekday()
        return (first_weekday + today.day - 1) // 7 + 1

    @staticmethod
    def weekday_label(day: date) -> str:
        return WEEKDAY_LABELS[day.weekday()]
