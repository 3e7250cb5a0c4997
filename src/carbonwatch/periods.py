from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Iterable, Union

MONTH_NAMES = [
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
]

WEEK_LENGTH_DAYS = 7

_FRACTION = re.compile(r"(\d{2}:\d{2}:\d{2})\.(\d+)")


def _check_month_index(month: int) -> None:
    if not 0 <= month <= 11:
        raise ValueError(f"month index must be in 0..11, got {month}")


def _last_day(year: int, month: int) -> int:
    return calendar.monthrange(year, month + 1)[1]


def to_local(value: datetime, tz: tzinfo | None = None) -> datetime:
    """Convert to ``tz``; naive values are read as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz or timezone.utc)


@dataclass(frozen=True, order=True)
class Month:
    year: int
    month: int  # 0-11

    def __post_init__(self) -> None:
        _check_month_index(self.month)

    @property
    def label(self) -> str:
        return f"{MONTH_NAMES[self.month]} {self.year}"

    @property
    def start_date(self) -> date:
        return date(self.year, self.month + 1, 1)

    @property
    def end_date(self) -> date:
        return date(self.year, self.month + 1, _last_day(self.year, self.month))

    def contains(self, value: datetime, tz: tzinfo | None = None) -> bool:
        local = to_local(value, tz)
        return local.year == self.year and local.month == self.month + 1


@dataclass(frozen=True)
class Week:
    year: int
    month: int  # 0-11
    week_number: int
    start_date: date
    end_date: date

    def __post_init__(self) -> None:
        _check_month_index(self.month)
        if self.end_date < self.start_date:
            raise ValueError("week end_date precedes start_date")

    @property
    def label(self) -> str:
        return (
            f"Week {self.week_number} ({self.start_date.day}–{self.end_date.day}) "
            f"{MONTH_NAMES[self.month]} {self.year}"
        )

    def bounds(self, tz: tzinfo | None = None) -> tuple[datetime, datetime]:
        zone = tz or timezone.utc
        start = datetime.combine(self.start_date, time.min, tzinfo=zone)
        end = datetime.combine(self.end_date, time(23, 59, 59, 999000), tzinfo=zone)
        return start, end

    def contains(self, value: datetime, tz: tzinfo | None = None) -> bool:
        start, end = self.bounds(tz)
        local = to_local(value, tz)
        # Bounds stop at the millisecond, matching the upstream timestamp resolution.
        local = local.replace(microsecond=(local.microsecond // 1000) * 1000)
        return start <= local <= end


Period = Union[Month, Week]


def parse_instant(value: str | datetime | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    # fromisoformat on 3.10 only accepts 3 or 6 fractional digits.
    text = _FRACTION.sub(lambda match: f"{match.group(1)}.{match.group(2)[:6].ljust(6, '0')}", text)
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def month_of(value: datetime, tz: tzinfo | None = None) -> Month:
    local = to_local(value, tz)
    return Month(year=local.year, month=local.month - 1)


def _next_month(month: Month) -> Month:
    if month.month == 11:
        return Month(year=month.year + 1, month=0)
    return Month(year=month.year, month=month.month + 1)


def list_months(
    earliest: str | datetime | None,
    now: datetime,
    tz: tzinfo | None = None,
) -> list[Month]:
    """Months from the one containing ``earliest`` through the one containing ``now``.

    Most recent month first. A missing or unparsable ``earliest`` collapses the
    range to the month of ``now``.
    """
    end = month_of(now, tz)
    earliest_instant = parse_instant(earliest)
    start = month_of(earliest_instant, tz) if earliest_instant is not None else end
    if start > end:
        start = end

    months: list[Month] = []
    current = start
    while current <= end:
        months.append(current)
        current = _next_month(current)
    months.reverse()
    return months


def list_weeks(year: int, month: int) -> list[Week]:
    _check_month_index(month)
    last_day = date(year, month + 1, _last_day(year, month))
    weeks: list[Week] = []
    week_start = date(year, month + 1, 1)
    week_number = 1
    while week_start <= last_day:
        week_end = min(week_start + timedelta(days=WEEK_LENGTH_DAYS - 1), last_day)
        weeks.append(
            Week(
                year=year,
                month=month,
                week_number=week_number,
                start_date=week_start,
                end_date=week_end,
            )
        )
        week_start = week_start + timedelta(days=WEEK_LENGTH_DAYS)
        week_number += 1
    return weeks


def previous_period(period: Period) -> Period:
    if isinstance(period, Month):
        if period.month == 0:
            return Month(year=period.year - 1, month=11)
        return Month(year=period.year, month=period.month - 1)

    if period.week_number > 1:
        return list_weeks(period.year, period.month)[period.week_number - 2]
    prior_month = previous_period(Month(year=period.year, month=period.month))
    return list_weeks(prior_month.year, prior_month.month)[-1]


def earliest_timestamp(timestamps: Iterable[datetime]) -> datetime | None:
    earliest: datetime | None = None
    for value in timestamps:
        aware = to_local(value)
        if earliest is None or aware < earliest:
            earliest = aware
    return earliest


def available_months(
    timestamps: Iterable[datetime],
    now: datetime,
    tz: tzinfo | None = None,
) -> list[Month]:
    """Selectable months that hold at least one timestamp, most recent first."""
    collected = [to_local(value) for value in timestamps]
    occupied = {month_of(value, tz) for value in collected}
    return [
        month
        for month in list_months(earliest_timestamp(collected), now, tz)
        if month in occupied
    ]
