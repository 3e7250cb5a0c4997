from __future__ import annotations

from collections import defaultdict
from datetime import tzinfo
from typing import Literal, Sequence

from carbonwatch.engine.merge import MergedRecord, readings_in_period
from carbonwatch.io.schema import EntityKey, Reading
from carbonwatch.periods import Period, to_local
from carbonwatch.severity import SAFE_LEVELS, normalize_severity

FilterTab = Literal["all", "safe", "caution", "avoid"]

_TAB_LEVELS: dict[str, frozenset[str]] = {
    "safe": SAFE_LEVELS,
    "caution": frozenset({"HIGH"}),
    "avoid": frozenset({"VERY HIGH"}),
}


def filter_records(
    records: Sequence[MergedRecord],
    *,
    name: str | None = None,
    level: str | None = None,
    tab: FilterTab | None = None,
) -> list[MergedRecord]:
    result = list(records)
    if name:
        needle = name.lower()
        result = [record for record in result if needle in record.name.lower()]
    if level:
        needle = level.lower()
        result = [record for record in result if needle in record.severity.lower()]
    if tab and tab != "all":
        levels = _TAB_LEVELS[tab]
        result = [record for record in result if record.severity in levels]
    return result


def safe_hours(
    readings: Sequence[Reading],
    entity_key: EntityKey,
    period: Period | None,
    tz: tzinfo | None = None,
) -> list[int]:
    """Hours of day where every in-period reading for the entity was in a safe level."""
    by_hour: dict[int, list[str]] = defaultdict(list)
    for reading in readings_in_period(readings, period, tz):
        if reading.entity_key != entity_key:
            continue
        by_hour[to_local(reading.recorded_at, tz).hour].append(
            normalize_severity(reading.severity)
        )
    return sorted(
        hour for hour, levels in by_hour.items() if all(level in SAFE_LEVELS for level in levels)
    )


def hours_until(hour: int, now_hour: int) -> int:
    return hour - now_hour if hour >= now_hour else hour + 24 - now_hour


def upcoming_order(hours: Sequence[int], now_hour: int) -> list[int]:
    """Order hours by how soon they come around next, starting from ``now_hour``."""
    return sorted(hours, key=lambda hour: hours_until(hour, now_hour))
