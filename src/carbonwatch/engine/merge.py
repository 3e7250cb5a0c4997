from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Any, Mapping, Sequence

from carbonwatch.io.schema import (
    Entity,
    EntityKey,
    Reading,
    coalesce_name,
    kind_schema,
    parse_number,
)
from carbonwatch.periods import Period, to_local
from carbonwatch.severity import SeverityLevel


@dataclass(frozen=True)
class MergedRecord:
    key: EntityKey
    name: str
    severity: SeverityLevel
    recorded_at: datetime
    values: Mapping[str, Any] = field(default_factory=dict)
    latitude: float | None = None
    longitude: float | None = None
    category: str | None = None
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def number(self, name: str) -> float | None:
        return parse_number(self.values.get(name))


def readings_in_period(
    readings: Sequence[Reading],
    period: Period | None,
    tz: tzinfo | None = None,
) -> list[Reading]:
    if period is None:
        return list(readings)
    return [reading for reading in readings if period.contains(reading.recorded_at, tz)]


def latest_by_entity(readings: Sequence[Reading]) -> dict[EntityKey, Reading]:
    """Latest reading per key; ties keep the reading seen first."""
    latest: dict[EntityKey, Reading] = {}
    for reading in readings:
        current = latest.get(reading.entity_key)
        if current is None or to_local(reading.recorded_at) > to_local(current.recorded_at):
            latest[reading.entity_key] = reading
    return latest


def merge_record(entity: Entity, reading: Reading, kind: str = "sensor") -> MergedRecord:
    attributes = {**entity.attributes, **reading.attributes}
    return MergedRecord(
        key=entity.key,
        name=coalesce_name(attributes, kind_schema(kind), entity.key),
        severity=reading.severity,
        recorded_at=reading.recorded_at,
        values=dict(reading.values),
        latitude=entity.latitude,
        longitude=entity.longitude,
        category=entity.category,
        attributes=attributes,
    )


def merge(
    entities: Sequence[Entity],
    readings: Sequence[Reading],
    period: Period | None,
    *,
    kind: str = "sensor",
    tz: tzinfo | None = None,
) -> list[MergedRecord]:
    """Join each entity with its latest reading inside ``period``.

    Entities without an in-period reading are omitted rather than back-filled
    from another period. ``period=None`` means no selection yet and considers
    every reading. Output follows entity order; duplicate entity keys collapse
    onto the first entity carrying that key.
    """
    latest = latest_by_entity(readings_in_period(readings, period, tz))
    merged: list[MergedRecord] = []
    seen: set[EntityKey] = set()
    for entity in entities:
        if entity.key in seen:
            continue
        seen.add(entity.key)
        reading = latest.get(entity.key)
        if reading is None:
            continue
        merged.append(merge_record(entity, reading, kind))
    return merged
