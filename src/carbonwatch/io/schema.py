from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Sequence

from carbonwatch.periods import parse_instant
from carbonwatch.severity import SeverityLevel, normalize_severity

LOGGER = logging.getLogger(__name__)

EntityKey = int | str

NUMERIC_FIELDS = ("co2_density", "temperature_c", "humidity", "heat_index_c")


class PayloadShapeError(ValueError):
    """Raised when an upstream collection is neither a list nor ``{"data": [...]}``."""


@dataclass(frozen=True)
class KindSchema:
    kind: str
    display_kind: str
    key_fields: tuple[str, ...]
    specific_name_fields: tuple[str, ...]
    generic_name_fields: tuple[str, ...]
    numeric_aliases: Mapping[str, tuple[str, ...]]


_GENERIC_NAME_FIELDS = ("name", "sensor_name", "barangay_name", "recorded_name")
_DEFAULT_NUMERIC_ALIASES: dict[str, tuple[str, ...]] = {
    "co2_density": ("co2_density", "co2"),
    "temperature_c": ("temperature_c", "temperature"),
    "humidity": ("humidity",),
    "heat_index_c": ("heat_index_c", "heat_index"),
}

KIND_SCHEMAS: dict[str, KindSchema] = {
    "sensor": KindSchema(
        kind="sensor",
        display_kind="Sensor",
        key_fields=("sensor_id", "id", "key"),
        specific_name_fields=("sensor_name",),
        generic_name_fields=_GENERIC_NAME_FIELDS,
        numeric_aliases=_DEFAULT_NUMERIC_ALIASES,
    ),
    "barangay": KindSchema(
        kind="barangay",
        display_kind="Barangay",
        key_fields=("barangay_id", "sensor_id", "id", "key"),
        specific_name_fields=("barangay_name",),
        generic_name_fields=_GENERIC_NAME_FIELDS,
        numeric_aliases=_DEFAULT_NUMERIC_ALIASES,
    ),
    "establishment": KindSchema(
        kind="establishment",
        display_kind="Establishment",
        key_fields=("establishment_id", "sensor_id", "id", "key"),
        specific_name_fields=("establishment_name",),
        generic_name_fields=_GENERIC_NAME_FIELDS,
        numeric_aliases={
            "co2_density": ("avg_co2_density", "co2_density", "co2"),
            "temperature_c": ("avg_temperature_c", "temperature_c", "temperature"),
            "humidity": ("avg_humidity", "humidity"),
            "heat_index_c": ("avg_heat_index_c", "heat_index_c", "heat_index"),
        },
    ),
}

TIMESTAMP_FIELDS = ("recorded_at", "timestamp", "ts", "created_at")
SEVERITY_FIELDS = ("carbon_level", "severity", "level")
CATEGORY_FIELDS = ("category", "type", "establishment_type")

_CATEGORY_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("Shopping", ("mall", "shop", "store", "market")),
    ("Dining", ("resto", "food", "cafe", "diner", "kitchen")),
    ("Education", ("school", "univ", "college", "academy")),
    ("Healthcare", ("hospital", "clinic", "health", "medical")),
    ("Recreation", ("park", "gym", "sport", "fitness")),
    ("Office", ("office", "bldg", "building", "hub")),
    ("Worship", ("church", "chapel", "temple")),
]


@dataclass(frozen=True)
class Entity:
    key: EntityKey
    name: str
    latitude: float | None = None
    longitude: float | None = None
    category: str | None = None
    attributes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Reading:
    entity_key: EntityKey
    recorded_at: datetime
    severity: SeverityLevel
    values: Mapping[str, Any] = field(default_factory=dict)
    attributes: Mapping[str, Any] = field(default_factory=dict)


def unwrap_collection(payload: Any) -> list[Mapping[str, Any]]:
    """Return the record list from a raw array or a ``{"data": [...]}`` envelope."""
    if isinstance(payload, list):
        items = payload
    elif isinstance(payload, Mapping) and isinstance(payload.get("data"), list):
        items = payload["data"]
    else:
        raise PayloadShapeError(
            f"Unsupported collection payload of type {type(payload).__name__}; "
            "expected a list or an object with a 'data' list"
        )
    return [item for item in items if isinstance(item, Mapping)]


def kind_schema(kind: str) -> KindSchema:
    try:
        return KIND_SCHEMAS[kind]
    except KeyError as exc:
        raise ValueError(f"Unknown entity kind: {kind!r}") from exc


def _first_present(raw: Mapping[str, Any], fields: Sequence[str]) -> Any:
    for name in fields:
        value = raw.get(name)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _coerce_key(value: Any) -> EntityKey | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    text = str(value).strip()
    if not text:
        return None
    if text.lstrip("-").isdigit():
        return int(text)
    return text


def parse_number(value: Any) -> float | None:
    """Finite float or ``None``; never coerces garbage to zero."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def coalesce_name(raw: Mapping[str, Any], schema: KindSchema, key: EntityKey) -> str:
    name = _first_present(raw, schema.specific_name_fields)
    if name is None:
        name = _first_present(raw, schema.generic_name_fields)
    if name is None:
        return f"{schema.display_kind} #{key}"
    return str(name).strip()


def infer_category(name: str) -> str:
    lowered = name.lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return "Establishment"


def normalize_entity(raw: Mapping[str, Any], kind: str) -> Entity | None:
    schema = kind_schema(kind)
    key = _coerce_key(_first_present(raw, schema.key_fields))
    if key is None:
        return None

    name = coalesce_name(raw, schema, key)
    category = _first_present(raw, CATEGORY_FIELDS)
    if category is None and schema.kind == "establishment":
        category = infer_category(name)

    return Entity(
        key=key,
        name=name,
        latitude=parse_number(raw.get("latitude", raw.get("lat"))),
        longitude=parse_number(raw.get("longitude", raw.get("lng", raw.get("lon")))),
        category=str(category) if category is not None else None,
        attributes=dict(raw),
    )


def normalize_reading(raw: Mapping[str, Any], kind: str) -> Reading | None:
    schema = kind_schema(kind)
    key = _coerce_key(_first_present(raw, schema.key_fields))
    recorded_at = parse_instant(_first_present(raw, TIMESTAMP_FIELDS))
    if key is None or recorded_at is None:
        return None

    # Raw values are kept as-is; parsing happens where each consumer needs it.
    values = {
        canonical: _first_present(raw, aliases)
        for canonical, aliases in schema.numeric_aliases.items()
    }
    return Reading(
        entity_key=key,
        recorded_at=recorded_at,
        severity=normalize_severity(_first_present(raw, SEVERITY_FIELDS)),
        values=values,
        attributes=dict(raw),
    )


def normalize_entities(payload: Any, kind: str) -> list[Entity]:
    entities: list[Entity] = []
    dropped = 0
    for raw in unwrap_collection(payload):
        entity = normalize_entity(raw, kind)
        if entity is None:
            dropped += 1
            continue
        entities.append(entity)
    if dropped:
        LOGGER.warning("Dropped %d %s records without a usable key", dropped, kind)
    return entities


def normalize_readings(payload: Any, kind: str) -> list[Reading]:
    readings: list[Reading] = []
    dropped = 0
    for raw in unwrap_collection(payload):
        reading = normalize_reading(raw, kind)
        if reading is None:
            dropped += 1
            continue
        readings.append(reading)
    if dropped:
        LOGGER.warning("Dropped %d readings without a usable key or timestamp", dropped)
    return readings
