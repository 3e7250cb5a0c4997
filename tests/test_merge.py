from __future__ import annotations

from datetime import timezone
from zoneinfo import ZoneInfo

from carbonwatch.engine.merge import latest_by_entity, merge
from carbonwatch.io.schema import normalize_entities, normalize_readings
from carbonwatch.periods import Month, list_weeks

MANILA = ZoneInfo("Asia/Manila")

ENTITIES = [{"key": 1, "name": "A"}]
READINGS = [
    {"key": 1, "co2": 400, "ts": "2024-03-01T00:00:00Z", "severity": "LOW"},
    {"key": 1, "co2": 500, "ts": "2024-03-02T00:00:00Z", "severity": "HIGH"},
]


def _merge(entities, readings, period, kind: str = "sensor", tz=MANILA):
    return merge(
        normalize_entities(entities, kind),
        normalize_readings(readings, kind),
        period,
        kind=kind,
        tz=tz,
    )


def test_latest_reading_in_period_wins() -> None:
    records = _merge(ENTITIES, READINGS, Month(year=2024, month=2))

    assert len(records) == 1
    record = records[0]
    assert record.key == 1
    assert record.name == "A"
    assert record.severity == "HIGH"
    assert record.number("co2_density") == 500.0


def test_period_without_readings_yields_no_records() -> None:
    assert _merge(ENTITIES, READINGS, Month(year=2024, month=3)) == []


def test_no_period_considers_every_reading() -> None:
    readings = READINGS + [
        {"key": 1, "co2": 650, "ts": "2024-04-10T00:00:00Z", "severity": "VERY HIGH"},
    ]

    records = _merge(ENTITIES, readings, None)

    assert records[0].number("co2_density") == 650.0


def test_week_period_filters_readings() -> None:
    readings = READINGS + [
        {"key": 1, "co2": 900, "ts": "2024-03-09T00:00:00Z", "severity": "VERY HIGH"},
    ]
    first_week, second_week = list_weeks(2024, 2)[:2]

    assert _merge(ENTITIES, readings, first_week)[0].number("co2_density") == 500.0
    assert _merge(ENTITIES, readings, second_week)[0].number("co2_density") == 900.0


def test_equal_timestamps_keep_first_seen_reading() -> None:
    readings = normalize_readings(
        [
            {"key": 1, "co2": 100, "ts": "2024-03-02T00:00:00Z"},
            {"key": 1, "co2": 200, "ts": "2024-03-02T00:00:00Z"},
        ],
        "sensor",
    )

    assert latest_by_entity(readings)[1].values["co2_density"] == 100


def test_reading_fields_override_entity_fields_and_names_coalesce() -> None:
    entities = [
        {"sensor_id": 1, "name": "Old Name", "latitude": 14.6, "longitude": 121.0},
        {"sensor_id": 2},
    ]
    readings = [
        {"sensor_id": 1, "sensor_name": "Fresh Name", "recorded_at": "2024-03-05T00:00:00Z"},
        {"sensor_id": 2, "recorded_name": "Roadside", "recorded_at": "2024-03-05T00:00:00Z"},
    ]

    records = _merge(entities, readings, Month(year=2024, month=2))

    assert [record.name for record in records] == ["Fresh Name", "Roadside"]
    assert records[0].latitude == 14.6
    assert records[0].attributes["name"] == "Old Name"


def test_output_follows_entity_order_and_skips_duplicates() -> None:
    entities = [{"id": 3, "name": "C"}, {"id": 1, "name": "A"}, {"id": 3, "name": "C again"}]
    readings = [
        {"sensor_id": 1, "recorded_at": "2024-03-05T00:00:00Z"},
        {"sensor_id": 3, "recorded_at": "2024-03-06T00:00:00Z"},
        {"sensor_id": 99, "recorded_at": "2024-03-06T00:00:00Z"},
    ]

    records = _merge(entities, readings, Month(year=2024, month=2), tz=timezone.utc)

    assert [(record.key, record.name) for record in records] == [(3, "C"), (1, "A")]


def test_establishment_fallback_name() -> None:
    records = _merge(
        [{"establishment_id": 4}],
        [{"establishment_id": 4, "recorded_at": "2024-03-05T00:00:00Z", "avg_co2_density": 700}],
        Month(year=2024, month=2),
        kind="establishment",
    )

    assert records[0].name == "Establishment #4"
    assert records[0].number("co2_density") == 700.0


def test_merge_is_idempotent_for_same_inputs() -> None:
    entities = normalize_entities(
        [{"id": 1, "name": "A"}, {"id": 2, "name": "B"}, {"id": 3}], "sensor"
    )
    readings = normalize_readings(
        READINGS
        + [
            {"key": 2, "co2": 700, "ts": "2024-03-02T00:00:00Z", "severity": "HIGH"},
            {"key": 2, "co2": 710, "ts": "2024-03-02T00:00:00Z", "severity": "VERY HIGH"},
            {"key": 3, "co2": "bad", "ts": "2024-03-20T00:00:00Z"},
        ],
        "sensor",
    )
    march = Month(year=2024, month=2)

    first = merge(entities, readings, march, tz=MANILA)
    second = merge(entities, readings, march, tz=MANILA)

    assert first == second
    assert [record.key for record in first] == [1, 2, 3]
