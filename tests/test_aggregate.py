from __future__ import annotations

from datetime import datetime, timezone

import pytest

from carbonwatch.engine.aggregate import aggregate, severity_distribution
from carbonwatch.engine.merge import MergedRecord


def _record(key: int, severity: str = "NORMAL", **values: object) -> MergedRecord:
    return MergedRecord(
        key=key,
        name=f"Sensor {key}",
        severity=severity,  # type: ignore[arg-type]
        recorded_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
        values=values,
    )


def test_distribution_counts_and_percentages() -> None:
    records = [
        _record(1, "VERY HIGH"),
        _record(2, "HIGH"),
        _record(3, "HIGH"),
        _record(4, "LOW"),
    ]

    metrics = aggregate(records, heat_threshold=41.0)
    rows = severity_distribution(metrics)

    assert metrics.severity_counts == {
        "VERY HIGH": 1,
        "HIGH": 2,
        "MODERATE": 0,
        "LOW": 1,
        "NORMAL": 0,
    }
    assert [(row.severity, row.percentage) for row in rows] == [
        ("VERY HIGH", 25.0),
        ("HIGH", 50.0),
        ("MODERATE", 0.0),
        ("LOW", 25.0),
        ("NORMAL", 0.0),
    ]


def test_means_skip_missing_and_unparsable_values() -> None:
    records = [
        _record(1, co2_density=400, humidity="60"),
        _record(2, co2_density="not-a-number", humidity=None),
        _record(3, co2_density=600),
        _record(4, co2_density=float("inf")),
    ]

    metrics = aggregate(records, heat_threshold=41.0)

    assert metrics.mean("co2_density") == pytest.approx(500.0)
    assert metrics.mean("humidity") == pytest.approx(60.0)
    assert metrics.mean("temperature_c") is None
    assert metrics.value_counts["co2_density"] == 2
    assert metrics.total_co2 == pytest.approx(1000.0)


def test_heat_stress_uses_heat_index_then_temperature() -> None:
    records = [
        _record(1, heat_index_c=42.0, temperature_c=30.0),
        _record(2, temperature_c=41.0),
        _record(3, heat_index_c=39.0, temperature_c=45.0),
        _record(4),
    ]

    assert aggregate(records, heat_threshold=41.0).heat_stress_count == 2
    assert aggregate(records, heat_threshold=38.0).heat_stress_count == 3


def test_unknown_severity_counts_as_normal() -> None:
    metrics = aggregate([_record(1, "purple"), _record(2, "moderate")], heat_threshold=41.0)

    assert metrics.severity_counts["NORMAL"] == 1
    assert metrics.severity_counts["MODERATE"] == 1


def test_alert_count_includes_levels_at_or_above_minimum() -> None:
    records = [_record(1, "VERY HIGH"), _record(2, "HIGH"), _record(3, "MODERATE")]
    metrics = aggregate(records, heat_threshold=41.0)

    assert metrics.alert_count("HIGH") == 2
    assert metrics.alert_count("VERY HIGH") == 1


def test_empty_input_yields_empty_metrics() -> None:
    metrics = aggregate([], heat_threshold=40.0)

    assert metrics.record_count == 0
    assert metrics.mean("co2_density") is None
    assert sum(metrics.severity_counts.values()) == 0
    assert all(row.percentage == 0.0 for row in severity_distribution(metrics))
    assert metrics.heat_threshold == 40.0


@pytest.mark.parametrize("raw", ["1_000", True, "١٢", " 250 ", "nan", "-inf"])
def test_means_use_the_same_parsing_as_ranking(raw: object) -> None:
    record = _record(1, co2_density=raw)

    metrics = aggregate([record], heat_threshold=41.0)

    parsed = record.number("co2_density")
    assert metrics.mean("co2_density") == parsed
    assert metrics.value_counts["co2_density"] == (0 if parsed is None else 1)
