from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

import numpy as np
import pandas as pd

from carbonwatch.engine.merge import MergedRecord
from carbonwatch.io.schema import NUMERIC_FIELDS
from carbonwatch.severity import SEVERITY_LEVELS, at_or_above, normalize_severity

HEAT_FIELDS = ("heat_index_c", "temperature_c")


@dataclass(frozen=True)
class Metrics:
    record_count: int
    means: dict[str, float | None]
    severity_counts: dict[str, int]
    heat_stress_count: int
    heat_threshold: float
    value_counts: dict[str, int] = field(default_factory=dict)
    totals: dict[str, float] = field(default_factory=dict)

    def mean(self, name: str) -> float | None:
        return self.means.get(name)

    def alert_count(self, minimum_severity: str) -> int:
        return sum(
            count
            for level, count in self.severity_counts.items()
            if at_or_above(level, minimum_severity)
        )

    @property
    def total_co2(self) -> float:
        return self.totals.get("co2_density", 0.0)


@dataclass(frozen=True)
class DistributionRow:
    severity: str
    count: int
    percentage: float


def _numeric_frame(records: Sequence[MergedRecord], fields: Sequence[str]) -> pd.DataFrame:
    # Values go through MergedRecord.number so ranking and aggregation agree.
    frame = pd.DataFrame(
        [{name: record.number(name) for name in fields} for record in records],
        columns=list(fields),
        dtype="float64",
    )
    for name in fields:
        frame[name] = frame[name].where(np.isfinite(frame[name]))
    return frame


def _heat_values(frame: pd.DataFrame) -> pd.Series:
    heat = frame[HEAT_FIELDS[0]]
    for fallback in HEAT_FIELDS[1:]:
        heat = heat.fillna(frame[fallback])
    return heat


def aggregate(
    records: Sequence[MergedRecord],
    heat_threshold: float,
    fields: Sequence[str] = NUMERIC_FIELDS,
) -> Metrics:
    severity_counts = {level: 0 for level in reversed(SEVERITY_LEVELS)}
    for record in records:
        severity_counts[normalize_severity(record.severity)] += 1

    if not records:
        return Metrics(
            record_count=0,
            means={name: None for name in fields},
            severity_counts=severity_counts,
            heat_stress_count=0,
            heat_threshold=float(heat_threshold),
            value_counts={name: 0 for name in fields},
            totals={name: 0.0 for name in fields},
        )

    all_fields = list(dict.fromkeys([*fields, *HEAT_FIELDS]))
    frame = _numeric_frame(records, all_fields)
    means: dict[str, float | None] = {}
    value_counts: dict[str, int] = {}
    totals: dict[str, float] = {}
    for name in fields:
        column = frame[name].dropna()
        value_counts[name] = int(column.size)
        totals[name] = float(column.sum())
        means[name] = float(column.mean()) if column.size else None

    heat_stress_count = int((_heat_values(frame) >= float(heat_threshold)).sum())

    return Metrics(
        record_count=len(records),
        means=means,
        severity_counts=severity_counts,
        heat_stress_count=heat_stress_count,
        heat_threshold=float(heat_threshold),
        value_counts=value_counts,
        totals=totals,
    )


def severity_distribution(metrics: Metrics) -> list[DistributionRow]:
    """Count and share of total per bucket, highest severity first."""
    total = metrics.record_count
    rows: list[DistributionRow] = []
    for level in reversed(SEVERITY_LEVELS):
        count = int(metrics.severity_counts.get(level, 0))
        percentage = round(count / total * 100.0, 1) if total else 0.0
        rows.append(DistributionRow(severity=level, count=count, percentage=percentage))
    return rows
