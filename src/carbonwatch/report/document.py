from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Hashable, Literal, Mapping, Sequence

from carbonwatch.config import SettingsConfig
from carbonwatch.engine.aggregate import Metrics, severity_distribution
from carbonwatch.engine.merge import MergedRecord
from carbonwatch.engine.ranking import PRIMARY_FIELD
from carbonwatch.periods import Period
from carbonwatch.report.insights import InsightContext, build_insights, format_temperature
from carbonwatch.severity import safety_info, severity_color

ReportStatus = Literal["ok", "no_data", "error"]

NO_DATA_MESSAGE = "No data recorded for this period."


@dataclass(frozen=True)
class SummaryItem:
    label: str
    value: str
    raw: float | int | None = None


@dataclass(frozen=True)
class RankedRow:
    rank: int
    key: Any
    name: str
    severity: str
    color: str
    safety_label: str
    value: float | None
    temperature: str | None
    delta_percent: float


@dataclass(frozen=True)
class DistributionItem:
    severity: str
    color: str
    count: int
    percentage: float


@dataclass(frozen=True)
class ReportDocument:
    title: str
    generated_at: datetime
    period_label: str
    entity_count: int
    status: ReportStatus
    summary: list[SummaryItem] = field(default_factory=list)
    top: list[RankedRow] = field(default_factory=list)
    distribution: list[DistributionItem] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)
    temperature_unit: str = "celsius"
    prior_period_label: str | None = None
    message: str | None = None

    @property
    def has_data(self) -> bool:
        return self.status == "ok"

    def to_view_model(self) -> dict[str, Any]:
        return _json_safe(asdict(self))


def _json_safe(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _format_number(value: float | None, suffix: str = "", digits: int = 2) -> str:
    if value is None:
        return "N/A"
    return f"{value:.{digits}f}{suffix}"


def _summary_items(metrics: Metrics, settings: SettingsConfig) -> list[SummaryItem]:
    temperature = metrics.mean("temperature_c")
    heat_index = metrics.mean("heat_index_c")
    unit = settings.temperature_unit
    return [
        SummaryItem(
            label="Average CO2 density",
            value=_format_number(metrics.mean("co2_density")),
            raw=metrics.mean("co2_density"),
        ),
        SummaryItem(
            label="Total CO2 density",
            value=_format_number(metrics.total_co2),
            raw=metrics.total_co2,
        ),
        SummaryItem(
            label="Average temperature",
            value=format_temperature(temperature, unit) if temperature is not None else "N/A",
            raw=temperature,
        ),
        SummaryItem(
            label="Average humidity",
            value=_format_number(metrics.mean("humidity"), "%", 1),
            raw=metrics.mean("humidity"),
        ),
        SummaryItem(
            label="Average heat index",
            value=format_temperature(heat_index, unit) if heat_index is not None else "N/A",
            raw=heat_index,
        ),
        SummaryItem(
            label="Heat stress cases",
            value=str(metrics.heat_stress_count),
            raw=metrics.heat_stress_count,
        ),
        SummaryItem(
            label=f"At or above {settings.minimum_alert_severity}",
            value=str(metrics.alert_count(settings.minimum_alert_severity)),
            raw=metrics.alert_count(settings.minimum_alert_severity),
        ),
    ]


def _ranked_rows(
    ranked_top: Sequence[MergedRecord],
    deltas: Mapping[Hashable, float],
    primary_field: str,
    unit: str,
) -> list[RankedRow]:
    rows: list[RankedRow] = []
    for position, record in enumerate(ranked_top, start=1):
        temperature = record.number("temperature_c")
        rows.append(
            RankedRow(
                rank=position,
                key=record.key,
                name=record.name,
                severity=record.severity,
                color=severity_color(record.severity),
                safety_label=safety_info(record.severity).label,
                value=record.number(primary_field),
                temperature=format_temperature(temperature, unit)
                if temperature is not None
                else None,
                delta_percent=float(deltas.get(record.key, 0.0)),
            )
        )
    return rows


def build_report(
    period: Period | None,
    records: Sequence[MergedRecord],
    metrics: Metrics,
    ranked_top: Sequence[MergedRecord],
    prior: tuple[Period, Metrics] | None = None,
    *,
    settings: SettingsConfig | None = None,
    deltas: Mapping[Hashable, float] | None = None,
    title: str = "ENVI Analytics Report",
    primary_field: str = PRIMARY_FIELD,
    status: ReportStatus | None = None,
    message: str | None = None,
    generated_at: datetime | None = None,
) -> ReportDocument:
    """Project merged/aggregated state into a serializable report document.

    Screen view models and printable markup are both derived from the returned
    document, so they always agree.
    """
    settings = settings or SettingsConfig()
    resolved_status: ReportStatus = status or ("ok" if records else "no_data")
    if resolved_status == "no_data" and message is None:
        message = NO_DATA_MESSAGE

    prior_period, prior_metrics = prior if prior is not None else (None, None)
    context = InsightContext(
        metrics=metrics,
        ranked=list(ranked_top),
        primary_field=primary_field,
        minimum_alert_severity=settings.minimum_alert_severity,
        temperature_unit=settings.temperature_unit,
        prior_metrics=prior_metrics,
        prior_label=prior_period.label if prior_period is not None else None,
    )
    distribution = [
        DistributionItem(
            severity=row.severity,
            color=severity_color(row.severity),
            count=row.count,
            percentage=row.percentage,
        )
        for row in severity_distribution(metrics)
    ]

    return ReportDocument(
        title=title,
        generated_at=generated_at or datetime.now(timezone.utc),
        period_label=period.label if period is not None else "All readings",
        entity_count=len(records),
        status=resolved_status,
        summary=_summary_items(metrics, settings),
        top=_ranked_rows(ranked_top, deltas or {}, primary_field, settings.temperature_unit),
        distribution=distribution,
        insights=build_insights(context) if records else [],
        temperature_unit=settings.temperature_unit,
        prior_period_label=prior_period.label if prior_period is not None else None,
        message=message,
    )
