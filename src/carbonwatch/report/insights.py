from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Sequence

from carbonwatch.engine.aggregate import Metrics
from carbonwatch.engine.merge import MergedRecord


@dataclass(frozen=True)
class InsightContext:
    metrics: Metrics
    ranked: Sequence[MergedRecord]
    primary_field: str
    minimum_alert_severity: str
    temperature_unit: str
    prior_metrics: Metrics | None = None
    prior_label: str | None = None


InsightRule = Callable[[InsightContext], "str | None"]


def format_temperature(celsius: float, unit: str) -> str:
    if unit == "fahrenheit":
        return f"{celsius * 9.0 / 5.0 + 32.0:.1f}°F"
    return f"{celsius:.1f}°C"


def _plural(count: int, singular: str, plural: str | None = None) -> str:
    return singular if count == 1 else (plural or f"{singular}s")


def highest_severity_insight(context: InsightContext) -> str | None:
    if not context.ranked:
        return None
    top = context.ranked[0]
    value = top.number(context.primary_field)
    reading = f", {value:g}" if value is not None else ""
    return f"{top.name} has the highest CO2 level ({top.severity}{reading})."


def very_high_count_insight(context: InsightContext) -> str | None:
    count = context.metrics.severity_counts.get("VERY HIGH", 0)
    if count <= 0:
        return None
    verb = _plural(count, "is", "are")
    return f"{count} {_plural(count, 'location')} {verb} at VERY HIGH CO2 levels."


def alert_level_insight(context: InsightContext) -> str | None:
    count = context.metrics.alert_count(context.minimum_alert_severity)
    if count <= 0:
        return None
    return (
        f"{count} of {context.metrics.record_count} {_plural(count, 'location')} "
        f"reached the {context.minimum_alert_severity} alert level."
    )


def climate_summary_insight(context: InsightContext) -> str | None:
    temperature = context.metrics.mean("temperature_c")
    humidity = context.metrics.mean("humidity")
    if temperature is None and humidity is None:
        return None
    parts: list[str] = []
    if temperature is not None:
        formatted = format_temperature(temperature, context.temperature_unit)
        parts.append(f"average temperature is {formatted}")
    if humidity is not None:
        parts.append(f"average humidity is {humidity:.1f}%")
    sentence = " and ".join(parts)
    return sentence[0].upper() + sentence[1:] + "."


def heat_stress_insight(context: InsightContext) -> str | None:
    count = context.metrics.heat_stress_count
    if count <= 0:
        return None
    threshold = format_temperature(context.metrics.heat_threshold, context.temperature_unit)
    return (
        f"{count} {_plural(count, 'location')} met or exceeded the heat stress "
        f"threshold of {threshold}."
    )


def ranking_trend_insight(context: InsightContext) -> str | None:
    if len(context.ranked) < 2:
        return None
    first, second = context.ranked[0], context.ranked[1]
    first_value = first.number(context.primary_field)
    second_value = second.number(context.primary_field)
    if first_value is None or second_value is None or second_value == 0:
        return f"{first.name} ranks above {second.name} this period."
    gap = round((first_value - second_value) / second_value * 100.0, 1)
    return f"{first.name} reads {gap:g}% higher than the next location, {second.name}."


def prior_period_insight(context: InsightContext) -> str | None:
    if context.prior_metrics is None or not context.prior_label:
        return None
    current = context.metrics.mean(context.primary_field)
    previous = context.prior_metrics.mean(context.primary_field)
    if current is None or previous is None or previous == 0:
        return None
    change = round((current - previous) / previous * 100.0, 1)
    if change == 0:
        return f"Average CO2 is unchanged compared to {context.prior_label}."
    direction = "up" if change > 0 else "down"
    return f"Average CO2 is {direction} {abs(change):g}% compared to {context.prior_label}."


DEFAULT_RULES: tuple[tuple[str, InsightRule], ...] = (
    ("highest_severity", highest_severity_insight),
    ("very_high_count", very_high_count_insight),
    ("alert_level", alert_level_insight),
    ("climate_summary", climate_summary_insight),
    ("heat_stress", heat_stress_insight),
    ("ranking_trend", ranking_trend_insight),
    ("prior_period", prior_period_insight),
)


def build_insights(
    context: InsightContext,
    rules: Sequence[tuple[str, InsightRule]] = DEFAULT_RULES,
) -> list[str]:
    insights: list[str] = []
    for _rule_id, rule in rules:
        text = rule(context)
        if text:
            insights.append(text)
    return insights
