from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

SeverityLevel = Literal["NORMAL", "LOW", "MODERATE", "HIGH", "VERY HIGH"]

# Ordered lowest to highest.
SEVERITY_LEVELS: tuple[SeverityLevel, ...] = ("NORMAL", "LOW", "MODERATE", "HIGH", "VERY HIGH")
SEVERITY_RANK: dict[str, int] = {level: index for index, level in enumerate(SEVERITY_LEVELS)}
DEFAULT_SEVERITY: SeverityLevel = "NORMAL"

SAFE_LEVELS = frozenset({"NORMAL", "LOW", "MODERATE"})

SEVERITY_COLORS: dict[str, str] = {
    "VERY HIGH": "#D64545",
    "HIGH": "#E8A75D",
    "MODERATE": "#F59E0B",
    "LOW": "#3B82F6",
    "NORMAL": "#22C55E",
}


@dataclass(frozen=True)
class SafetyInfo:
    label: str
    safe: bool
    advice: str


_SAFETY_INFO: dict[str, SafetyInfo] = {
    "VERY HIGH": SafetyInfo(
        label="Avoid Now",
        safe=False,
        advice="CO2 is dangerously high. Please avoid this location.",
    ),
    "HIGH": SafetyInfo(
        label="Use Caution",
        safe=False,
        advice="Elevated CO2 detected. Consider limiting your visit or waiting.",
    ),
    "MODERATE": SafetyInfo(
        label="Acceptable",
        safe=True,
        advice="CO2 is moderate. Short visits are fine; ensure good ventilation.",
    ),
    "LOW": SafetyInfo(label="Good to Go", safe=True, advice="Air quality is good. Safe to visit!"),
    "NORMAL": SafetyInfo(
        label="Good to Go",
        safe=True,
        advice="Air quality is within normal range. Enjoy your visit!",
    ),
}


def normalize_severity(value: Any) -> SeverityLevel:
    """Map a raw label onto the taxonomy; anything unrecognized becomes NORMAL."""
    if not isinstance(value, str):
        return DEFAULT_SEVERITY
    cleaned = " ".join(value.replace("_", " ").split()).upper()
    if cleaned in SEVERITY_RANK:
        return cleaned  # type: ignore[return-value]
    return DEFAULT_SEVERITY


def severity_rank(value: Any) -> int:
    return SEVERITY_RANK[normalize_severity(value)]


def severity_color(value: Any) -> str:
    return SEVERITY_COLORS[normalize_severity(value)]


def safety_info(value: Any) -> SafetyInfo:
    return _SAFETY_INFO[normalize_severity(value)]


def at_or_above(value: Any, minimum: Any) -> bool:
    return severity_rank(value) >= severity_rank(minimum)
