from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

REFRESH_INTERVAL_OPTIONS = [1, 5, 15, 30]
HEAT_THRESHOLD_OPTIONS = [38.0, 40.0, 41.0, 43.0]

EntityKind = Literal["sensor", "barangay", "establishment"]


class SourcesConfig(BaseModel):
    entity_url: str = "https://bytetech-final1.onrender.com/sensor"
    readings_url: str = "https://bytetech-final1.onrender.com/sensor-data"
    entity_kind: EntityKind = "sensor"
    timeout_seconds: float | None = Field(default=30.0, gt=0.0)
    health_check_timeout_seconds: float = Field(default=8.0, gt=0.0)


class SettingsConfig(BaseModel):
    refresh_interval_minutes: int = 5
    heat_stress_threshold_celsius: float = 41.0
    minimum_alert_severity: Literal["HIGH", "VERY HIGH"] = "HIGH"
    temperature_unit: Literal["celsius", "fahrenheit"] = "celsius"
    timezone: str = "Asia/Manila"

    @field_validator("refresh_interval_minutes")
    @classmethod
    def _check_refresh_interval(cls, value: int) -> int:
        if value not in REFRESH_INTERVAL_OPTIONS:
            raise ValueError(
                f"refresh_interval_minutes must be one of {REFRESH_INTERVAL_OPTIONS}, got {value}"
            )
        return value

    @field_validator("heat_stress_threshold_celsius")
    @classmethod
    def _check_heat_threshold(cls, value: float) -> float:
        if float(value) not in HEAT_THRESHOLD_OPTIONS:
            raise ValueError(
                f"heat_stress_threshold_celsius must be one of {HEAT_THRESHOLD_OPTIONS}, "
                f"got {value}"
            )
        return float(value)


class ReportConfig(BaseModel):
    title: str = "ENVI Analytics Report"
    top_n: int = Field(default=5, ge=1)
    primary_field: str = "co2_density"


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sources: SourcesConfig = Field(default_factory=SourcesConfig)
    settings: SettingsConfig = Field(default_factory=SettingsConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)
    settings_path: str | None = None


DEFAULT_CONFIG_PATH = Path("configs/default.yaml")


def _resolve_optional_path(path_value: str | None, base_dir: Path) -> str | None:
    if not path_value:
        return None
    candidate = Path(path_value)
    if candidate.is_absolute():
        return str(candidate)
    return str((base_dir / candidate).resolve())


def load_config(path: Path) -> AppConfig:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    config = AppConfig.model_validate(data)
    base_dir = path.resolve().parent

    config.settings_path = _resolve_optional_path(config.settings_path, base_dir)
    config.sources.entity_url = os.getenv("CARBONWATCH_ENTITY_URL") or config.sources.entity_url
    config.sources.readings_url = (
        os.getenv("CARBONWATCH_READINGS_URL") or config.sources.readings_url
    )
    return config
