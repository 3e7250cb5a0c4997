from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from carbonwatch.config import AppConfig, SettingsConfig, load_config


def test_load_config_resolves_settings_path(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        yaml.safe_dump(
            {
                "sources": {"entity_kind": "barangay"},
                "settings": {"refresh_interval_minutes": 15},
                "settings_path": "state/settings.yaml",
            }
        ),
        encoding="utf-8",
    )

    cfg = load_config(config_path)

    assert cfg.sources.entity_kind == "barangay"
    assert cfg.settings.refresh_interval_minutes == 15
    assert Path(cfg.settings_path or "").is_absolute()
    assert Path(cfg.settings_path or "") == (tmp_path / "state" / "settings.yaml").resolve()


def test_load_config_uses_env_source_urls(monkeypatch, tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("{}", encoding="utf-8")
    monkeypatch.setenv("CARBONWATCH_ENTITY_URL", "http://localhost:9000/sensor")
    monkeypatch.setenv("CARBONWATCH_READINGS_URL", "http://localhost:9000/sensor-data")

    cfg = load_config(config_path)

    assert cfg.sources.entity_url == "http://localhost:9000/sensor"
    assert cfg.sources.readings_url == "http://localhost:9000/sensor-data"
    assert cfg.settings_path is None


def test_shipped_configs_validate() -> None:
    root = Path(__file__).resolve().parents[1] / "configs"

    default = load_config(root / "default.yaml")
    establishments = load_config(root / "establishments.yaml")

    assert default.sources.timeout_seconds == 30.0
    assert default.sources.health_check_timeout_seconds == 8.0
    assert default.settings.timezone == "Asia/Manila"
    assert establishments.sources.entity_kind == "establishment"


def test_unknown_top_level_keys_are_rejected() -> None:
    with pytest.raises(ValidationError):
        AppConfig.model_validate({"detectors": {}})


@pytest.mark.parametrize(
    "overrides",
    [
        {"refresh_interval_minutes": 7},
        {"heat_stress_threshold_celsius": 39},
        {"minimum_alert_severity": "LOW"},
        {"temperature_unit": "kelvin"},
    ],
)
def test_settings_reject_values_outside_options(overrides: dict[str, object]) -> None:
    with pytest.raises(ValidationError):
        SettingsConfig.model_validate(overrides)
