from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml
from typer.testing import CliRunner

from carbonwatch.cli import app
from carbonwatch.io.sources import ConnectionStatus, SourceError
from carbonwatch.pipeline.session import ReportSession


class _StaticSource:
    def __init__(self, payload: Any, error: Exception | None = None) -> None:
        self.payload = payload
        self.error = error

    def fetch(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.payload


def _write_config(tmp_path: Path) -> Path:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        yaml.safe_dump(
            {
                "settings": {"timezone": "UTC"},
                "report": {"title": "Test Report", "top_n": 2},
                "settings_path": "settings.yaml",
            }
        ),
        encoding="utf-8",
    )
    return config_path


def _fake_session_factory(error: Exception | None = None):
    entities = [{"sensor_id": 1, "sensor_name": "Plaza"}]
    readings = {
        "data": [
            {
                "sensor_id": 1,
                "co2_density": 700,
                "recorded_at": "2024-03-05T00:00:00Z",
                "carbon_level": "HIGH",
            }
        ]
    }

    def _build(cfg, settings) -> ReportSession:
        return ReportSession(
            _StaticSource(entities, error),
            _StaticSource(readings),
            settings,
            kind=cfg.sources.entity_kind,
            top_n=cfg.report.top_n,
        )

    return _build


def test_cli_help() -> None:
    runner = CliRunner()
    result = runner.invoke(app, ["--help"])

    assert result.exit_code == 0
    for command in ("periods", "report", "watch", "check", "settings"):
        assert command in result.stdout


def test_periods_lists_weeks_of_month(tmp_path: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(
        app, ["periods", "--month", "2024-02", "--config", str(_write_config(tmp_path))]
    )

    assert result.exit_code == 0
    lines = result.stdout.strip().splitlines()
    assert len(lines) == 5
    assert lines[-1].startswith("5\t2024-02-29\t2024-02-29")


def test_periods_lists_months_from_earliest(tmp_path: Path) -> None:
    runner = CliRunner()
    now = datetime.now(timezone.utc)
    result = runner.invoke(
        app,
        [
            "periods",
            "--earliest",
            now.isoformat(),
            "--config",
            str(_write_config(tmp_path)),
        ],
    )

    assert result.exit_code == 0
    assert result.stdout.strip() == f"{now.year}-{now.month:02d}\t{now.strftime('%B')} {now.year}"


def test_report_command_writes_selected_format(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr("carbonwatch.cli._build_session", _fake_session_factory())
    out_dir = tmp_path / "out"

    runner = CliRunner()
    result = runner.invoke(
        app,
        [
            "report",
            "--config",
            str(_write_config(tmp_path)),
            "--out",
            str(out_dir),
            "--month",
            "2024-03",
            "--week",
            "1",
            "--format",
            "json",
        ],
    )

    assert result.exit_code == 0
    written = out_dir / "exports" / "report-2024-03-week1.json"
    assert written.exists()
    assert "Plaza" in written.read_text(encoding="utf-8")


def test_report_command_flags_empty_period(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr("carbonwatch.cli._build_session", _fake_session_factory())

    runner = CliRunner()
    result = runner.invoke(
        app,
        [
            "report",
            "--config",
            str(_write_config(tmp_path)),
            "--out",
            str(tmp_path / "out"),
            "--month",
            "2024-04",
        ],
    )

    assert result.exit_code == 0
    assert "No data for April 2024." in result.stdout
    assert (tmp_path / "out" / "exports" / "report-2024-04.html").exists()


def test_report_command_exits_non_zero_when_fetch_fails(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(
        "carbonwatch.cli._build_session", _fake_session_factory(SourceError("GET failed"))
    )

    runner = CliRunner()
    result = runner.invoke(
        app,
        ["report", "--config", str(_write_config(tmp_path)), "--out", str(tmp_path / "out")],
    )

    assert result.exit_code == 1
    assert not (tmp_path / "out" / "exports").exists()


def test_watch_command_stops_after_cycles(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr("carbonwatch.cli._build_session", _fake_session_factory())

    runner = CliRunner()
    result = runner.invoke(
        app, ["watch", "--config", str(_write_config(tmp_path)), "--cycles", "1"]
    )

    assert result.exit_code == 0
    assert "status=ok" in result.stdout
    assert "1. Plaza HIGH co2=700" in result.stdout


def test_check_command_reports_status(monkeypatch, tmp_path: Path) -> None:
    captured: dict[str, object] = {}

    def _fake_check(entity_url: str, readings_url: str, *, timeout: float) -> ConnectionStatus:
        captured["timeout"] = timeout
        return ConnectionStatus(
            ok=True,
            checked_at=datetime.now(timezone.utc),
            entity_count=3,
            reading_count=12,
        )

    monkeypatch.setattr("carbonwatch.cli.check_connection", _fake_check)

    runner = CliRunner()
    result = runner.invoke(app, ["check", "--config", str(_write_config(tmp_path))])

    assert result.exit_code == 0
    assert "3 entities, 12 readings" in result.stdout
    assert captured["timeout"] == 8.0


def test_settings_set_show_and_reset(tmp_path: Path) -> None:
    config_path = str(_write_config(tmp_path))
    runner = CliRunner()

    set_result = runner.invoke(
        app,
        [
            "settings",
            "set",
            "--config",
            config_path,
            "--refresh-interval-minutes",
            "15",
            "--temperature-unit",
            "fahrenheit",
        ],
    )
    assert set_result.exit_code == 0
    assert (tmp_path / "settings.yaml").exists()

    show_result = runner.invoke(app, ["settings", "show", "--config", config_path])
    assert "refresh_interval_minutes: 15" in show_result.stdout
    assert "temperature_unit: fahrenheit" in show_result.stdout

    reset_result = runner.invoke(app, ["settings", "reset", "--config", config_path])
    assert reset_result.exit_code == 0
    assert not (tmp_path / "settings.yaml").exists()


def test_settings_set_rejects_invalid_values(tmp_path: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(
        app,
        [
            "settings",
            "set",
            "--config",
            str(_write_config(tmp_path)),
            "--refresh-interval-minutes",
            "7",
        ],
    )

    assert result.exit_code == 1
    assert not (tmp_path / "settings.yaml").exists()
