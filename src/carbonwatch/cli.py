from __future__ import annotations

import threading
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from zoneinfo import ZoneInfo

import typer

from carbonwatch.config import DEFAULT_CONFIG_PATH, AppConfig, SettingsConfig, load_config
from carbonwatch.export.document import ExportError, export_document
from carbonwatch.io.sources import HttpCollectionSource, check_connection
from carbonwatch.logging import configure_logging
from carbonwatch.paths import build_output_paths
from carbonwatch.periods import Month, Period, Week, list_months, list_weeks
from carbonwatch.pipeline.session import RefreshScheduler, ReportSession, ScreenState
from carbonwatch.report.render import report_from_state
from carbonwatch.settings import DEFAULT_SETTINGS_PATH, SettingsStore

app = typer.Typer(no_args_is_help=True, add_completion=False)
settings_app = typer.Typer(no_args_is_help=True, help="Show or change persisted settings.")
app.add_typer(settings_app, name="settings")


class ReportFormat(str, Enum):
    html = "html"
    json = "json"
    pdf = "pdf"


def _load_app_config(config_path: Path) -> AppConfig:
    return load_config(config_path)


def _settings_store(cfg: AppConfig) -> SettingsStore:
    path = Path(cfg.settings_path) if cfg.settings_path else DEFAULT_SETTINGS_PATH
    return SettingsStore(path, defaults=cfg.settings)


def _build_session(cfg: AppConfig, settings: SettingsConfig) -> ReportSession:
    return ReportSession(
        HttpCollectionSource(cfg.sources.entity_url, timeout=cfg.sources.timeout_seconds),
        HttpCollectionSource(cfg.sources.readings_url, timeout=cfg.sources.timeout_seconds),
        settings,
        kind=cfg.sources.entity_kind,
        top_n=cfg.report.top_n,
        primary_field=cfg.report.primary_field,
    )


def _parse_month(value: str) -> Month:
    try:
        year_text, month_text = value.split("-", 1)
        return Month(year=int(year_text), month=int(month_text) - 1)
    except ValueError as exc:
        raise typer.BadParameter(f"Expected YYYY-MM, got {value!r}") from exc


def _resolve_period(month: str | None, week: int | None) -> Period | None:
    if month is None:
        if week is not None:
            raise typer.BadParameter("--week requires --month")
        return None
    selected = _parse_month(month)
    if week is None:
        return selected
    weeks = list_weeks(selected.year, selected.month)
    if not 1 <= week <= len(weeks):
        raise typer.BadParameter(f"{selected.label} has weeks 1..{len(weeks)}")
    return weeks[week - 1]


def _report_stem(period: Period | None) -> str:
    if period is None:
        return "report"
    stem = f"report-{period.year}-{period.month + 1:02d}"
    if isinstance(period, Week):
        stem += f"-week{period.week_number}"
    return stem


def _echo_state(state: ScreenState) -> None:
    stamp = state.last_updated.isoformat(timespec="seconds") if state.last_updated else "never"
    typer.echo(f"[{stamp}] status={state.status} locations={len(state.records)}")
    if state.error:
        typer.echo(f"- error: {state.error}")
    for position, record in enumerate(state.top, start=1):
        change = state.deltas.get(record.key, 0.0)
        value = record.number("co2_density")
        shown = f"{value:g}" if value is not None else "N/A"
        typer.echo(f"  {position}. {record.name} {record.severity} co2={shown} change={change:+g}%")


@app.command()
def periods(
    earliest: str | None = typer.Option(None, help="ISO timestamp of the oldest reading."),
    month: str | None = typer.Option(None, help="List the weeks of this month (YYYY-MM)."),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, exists=True, readable=True, resolve_path=True),
) -> None:
    """List selectable months, or the weeks of one month."""
    cfg = _load_app_config(config)
    if month is not None:
        selected = _parse_month(month)
        for week in list_weeks(selected.year, selected.month):
            typer.echo(f"{week.week_number}\t{week.start_date}\t{week.end_date}\t{week.label}")
        return
    now = datetime.now(timezone.utc)
    for item in list_months(earliest, now, ZoneInfo(cfg.settings.timezone)):
        typer.echo(f"{item.year}-{item.month + 1:02d}\t{item.label}")


@app.command()
def report(
    out: Path = typer.Option(Path("out"), resolve_path=True),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, exists=True, readable=True, resolve_path=True),
    month: str | None = typer.Option(None, help="Reporting month (YYYY-MM)."),
    week: int | None = typer.Option(None, min=1, help="Week number within --month."),
    fmt: ReportFormat = typer.Option(ReportFormat.html, "--format"),
) -> None:
    """Fetch once and export a report for the selected period."""
    configure_logging()
    cfg = _load_app_config(config)
    settings = _settings_store(cfg).load()
    period = _resolve_period(month, week)

    session = _build_session(cfg, settings)
    session.select_period(period)
    state = session.refresh()
    if state.status == "error" and not state.records:
        typer.echo(f"Fetch failed: {state.error}", err=True)
        raise typer.Exit(code=1)

    document = report_from_state(
        state, settings, title=cfg.report.title, primary_field=cfg.report.primary_field
    )
    paths = build_output_paths(out)
    stem = _report_stem(period)
    try:
        written = export_document(document, paths.exports / f"{stem}.{fmt.value}", fmt.value)
    except ExportError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    if document.status == "no_data":
        typer.echo(f"No data for {document.period_label}.")
    typer.echo(f"Report written to: {written}")


@app.command()
def watch(
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, exists=True, readable=True, resolve_path=True),
    cycles: int | None = typer.Option(None, min=1, help="Stop after this many fetch cycles."),
    month: str | None = typer.Option(None, help="Reporting month (YYYY-MM)."),
    week: int | None = typer.Option(None, min=1, help="Week number within --month."),
) -> None:
    """Refresh on the configured interval and print the ranked locations."""
    configure_logging()
    cfg = _load_app_config(config)
    settings = _settings_store(cfg).load()
    session = _build_session(cfg, settings)
    session.select_period(_resolve_period(month, week))
    scheduler = RefreshScheduler(session, settings.refresh_interval_minutes * 60.0)
    stop_event = threading.Event()
    try:
        scheduler.run(stop_event, _echo_state, max_cycles=cycles)
    except KeyboardInterrupt:
        stop_event.set()


@app.command()
def check(
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, exists=True, readable=True, resolve_path=True),
) -> None:
    """Check that both upstream endpoints respond."""
    configure_logging()
    cfg = _load_app_config(config)
    status = check_connection(
        cfg.sources.entity_url,
        cfg.sources.readings_url,
        timeout=cfg.sources.health_check_timeout_seconds,
    )
    if not status.ok:
        typer.echo(f"Unreachable: {status.error}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Connected · {status.entity_count} entities, {status.reading_count} readings")


@settings_app.command("show")
def settings_show(
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, exists=True, readable=True, resolve_path=True),
) -> None:
    """Print the effective settings."""
    cfg = _load_app_config(config)
    for key, value in _settings_store(cfg).load().model_dump().items():
        typer.echo(f"{key}: {value}")


@settings_app.command("set")
def settings_set(
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, exists=True, readable=True, resolve_path=True),
    refresh_interval_minutes: int | None = typer.Option(None),
    heat_stress_threshold_celsius: float | None = typer.Option(None),
    minimum_alert_severity: str | None = typer.Option(None),
    temperature_unit: str | None = typer.Option(None),
) -> None:
    """Change one or more persisted settings."""
    cfg = _load_app_config(config)
    store = _settings_store(cfg)
    store.load()
    changes = {
        key: value
        for key, value in {
            "refresh_interval_minutes": refresh_interval_minutes,
            "heat_stress_threshold_celsius": heat_stress_threshold_celsius,
            "minimum_alert_severity": minimum_alert_severity,
            "temperature_unit": temperature_unit,
        }.items()
        if value is not None
    }
    if not changes:
        raise typer.BadParameter("Provide at least one setting to change")
    try:
        store.update(**changes)
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"Settings saved to: {store.path}")


@settings_app.command("reset")
def settings_reset(
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, exists=True, readable=True, resolve_path=True),
) -> None:
    """Reset persisted settings to the configured defaults."""
    cfg = _load_app_config(config)
    _settings_store(cfg).reset()
    typer.echo("Settings reset to defaults.")


if __name__ == "__main__":
    app()
