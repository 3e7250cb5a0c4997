from __future__ import annotations

import json
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from carbonwatch.config import SettingsConfig
from carbonwatch.engine.aggregate import aggregate
from carbonwatch.pipeline.session import ScreenState
from carbonwatch.report.document import ReportDocument, build_report

REPORT_TEMPLATE = "report.html.j2"


def _template_env() -> Environment:
    templates_path = Path(__file__).resolve().parent / "templates"
    return Environment(
        loader=FileSystemLoader(str(templates_path)),
        autoescape=select_autoescape(enabled_extensions=("html", "xml", "j2")),
        trim_blocks=True,
        lstrip_blocks=True,
    )


def _format_delta(value: float) -> str:
    if value > 0:
        return f"↑ {value:g}%"
    if value < 0:
        return f"↓ {abs(value):g}%"
    return "— 0%"


def report_from_state(
    state: ScreenState,
    settings: SettingsConfig,
    *,
    title: str = "ENVI Analytics Report",
    primary_field: str = "co2_density",
) -> ReportDocument:
    """Build a report document from a session's current screen state."""
    metrics = state.metrics or aggregate([], settings.heat_stress_threshold_celsius)
    prior = (state.prior.period, state.prior.metrics) if state.prior is not None else None
    if state.status == "error" and not state.records:
        return build_report(
            state.period,
            [],
            metrics,
            [],
            settings=settings,
            title=title,
            primary_field=primary_field,
            status="error",
            message=state.error or "Data could not be loaded.",
        )
    return build_report(
        state.period,
        state.records,
        metrics,
        state.top,
        prior,
        settings=settings,
        deltas=state.deltas,
        title=title,
        primary_field=primary_field,
        status="ok" if state.records else "no_data",
        message=state.error,
    )


def render_html(document: ReportDocument) -> str:
    template = _template_env().get_template(REPORT_TEMPLATE)
    return template.render(
        document=document,
        view_model=document.to_view_model(),
        format_delta=_format_delta,
    )


def render_json(document: ReportDocument) -> str:
    return json.dumps(document.to_view_model(), indent=2, ensure_ascii=False)
