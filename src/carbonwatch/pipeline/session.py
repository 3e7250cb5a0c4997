from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Callable, Hashable, Literal
from zoneinfo import ZoneInfo

from carbonwatch.config import SettingsConfig
from carbonwatch.engine.aggregate import Metrics, aggregate
from carbonwatch.engine.delta import DeltaTracker
from carbonwatch.engine.merge import MergedRecord, merge
from carbonwatch.engine.ranking import PRIMARY_FIELD, rank, top_n
from carbonwatch.io.schema import Entity, Reading
from carbonwatch.io.sources import CollectionSource
from carbonwatch.periods import (
    Month,
    Period,
    available_months,
    earliest_timestamp,
    list_months,
    previous_period,
)
from carbonwatch.pipeline.fetch_cycle import FetchCycleError, fetch_cycle

LOGGER = logging.getLogger(__name__)

ScreenStatus = Literal["loading", "ok", "no_data", "error"]


@dataclass(frozen=True)
class PeriodComparison:
    period: Period
    metrics: Metrics


@dataclass(frozen=True)
class ScreenState:
    status: ScreenStatus
    period: Period | None
    records: list[MergedRecord] = field(default_factory=list)
    ranked: list[MergedRecord] = field(default_factory=list)
    top: list[MergedRecord] = field(default_factory=list)
    metrics: Metrics | None = None
    prior: PeriodComparison | None = None
    deltas: dict[Hashable, float] = field(default_factory=dict)
    error: str | None = None
    last_updated: datetime | None = None

    @property
    def has_data(self) -> bool:
        return bool(self.records)


class ReportSession:
    """Owns one screen's fetched data, selected period and delta baselines."""

    def __init__(
        self,
        entity_source: CollectionSource,
        reading_source: CollectionSource,
        settings: SettingsConfig,
        *,
        kind: str = "sensor",
        top_n: int = 5,
        primary_field: str = PRIMARY_FIELD,
        tracker: DeltaTracker | None = None,
    ) -> None:
        self.entity_source = entity_source
        self.reading_source = reading_source
        self.settings = settings
        self.kind = kind
        self.top_n = top_n
        self.primary_field = primary_field
        self.tracker = tracker or DeltaTracker()
        self.period: Period | None = None
        self._entities: list[Entity] | None = None
        self._readings: list[Reading] = []
        self._deltas: dict[Hashable, float] = {}
        self._error: str | None = None
        self._last_updated: datetime | None = None

    @property
    def tz(self) -> tzinfo:
        return ZoneInfo(self.settings.timezone)

    @property
    def readings(self) -> list[Reading]:
        return list(self._readings)

    def refresh(self) -> ScreenState:
        """Run one fetch cycle and commit it, or keep the previous state on failure."""
        try:
            result = fetch_cycle(self.entity_source, self.reading_source, kind=self.kind)
        except FetchCycleError as exc:
            LOGGER.warning("Fetch cycle abandoned: %s", exc)
            self._error = str(exc)
            return self.state()

        latest = merge(result.entities, result.readings, None, kind=self.kind, tz=self.tz)
        deltas = self.tracker.observe_cycle(
            {record.key: record.values.get(self.primary_field) for record in latest},
            observed_at=result.fetched_at,
        )
        self._entities = result.entities
        self._readings = result.readings
        self._deltas = deltas
        self._error = None
        self._last_updated = result.fetched_at
        return self.state()

    def select_period(self, period: Period | None) -> ScreenState:
        self.period = period
        return self.state()

    def reset_baselines(self) -> None:
        self.tracker.reset()
        self._deltas = {}

    def months(self, now: datetime, *, only_available: bool = False) -> list[Month]:
        timestamps = [reading.recorded_at for reading in self._readings]
        if only_available:
            return available_months(timestamps, now, self.tz)
        return list_months(earliest_timestamp(timestamps), now, self.tz)

    def _metrics(self, records: list[MergedRecord]) -> Metrics:
        return aggregate(records, heat_threshold=self.settings.heat_stress_threshold_celsius)

    def state(self) -> ScreenState:
        if self._entities is None:
            return ScreenState(
                status="error" if self._error else "loading",
                period=self.period,
                error=self._error,
            )

        records = merge(self._entities, self._readings, self.period, kind=self.kind, tz=self.tz)
        ranked = rank(records, self.primary_field)
        prior: PeriodComparison | None = None
        if self.period is not None:
            prior_period = previous_period(self.period)
            prior_records = merge(
                self._entities, self._readings, prior_period, kind=self.kind, tz=self.tz
            )
            if prior_records:
                prior = PeriodComparison(period=prior_period, metrics=self._metrics(prior_records))

        status: ScreenStatus
        if self._error:
            status = "error"
        elif records:
            status = "ok"
        else:
            status = "no_data"

        return ScreenState(
            status=status,
            period=self.period,
            records=records,
            ranked=ranked,
            top=top_n(records, self.top_n, self.primary_field),
            metrics=self._metrics(records),
            prior=prior,
            deltas=dict(self._deltas),
            error=self._error,
            last_updated=self._last_updated,
        )


class RefreshScheduler:
    """Countdown-driven refresh; a manual refresh restarts the countdown."""

    def __init__(
        self,
        session: ReportSession,
        interval_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.session = session
        self.interval_seconds = float(interval_seconds)
        self._clock = clock
        self._next_due = clock()

    def seconds_remaining(self) -> float:
        return max(0.0, self._next_due - self._clock())

    def _run_cycle(self) -> ScreenState:
        try:
            return self.session.refresh()
        finally:
            self._next_due = self._clock() + self.interval_seconds

    def tick(self) -> ScreenState | None:
        if self.seconds_remaining() > 0:
            return None
        return self._run_cycle()

    def manual_refresh(self) -> ScreenState:
        return self._run_cycle()

    def run(
        self,
        stop_event: threading.Event,
        on_state: Callable[[ScreenState], None],
        *,
        max_cycles: int | None = None,
    ) -> int:
        cycles = 0
        while not stop_event.is_set():
            state = self.tick()
            if state is not None:
                cycles += 1
                on_state(state)
                if max_cycles is not None and cycles >= max_cycles:
                    break
            stop_event.wait(min(self.seconds_remaining(), 1.0))
        return cycles
