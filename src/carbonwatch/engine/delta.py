from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Hashable, Mapping

from carbonwatch.io.schema import parse_number

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Baseline:
    value: float
    observed_at: datetime


def percentage_change(current: float, previous: float | None) -> float:
    if not previous:
        return 0.0
    return round((current - previous) / previous * 100.0, 1)


class DeltaTracker:
    """Last observed value per key, for percentage change across fetch cycles.

    Baselines live for the lifetime of the tracker instance. A zero or missing
    previous value yields a 0.0 change rather than a division error.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._baselines: dict[Hashable, Baseline] = {}

    def __len__(self) -> int:
        return len(self._baselines)

    def __contains__(self, key: object) -> bool:
        return key in self._baselines

    def baseline(self, key: Hashable) -> Baseline | None:
        return self._baselines.get(key)

    def observe(self, key: Hashable, current: Any, observed_at: datetime | None = None) -> float:
        value = parse_number(current)
        if value is None:
            value = 0.0
        previous = self._baselines.get(key)
        change = percentage_change(value, previous.value if previous is not None else None)
        self._baselines[key] = Baseline(value=value, observed_at=observed_at or self._clock())
        return change

    def observe_cycle(
        self,
        values: Mapping[Hashable, Any],
        observed_at: datetime | None = None,
    ) -> dict[Hashable, float]:
        """Apply one fetch cycle's values; every key shares the same observation time."""
        stamp = observed_at or self._clock()
        changes = {key: self.observe(key, value, stamp) for key, value in values.items()}
        LOGGER.debug("Observed %d baseline values", len(changes))
        return changes

    def reset(self) -> None:
        self._baselines.clear()
