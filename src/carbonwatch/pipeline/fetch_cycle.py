from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone

from carbonwatch.io.schema import (
    Entity,
    PayloadShapeError,
    Reading,
    normalize_entities,
    normalize_readings,
)
from carbonwatch.io.sources import CollectionSource, SourceError

LOGGER = logging.getLogger(__name__)


class FetchCycleError(RuntimeError):
    """A fetch cycle was abandoned; nothing from it may be committed."""


@dataclass(frozen=True)
class FetchResult:
    entities: list[Entity]
    readings: list[Reading]
    fetched_at: datetime


def fetch_cycle(
    entity_source: CollectionSource,
    reading_source: CollectionSource,
    *,
    kind: str = "sensor",
) -> FetchResult:
    """Fetch and normalize both collections; either both succeed or the cycle fails."""
    with ThreadPoolExecutor(max_workers=2) as pool:
        entity_future = pool.submit(entity_source.fetch)
        reading_future = pool.submit(reading_source.fetch)
        try:
            entity_payload = entity_future.result()
            reading_payload = reading_future.result()
        except SourceError as exc:
            raise FetchCycleError(str(exc)) from exc

    try:
        entities = normalize_entities(entity_payload, kind)
        readings = normalize_readings(reading_payload, kind)
    except PayloadShapeError as exc:
        raise FetchCycleError(str(exc)) from exc

    result = FetchResult(
        entities=entities,
        readings=readings,
        fetched_at=datetime.now(timezone.utc),
    )
    LOGGER.info(
        "Fetch cycle complete: %d entities, %d readings", len(entities), len(readings)
    )
    return result
