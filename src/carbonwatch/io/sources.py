from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

import requests

from carbonwatch.io.schema import PayloadShapeError, unwrap_collection

LOGGER = logging.getLogger(__name__)

DEFAULT_HEALTH_CHECK_TIMEOUT_SECONDS = 8.0


class SourceError(RuntimeError):
    """Raised when an upstream collection cannot be fetched or decoded."""


class CollectionSource(Protocol):
    def fetch(self) -> Any: ...


class HttpCollectionSource:
    def __init__(
        self,
        url: str,
        *,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._session = session or requests.Session()

    def __repr__(self) -> str:
        return f"HttpCollectionSource(url={self.url!r})"

    def fetch(self) -> Any:
        try:
            response = self._session.get(self.url, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.exceptions.HTTPError as exc:
            status = getattr(exc.response, "status_code", None)
            raise SourceError(f"GET {self.url} failed with status {status}") from exc
        except requests.exceptions.RequestException as exc:
            raise SourceError(f"GET {self.url} failed: {exc}") from exc
        except ValueError as exc:
            raise SourceError(f"GET {self.url} returned invalid JSON") from exc
        LOGGER.debug("Fetched %s", self.url)
        return payload


@dataclass(frozen=True)
class ConnectionStatus:
    ok: bool
    checked_at: datetime
    entity_count: int | None = None
    reading_count: int | None = None
    error: str | None = None


def check_connection(
    entity_url: str,
    readings_url: str,
    *,
    timeout: float = DEFAULT_HEALTH_CHECK_TIMEOUT_SECONDS,
    session: requests.Session | None = None,
) -> ConnectionStatus:
    """Probe both endpoints with a bounded timeout; never raises on upstream failure."""
    shared = session or requests.Session()
    sources = [
        HttpCollectionSource(entity_url, timeout=timeout, session=shared),
        HttpCollectionSource(readings_url, timeout=timeout, session=shared),
    ]
    checked_at = datetime.now(timezone.utc)
    try:
        with ThreadPoolExecutor(max_workers=2) as pool:
            entity_payload, reading_payload = pool.map(lambda source: source.fetch(), sources)
        entity_count = len(unwrap_collection(entity_payload))
        reading_count = len(unwrap_collection(reading_payload))
    except (SourceError, PayloadShapeError) as exc:
        LOGGER.warning("Connection check failed: %s", exc)
        return ConnectionStatus(ok=False, checked_at=checked_at, error=str(exc))
    return ConnectionStatus(
        ok=True,
        checked_at=checked_at,
        entity_count=entity_count,
        reading_count=reading_count,
    )
