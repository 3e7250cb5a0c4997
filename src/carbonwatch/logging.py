from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
LOG_LEVEL_ENV = "CARBONWATCH_LOG_LEVEL"

# requests logs every connection at DEBUG/INFO; one per fetch cycle is noise.
QUIET_LOGGERS = ("urllib3",)


def resolve_log_level(level: str | None = None) -> int:
    name = (level or os.getenv(LOG_LEVEL_ENV) or "INFO").strip().upper()
    resolved = logging.getLevelName(name)
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {name!r}")
    return resolved


def configure_logging(level: str | None = None) -> None:
    resolved = resolve_log_level(level)
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))
