from __future__ import annotations

import logging
import os
from typing import Literal

import coloredlogs  # type: ignore[import]

LogLevel = Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"]

LEVEL_ENV_VAR = "LOGLEVEL"
DEFAULT_LEVEL: LogLevel = "INFO"
DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
DEFAULT_DATE_FORMAT = "%H:%M:%S"

# chatty at INFO; only surfaced when wledscan itself runs at DEBUG
NOISY_LOGGERS = ("zeroconf", "httpx", "httpcore")


def resolve_level(level: str | None = None) -> str:
    """Explicit level, then ``$LOGLEVEL``, then INFO. Unknown names fall back to INFO."""
    candidate = (level or os.environ.get(LEVEL_ENV_VAR) or DEFAULT_LEVEL).upper()
    if candidate not in logging.getLevelNamesMapping():
        return DEFAULT_LEVEL
    return candidate


def setup_logging(level: LogLevel | None = None) -> None:
    resolved = resolve_level(level)

    coloredlogs.install(
        level=resolved,
        fmt=DEFAULT_FORMAT,
        datefmt=DEFAULT_DATE_FORMAT,
    )

    noisy_level = logging.DEBUG if resolved == "DEBUG" else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)
