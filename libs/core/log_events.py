"""Structured JSON log lines shared by the core and the API host."""

import json
import logging
import os
from typing import Any


def configure_logging(level: str | None = None) -> None:
    resolved = (level or os.getenv("LOG_LEVEL", "INFO")).upper().strip()
    logging.basicConfig(level=resolved, format="%(message)s")


def log_event(
    logger: logging.Logger,
    event: str,
    payload: dict[str, Any] | None = None,
    level: int = logging.INFO,
) -> None:
    record = {"event": event, **(payload or {})}
    try:
        message = json.dumps(record, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        message = f"{event}: {payload}"
    logger.log(level, message)
