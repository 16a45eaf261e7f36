"""Runtime configuration resolved from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

from libs.core.domain.entities import Cadence

ENV_PATH = Path(__file__).resolve().parent / ".env"

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class Settings:
    """Death-watch service configuration."""

    cadence: Cadence = Cadence.DAILY
    notifications_enabled: bool = True
    push_webhook_url: str | None = None
    lookup_timeout_sec: float = 15.0
    max_workers: int = 4
    deferred_requests: bool = True
    seed_subjects: bool = True
    autostart: bool = True
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        env_cadence = os.getenv("DEATHWATCH_CADENCE")
        env_webhook = os.getenv("DEATHWATCH_PUSH_WEBHOOK_URL")
        env_timeout = os.getenv("DEATHWATCH_LOOKUP_TIMEOUT_SEC")
        env_workers = os.getenv("DEATHWATCH_MAX_WORKERS")
        env_log_level = os.getenv("LOG_LEVEL")
        if env_cadence:
            self.cadence = Cadence(env_cadence.strip().lower())
        if env_webhook:
            self.push_webhook_url = env_webhook.strip()
        if env_timeout:
            self.lookup_timeout_sec = max(1.0, float(env_timeout))
        if env_workers:
            self.max_workers = max(1, int(env_workers))
        if env_log_level:
            self.log_level = env_log_level.strip().upper()
        self.notifications_enabled = _env_flag(
            "DEATHWATCH_NOTIFICATIONS_ENABLED", self.notifications_enabled
        )
        self.deferred_requests = _env_flag(
            "DEATHWATCH_DEFERRED_REQUESTS", self.deferred_requests
        )
        self.seed_subjects = _env_flag("DEATHWATCH_SEED_SUBJECTS", self.seed_subjects)
        self.autostart = _env_flag("DEATHWATCH_AUTOSTART", self.autostart)


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUE_VALUES


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance."""
    load_dotenv(dotenv_path=ENV_PATH)
    return Settings()
