from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


class Cadence(str, Enum):
    """Polling interval between death-check cycles."""

    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    DISABLED = "disabled"

    @property
    def interval_seconds(self) -> int | None:
        return _CADENCE_SECONDS[self]

    @property
    def display_name(self) -> str:
        return _CADENCE_NAMES[self]


_CADENCE_SECONDS: dict[Cadence, int | None] = {
    Cadence.HOURLY: 3600,
    Cadence.DAILY: 86400,
    Cadence.WEEKLY: 604800,
    Cadence.MONTHLY: 2592000,
    Cadence.DISABLED: None,
}

_CADENCE_NAMES: dict[Cadence, str] = {
    Cadence.HOURLY: "Every Hour",
    Cadence.DAILY: "Daily",
    Cadence.WEEKLY: "Weekly",
    Cadence.MONTHLY: "Monthly",
    Cadence.DISABLED: "Disabled",
}


@dataclass
class Subject:
    """Monitored public figure."""

    subject_id: str
    name: str
    occupation: str = ""
    is_deceased: bool = False
    death_date: date | None = None
    last_updated: datetime | None = None


@dataclass
class CycleResult:
    """Outcome of one death-check cycle."""

    started_at: datetime
    finished_at: datetime | None = None
    newly_deceased: list[Subject] = field(default_factory=list)
    checked: int = 0
    failed_lookups: list[str] = field(default_factory=list)
    persist_failures: list[str] = field(default_factory=list)


@dataclass
class PendingAlert:
    """Undelivered in-app alert waiting for the foreground consumer."""

    subjects: list[Subject]
    created_at: datetime
