from collections.abc import Callable
from datetime import date, datetime
from typing import Protocol, TypedDict

from libs.core.domain.entities import Subject


class StoreError(Exception):
    """Raised when a subject write-back cannot be persisted."""


class DeferredRequestDenied(Exception):
    """Raised when the host refuses a deferred-execution request."""


class PushSubmissionError(Exception):
    """Raised when a push notification request is rejected."""


class PushRequest(TypedDict):
    """Push notification payload, keyed by a per-subject identifier."""

    identifier: str
    title: str
    subtitle: str
    body: str


class SubjectRepository(Protocol):
    """Subject registry contract."""

    def list_all(self) -> list[Subject]: ...

    def get(self, subject_id: str) -> Subject | None: ...

    def add(self, subject: Subject) -> None: ...

    def upsert(self, subject: Subject) -> None: ...


class DeathDateLookup(Protocol):
    """Reference source for death dates. Returns None on any failure."""

    def lookup_death_date(self, name: str) -> date | None: ...


class DeferredExecutionRequester(Protocol):
    """Host facility that fires a callback once, no earlier than a given time."""

    def request(self, earliest: datetime, callback: Callable[[], None]) -> None: ...

    def cancel(self) -> None: ...


class RepeatingTimer(Protocol):
    """In-process timer that fires a callback every interval."""

    def start(self, interval_seconds: int, callback: Callable[[], None]) -> None: ...

    def cancel(self) -> None: ...


class PushNotifier(Protocol):
    """Best-effort push delivery contract."""

    def submit(self, request: PushRequest) -> None: ...
