import threading
from collections.abc import Callable
from datetime import date, datetime, timezone

import pytest

from libs.core.application.contracts import (
    DeferredRequestDenied,
    PushRequest,
    PushSubmissionError,
    StoreError,
)
from libs.core.domain.entities import Subject
from services.deathwatch_api.infrastructure.memory_store import (
    InMemorySubjectRepository,
)

FIXED_NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeLookup:
    """Scripted reference source; records every name it was asked about."""

    def __init__(
        self,
        dates: dict[str, date] | None = None,
        failures: set[str] | None = None,
        gate: threading.Event | None = None,
    ) -> None:
        self.dates = dict(dates or {})
        self.failures = set(failures or set())
        self.gate = gate
        self.entered = threading.Event()
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def lookup_death_date(self, name: str) -> date | None:
        with self._lock:
            self.calls.append(name)
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if name in self.failures:
            raise RuntimeError(f"lookup exploded for {name}")
        return self.dates.get(name)


class RecordingPushNotifier:
    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.fail_for = set(fail_for or set())
        self.submitted: list[PushRequest] = []

    def submit(self, request: PushRequest) -> None:
        if request["identifier"] in self.fail_for:
            raise PushSubmissionError("rejected")
        self.submitted.append(request)


class ManualTimer:
    def __init__(self) -> None:
        self.interval_seconds: int | None = None
        self.callback: Callable[[], None] | None = None
        self.starts = 0
        self.cancels = 0

    @property
    def active(self) -> bool:
        return self.callback is not None

    def start(self, interval_seconds: int, callback: Callable[[], None]) -> None:
        self.interval_seconds = interval_seconds
        self.callback = callback
        self.starts += 1

    def cancel(self) -> None:
        self.callback = None
        self.cancels += 1

    def fire(self) -> None:
        assert self.callback is not None, "timer not armed"
        self.callback()


class ManualDeferredRequester:
    def __init__(self, deny: bool = False) -> None:
        self.deny = deny
        self.requests: list[datetime] = []
        self.callback: Callable[[], None] | None = None
        self.cancels = 0

    def request(self, earliest: datetime, callback: Callable[[], None]) -> None:
        if self.deny:
            raise DeferredRequestDenied("background refresh disabled")
        self.requests.append(earliest)
        self.callback = callback

    def cancel(self) -> None:
        self.callback = None
        self.cancels += 1

    def wake(self) -> None:
        assert self.callback is not None, "no outstanding request"
        callback = self.callback
        self.callback = None
        callback()


class FlakyRepository(InMemorySubjectRepository):
    """Registry whose writes fail for selected subject ids."""

    def __init__(self, fail_ids: set[str] | None = None) -> None:
        super().__init__()
        self.fail_ids = set(fail_ids or set())

    def upsert(self, subject: Subject) -> None:
        if subject.subject_id in self.fail_ids:
            raise StoreError(f"write rejected for {subject.subject_id}")
        super().upsert(subject)


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def repository() -> FlakyRepository:
    repo = FlakyRepository()
    repo.add(Subject(subject_id="alice", name="Alice", occupation="Actor"))
    repo.add(Subject(subject_id="bob", name="Bob", occupation="Musician"))
    repo.add(
        Subject(
            subject_id="carol",
            name="Carol",
            occupation="Author",
            is_deceased=True,
            death_date=date(2020, 1, 1),
        )
    )
    return repo


@pytest.fixture
def lookup_factory() -> Callable[..., FakeLookup]:
    return FakeLookup


@pytest.fixture
def push_notifier() -> RecordingPushNotifier:
    return RecordingPushNotifier()


@pytest.fixture
def timer() -> ManualTimer:
    return ManualTimer()


@pytest.fixture
def deferred() -> ManualDeferredRequester:
    return ManualDeferredRequester()


@pytest.fixture
def denying_deferred() -> ManualDeferredRequester:
    return ManualDeferredRequester(deny=True)
