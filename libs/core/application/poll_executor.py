from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from datetime import date, datetime, timezone
from typing import Any

from libs.core.application.change_detector import detect_newly_deceased
from libs.core.application.contracts import (
    DeathDateLookup,
    StoreError,
    SubjectRepository,
)
from libs.core.domain.entities import CycleResult, Subject
from libs.core.log_events import log_event

DEFAULT_LOOKUP_TIMEOUT_SEC = 15.0
DEFAULT_MAX_WORKERS = 4

logger = logging.getLogger(__name__)


class PollExecutor:
    """Runs one death-check cycle over the subject registry."""

    def __init__(
        self,
        subject_repository: SubjectRepository,
        lookup: DeathDateLookup,
        lookup_timeout_sec: float = DEFAULT_LOOKUP_TIMEOUT_SEC,
        max_workers: int = DEFAULT_MAX_WORKERS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._subjects = subject_repository
        self._lookup = lookup
        self._lookup_timeout_sec = lookup_timeout_sec
        self._max_workers = max(1, max_workers)
        self._clock = clock or _utc_now
        self._write_lock = threading.Lock()

    def run_cycle(self) -> CycleResult:
        result = CycleResult(started_at=self._clock())
        snapshot = self._subjects.list_all()
        living = [subject for subject in snapshot if not subject.is_deceased]
        result.checked = len(living)
        log_event(
            logger,
            "cycle_started",
            {"subjects": len(snapshot), "living": len(living)},
        )

        death_dates = self._lookup_all(living, failed=result.failed_lookups)
        detected = detect_newly_deceased(living, death_dates, now=self._clock())

        with self._write_lock:
            for subject in detected:
                if not self._persist(subject):
                    result.persist_failures.append(subject.subject_id)

        result.newly_deceased = detected
        result.finished_at = self._clock()
        return result

    def check_subject(self, subject_id: str) -> Subject | None:
        """Check one subject outside the cycle; returns it if newly deceased."""
        subject = self._subjects.get(subject_id)
        if subject is None or subject.is_deceased:
            return None

        failed: list[str] = []
        death_dates = self._lookup_all([subject], failed=failed)
        detected = detect_newly_deceased([subject], death_dates, now=self._clock())
        if not detected:
            return None

        with self._write_lock:
            self._persist(detected[0])
        return detected[0]

    def _lookup_all(
        self,
        subjects: list[Subject],
        failed: list[str],
    ) -> dict[str, date | None]:
        death_dates: dict[str, date | None] = {}
        if not subjects:
            return death_dates

        executor = ThreadPoolExecutor(
            max_workers=min(self._max_workers, len(subjects)),
            thread_name_prefix="death-lookup",
        )
        try:
            futures: dict[str, tuple[Subject, Future[date | None]]] = {
                subject.subject_id: (
                    subject,
                    executor.submit(self._lookup_with_timeout, subject.name),
                )
                for subject in subjects
            }
            for subject_id, (subject, future) in futures.items():
                try:
                    death_dates[subject_id] = future.result()
                except FuturesTimeoutError:
                    failed.append(subject_id)
                    log_event(
                        logger,
                        "lookup_timeout",
                        {
                            "subject_id": subject_id,
                            "name": subject.name,
                            "timeout_sec": self._lookup_timeout_sec,
                        },
                        level=logging.WARNING,
                    )
                except Exception as error:  # noqa: BLE001
                    failed.append(subject_id)
                    log_event(
                        logger,
                        "lookup_failed",
                        {
                            "subject_id": subject_id,
                            "name": subject.name,
                            "error": str(error),
                        },
                        level=logging.WARNING,
                    )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return death_dates

    def _lookup_with_timeout(self, name: str) -> date | None:
        """Run one lookup; the timeout starts when the lookup does.

        A lookup still running at the deadline is abandoned on its own daemon
        thread so the pool worker moves on to the next subject.
        """
        outcome: dict[str, Any] = {}

        def run() -> None:
            try:
                outcome["death_date"] = self._lookup.lookup_death_date(name)
            except Exception as error:  # noqa: BLE001
                outcome["error"] = error

        worker = threading.Thread(target=run, name=f"death-lookup-{name}", daemon=True)
        worker.start()
        worker.join(timeout=self._lookup_timeout_sec)
        if worker.is_alive():
            raise FuturesTimeoutError(f"lookup for {name!r} timed out")
        if "error" in outcome:
            raise outcome["error"]
        return outcome.get("death_date")

    def _persist(self, subject: Subject) -> bool:
        try:
            self._subjects.upsert(subject)
        except StoreError as error:
            log_event(
                logger,
                "persist_failed",
                {"subject_id": subject.subject_id, "error": str(error)},
                level=logging.ERROR,
            )
            return False
        return True


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)
