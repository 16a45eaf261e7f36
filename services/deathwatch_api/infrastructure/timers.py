"""APScheduler-backed timing capabilities for the death-check scheduler."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler

from libs.core.application.contracts import DeferredRequestDenied

REPEATING_JOB_ID = "death-check-interval"
DEFERRED_JOB_ID = "death-check-deferred"


def build_background_scheduler() -> BackgroundScheduler:
    return BackgroundScheduler(
        daemon=True,
        timezone="UTC",
        # An overdue run (process suspended past its fire time) runs once on resume.
        job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": None},
    )


class ApschedulerRepeatingTimer:
    """Fallback timer: an interval job that fires every cadence period."""

    def __init__(self, scheduler: BackgroundScheduler) -> None:
        self._scheduler = scheduler

    def start(self, interval_seconds: int, callback: Callable[[], None]) -> None:
        self._scheduler.add_job(
            callback,
            "interval",
            seconds=interval_seconds,
            id=REPEATING_JOB_ID,
            replace_existing=True,
        )

    def cancel(self) -> None:
        _remove_job(self._scheduler, REPEATING_JOB_ID)


class ApschedulerDeferredRequester:
    """One-shot wake request; a new request replaces the outstanding one."""

    def __init__(self, scheduler: BackgroundScheduler) -> None:
        self._scheduler = scheduler

    def request(self, earliest: datetime, callback: Callable[[], None]) -> None:
        self._scheduler.add_job(
            callback,
            "date",
            run_date=earliest,
            id=DEFERRED_JOB_ID,
            replace_existing=True,
        )

    def cancel(self) -> None:
        _remove_job(self._scheduler, DEFERRED_JOB_ID)


class UnavailableDeferredRequester:
    """Host without a deferred-execution facility: every request is denied."""

    def request(self, earliest: datetime, callback: Callable[[], None]) -> None:
        raise DeferredRequestDenied(
            f"deferred execution unavailable (earliest={earliest.isoformat()})"
        )

    def cancel(self) -> None:
        return None


def _remove_job(scheduler: BackgroundScheduler, job_id: str) -> None:
    try:
        scheduler.remove_job(job_id)
    except JobLookupError:
        return
