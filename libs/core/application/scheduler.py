"""Cadence-driven scheduling of death-check cycles.

Two arming paths run side by side while the scheduler is armed: a one-shot
deferred-execution request to the host (best effort, may be denied) and an
in-process repeating timer that always fires. Whichever wakes first runs the
cycle; the other finds the run guard taken and is dropped.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from enum import Enum

from libs.core.application.contracts import DeferredExecutionRequester, RepeatingTimer
from libs.core.application.notification_dispatcher import NotificationDispatcher
from libs.core.application.poll_executor import PollExecutor
from libs.core.domain.entities import Cadence, CycleResult
from libs.core.log_events import log_event

logger = logging.getLogger(__name__)

SOURCE_TIMER = "timer"
SOURCE_DEFERRED = "deferred"
SOURCE_MANUAL = "manual"

# Timer and deferred wakes this close to the last check (as a share of the
# cadence interval) are redundant.
RECENT_CHECK_FRACTION = 0.5


class SchedulerState(str, Enum):
    DISABLED = "disabled"
    ARMED = "armed"
    RUNNING = "running"


class DeathCheckScheduler:
    """Owns the cadence and guarantees at most one cycle in flight."""

    def __init__(
        self,
        poll_executor: PollExecutor,
        dispatcher: NotificationDispatcher,
        repeating_timer: RepeatingTimer,
        deferred_requester: DeferredExecutionRequester,
        cadence: Cadence = Cadence.DAILY,
        last_check: datetime | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._executor = poll_executor
        self._dispatcher = dispatcher
        self._timer = repeating_timer
        self._deferred = deferred_requester
        self._cadence = cadence
        self._last_check = last_check
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._control_lock = threading.RLock()
        self._run_guard = threading.Lock()
        self._armed = False

    @property
    def cadence(self) -> Cadence:
        with self._control_lock:
            return self._cadence

    @property
    def state(self) -> SchedulerState:
        if self._run_guard.locked():
            return SchedulerState.RUNNING
        with self._control_lock:
            return SchedulerState.ARMED if self._armed else SchedulerState.DISABLED

    def get_last_check_time(self) -> datetime | None:
        with self._control_lock:
            return self._last_check

    def start(self) -> None:
        with self._control_lock:
            interval = self._cadence.interval_seconds
            if interval is None:
                log_event(logger, "scheduler_inert", {"cadence": self._cadence.value})
                return
            if self._armed:
                return
            self._armed = True
            self._timer.start(interval, self._on_timer_fire)
            self._request_deferred(interval)
            log_event(
                logger,
                "scheduler_armed",
                {"cadence": self._cadence.value, "interval_sec": interval},
            )

    def stop(self) -> None:
        """Cancel future cycles; a running cycle is left to finish."""
        with self._control_lock:
            self._armed = False
            self._timer.cancel()
            self._deferred.cancel()
            log_event(logger, "scheduler_stopped", {"cadence": self._cadence.value})

    def update_cadence(self, cadence: Cadence) -> None:
        with self._control_lock:
            if cadence == self._cadence:
                return
            self.stop()
            self._cadence = cadence
            if cadence is not Cadence.DISABLED:
                self.start()

    def run_now(self) -> CycleResult | None:
        """Run a cycle immediately; None if one is already in flight."""
        return self._trigger(SOURCE_MANUAL)

    def _on_timer_fire(self) -> None:
        self._trigger(SOURCE_TIMER)

    def _on_deferred_wake(self) -> None:
        self._trigger(SOURCE_DEFERRED)

    def _trigger(self, source: str) -> CycleResult | None:
        if not self._run_guard.acquire(blocking=False):
            log_event(logger, "cycle_skipped", {"source": source, "reason": "running"})
            return None
        result = None
        ran = False
        try:
            reason = self._skip_reason(source)
            if reason is not None:
                log_event(logger, "cycle_skipped", {"source": source, "reason": reason})
            else:
                ran = True
                result = self._run_cycle(source)
        finally:
            self._run_guard.release()
            # A skipped deferred wake has consumed its one-shot request.
            if ran or source == SOURCE_DEFERRED:
                self._rearm()
        return result

    def _skip_reason(self, source: str) -> str | None:
        """Checked under the run guard so a stop() cannot slip in between."""
        if source == SOURCE_MANUAL:
            return None
        with self._control_lock:
            if not self._armed:
                return "disabled"
            interval = self._cadence.interval_seconds
            last_check = self._last_check
        if interval is None or last_check is None:
            return None
        if self._clock() - last_check < timedelta(seconds=interval * RECENT_CHECK_FRACTION):
            return "recent"
        return None

    def _run_cycle(self, source: str) -> CycleResult:
        started_at = self._clock()
        with self._control_lock:
            self._last_check = started_at

        try:
            result = self._executor.run_cycle()
        except Exception as error:  # noqa: BLE001
            log_event(
                logger,
                "cycle_failed",
                {"source": source, "error": str(error)},
                level=logging.ERROR,
            )
            result = CycleResult(started_at=started_at, finished_at=self._clock())

        with self._control_lock:
            self._last_check = result.started_at

        self._dispatcher.dispatch(result.newly_deceased, cycle=result)
        log_event(
            logger,
            "cycle_completed",
            {
                "source": source,
                "checked": result.checked,
                "newly_deceased": [s.subject_id for s in result.newly_deceased],
                "failed_lookups": len(result.failed_lookups),
                "persist_failures": len(result.persist_failures),
            },
        )
        return result

    def _rearm(self) -> None:
        with self._control_lock:
            interval = self._cadence.interval_seconds
            if self._armed and interval is not None:
                self._request_deferred(interval)

    def _request_deferred(self, interval: int) -> None:
        earliest = self._clock() + timedelta(seconds=interval)
        try:
            self._deferred.request(earliest, self._on_deferred_wake)
        except Exception as error:  # noqa: BLE001
            log_event(
                logger,
                "deferred_request_denied",
                {
                    "earliest": earliest.isoformat(),
                    "error_type": type(error).__name__,
                    "error": str(error),
                },
                level=logging.WARNING,
            )
