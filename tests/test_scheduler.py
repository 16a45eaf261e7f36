"""Scheduler state machine, re-entrancy and re-arming tests."""

import threading
from datetime import date, timedelta

import pytest

from libs.core.application.events import EventBus
from libs.core.application.notification_dispatcher import NotificationDispatcher
from libs.core.application.poll_executor import PollExecutor
from libs.core.application.scheduler import DeathCheckScheduler, SchedulerState
from libs.core.domain.entities import Cadence


def _build(repository, lookup, push_notifier, timer, deferred, clock, cadence=Cadence.DAILY):
    dispatcher = NotificationDispatcher(push_notifier, EventBus(), clock=clock)
    scheduler = DeathCheckScheduler(
        poll_executor=PollExecutor(repository, lookup, clock=clock),
        dispatcher=dispatcher,
        repeating_timer=timer,
        deferred_requester=deferred,
        cadence=cadence,
        clock=clock,
    )
    return scheduler, dispatcher


@pytest.mark.parametrize(
    ("cadence", "seconds"),
    [
        (Cadence.HOURLY, 3600),
        (Cadence.DAILY, 86400),
        (Cadence.WEEKLY, 604800),
        (Cadence.MONTHLY, 2592000),
        (Cadence.DISABLED, None),
    ],
)
def test_cadence_interval_mapping(cadence, seconds) -> None:
    assert cadence.interval_seconds == seconds


def test_start_arms_deferred_request_and_fallback_timer(
    repository, lookup_factory, push_notifier, timer, deferred, clock
) -> None:
    scheduler, _ = _build(
        repository, lookup_factory(), push_notifier, timer, deferred, clock,
        cadence=Cadence.HOURLY,
    )

    scheduler.start()

    assert scheduler.state is SchedulerState.ARMED
    assert timer.active
    assert timer.interval_seconds == 3600
    assert deferred.requests == [clock() + timedelta(seconds=3600)]


def test_start_is_inert_when_cadence_disabled(
    repository, lookup_factory, push_notifier, timer, deferred, clock
) -> None:
    scheduler, _ = _build(
        repository, lookup_factory(), push_notifier, timer, deferred, clock,
        cadence=Cadence.DISABLED,
    )

    scheduler.start()

    assert scheduler.state is SchedulerState.DISABLED
    assert not timer.active
    assert deferred.requests == []


def test_denied_deferred_request_falls_back_to_timer(
    repository, lookup_factory, push_notifier, timer, denying_deferred, clock
) -> None:
    lookup = lookup_factory(dates={"Bob": date(2026, 1, 1)})
    scheduler, _ = _build(
        repository, lookup, push_notifier, timer, denying_deferred, clock
    )

    scheduler.start()
    assert scheduler.state is SchedulerState.ARMED

    timer.fire()

    assert sorted(lookup.calls) == ["Alice", "Bob"]
    assert [item["identifier"] for item in push_notifier.submitted] == ["death-bob"]
    assert scheduler.get_last_check_time() == clock()
    assert scheduler.state is SchedulerState.ARMED


def test_simultaneous_triggers_while_running_yield_one_cycle(
    repository, lookup_factory, push_notifier, timer, deferred, clock
) -> None:
    gate = threading.Event()
    lookup = lookup_factory(gate=gate)
    scheduler, _ = _build(repository, lookup, push_notifier, timer, deferred, clock)
    scheduler.start()

    worker = threading.Thread(target=timer.fire)
    worker.start()
    assert lookup.entered.wait(timeout=5)
    assert scheduler.state is SchedulerState.RUNNING

    deferred.wake()
    assert scheduler.run_now() is None

    gate.set()
    worker.join(timeout=5)

    assert sorted(lookup.calls) == ["Alice", "Bob"]
    assert scheduler.state is SchedulerState.ARMED


def test_cycle_completion_re_requests_deferred_wake(
    repository, lookup_factory, push_notifier, timer, deferred, clock
) -> None:
    scheduler, _ = _build(repository, lookup_factory(), push_notifier, timer, deferred, clock)
    scheduler.start()

    deferred.wake()

    assert len(deferred.requests) == 2
    assert deferred.callback is not None


def test_stop_lets_running_cycle_finish_without_rearming(
    repository, lookup_factory, push_notifier, timer, deferred, clock
) -> None:
    gate = threading.Event()
    lookup = lookup_factory(dates={"Bob": date(2026, 1, 1)}, gate=gate)
    scheduler, _ = _build(repository, lookup, push_notifier, timer, deferred, clock)
    scheduler.start()

    results = []
    worker = threading.Thread(target=lambda: results.append(scheduler.run_now()))
    worker.start()
    assert lookup.entered.wait(timeout=5)

    scheduler.stop()
    gate.set()
    worker.join(timeout=5)

    assert [item.subject_id for item in results[0].newly_deceased] == ["bob"]
    assert scheduler.state is SchedulerState.DISABLED
    assert not timer.active
    assert len(deferred.requests) == 1


def test_stale_timer_callback_after_stop_is_ignored(
    repository, lookup_factory, push_notifier, timer, deferred, clock
) -> None:
    lookup = lookup_factory()
    scheduler, _ = _build(repository, lookup, push_notifier, timer, deferred, clock)
    scheduler.start()
    stale_callback = timer.callback

    scheduler.stop()
    stale_callback()

    assert lookup.calls == []
    assert scheduler.get_last_check_time() is None


def test_stop_then_start_restores_liveness(
    repository, lookup_factory, push_notifier, timer, deferred, clock
) -> None:
    lookup = lookup_factory()
    scheduler, _ = _build(repository, lookup, push_notifier, timer, deferred, clock)

    scheduler.start()
    scheduler.stop()
    scheduler.start()
    timer.fire()

    assert sorted(lookup.calls) == ["Alice", "Bob"]
    assert timer.starts == 2


def test_update_cadence_rearms_under_new_interval(
    repository, lookup_factory, push_notifier, timer, deferred, clock
) -> None:
    scheduler, _ = _build(repository, lookup_factory(), push_notifier, timer, deferred, clock)
    scheduler.start()

    scheduler.update_cadence(Cadence.DAILY)
    assert timer.starts == 1

    scheduler.update_cadence(Cadence.WEEKLY)
    assert scheduler.cadence is Cadence.WEEKLY
    assert timer.starts == 2
    assert timer.interval_seconds == 604800
    assert deferred.requests[-1] == clock() + timedelta(seconds=604800)

    scheduler.update_cadence(Cadence.DISABLED)
    assert scheduler.state is SchedulerState.DISABLED
    assert not timer.active
    assert deferred.callback is None


def test_run_now_works_while_disabled(
    repository, lookup_factory, push_notifier, timer, deferred, clock
) -> None:
    lookup = lookup_factory(dates={"Alice": date(2026, 1, 1)})
    scheduler, dispatcher = _build(
        repository, lookup, push_notifier, timer, deferred, clock,
        cadence=Cadence.DISABLED,
    )
    dispatcher.set_foreground(True)

    result = scheduler.run_now()

    assert result is not None
    assert [item.subject_id for item in result.newly_deceased] == ["alice"]
    pending = dispatcher.peek_pending_alert()
    assert pending is not None
    assert [item.subject_id for item in pending.subjects] == ["alice"]
    assert push_notifier.submitted == []
    assert deferred.requests == []


def test_cycle_failure_still_rearms(
    repository, lookup_factory, push_notifier, timer, deferred, clock
) -> None:
    def broken_list_all():
        raise RuntimeError("registry offline")

    repository.list_all = broken_list_all
    scheduler, _ = _build(repository, lookup_factory(), push_notifier, timer, deferred, clock)
    scheduler.start()

    timer.fire()

    assert scheduler.state is SchedulerState.ARMED
    assert scheduler.get_last_check_time() == clock()
    assert len(deferred.requests) == 2


class _BrokenRequester:
    """Host facility that errors out instead of denying cleanly."""

    def __init__(self) -> None:
        self.calls = 0

    def request(self, earliest, callback) -> None:
        self.calls += 1
        raise RuntimeError("host scheduler unavailable")

    def cancel(self) -> None:
        return None


def test_requester_error_still_arms_fallback_timer(
    repository, lookup_factory, push_notifier, timer, clock
) -> None:
    lookup = lookup_factory()
    requester = _BrokenRequester()
    scheduler, _ = _build(
        repository, lookup, push_notifier, timer, requester, clock,
        cadence=Cadence.HOURLY,
    )

    scheduler.start()

    assert scheduler.state is SchedulerState.ARMED
    assert timer.active
    assert timer.interval_seconds == 3600

    timer.fire()

    assert sorted(lookup.calls) == ["Alice", "Bob"]
    assert requester.calls == 2
    assert scheduler.state is SchedulerState.ARMED


def test_wake_right_after_a_cycle_is_skipped_and_rerequested(
    repository, lookup_factory, push_notifier, timer, deferred, clock
) -> None:
    lookup = lookup_factory()
    scheduler, _ = _build(repository, lookup, push_notifier, timer, deferred, clock)
    scheduler.start()

    timer.fire()
    deferred.wake()

    assert sorted(lookup.calls) == ["Alice", "Bob"]
    assert deferred.callback is not None
    assert len(deferred.requests) == 3


def test_wake_after_interval_elapses_runs_a_cycle(
    repository, lookup_factory, push_notifier, timer, deferred, clock
) -> None:
    current = [clock()]
    lookup = lookup_factory()
    scheduler, _ = _build(
        repository, lookup, push_notifier, timer, deferred, lambda: current[0],
        cadence=Cadence.HOURLY,
    )
    scheduler.start()

    timer.fire()
    current[0] += timedelta(hours=1)
    deferred.wake()

    assert lookup.calls.count("Alice") == 2
    assert scheduler.get_last_check_time() == current[0]


class _StopBeforeAcquire:
    """Run guard that lets stop() land just before a trigger takes it."""

    def __init__(self, scheduler: DeathCheckScheduler) -> None:
        self._scheduler = scheduler
        self._lock = threading.Lock()

    def acquire(self, blocking: bool = True) -> bool:
        self._scheduler.stop()
        return self._lock.acquire(blocking)

    def release(self) -> None:
        self._lock.release()

    def locked(self) -> bool:
        return self._lock.locked()


def test_stop_between_fire_and_guard_prevents_the_cycle(
    repository, lookup_factory, push_notifier, timer, deferred, clock
) -> None:
    lookup = lookup_factory()
    scheduler, _ = _build(repository, lookup, push_notifier, timer, deferred, clock)
    scheduler.start()
    callback = timer.callback
    scheduler._run_guard = _StopBeforeAcquire(scheduler)

    callback()

    assert lookup.calls == []
    assert scheduler.state is SchedulerState.DISABLED
    assert scheduler.get_last_check_time() is None
