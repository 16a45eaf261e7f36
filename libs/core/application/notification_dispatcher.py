"""Routes newly detected deaths to the in-app alert slot or to push delivery."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timezone

from libs.core.application.contracts import PushNotifier, PushRequest
from libs.core.application.events import (
    CYCLE_COMPLETED,
    NEW_DECEASED_DETECTED,
    EventBus,
)
from libs.core.domain.entities import CycleResult, PendingAlert, Subject
from libs.core.log_events import log_event

PUSH_TITLE = "Death Alert"

logger = logging.getLogger(__name__)


@dataclass
class DispatchState:
    """Process-wide routing state, mutated only under the dispatcher lock."""

    is_app_active: bool = False
    notifications_enabled: bool = True
    pending_alert: PendingAlert | None = None


def push_identifier(subject: Subject) -> str:
    return f"death-{subject.subject_id}"


def build_push_request(subject: Subject) -> PushRequest:
    return {
        "identifier": push_identifier(subject),
        "title": PUSH_TITLE,
        "subtitle": subject.occupation,
        "body": f"{subject.name} has passed away",
    }


class NotificationDispatcher:
    """Delivers each cycle's detections through exactly one channel.

    With the host in the foreground the batch replaces whatever sits in the
    pending-alert slot (last write wins; only ``dismiss_pending_alert``
    clears it). In the background, one push request per subject is
    submitted, each failure isolated from the rest. ``cycle_completed`` is
    broadcast on every dispatch, ``new_deceased_detected`` only for a
    non-empty batch.
    """

    def __init__(
        self,
        push_notifier: PushNotifier,
        event_bus: EventBus,
        state: DispatchState | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._push = push_notifier
        self._events = event_bus
        self._state = state or DispatchState()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()

    def set_foreground(self, active: bool) -> None:
        with self._lock:
            self._state.is_app_active = active

    def set_notifications_enabled(self, enabled: bool) -> None:
        with self._lock:
            self._state.notifications_enabled = enabled

    def is_app_active(self) -> bool:
        with self._lock:
            return self._state.is_app_active

    def notifications_enabled(self) -> bool:
        with self._lock:
            return self._state.notifications_enabled

    def peek_pending_alert(self) -> PendingAlert | None:
        with self._lock:
            pending = self._state.pending_alert
            if pending is None:
                return None
            return PendingAlert(
                subjects=list(pending.subjects),
                created_at=pending.created_at,
            )

    def dismiss_pending_alert(self) -> None:
        with self._lock:
            self._state.pending_alert = None

    def dispatch(
        self,
        newly_deceased: Iterable[Subject],
        cycle: CycleResult | None = None,
    ) -> None:
        batch = _unique_by_id(newly_deceased)
        if batch:
            self._route(batch)

        self._events.publish(CYCLE_COMPLETED, cycle)
        if batch:
            self._events.publish(NEW_DECEASED_DETECTED, list(batch))

    def _route(self, batch: list[Subject]) -> None:
        subject_ids = [subject.subject_id for subject in batch]
        with self._lock:
            if self._state.is_app_active:
                self._state.pending_alert = PendingAlert(
                    subjects=batch,
                    created_at=self._clock(),
                )
                log_event(logger, "pending_alert_set", {"subject_ids": subject_ids})
                return
            if not self._state.notifications_enabled:
                log_event(logger, "push_suppressed", {"subject_ids": subject_ids})
                return

        for subject in batch:
            self._submit_push(subject)

    def _submit_push(self, subject: Subject) -> None:
        request = build_push_request(subject)
        try:
            self._push.submit(request)
        except Exception as error:  # noqa: BLE001
            log_event(
                logger,
                "push_failed",
                {
                    "subject_id": subject.subject_id,
                    "identifier": request["identifier"],
                    "error": str(error),
                },
                level=logging.WARNING,
            )
            return
        log_event(
            logger,
            "push_submitted",
            {"subject_id": subject.subject_id, "identifier": request["identifier"]},
        )


def _unique_by_id(subjects: Iterable[Subject]) -> list[Subject]:
    seen: dict[str, Subject] = {}
    for subject in subjects:
        seen.setdefault(subject.subject_id, subject)
    return list(seen.values())
