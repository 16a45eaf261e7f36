from datetime import date
from uuid import uuid4

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from libs.core.domain.entities import Cadence, CycleResult, PendingAlert, Subject
from services.deathwatch_api.dependencies import get_container

router = APIRouter()


class SubjectCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    occupation: str = ""


class CadenceRequest(BaseModel):
    cadence: Cadence


class ForegroundRequest(BaseModel):
    active: bool


class NotificationsRequest(BaseModel):
    enabled: bool


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/ready")
def ready() -> dict[str, str]:
    return {"status": "ready"}


@router.get("/version")
def version() -> dict[str, str]:
    return {"version": "0.1.0"}


@router.get("/v1/subjects")
def list_subjects(deceased: bool | None = None) -> list[dict[str, object]]:
    subjects = get_container().subjects.list_all()
    if deceased is not None:
        subjects = [item for item in subjects if item.is_deceased == deceased]
    return [_subject_to_dict(subject) for subject in subjects]


@router.post("/v1/subjects")
def create_subject(payload: SubjectCreateRequest) -> dict[str, object]:
    subject = Subject(
        subject_id=str(uuid4()),
        name=payload.name.strip(),
        occupation=payload.occupation,
    )
    get_container().subjects.add(subject)
    return _subject_to_dict(subject)


@router.get("/v1/subjects/{subject_id}")
def get_subject(subject_id: str) -> dict[str, object]:
    subject = get_container().subjects.get(subject_id)
    if subject is None:
        raise HTTPException(status_code=404, detail="Subject not found")
    return _subject_to_dict(subject)


@router.post("/v1/subjects/{subject_id}/check")
def check_subject(subject_id: str) -> dict[str, object]:
    container = get_container()
    if container.subjects.get(subject_id) is None:
        raise HTTPException(status_code=404, detail="Subject not found")

    detected = container.poll_executor.check_subject(subject_id)
    return {
        "subject_id": subject_id,
        "newly_deceased": detected is not None,
        "subject": _subject_to_dict(detected) if detected is not None else None,
    }


@router.get("/v1/scheduler")
def get_scheduler_status() -> dict[str, object]:
    return _scheduler_to_dict()


@router.post("/v1/scheduler/start")
def start_scheduler() -> dict[str, object]:
    get_container().scheduler.start()
    return _scheduler_to_dict()


@router.post("/v1/scheduler/stop")
def stop_scheduler() -> dict[str, object]:
    get_container().scheduler.stop()
    return _scheduler_to_dict()


@router.put("/v1/scheduler/cadence")
def set_cadence(payload: CadenceRequest) -> dict[str, object]:
    get_container().scheduler.update_cadence(payload.cadence)
    return _scheduler_to_dict()


@router.post("/v1/scheduler/run-now")
def run_now() -> dict[str, object]:
    result = get_container().scheduler.run_now()
    if result is None:
        raise HTTPException(status_code=409, detail="Death check already running")
    return _cycle_to_dict(result)


@router.put("/v1/app/foreground")
def set_foreground(payload: ForegroundRequest) -> dict[str, bool]:
    dispatcher = get_container().dispatcher
    dispatcher.set_foreground(payload.active)
    return {"active": dispatcher.is_app_active()}


@router.put("/v1/notifications")
def set_notifications(payload: NotificationsRequest) -> dict[str, bool]:
    dispatcher = get_container().dispatcher
    dispatcher.set_notifications_enabled(payload.enabled)
    return {"enabled": dispatcher.notifications_enabled()}


@router.get("/v1/alerts/pending")
def peek_pending_alert() -> dict[str, object]:
    pending = get_container().dispatcher.peek_pending_alert()
    if pending is None:
        raise HTTPException(status_code=404, detail="No pending alert")
    return _pending_alert_to_dict(pending)


@router.post("/v1/alerts/pending/dismiss")
def dismiss_pending_alert() -> dict[str, bool]:
    get_container().dispatcher.dismiss_pending_alert()
    return {"dismissed": True}


def _scheduler_to_dict() -> dict[str, object]:
    scheduler = get_container().scheduler
    last_check = scheduler.get_last_check_time()
    return {
        "state": scheduler.state.value,
        "cadence": scheduler.cadence.value,
        "cadence_display_name": scheduler.cadence.display_name,
        "interval_seconds": scheduler.cadence.interval_seconds,
        "last_check": last_check.isoformat() if last_check is not None else None,
    }


def _subject_to_dict(subject: Subject) -> dict[str, object]:
    return {
        "subject_id": subject.subject_id,
        "name": subject.name,
        "occupation": subject.occupation,
        "is_deceased": subject.is_deceased,
        "death_date": _iso_or_none(subject.death_date),
        "last_updated": (
            subject.last_updated.isoformat() if subject.last_updated else None
        ),
    }


def _cycle_to_dict(result: CycleResult) -> dict[str, object]:
    return {
        "started_at": result.started_at.isoformat(),
        "finished_at": (
            result.finished_at.isoformat() if result.finished_at else None
        ),
        "checked": result.checked,
        "newly_deceased": [_subject_to_dict(item) for item in result.newly_deceased],
        "failed_lookups": list(result.failed_lookups),
        "persist_failures": list(result.persist_failures),
    }


def _pending_alert_to_dict(pending: PendingAlert) -> dict[str, object]:
    return {
        "created_at": pending.created_at.isoformat(),
        "subjects": [_subject_to_dict(item) for item in pending.subjects],
    }


def _iso_or_none(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None
