"""In-memory subject registry (MVP)."""

import threading
from dataclasses import replace
from datetime import date
from uuid import uuid4

from libs.core.application.contracts import StoreError
from libs.core.domain.entities import Subject


class InMemorySubjectRepository:
    """Thread-safe subject registry; reads return copies."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subjects: dict[str, Subject] = {}

    def list_all(self) -> list[Subject]:
        with self._lock:
            return [replace(subject) for subject in self._subjects.values()]

    def get(self, subject_id: str) -> Subject | None:
        with self._lock:
            subject = self._subjects.get(subject_id)
            return replace(subject) if subject is not None else None

    def add(self, subject: Subject) -> None:
        with self._lock:
            if subject.subject_id in self._subjects:
                raise ValueError("Subject already exists")
            self._subjects[subject.subject_id] = replace(subject)

    def upsert(self, subject: Subject) -> None:
        with self._lock:
            current = self._subjects.get(subject.subject_id)
            if current is not None and current.is_deceased:
                if not subject.is_deceased:
                    raise StoreError("Deceased subject cannot be marked living")
                if current.death_date is not None and (
                    subject.death_date != current.death_date
                ):
                    raise StoreError("Death date is immutable once set")
            self._subjects[subject.subject_id] = replace(subject)

    def clear(self) -> None:
        with self._lock:
            self._subjects.clear()


SAMPLE_SUBJECTS: list[tuple[str, str, date | None]] = [
    ("Robin Williams", "Actor/Comedian", date(2014, 8, 11)),
    ("David Bowie", "Musician", date(2016, 1, 10)),
    ("Betty White", "Actress", date(2021, 12, 31)),
    ("Tom Hanks", "Actor", None),
    ("Meryl Streep", "Actress", None),
    ("Morgan Freeman", "Actor", None),
]


def seed_subjects(repository: InMemorySubjectRepository) -> list[Subject]:
    subjects = [
        Subject(
            subject_id=str(uuid4()),
            name=name,
            occupation=occupation,
            is_deceased=death_date is not None,
            death_date=death_date,
        )
        for name, occupation, death_date in SAMPLE_SUBJECTS
    ]
    for subject in subjects:
        repository.add(subject)
    return subjects
