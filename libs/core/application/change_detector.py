from collections.abc import Iterable, Mapping
from dataclasses import replace
from datetime import date, datetime

from libs.core.domain.entities import Subject


def is_newly_deceased(subject: Subject, death_date: date | None) -> bool:
    return not subject.is_deceased and death_date is not None


def detect_newly_deceased(
    subjects: Iterable[Subject],
    death_dates: Mapping[str, date | None],
    now: datetime,
) -> list[Subject]:
    """Return marked copies of living subjects that now have a death date.

    The persisted deceased flag is the only dedupe marker: a subject already
    flagged deceased is never reported again, whatever the lookup says.
    """
    detected: list[Subject] = []
    for subject in subjects:
        death_date = death_dates.get(subject.subject_id)
        if not is_newly_deceased(subject, death_date):
            continue
        detected.append(
            replace(
                subject,
                is_deceased=True,
                death_date=death_date,
                last_updated=now,
            )
        )
    return detected
