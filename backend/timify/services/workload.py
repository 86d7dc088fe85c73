from __future__ import annotations

from collections import defaultdict
from enum import Enum

from timify.models.room import RoomType
from timify.models.subject import SubjectType
from timify.services.catalog import SubjectRecord
from timify.services.slot_grid import SlotGrid


class SessionKind(str, Enum):
    theory = "theory"
    lab = "lab"


REQUIRED_ROOM_TYPE = {
    SessionKind.theory: RoomType.lecture,
    SessionKind.lab: RoomType.lab,
}


def session_kinds(subject: SubjectRecord) -> list[SessionKind]:
    """Weekly sessions a subject needs, theory sessions first.

    Each minimum-hours unit is one session; a kind the subject type requires
    but whose hours are unset still gets a single session.
    """
    kinds: list[SessionKind] = []
    if subject.subject_type in (SubjectType.theory, SubjectType.lab_cum_theory):
        kinds.extend([SessionKind.theory] * max(subject.min_theory_hours, 1))
    if subject.subject_type in (SubjectType.lab, SubjectType.lab_cum_theory):
        kinds.extend([SessionKind.lab] * max(subject.min_lab_hours, 1))
    return kinds


def session_hours(grid: SlotGrid) -> float:
    return grid.period_minutes / 60


def credit_overflow(subjects: list[SubjectRecord], limits: dict[int, int]) -> dict[str, int]:
    """Subjects that do not fit their semester's credit cap, mapped to the cap.

    Subjects are admitted in code order while the running credit total stays
    within the cap; the remainder of that semester overflows.
    """
    by_semester: dict[int, list[SubjectRecord]] = defaultdict(list)
    for subject in subjects:
        by_semester[subject.semester].append(subject)

    overflow: dict[str, int] = {}
    for semester, items in sorted(by_semester.items()):
        cap = limits.get(semester)
        if cap is None:
            continue
        total = 0
        exceeded = False
        for subject in sorted(items, key=lambda item: item.code):
            if not exceeded and total + subject.credits <= cap:
                total += subject.credits
                continue
            exceeded = True
            overflow[subject.code] = cap
    return overflow
