from __future__ import annotations

import hashlib
import json
import logging
import random
from collections import Counter
from dataclasses import dataclass, field, replace
from enum import Enum
from time import perf_counter

from timify.core.config import Settings
from timify.core.exceptions import SchedulerError
from timify.services.catalog import CatalogSnapshot, FacultyRecord, RoomRecord, SubjectRecord
from timify.services.constraints import (
    AssignmentLedger,
    ConstraintChecker,
    ConstraintReason,
    Placement,
)
from timify.services.slot_grid import DEFAULT_GRID, SlotGrid
from timify.services.workload import REQUIRED_ROOM_TYPE, SessionKind, credit_overflow, session_hours, session_kinds

logger = logging.getLogger(__name__)

REASON_CREDIT_LIMIT = "credit_limit"
REASON_NO_FACULTY = "no_faculty"
REASON_UNKNOWN_FACULTY = "unknown_faculty"
REASON_NO_CANDIDATES = "no_candidates"


class EngineState(str, Enum):
    unstarted = "unstarted"
    placing = "placing"
    complete = "complete"
    partial = "partial"
    done = "done"


@dataclass(frozen=True)
class SchedulerOptions:
    node_budget: int = 50_000
    max_backtrack_depth: int = 3
    max_displacements: int = 12
    allow_same_day_sessions: bool = False
    single_session_per_subject: bool = False
    enforce_credit_limits: bool = True
    seed: int | None = None
    time_budget_seconds: float | None = None

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> "SchedulerOptions":
        options = cls(
            node_budget=settings.scheduler_node_budget,
            max_backtrack_depth=settings.scheduler_max_backtrack_depth,
            max_displacements=settings.scheduler_max_displacements,
            time_budget_seconds=settings.scheduler_time_budget_seconds,
        )
        return replace(options, **overrides) if overrides else options

    @property
    def relaxations(self) -> tuple[str, ...]:
        relaxed: list[str] = []
        if self.allow_same_day_sessions:
            relaxed.append("allow_same_day_sessions")
        if self.single_session_per_subject:
            relaxed.append("single_session_per_subject")
        if not self.enforce_credit_limits:
            relaxed.append("ignore_credit_limits")
        return tuple(relaxed)


@dataclass(frozen=True)
class SessionRequest:
    subject: SubjectRecord
    session_index: int
    kind: SessionKind
    faculty: tuple[FacultyRecord, ...]
    rooms: tuple[RoomRecord, ...]

    @property
    def key(self) -> tuple[str, int]:
        return self.subject.code, self.session_index


@dataclass(frozen=True)
class UnplacedSession:
    subject_code: str
    session_index: int
    kind: SessionKind
    reason: str
    attempts: dict[str, int] = field(default_factory=dict)


@dataclass
class ScheduleResult:
    state: EngineState
    assignments: list[Placement]
    unplaced: list[UnplacedSession]
    catalog_version: int
    nodes_explored: int = 0
    backtracks: int = 0
    budget_exhausted: bool = False
    relaxations: tuple[str, ...] = ()
    elapsed_seconds: float = 0.0

    @property
    def complete(self) -> bool:
        return self.state == EngineState.complete

    def fingerprint(self) -> str:
        """Digest of the placement outcome; timing and counters are excluded."""
        payload = {
            "catalog_version": self.catalog_version,
            "assignments": [
                [
                    item.subject_code,
                    item.session_index,
                    item.kind.value,
                    item.slot.day,
                    item.slot.period,
                    item.room_code,
                    item.faculty_id,
                ]
                for item in self.assignments
            ],
            "unplaced": [
                [item.subject_code, item.session_index, item.kind.value, item.reason]
                for item in self.unplaced
            ],
        }
        encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
        return hashlib.sha256(encoded).hexdigest()

    def summary(self) -> dict:
        return {
            "state": self.state.value,
            "placed": len(self.assignments),
            "unplaced": len(self.unplaced),
            "nodes_explored": self.nodes_explored,
            "backtracks": self.backtracks,
            "budget_exhausted": self.budget_exhausted,
            "relaxations": list(self.relaxations),
            "fingerprint": self.fingerprint(),
        }


class _SearchBudget:
    def __init__(self, node_limit: int, time_limit: float | None) -> None:
        self.node_limit = node_limit
        self.deadline = perf_counter() + time_limit if time_limit else None
        self.nodes = 0
        self.backtracks = 0
        self.hit = False

    def spend(self) -> None:
        self.nodes += 1

    def exhausted(self) -> bool:
        if self.nodes >= self.node_limit or (self.deadline is not None and perf_counter() >= self.deadline):
            self.hit = True
        return self.hit


class SchedulerEngine:
    """Places every required session of a catalog snapshot into the slot grid.

    Sessions are taken most-constrained first and placed at the first feasible
    (slot, room, faculty) candidate in canonical order. When a session has no
    feasible candidate, placements of other subjects that hold its faculty or
    rooms are displaced one at a time and re-placed recursively, up to
    ``max_backtrack_depth`` levels and within the node budget. A subject
    drawing on its department pool may also move to another instructor
    wholesale. Sessions that still cannot be placed are reported with the
    dominant constraint reason.

    An engine instance runs once; build a new one for every run.
    """

    def __init__(
        self,
        catalog: CatalogSnapshot,
        grid: SlotGrid = DEFAULT_GRID,
        options: SchedulerOptions | None = None,
    ) -> None:
        self.catalog = catalog
        self.grid = grid
        self.options = options or SchedulerOptions()
        self.checker = ConstraintChecker(
            catalog,
            grid,
            allow_same_day=self.options.allow_same_day_sessions,
            hours_per_session=session_hours(grid),
        )
        self.state = EngineState.unstarted
        self._random = random.Random(self.options.seed) if self.options.seed is not None else None
        self._slots = grid.all_slots()
        if self._random is not None:
            self._random.shuffle(self._slots)
        self._requests: dict[tuple[str, int], SessionRequest] = {}

    def run(self) -> ScheduleResult:
        if self.state != EngineState.unstarted:
            raise SchedulerError("Scheduler engine instances are single-use", details={"state": self.state.value})
        self.state = EngineState.placing
        started = perf_counter()
        logger.info(
            "SCHEDULER RUN | catalog_version=%s | subjects=%s | rooms=%s | faculty=%s | seed=%s | relaxations=%s",
            self.catalog.version,
            len(self.catalog.subjects),
            len(self.catalog.rooms),
            len(self.catalog.faculty),
            self.options.seed,
            ",".join(self.options.relaxations) or "-",
        )

        requests, unplaced = self._build_requests()
        self._requests = {item.key: item for item in requests}
        ledger = AssignmentLedger()
        budget = _SearchBudget(self.options.node_budget, self.options.time_budget_seconds)

        for request in self._order(requests):
            if self._place(request, ledger, budget, depth=0, protected=frozenset({request.key})):
                continue
            if not self._reassign_instructor(request, ledger, budget):
                unplaced.append(self._diagnose(request, ledger))

        unplaced.sort(key=lambda item: (item.subject_code, item.session_index))
        self.state = EngineState.partial if unplaced else EngineState.complete
        result = ScheduleResult(
            state=self.state,
            assignments=ledger.placements(),
            unplaced=unplaced,
            catalog_version=self.catalog.version,
            nodes_explored=budget.nodes,
            backtracks=budget.backtracks,
            budget_exhausted=budget.hit,
            relaxations=self.options.relaxations,
            elapsed_seconds=perf_counter() - started,
        )
        if budget.hit:
            logger.warning(
                "SCHEDULER BUDGET EXHAUSTED | nodes=%s | backtracks=%s | unplaced=%s",
                budget.nodes,
                budget.backtracks,
                len(unplaced),
            )
        logger.info(
            "SCHEDULER FINISHED | state=%s | placed=%s | unplaced=%s | nodes=%s | backtracks=%s | elapsed_ms=%s",
            result.state.value,
            len(result.assignments),
            len(result.unplaced),
            result.nodes_explored,
            result.backtracks,
            int(result.elapsed_seconds * 1000),
        )
        self.state = EngineState.done
        return result

    def _build_requests(self) -> tuple[list[SessionRequest], list[UnplacedSession]]:
        requests: list[SessionRequest] = []
        unplaced: list[UnplacedSession] = []
        overflow: dict[str, int] = {}
        if self.options.enforce_credit_limits:
            overflow = credit_overflow(list(self.catalog.subjects), self.catalog.credit_limits)

        for subject in self.catalog.subjects:
            kinds = session_kinds(subject)
            if self.options.single_session_per_subject:
                kinds = kinds[:1]

            reason: str | None = None
            faculty: list[FacultyRecord] = []
            if subject.code in overflow:
                reason = REASON_CREDIT_LIMIT
            elif subject.faculty_id:
                record = self.catalog.faculty_by_id.get(subject.faculty_id)
                if record is None:
                    reason = REASON_UNKNOWN_FACULTY
                else:
                    faculty = [record]
            else:
                faculty = self.catalog.faculty_in_department(subject.department)
                if not faculty:
                    reason = REASON_NO_FACULTY

            for index, kind in enumerate(kinds):
                if reason is not None:
                    unplaced.append(UnplacedSession(subject.code, index, kind, reason))
                    continue
                rooms = [
                    room for room in self.catalog.rooms if self.checker.room_suitability(subject, kind, room) is None
                ]
                if not rooms:
                    typed = any(room.room_type == REQUIRED_ROOM_TYPE[kind] for room in self.catalog.rooms)
                    room_reason = ConstraintReason.room_capacity if typed else ConstraintReason.room_type_mismatch
                    unplaced.append(UnplacedSession(subject.code, index, kind, room_reason.value))
                    continue
                requests.append(SessionRequest(subject, index, kind, tuple(faculty), tuple(rooms)))

        if overflow:
            logger.info("CREDIT LIMIT OVERFLOW | subjects=%s", ",".join(sorted(overflow)))
        return requests, unplaced

    def _order(self, requests: list[SessionRequest]) -> list[SessionRequest]:
        """Most constrained first: fewest (room x teachable slot) options, then most sessions."""
        sessions_per_subject = Counter(item.subject.code for item in requests)
        tiebreak: dict[str, float] = {}
        if self._random is not None:
            for code in sorted(sessions_per_subject):
                tiebreak[code] = self._random.random()

        def options(request: SessionRequest) -> int:
            teachable = sum(
                1
                for slot in self._slots
                if any(self.checker.faculty_can_teach(member, slot) for member in request.faculty)
            )
            return len(request.rooms) * teachable

        def sort_key(request: SessionRequest) -> tuple:
            return (
                options(request),
                -sessions_per_subject[request.subject.code],
                tiebreak.get(request.subject.code, 0.0),
                request.subject.code,
                request.session_index,
            )

        return sorted(requests, key=sort_key)

    def _candidates(self, request: SessionRequest, ledger: AssignmentLedger):
        committed = ledger.committed_faculty(request.subject.code)
        faculty = [item for item in request.faculty if committed is None or item.id == committed]
        for slot in self._slots:
            for room in request.rooms:
                for member in faculty:
                    yield slot, room, member

    def _try_direct(
        self, request: SessionRequest, ledger: AssignmentLedger, budget: _SearchBudget
    ) -> Placement | None:
        for slot, room, member in self._candidates(request, ledger):
            budget.spend()
            verdict = self.checker.evaluate(request.subject, request.kind, slot, room, member, ledger)
            if verdict:
                placement = Placement(
                    subject_code=request.subject.code,
                    session_index=request.session_index,
                    kind=request.kind,
                    slot=slot,
                    room_code=room.code,
                    faculty_id=member.id,
                )
                ledger.place(placement)
                return placement
        return None

    def _place(
        self,
        request: SessionRequest,
        ledger: AssignmentLedger,
        budget: _SearchBudget,
        *,
        depth: int,
        protected: frozenset[tuple[str, int]],
    ) -> bool:
        # A failed call leaves the ledger exactly as it found it.
        if self._try_direct(request, ledger, budget) is not None:
            return True
        if depth >= self.options.max_backtrack_depth:
            return False

        for blocker in self._blockers(request, ledger, protected):
            if budget.exhausted():
                break
            budget.backtracks += 1
            sequence = ledger.remove(blocker)
            placed = self._try_direct(request, ledger, budget)
            if placed is not None:
                displaced = self._requests[blocker.key]
                if self._place(displaced, ledger, budget, depth=depth + 1, protected=protected | {request.key}):
                    return True
                ledger.remove(placed)
            ledger.place(blocker, sequence)
        return False

    def _reassign_instructor(
        self, request: SessionRequest, ledger: AssignmentLedger, budget: _SearchBudget
    ) -> bool:
        """Re-place a pooled subject's sessions under each other eligible instructor in turn.

        Applies when the subject has no fixed instructor and its already placed
        sessions committed it to one whose remaining time cannot take ``request``.
        Re-placement is direct only. On failure the earlier sessions are restored
        with their original sequence numbers.
        """
        committed = ledger.committed_faculty(request.subject.code)
        if committed is None or len(request.faculty) < 2:
            return False

        earlier = sorted(
            (item for item in ledger.placements() if item.subject_code == request.subject.code),
            key=lambda item: item.session_index,
        )
        sequences = {item.key: ledger.remove(item) for item in earlier}
        sessions = [self._requests[item.key] for item in earlier] + [request]

        for member in request.faculty:
            if member.id == committed:
                continue
            if budget.exhausted():
                break
            budget.backtracks += 1
            placed: list[Placement] = []
            for session in sessions:
                placement = self._try_direct(replace(session, faculty=(member,)), ledger, budget)
                if placement is None:
                    break
                placed.append(placement)
            if len(placed) == len(sessions):
                logger.debug(
                    "INSTRUCTOR REASSIGNED | subject=%s | from=%s | to=%s",
                    request.subject.code,
                    committed,
                    member.id,
                )
                return True
            for placement in placed:
                ledger.remove(placement)

        for item in earlier:
            ledger.place(item, sequences[item.key])
        return False

    def _blockers(
        self,
        request: SessionRequest,
        ledger: AssignmentLedger,
        protected: frozenset[tuple[str, int]],
    ) -> list[Placement]:
        """Placements of other subjects holding this request's faculty or rooms, most recent first."""
        committed = ledger.committed_faculty(request.subject.code)
        faculty = [item for item in request.faculty if committed is None or item.id == committed]
        found: dict[tuple[str, int], Placement] = {}
        for slot in self._slots:
            if not any(self.checker.faculty_can_teach(member, slot) for member in faculty):
                continue
            holders = [ledger.faculty_booking(member.id, slot) for member in faculty]
            holders.extend(ledger.room_booking(room.code, slot) for room in request.rooms)
            for holder in holders:
                if holder is None or holder.subject_code == request.subject.code or holder.key in protected:
                    continue
                found.setdefault(holder.key, holder)
        ordered = sorted(found.values(), key=ledger.sequence_of, reverse=True)
        return ordered[: self.options.max_displacements]

    def _diagnose(self, request: SessionRequest, ledger: AssignmentLedger) -> UnplacedSession:
        """Count every rejection reason; report the commonest one among slots the faculty could teach."""
        attempts: Counter[str] = Counter()
        for slot, room, member in self._candidates(request, ledger):
            verdict = self.checker.evaluate(request.subject, request.kind, slot, room, member, ledger)
            if not verdict:
                attempts[verdict.reason.value] += 1
        blocking = {
            key: count for key, count in attempts.items() if key != ConstraintReason.instructor_unavailable.value
        }
        if blocking:
            reason = min(blocking, key=lambda item: (-blocking[item], item))
        elif attempts:
            reason = ConstraintReason.instructor_unavailable.value
        else:
            reason = REASON_NO_CANDIDATES
        return UnplacedSession(
            subject_code=request.subject.code,
            session_index=request.session_index,
            kind=request.kind,
            reason=reason,
            attempts=dict(sorted(attempts.items())),
        )
