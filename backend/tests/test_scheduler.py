import pytest

from timify.core.exceptions import SchedulerError
from timify.models.room import RoomType
from timify.models.subject import SubjectType
from timify.services.catalog import CatalogSnapshot, DayWindow, FacultyRecord, RoomRecord, SubjectRecord
from timify.services.scheduler import EngineState, SchedulerEngine, SchedulerOptions
from timify.services.slot_grid import Slot
from timify.services.workload import SessionKind


def hours(start, end):
    return DayWindow(True, start * 60, end * 60)


WEEKDAYS_9_TO_5 = {day: hours(9, 17) for day in range(5)}


def theory(code, faculty_id=None, *, semester=1, credits=3, min_theory_hours=1, **kwargs):
    return SubjectRecord(
        code,
        code,
        semester,
        credits,
        SubjectType.theory,
        min_theory_hours=min_theory_hours,
        faculty_id=faculty_id,
        **kwargs,
    )


def catalog(subjects, rooms, faculty, credit_limits=None, version=1):
    return CatalogSnapshot(
        version=version,
        subjects=tuple(sorted(subjects, key=lambda item: item.code)),
        rooms=tuple(sorted(rooms, key=lambda item: item.code)),
        faculty=tuple(sorted(faculty, key=lambda item: item.id)),
        credit_limits=credit_limits or {},
    )


def assert_no_double_booking(result):
    faculty_slots = [(item.faculty_id, item.slot) for item in result.assignments]
    room_slots = [(item.room_code, item.slot) for item in result.assignments]
    assert len(faculty_slots) == len(set(faculty_slots))
    assert len(room_slots) == len(set(room_slots))


def test_two_subjects_share_room_in_distinct_slots():
    room = RoomRecord("R101", "Main", 30, RoomType.lecture)
    ada = FacultyRecord("f-ada", "Ada", "CS", 20, availability=WEEKDAYS_9_TO_5)
    snapshot = catalog([theory("CS101", "f-ada"), theory("CS102", "f-ada")], [room], [ada])

    result = SchedulerEngine(snapshot).run()

    assert result.state == EngineState.complete
    assert result.unplaced == []
    assert len(result.assignments) == 2
    assert {item.room_code for item in result.assignments} == {"R101"}
    assert len({item.slot for item in result.assignments}) == 2
    assert_no_double_booking(result)


def test_shared_faculty_with_single_slot_leaves_one_unplaced():
    room = RoomRecord("R101", "Main", 30, RoomType.lecture)
    ada = FacultyRecord("f-ada", "Ada", "CS", 20, availability={0: hours(9, 10)})
    snapshot = catalog([theory("CS101", "f-ada"), theory("CS102", "f-ada")], [room], [ada])

    result = SchedulerEngine(snapshot).run()

    assert result.state == EngineState.partial
    assert [(item.subject_code, item.slot) for item in result.assignments] == [("CS101", Slot(0, 0))]
    assert len(result.unplaced) == 1
    unplaced = result.unplaced[0]
    assert (unplaced.subject_code, unplaced.session_index) == ("CS102", 0)
    assert unplaced.reason == "instructor_conflict"
    assert unplaced.attempts["instructor_conflict"] == 1
    assert result.backtracks >= 1


def cyclic_catalog():
    # Greedy earliest-slot placement boxes in the last subject; one displacement frees it.
    room = RoomRecord("R101", "Main", 30, RoomType.lecture)
    faculty = [
        FacultyRecord("f-a", "A", "CS", 20, availability={0: hours(9, 10), 1: hours(9, 10)}),
        FacultyRecord("f-b", "B", "CS", 20, availability={0: hours(10, 11), 1: hours(9, 10)}),
        FacultyRecord("f-c", "C", "CS", 20, availability={0: hours(9, 11)}),
    ]
    subjects = [theory("CS101", "f-a"), theory("CS102", "f-b"), theory("CS103", "f-c")]
    return catalog(subjects, [room], faculty)


def test_backtracking_displaces_earlier_placement():
    result = SchedulerEngine(cyclic_catalog()).run()

    assert result.complete
    assert result.backtracks >= 1
    placed = {item.subject_code: item.slot for item in result.assignments}
    assert placed == {"CS101": Slot(0, 0), "CS102": Slot(1, 0), "CS103": Slot(0, 1)}
    assert_no_double_booking(result)


def test_backtracking_depth_zero_reports_unplaced():
    result = SchedulerEngine(cyclic_catalog(), options=SchedulerOptions(max_backtrack_depth=0)).run()

    assert result.state == EngineState.partial
    assert [(item.subject_code, item.reason) for item in result.unplaced] == [("CS103", "room_conflict")]
    assert result.backtracks == 0


def test_reruns_are_identical():
    snapshot = cyclic_catalog()

    first = SchedulerEngine(snapshot).run()
    second = SchedulerEngine(snapshot).run()

    assert first.assignments == second.assignments
    assert first.fingerprint() == second.fingerprint()


def test_seeded_runs_are_reproducible():
    room = RoomRecord("R101", "Main", 30, RoomType.lecture)
    ada = FacultyRecord("f-ada", "Ada", "CS", 20)
    snapshot = catalog([theory(f"CS1{index:02d}", "f-ada") for index in range(6)], [room], [ada])

    first = SchedulerEngine(snapshot, options=SchedulerOptions(seed=11)).run()
    second = SchedulerEngine(snapshot, options=SchedulerOptions(seed=11)).run()

    assert first.complete
    assert first.fingerprint() == second.fingerprint()


def test_engine_is_single_use():
    engine = SchedulerEngine(cyclic_catalog())
    assert engine.state == EngineState.unstarted

    engine.run()

    assert engine.state == EngineState.done
    with pytest.raises(SchedulerError):
        engine.run()


def test_multi_session_subject_uses_distinct_days_and_matching_rooms():
    rooms = [RoomRecord("R101", "Main", 40, RoomType.lecture), RoomRecord("LAB1", "Annex", 40, RoomType.lab)]
    ada = FacultyRecord("f-ada", "Ada", "CS", 20)
    mixed = SubjectRecord(
        "CS210", "Systems", 3, 4, SubjectType.lab_cum_theory, min_theory_hours=2, min_lab_hours=1, faculty_id="f-ada"
    )

    result = SchedulerEngine(catalog([mixed], rooms, [ada])).run()

    assert result.complete
    assert [item.kind for item in sorted(result.assignments, key=lambda item: item.session_index)] == [
        SessionKind.theory,
        SessionKind.theory,
        SessionKind.lab,
    ]
    assert len({item.slot.day for item in result.assignments}) == 3
    for item in result.assignments:
        assert item.room_code == ("LAB1" if item.kind == SessionKind.lab else "R101")


def test_same_day_relaxation_is_explicit():
    room = RoomRecord("R101", "Main", 30, RoomType.lecture)
    ada = FacultyRecord("f-ada", "Ada", "CS", 20, availability={0: hours(9, 17)})
    subject = theory("CS101", "f-ada", min_theory_hours=2)
    snapshot = catalog([subject], [room], [ada])

    strict = SchedulerEngine(snapshot).run()
    relaxed = SchedulerEngine(snapshot, options=SchedulerOptions(allow_same_day_sessions=True)).run()

    assert [item.reason for item in strict.unplaced] == ["same_day_session"]
    assert relaxed.complete
    assert relaxed.relaxations == ("allow_same_day_sessions",)


def test_credit_limit_overflow_and_relaxation():
    room = RoomRecord("R101", "Main", 30, RoomType.lecture)
    ada = FacultyRecord("f-ada", "Ada", "CS", 20)
    subjects = [theory("CS101", "f-ada", credits=3), theory("CS102", "f-ada", credits=3)]
    snapshot = catalog(subjects, [room], [ada], credit_limits={1: 4})

    limited = SchedulerEngine(snapshot).run()
    ignored = SchedulerEngine(snapshot, options=SchedulerOptions(enforce_credit_limits=False)).run()

    assert [(item.subject_code, item.reason) for item in limited.unplaced] == [("CS102", "credit_limit")]
    assert ignored.complete
    assert "ignore_credit_limits" in ignored.relaxations


def test_unplaceable_requests_are_reported_without_search():
    lecture = RoomRecord("R101", "Main", 30, RoomType.lecture)
    ada = FacultyRecord("f-ada", "Ada", "CS", 20)
    lab_only = SubjectRecord("CS150", "Lab", 1, 1, SubjectType.lab, faculty_id="f-ada")
    crowded = theory("CS160", "f-ada", capacity=90)
    orphan = theory("CS170", "f-missing")
    nobody = theory("CS180", department="Physics")

    result = SchedulerEngine(catalog([lab_only, crowded, orphan, nobody], [lecture], [ada])).run()

    reasons = {item.subject_code: item.reason for item in result.unplaced}
    assert reasons == {
        "CS150": "room_type_mismatch",
        "CS160": "room_capacity",
        "CS170": "unknown_faculty",
        "CS180": "no_faculty",
    }
    assert result.assignments == []


def test_department_faculty_used_when_unassigned_and_kept_across_sessions():
    room = RoomRecord("R101", "Main", 30, RoomType.lecture)
    faculty = [
        FacultyRecord("f-math", "Gauss", "Mathematics", 20),
        FacultyRecord("f-cs", "Ada", "CS", 20),
    ]
    subject = theory("MA101", department="mathematics", min_theory_hours=3)

    result = SchedulerEngine(catalog([subject], [room], faculty)).run()

    assert result.complete
    assert {item.faculty_id for item in result.assignments} == {"f-math"}


def test_larger_catalog_has_no_double_bookings():
    rooms = [RoomRecord(f"R{index}", "Main", 60, RoomType.lecture) for index in range(3)]
    rooms.append(RoomRecord("LAB1", "Annex", 60, RoomType.lab))
    faculty = [FacultyRecord(f"f-{index}", f"F{index}", "CS", 12, availability=WEEKDAYS_9_TO_5) for index in range(4)]
    subjects = []
    for index in range(12):
        subject_type = SubjectType.lab_cum_theory if index % 4 == 0 else SubjectType.theory
        subjects.append(
            SubjectRecord(
                f"CS{300 + index}",
                f"Subject {index}",
                1 + index % 3,
                3,
                subject_type,
                min_theory_hours=2,
                min_lab_hours=1,
                faculty_id=f"f-{index % 4}",
            )
        )

    result = SchedulerEngine(catalog(subjects, rooms, faculty)).run()

    assert result.complete
    assert len(result.assignments) == 27
    assert_no_double_booking(result)
    for member in faculty:
        assert sum(1 for item in result.assignments if item.faculty_id == member.id) <= member.max_hours_per_week


def pooled_math_catalog(second_availability):
    room = RoomRecord("R101", "Main", 30, RoomType.lecture)
    faculty = [
        FacultyRecord("f-a", "A", "Math", 20, availability={0: hours(9, 10)}),
        FacultyRecord("f-b", "B", "Math", 20, availability=second_availability),
    ]
    return catalog([theory("MA101", department="Math", min_theory_hours=2)], [room], faculty)


def test_pooled_subject_moves_to_instructor_who_can_take_every_session():
    snapshot = pooled_math_catalog({0: hours(9, 10), 1: hours(9, 10)})

    result = SchedulerEngine(snapshot).run()

    assert result.complete
    assert [(item.session_index, item.slot, item.faculty_id) for item in result.assignments] == [
        (0, Slot(0, 0), "f-b"),
        (1, Slot(1, 0), "f-b"),
    ]
    assert result.backtracks >= 1


def test_pooled_subject_keeps_first_instructor_when_no_one_else_fits():
    snapshot = pooled_math_catalog({0: hours(9, 10)})

    result = SchedulerEngine(snapshot).run()

    assert result.state == EngineState.partial
    assert [(item.slot, item.faculty_id) for item in result.assignments] == [(Slot(0, 0), "f-a")]
    assert [(item.subject_code, item.session_index) for item in result.unplaced] == [("MA101", 1)]


def test_node_budget_stops_backtracking_with_best_effort_result():
    result = SchedulerEngine(cyclic_catalog(), options=SchedulerOptions(node_budget=1)).run()

    assert result.state == EngineState.partial
    assert result.budget_exhausted is True
    assert result.backtracks == 0
    assert [item.subject_code for item in result.unplaced] == ["CS103"]
    assert len(result.assignments) == 2
    assert result.summary()["budget_exhausted"] is True


def test_time_budget_stops_backtracking():
    result = SchedulerEngine(cyclic_catalog(), options=SchedulerOptions(time_budget_seconds=1e-9)).run()

    assert result.state == EngineState.partial
    assert result.budget_exhausted is True
    assert [item.subject_code for item in result.unplaced] == ["CS103"]


def test_zero_displacements_disables_backtracking():
    result = SchedulerEngine(cyclic_catalog(), options=SchedulerOptions(max_displacements=0)).run()

    assert result.state == EngineState.partial
    assert result.backtracks == 0
    assert result.budget_exhausted is False
    assert [item.subject_code for item in result.unplaced] == ["CS103"]


def test_single_session_relaxation_is_explicit():
    room = RoomRecord("R101", "Main", 30, RoomType.lecture)
    ada = FacultyRecord("f-ada", "Ada", "CS", 20, availability={0: hours(9, 17)})
    snapshot = catalog([theory("CS101", "f-ada", min_theory_hours=3)], [room], [ada])

    strict = SchedulerEngine(snapshot).run()
    relaxed = SchedulerEngine(snapshot, options=SchedulerOptions(single_session_per_subject=True)).run()

    assert [(item.session_index, item.reason) for item in strict.unplaced] == [
        (1, "same_day_session"),
        (2, "same_day_session"),
    ]
    assert relaxed.complete
    assert [(item.session_index, item.slot) for item in relaxed.assignments] == [(0, Slot(0, 0))]
    assert relaxed.relaxations == ("single_session_per_subject",)
