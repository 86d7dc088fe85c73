import pytest

from timify.core.exceptions import CatalogValidationError, ConcurrentCatalogChange
from timify.models.room import RoomType
from timify.models.subject import SubjectType
from timify.services.catalog import (
    CatalogSnapshot,
    FacultyRecord,
    RoomRecord,
    SubjectRecord,
    parse_availability,
    take_snapshot,
    validate_catalog,
)


def subject(code, prerequisites=()):
    return SubjectRecord(
        code=code,
        name=code,
        semester=1,
        credits=3,
        subject_type=SubjectType.theory,
        prerequisites=tuple(prerequisites),
    )


def snapshot(subjects, rooms=(), faculty=()):
    return CatalogSnapshot(version=1, subjects=tuple(subjects), rooms=tuple(rooms), faculty=tuple(faculty))


class FakeSource:
    def __init__(self, versions):
        self.versions = list(versions)

    def catalog_version(self, *, lock=False):
        return self.versions.pop(0) if len(self.versions) > 1 else self.versions[0]

    def load_subjects(self):
        return [subject("CS102", ["CS101"]), subject("CS101")]

    def load_rooms(self):
        return [RoomRecord("R2", "Main", 40, RoomType.lecture), RoomRecord("R1", "Main", 30, RoomType.lecture)]

    def load_faculty(self):
        return [FacultyRecord("f-1", "Ada", "CS", 20)]

    def load_credit_limits(self):
        return {1: 20}


def test_parse_availability_maps_weekdays_to_indices():
    windows = parse_availability(
        {
            "Monday": {"available": True, "start": "09:00", "end": "17:00"},
            "tuesday": {"available": False, "start": "09:00", "end": "17:00"},
            "funday": {"available": True},
        }
    )

    assert set(windows) == {0, 1}
    assert windows[0].covers(9 * 60, 10 * 60)
    assert not windows[0].covers(16 * 60 + 30, 17 * 60 + 30)
    assert not windows[1].covers(9 * 60, 10 * 60)


def test_faculty_without_availability_is_always_available():
    member = FacultyRecord("f-1", "Ada", "CS", 20)
    assert member.always_available
    assert member.is_available(4, 15 * 60, 16 * 60)

    restricted = FacultyRecord("f-2", "Bob", "CS", 20, availability=parse_availability({"monday": {}}))
    assert restricted.is_available(0, 9 * 60, 10 * 60)
    assert not restricted.is_available(1, 9 * 60, 10 * 60)


def test_validate_catalog_rejects_duplicate_codes():
    with pytest.raises(CatalogValidationError) as exc:
        validate_catalog(snapshot([subject("CS101"), subject("CS101")]))
    assert exc.value.details == {"duplicates": ["CS101"]}


def test_validate_catalog_rejects_unknown_prerequisites():
    with pytest.raises(CatalogValidationError) as exc:
        validate_catalog(snapshot([subject("CS102", ["CS999"])]))
    assert exc.value.details == {"unknown": {"CS102": ["CS999"]}}


def test_validate_catalog_rejects_prerequisite_cycle():
    with pytest.raises(CatalogValidationError) as exc:
        validate_catalog(snapshot([subject("A", ["B"]), subject("B", ["C"]), subject("C", ["A"])]))
    cycle = exc.value.details["cycle"]
    assert cycle[0] == cycle[-1]
    assert set(cycle) == {"A", "B", "C"}


def test_take_snapshot_sorts_records():
    taken = take_snapshot(FakeSource([4]))

    assert taken.version == 4
    assert [item.code for item in taken.subjects] == ["CS101", "CS102"]
    assert [item.code for item in taken.rooms] == ["R1", "R2"]
    assert taken.credit_limits == {1: 20}
    assert taken.subjects_by_code["CS102"].prerequisites == ("CS101",)


def test_take_snapshot_detects_concurrent_edit():
    with pytest.raises(ConcurrentCatalogChange) as exc:
        take_snapshot(FakeSource([4, 5]))
    assert exc.value.expected_version == 4
    assert exc.value.current_version == 5
