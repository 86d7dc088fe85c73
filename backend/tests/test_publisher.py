import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from timify.core.exceptions import ConcurrentCatalogChange, PersistenceError, SchedulerError
from timify.models.activity_log import ActivityLog
from timify.models.faculty import Faculty
from timify.models.room import Room, RoomType
from timify.models.subject import Subject, SubjectType
from timify.models.timetable import Timetable, TimetableStatus
from timify.services.catalog import take_snapshot
from timify.services.publisher import TimetablePublisher
from timify.services.repository import TimetableMeta, TimetableRepository, bump_catalog_version
from timify.services.scheduler import SchedulerEngine
from timify.services.view_projector import ViewFilter, entry_from_row, flatten, project_view


def seed_catalog(db, subject_codes=("CS101", "CS102")):
    faculty = Faculty(
        name="Ada Lovelace",
        email="ada@example.com",
        department="CS",
        availability={"monday": {"available": True, "start": "09:00", "end": "17:00"}},
    )
    db.add(faculty)
    db.add(Room(code="R101", building="Main", capacity=30, type=RoomType.lecture))
    db.flush()
    for code in subject_codes:
        db.add(
            Subject(
                code=code,
                name=f"Subject {code}",
                semester=1,
                credits=3,
                type=SubjectType.theory,
                min_theory_hours=1,
                faculty_id=faculty.id,
            )
        )
    bump_catalog_version(db)
    db.commit()
    return faculty


def generate(db):
    repository = TimetableRepository(db)
    snapshot = take_snapshot(repository)
    return snapshot, SchedulerEngine(snapshot).run()


def publish(db, name):
    snapshot, result = generate(db)
    meta = TimetableMeta(name=name, catalog_version=snapshot.version, summary=result.summary())
    return TimetablePublisher(db).publish(result.assignments, meta), result


def test_publish_persists_denormalised_slots(db_session):
    faculty = seed_catalog(db_session)

    timetable_id, result = publish(db_session, "Week A")

    repository = TimetableRepository(db_session)
    published = repository.published_timetable()
    assert published.id == timetable_id
    assert published.catalog_version == 1
    rows = repository.slots_for(timetable_id)
    assert [(row.subject_code, row.day, row.period) for row in rows] == [("CS101", 0, 0), ("CS102", 0, 1)]
    assert rows[0].faculty_name == "Ada Lovelace"
    assert rows[0].building == "Main"
    assert (rows[1].start_time, rows[1].end_time) == ("10:00", "11:00")
    assert {row.faculty_id for row in rows} == {faculty.id}
    assert published.summary["fingerprint"] == result.fingerprint()
    actions = db_session.execute(select(ActivityLog.action)).scalars().all()
    assert actions == ["timetable.publish"]


def test_second_publish_archives_first(db_session):
    seed_catalog(db_session)
    first_id, _ = publish(db_session, "Week A")
    second_id, _ = publish(db_session, "Week B")

    statuses = {row.id: row.status for row in db_session.execute(select(Timetable)).scalars()}
    assert statuses == {first_id: TimetableStatus.archived, second_id: TimetableStatus.published}

    repository = TimetableRepository(db_session)
    published = repository.published_timetable()
    entries = [entry_from_row(row) for row in repository.slots_for(published.id)]
    projected = flatten(project_view(entries, ViewFilter()))
    assert published.id == second_id
    assert len(projected) == 2
    assert db_session.get(Timetable, first_id).archived_at is not None


def test_failed_write_keeps_previous_timetable(db_session, monkeypatch):
    seed_catalog(db_session)
    first_id, _ = publish(db_session, "Week A")

    snapshot, result = generate(db_session)
    publisher = TimetablePublisher(db_session)

    def broken_insert(*args, **kwargs):
        raise OperationalError("INSERT INTO timetables", {}, Exception("disk I/O error"))

    monkeypatch.setattr(publisher.repository, "insert_timetable", broken_insert)

    with pytest.raises(PersistenceError):
        publisher.publish(result.assignments, TimetableMeta(name="Week B", catalog_version=snapshot.version))

    repository = TimetableRepository(db_session)
    published = repository.published_timetable()
    assert published is not None
    assert published.id == first_id
    assert published.status == TimetableStatus.published
    assert len(repository.slots_for(first_id)) == 2
    assert len(repository.list_timetables()) == 1


def test_publish_rejects_stale_catalog(db_session):
    seed_catalog(db_session)
    snapshot, result = generate(db_session)

    bump_catalog_version(db_session)
    db_session.commit()

    with pytest.raises(ConcurrentCatalogChange) as exc:
        TimetablePublisher(db_session).publish(
            result.assignments, TimetableMeta(name="Stale", catalog_version=snapshot.version)
        )
    assert exc.value.details == {"expected_version": 1, "current_version": 2}
    assert TimetableRepository(db_session).published_timetable() is None


def test_draft_then_publish(db_session):
    seed_catalog(db_session)
    first_id, _ = publish(db_session, "Week A")
    snapshot, result = generate(db_session)
    publisher = TimetablePublisher(db_session)

    draft_id = publisher.save_draft(result.assignments, TimetableMeta(name="Draft", catalog_version=snapshot.version))
    repository = TimetableRepository(db_session)
    assert repository.get_timetable(draft_id).status == TimetableStatus.draft
    assert repository.published_timetable().id == first_id

    published = publisher.publish_draft(draft_id)

    assert published.status == TimetableStatus.published
    assert published.published_at is not None
    assert repository.get_timetable(first_id).status == TimetableStatus.archived

    with pytest.raises(SchedulerError):
        publisher.publish_draft(draft_id)
