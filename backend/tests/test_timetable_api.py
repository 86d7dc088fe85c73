from timify.api.deps import get_slot_grid
from timify.main import app
from timify.services.slot_grid import SlotGrid


def register_and_login(client, email, role, **extra):
    payload = {"name": email.split("@")[0], "email": email, "password": "password123", "role": role, **extra}
    response = client.post("/api/auth/register", json=payload)
    assert response.status_code == 201
    login = client.post("/api/auth/login", json={"email": email, "password": "password123", "role": role})
    assert login.status_code == 200
    return {"Authorization": f"Bearer {login.json()['access_token']}"}


def seed_catalog(client, admin, *, availability=None, subject_codes=("CS101", "CS102")):
    faculty = client.post(
        "/api/faculty/",
        json={
            "name": "Ada",
            "email": "ada@example.com",
            "department": "CS",
            "availability": availability
            or {day: {"available": True, "start": "09:00", "end": "17:00"} for day in ("monday", "tuesday")},
        },
        headers=admin,
    )
    assert faculty.status_code == 201
    room = client.post(
        "/api/rooms/",
        json={"code": "R101", "building": "Main", "capacity": 30, "type": "lecture"},
        headers=admin,
    )
    assert room.status_code == 201
    for code in subject_codes:
        response = client.post(
            "/api/subjects/",
            json={
                "code": code,
                "name": f"Subject {code}",
                "semester": 1,
                "credits": 3,
                "type": "theory",
                "min_theory_hours": 1,
                "faculty_id": faculty.json()["id"],
            },
            headers=admin,
        )
        assert response.status_code == 201
    return faculty.json()


def test_generate_and_publish(client):
    admin = register_and_login(client, "admin@example.com", "admin")
    faculty = seed_catalog(client, admin)

    response = client.post("/api/timetables/generate", json={"name": "Week 1"}, headers=admin)

    assert response.status_code == 200
    body = response.json()
    assert body["state"] == "complete"
    assert body["timetable_status"] == "published"
    assert body["unplaced"] == []
    assert [(item["subject_code"], item["day"], item["period"]) for item in body["assignments"]] == [
        ("CS101", 0, 0),
        ("CS102", 0, 1),
    ]

    published = client.get("/api/timetables/published", headers=admin)
    assert published.status_code == 200
    assert published.json()["id"] == body["timetable_id"]
    assert published.json()["summary"]["fingerprint"] == body["fingerprint"]
    assert len(published.json()["slots"]) == 2

    grid = client.get("/api/timetables/published/grid", params={"faculty_id": faculty["id"]}, headers=admin)
    assert grid.status_code == 200
    payload = grid.json()
    assert payload["view"] == "staff"
    assert payload["days"][0] == "Monday"
    assert [period["period"] for period in payload["periods"]] == [0, 1, 2, 3, 5, 6, 7]
    assert payload["cells"][0][0][0]["subject_code"] == "CS101"
    assert payload["cells"][0][1][0]["start_time"] == "10:00"

    empty = client.get("/api/timetables/published/grid", params={"faculty_id": "unknown"}, headers=admin)
    assert all(cell == [] for row in empty.json()["cells"] for cell in row)


def test_regeneration_is_deterministic_and_archives_previous(client):
    admin = register_and_login(client, "admin@example.com", "admin")
    seed_catalog(client, admin)

    first = client.post("/api/timetables/generate", json={}, headers=admin).json()
    second = client.post("/api/timetables/generate", json={}, headers=admin).json()

    assert first["fingerprint"] == second["fingerprint"]
    statuses = {item["id"]: item["status"] for item in client.get("/api/timetables/", headers=admin).json()}
    assert statuses == {first["timetable_id"]: "archived", second["timetable_id"]: "published"}

    master = client.get("/api/timetables/published/grid", headers=admin).json()
    assert master["timetable_id"] == second["timetable_id"]
    assert sum(len(cell) for row in master["cells"] for cell in row) == 2

    assert client.delete(f"/api/timetables/{second['timetable_id']}", headers=admin).status_code == 409
    assert client.delete(f"/api/timetables/{first['timetable_id']}", headers=admin).status_code == 200


def test_partial_result_handling(client):
    admin = register_and_login(client, "admin@example.com", "admin")
    seed_catalog(client, admin, availability={"monday": {"available": True, "start": "09:00", "end": "10:00"}})

    rejected = client.post("/api/timetables/generate", json={"accept_partial": False}, headers=admin)
    assert rejected.status_code == 200
    assert rejected.json()["state"] == "partial"
    assert rejected.json()["timetable_id"] is None
    assert client.get("/api/timetables/published", headers=admin).status_code == 404

    accepted = client.post("/api/timetables/generate", json={"publish": False}, headers=admin).json()
    assert accepted["timetable_status"] == "draft"
    assert [(item["subject_code"], item["reason"]) for item in accepted["unplaced"]] == [
        ("CS102", "instructor_conflict")
    ]

    detail = client.get(f"/api/timetables/{accepted['timetable_id']}", headers=admin).json()
    assert detail["summary"]["unplaced_sessions"][0]["subject_code"] == "CS102"

    published = client.post(f"/api/timetables/{accepted['timetable_id']}/publish", headers=admin)
    assert published.status_code == 200
    assert published.json()["status"] == "published"

    again = client.post(f"/api/timetables/{accepted['timetable_id']}/publish", headers=admin)
    assert again.status_code == 400
    assert again.json()["message"] == "Only draft timetables can be published"


def test_stale_draft_cannot_be_published(client):
    admin = register_and_login(client, "admin@example.com", "admin")
    seed_catalog(client, admin)
    draft = client.post("/api/timetables/generate", json={"publish": False}, headers=admin).json()

    client.post(
        "/api/rooms/",
        json={"code": "R102", "building": "Main", "capacity": 30, "type": "lecture"},
        headers=admin,
    )
    response = client.post(f"/api/timetables/{draft['timetable_id']}/publish", headers=admin)

    assert response.status_code == 409
    assert response.json()["details"]["expected_version"] == draft["catalog_version"]

    missing = client.post("/api/timetables/does-not-exist/publish", headers=admin)
    assert missing.status_code == 404


def test_generation_requires_admin(client):
    student = register_and_login(client, "student@example.com", "student")

    assert client.post("/api/timetables/generate", json={}, headers=student).status_code == 403
    assert client.get("/api/timetables/", headers=student).status_code == 403


def test_grid_view_of_timetable_built_for_another_grid_is_a_conflict(client):
    admin = register_and_login(client, "admin@example.com", "admin")
    seed_catalog(client, admin)
    generated = client.post("/api/timetables/generate", json={}, headers=admin).json()
    assert generated["assignments"][0]["period"] == 0

    app.dependency_overrides[get_slot_grid] = lambda: SlotGrid(lunch_period=0)
    response = client.get("/api/timetables/published/grid", headers=admin)

    assert response.status_code == 409
    assert response.json()["message"] == "Timetable does not fit the current slot grid; regenerate it"
    assert response.json()["details"]["timetable_id"] == generated["timetable_id"]

    del app.dependency_overrides[get_slot_grid]
    assert client.get("/api/timetables/published/grid", headers=admin).status_code == 200
