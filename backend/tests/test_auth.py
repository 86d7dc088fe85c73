from timify.core.security import create_access_token, get_password_hash, verify_password


def register_user(client, payload):
    response = client.post("/api/auth/register", json=payload)
    assert response.status_code == 201
    return response.json()


def test_password_hashing_round_trip():
    hashed = get_password_hash("password123")

    assert hashed != "password123"
    assert verify_password("password123", hashed)
    assert not verify_password("wrong-password", hashed)
    assert not verify_password("password123", "not-a-bcrypt-hash")


def test_register_login_and_me(client):
    payload = {
        "name": "  Admin User ",
        "email": "Admin@Example.com",
        "password": "password123",
        "role": "admin",
    }
    user = register_user(client, payload)
    assert user["name"] == "Admin User"
    assert user["email"] == "admin@example.com"

    duplicate = client.post("/api/auth/register", json=payload)
    assert duplicate.status_code == 409

    login = client.post("/api/auth/login", json={"email": "admin@example.com", "password": "password123"})
    assert login.status_code == 200
    token = login.json()["access_token"]
    assert login.json()["user"]["role"] == "admin"

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["id"] == user["id"]


def test_login_rejects_bad_password_and_role_mismatch(client):
    register_user(
        client,
        {"name": "Student", "email": "student@example.com", "password": "password123", "role": "student"},
    )

    bad_password = client.post("/api/auth/login", json={"email": "student@example.com", "password": "nope"})
    assert bad_password.status_code == 401

    wrong_role = client.post(
        "/api/auth/login",
        json={"email": "student@example.com", "password": "password123", "role": "admin"},
    )
    assert wrong_role.status_code == 403


def test_invalid_tokens_are_rejected(client):
    assert client.get("/api/auth/me", headers={"Authorization": "Bearer garbage"}).status_code == 401
    unknown_user = create_access_token("missing-user-id")
    assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {unknown_user}"}).status_code == 401


def test_staff_registration_creates_linked_faculty(client):
    user = register_user(
        client,
        {
            "name": "Grace Hopper",
            "email": "grace@example.com",
            "password": "password123",
            "role": "staff",
            "department": "CS",
            "max_hours_per_week": 12,
        },
    )
    token = client.post(
        "/api/auth/login",
        json={"email": "grace@example.com", "password": "password123", "role": "staff"},
    ).json()["access_token"]

    faculty = client.get("/api/faculty/", headers={"Authorization": f"Bearer {token}"}).json()

    assert len(faculty) == 1
    assert faculty[0]["user_id"] == user["id"]
    assert faculty[0]["department"] == "CS"
    assert faculty[0]["max_hours_per_week"] == 12
    assert faculty[0]["availability"]["monday"] == {"available": True, "start": "09:00", "end": "17:00"}
