from conftest import ADMIN, USER, login


def test_setup_needed_until_first_user(client):
    assert client.get("/api/v1/auth/setup").json() == {"setupNeeded": True}

    resp = client.post("/api/v1/auth/register", json=ADMIN)
    assert resp.status_code == 201
    assert resp.json()["role"] == "ADMIN"

    assert client.get("/api/v1/auth/setup").json() == {"setupNeeded": False}


def test_registration_closed_by_default(client, admin_headers):
    resp = client.post("/api/v1/auth/register", json=USER)
    assert resp.status_code == 403


def test_registration_when_enabled(client, admin_headers):
    resp = client.patch(
        "/api/v1/settings/registration", json={"allowRegistration": True}, headers=admin_headers
    )
    assert resp.status_code == 200
    assert resp.json()["allowRegistration"] is True

    resp = client.post("/api/v1/auth/register", json={**USER, "role": "ADMIN"})
    assert resp.status_code == 201
    # self-registration never grants admin
    assert resp.json()["role"] == "USER"


def test_duplicate_email(client, admin_headers):
    resp = client.post("/api/v1/users/", json={**ADMIN, "name": "Other"}, headers=admin_headers)
    assert resp.status_code == 409
    assert resp.json()["detail"] == "Email already exists"


def test_login_and_me(client, admin_headers):
    resp = client.get("/api/v1/auth/me", headers=admin_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["email"] == ADMIN["email"]
    assert body["lastLogin"] is not None


def test_wrong_password_rejected(client, admin_headers):
    resp = client.post("/api/v1/auth/login", json={"email": ADMIN["email"], "password": "nope"})
    assert resp.status_code == 401


def test_token_endpoint_form_login(client, admin_headers):
    resp = client.post(
        "/api/v1/auth/token", data={"username": ADMIN["email"], "password": ADMIN["password"]}
    )
    assert resp.status_code == 200
    assert resp.json()["token_type"] == "bearer"


def test_me_requires_token(client):
    assert client.get("/api/v1/auth/me").status_code == 401
    assert client.get("/api/v1/auth/me", headers={"Authorization": "Bearer garbage"}).status_code == 401


def test_change_password(client, user_headers):
    resp = client.post(
        "/api/v1/auth/change-password",
        json={"currentPassword": USER["password"], "newPassword": "brand-new-pass"},
        headers=user_headers,
    )
    assert resp.status_code == 200
    login(client, USER["email"], "brand-new-pass")


def test_users_admin_only(client, user_headers):
    assert client.get("/api/v1/users/", headers=user_headers).status_code == 403


def test_admin_cannot_delete_self(client, admin_headers):
    me = client.get("/api/v1/auth/me", headers=admin_headers).json()
    resp = client.delete(f"/api/v1/users/{me['id']}", headers=admin_headers)
    assert resp.status_code == 400


def test_admin_deletes_user_and_their_files(client, admin_headers, user_headers, upload_dir):
    resp = client.post(
        "/api/v1/files/", files=[("files", ("a.txt", b"data", "text/plain"))], headers=user_headers
    )
    assert resp.status_code == 201
    token = resp.json()[0]["shareToken"]
    user_id = client.get("/api/v1/auth/me", headers=user_headers).json()["id"]

    assert client.delete(f"/api/v1/users/{user_id}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/v1/shares/{token}/info").status_code == 404
    assert [p for p in upload_dir.iterdir() if p.is_file()] == []


def test_deactivated_user_is_locked_out(client, admin_headers, user_headers):
    user_id = client.get("/api/v1/auth/me", headers=user_headers).json()["id"]
    resp = client.patch(f"/api/v1/users/{user_id}", json={"active": False}, headers=admin_headers)
    assert resp.status_code == 200
    assert client.get("/api/v1/auth/me", headers=user_headers).status_code == 401
