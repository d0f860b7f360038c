from datetime import timedelta

from sqlmodel import select

from filyo.models import File, Share, utcnow


def upload(client, headers, content=b"hello world", name="hello.txt", **fields):
    resp = client.post(
        "/api/v1/files/",
        files=[("files", (name, content, "text/plain"))],
        data={k: str(v) for k, v in fields.items()},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()[0]


def test_round_trip_without_options(client, user_headers):
    uploaded = upload(client, user_headers)
    token = uploaded["shareToken"]
    assert len(token) == 16

    info = client.get(f"/api/v1/shares/{token}/info").json()
    assert info["hasPassword"] is False
    assert info["expiresAt"] is None
    assert info["filename"] == "hello.txt"
    assert info["size"] == len(b"hello world")

    for _ in range(3):
        resp = client.post(f"/api/v1/shares/{token}/download")
        assert resp.status_code == 200
        assert resp.content == b"hello world"
        assert "attachment" in resp.headers["content-disposition"]

    assert client.get(f"/api/v1/shares/{token}/info").json()["downloads"] == 3


def test_multiple_files_get_one_share_each(client, user_headers):
    resp = client.post(
        "/api/v1/files/",
        files=[
            ("files", ("a.txt", b"aaa", "text/plain")),
            ("files", ("b.txt", b"bbb", "text/plain")),
        ],
        data={"label": "batch"},
        headers=user_headers,
    )
    assert resp.status_code == 201
    tokens = {f["shareToken"] for f in resp.json()}
    assert len(tokens) == 2

    listed = client.get("/api/v1/files/", headers=user_headers).json()
    assert len(listed) == 2
    assert all(f["shares"][0]["label"] == "batch" for f in listed)


def test_password_protected_download(client, user_headers):
    token = upload(client, user_headers, password="s3cret")["shareToken"]
    assert client.get(f"/api/v1/shares/{token}/info").json()["hasPassword"] is True

    assert client.post(f"/api/v1/shares/{token}/download").status_code == 401
    resp = client.post(f"/api/v1/shares/{token}/download", json={"password": "wrong"})
    assert resp.status_code == 401
    assert client.get(f"/api/v1/shares/{token}/info").json()["downloads"] == 0

    resp = client.post(f"/api/v1/shares/{token}/download", json={"password": "s3cret"})
    assert resp.status_code == 200
    assert resp.content == b"hello world"
    assert client.get(f"/api/v1/shares/{token}/info").json()["downloads"] == 1


def test_download_limit(client, user_headers):
    token = upload(client, user_headers, maxDownloads=2)["shareToken"]

    assert client.post(f"/api/v1/shares/{token}/download").status_code == 200
    assert client.post(f"/api/v1/shares/{token}/download").status_code == 200
    resp = client.post(f"/api/v1/shares/{token}/download")
    assert resp.status_code == 410
    assert client.get(f"/api/v1/shares/{token}/info").status_code == 410


def test_expired_share_beats_password(client, user_headers, db):
    token = upload(client, user_headers, password="s3cret", expiresIn=3600)["shareToken"]
    share = db.exec(select(Share).where(Share.token == token)).one()
    share.expires_at = utcnow() - timedelta(seconds=1)
    db.add(share)
    db.commit()

    resp = client.post(f"/api/v1/shares/{token}/download", json={"password": "wrong"})
    assert resp.status_code == 410
    assert resp.json()["detail"] == "This link has expired"


def test_expires_in_sets_expiry(client, user_headers):
    uploaded = upload(client, user_headers, expiresIn=3600)
    assert uploaded["expiresAt"] is not None
    info = client.get(f"/api/v1/shares/{uploaded['shareToken']}/info").json()
    assert info["expiresAt"] is not None


def test_invalid_field_rejects_whole_upload(client, user_headers, upload_dir, db):
    resp = client.post(
        "/api/v1/files/",
        files=[("files", ("a.txt", b"aaa", "text/plain"))],
        data={"maxDownloads": "zero"},
        headers=user_headers,
    )
    assert resp.status_code == 400
    assert db.exec(select(File)).all() == []
    assert [p for p in upload_dir.iterdir() if p.is_file()] == []


def test_unknown_token(client):
    assert client.get("/api/v1/shares/doesnotexist/info").status_code == 404
    assert client.post("/api/v1/shares/doesnotexist/download").status_code == 404


def test_upload_requires_auth(client):
    resp = client.post("/api/v1/files/", files=[("files", ("a.txt", b"aaa", "text/plain"))])
    assert resp.status_code == 401


def test_owner_deletes_file(client, user_headers, upload_dir):
    uploaded = upload(client, user_headers)
    resp = client.delete(f"/api/v1/files/{uploaded['id']}", headers=user_headers)
    assert resp.status_code == 200
    assert client.get(f"/api/v1/shares/{uploaded['shareToken']}/info").status_code == 404
    assert [p for p in upload_dir.iterdir() if p.is_file()] == []


def test_other_users_file_is_hidden(client, admin_headers, user_headers):
    uploaded = upload(client, user_headers)
    # admins may delete but the detail view is owner-only
    assert client.get(f"/api/v1/files/{uploaded['id']}", headers=admin_headers).status_code == 404


def test_send_email_without_smtp(client, user_headers):
    token = upload(client, user_headers)["shareToken"]
    resp = client.post(
        "/api/v1/shares/send-email",
        json={"to": "friend@example.com", "tokens": [token]},
        headers=user_headers,
    )
    assert resp.status_code == 503


def test_token_collision_is_a_conflict(client, user_headers, upload_dir, monkeypatch):
    monkeypatch.setattr("filyo.services.intake.generate_token", lambda: "fixedtoken000000")
    upload(client, user_headers)

    resp = client.post(
        "/api/v1/files/",
        files=[("files", ("again.txt", b"again", "text/plain"))],
        headers=user_headers,
    )
    assert resp.status_code == 409
    assert len([p for p in upload_dir.iterdir() if p.is_file()]) == 1
    assert len(client.get("/api/v1/files/", headers=user_headers).json()) == 1
