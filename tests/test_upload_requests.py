from sqlmodel import select

from filyo.models import ReceivedFile, UploadRequest


def create_request(client, headers, **body):
    resp = client.post("/api/v1/upload-requests/", json={"title": "Documents", **body}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def deposit(client, token, files, **fields):
    return client.post(
        f"/api/v1/upload-requests/{token}/upload",
        files=[("files", (name, content, "application/octet-stream")) for name, content in files],
        data=fields,
    )


def stored_blobs(upload_dir):
    received = upload_dir / "received"
    if not received.exists():
        return []
    return [p for p in received.rglob("*") if p.is_file()]


def files_count(client, headers, request_id):
    mine = client.get("/api/v1/upload-requests/", headers=headers).json()
    return next(r["filesCount"] for r in mine if r["id"] == request_id)


def test_public_info(client, user_headers):
    req = create_request(client, user_headers, message="Send me your scans", password="pw")
    assert len(req["token"]) == 16

    info = client.get(f"/api/v1/upload-requests/{req['token']}/info").json()
    assert info["title"] == "Documents"
    assert info["message"] == "Send me your scans"
    assert info["hasPassword"] is True


def test_deposit_and_owner_download(client, user_headers):
    req = create_request(client, user_headers)

    resp = deposit(client, req["token"], [("scan.pdf", b"%PDF-1.4 data")], uploaderName="Bob")
    assert resp.status_code == 201
    deposited = resp.json()
    assert deposited[0]["originalName"] == "scan.pdf"

    received = client.get(f"/api/v1/upload-requests/{req['id']}/files", headers=user_headers).json()
    assert len(received) == 1
    assert received[0]["uploaderName"] == "Bob"

    resp = client.get(
        f"/api/v1/upload-requests/{req['id']}/received/{received[0]['id']}/download", headers=user_headers
    )
    assert resp.status_code == 200
    assert resp.content == b"%PDF-1.4 data"


def test_max_files_rejects_whole_batch(client, user_headers, upload_dir):
    req = create_request(client, user_headers, maxFiles=2)

    assert deposit(client, req["token"], [("one.txt", b"1")]).status_code == 201
    assert files_count(client, user_headers, req["id"]) == 1

    resp = deposit(client, req["token"], [("two.txt", b"2"), ("three.txt", b"3")])
    assert resp.status_code == 429
    assert files_count(client, user_headers, req["id"]) == 1
    assert len(stored_blobs(upload_dir)) == 1

    assert deposit(client, req["token"], [("two.txt", b"2")]).status_code == 201
    assert deposit(client, req["token"], [("four.txt", b"4")]).status_code == 429
    assert files_count(client, user_headers, req["id"]) == 2


def test_oversize_deposit_leaves_nothing(client, user_headers, upload_dir, db):
    # 0.001 MiB is 1049 bytes
    req = create_request(client, user_headers, maxSizeMb=0.001)

    resp = deposit(client, req["token"], [("small.txt", b"ok"), ("big.bin", b"x" * 5000)])
    assert resp.status_code == 413
    assert db.exec(select(ReceivedFile)).all() == []
    assert stored_blobs(upload_dir) == []
    assert files_count(client, user_headers, req["id"]) == 0


def test_wrong_password_rolls_back(client, user_headers, upload_dir):
    req = create_request(client, user_headers, password="letmein")

    resp = deposit(client, req["token"], [("a.txt", b"aaa")])
    assert resp.status_code == 401
    resp = deposit(client, req["token"], [("a.txt", b"aaa")], password="nope")
    assert resp.status_code == 401
    assert stored_blobs(upload_dir) == []
    assert files_count(client, user_headers, req["id"]) == 0

    resp = deposit(client, req["token"], [("a.txt", b"aaa")], password="letmein")
    assert resp.status_code == 201
    assert files_count(client, user_headers, req["id"]) == 1


def test_required_uploader_field(client, admin_headers, user_headers, upload_dir):
    resp = client.patch(
        "/api/v1/settings/uploader-fields", json={"uploaderNameReq": "required"}, headers=admin_headers
    )
    assert resp.status_code == 200
    req = create_request(client, user_headers)

    resp = deposit(client, req["token"], [("a.txt", b"aaa")], uploaderName="  ")
    assert resp.status_code == 400
    assert stored_blobs(upload_dir) == []

    assert deposit(client, req["token"], [("a.txt", b"aaa")], uploaderName="Alice").status_code == 201


def test_hidden_uploader_field_is_dropped(client, admin_headers, user_headers):
    client.patch("/api/v1/settings/uploader-fields", json={"uploaderEmailReq": "hidden"}, headers=admin_headers)
    req = create_request(client, user_headers)

    deposit(client, req["token"], [("a.txt", b"aaa")], uploaderEmail="bob@example.com")
    received = client.get(f"/api/v1/upload-requests/{req['id']}/files", headers=user_headers).json()
    assert received[0]["uploaderEmail"] is None


def test_deposit_without_file(client, user_headers):
    req = create_request(client, user_headers)
    resp = client.post(f"/api/v1/upload-requests/{req['token']}/upload", files={"uploaderName": (None, "Bob")})
    assert resp.status_code == 400


def test_toggle_disables_link(client, user_headers):
    req = create_request(client, user_headers)

    resp = client.patch(f"/api/v1/upload-requests/{req['id']}/toggle", headers=user_headers)
    assert resp.json() == {"active": False}
    assert client.get(f"/api/v1/upload-requests/{req['token']}/info").status_code == 404
    assert deposit(client, req["token"], [("a.txt", b"a")]).status_code == 404


def test_only_owner_or_admin_manages(client, admin_headers, user_headers):
    req = create_request(client, admin_headers)
    assert client.get(f"/api/v1/upload-requests/{req['id']}/files", headers=user_headers).status_code == 403

    mine = create_request(client, user_headers)
    assert client.get(f"/api/v1/upload-requests/{mine['id']}/files", headers=admin_headers).status_code == 200


def test_delete_removes_received_files(client, user_headers, upload_dir, db):
    req = create_request(client, user_headers)
    deposit(client, req["token"], [("a.txt", b"aaa"), ("b.txt", b"bbb")])
    assert len(stored_blobs(upload_dir)) == 2

    assert client.delete(f"/api/v1/upload-requests/{req['id']}", headers=user_headers).status_code == 200
    assert stored_blobs(upload_dir) == []
    assert db.exec(select(UploadRequest)).all() == []
    assert db.exec(select(ReceivedFile)).all() == []


def raw_deposit(client, token, password):
    # file part first, password field last
    boundary = "filyo-test-boundary"
    body = (
        f"--{boundary}\r\n"
        'Content-Disposition: form-data; name="files"; filename="a.txt"\r\n'
        "Content-Type: text/plain\r\n\r\n"
        "aaa\r\n"
        f"--{boundary}\r\n"
        'Content-Disposition: form-data; name="password"\r\n\r\n'
        f"{password}\r\n"
        f"--{boundary}--\r\n"
    ).encode()
    return client.post(
        f"/api/v1/upload-requests/{token}/upload",
        content=body,
        headers={"Content-Type": f"multipart/form-data; boundary={boundary}"},
    )


def test_password_after_file_part(client, user_headers, upload_dir):
    req = create_request(client, user_headers, password="letmein")

    resp = raw_deposit(client, req["token"], "nope")
    assert resp.status_code == 401
    assert stored_blobs(upload_dir) == []
    assert files_count(client, user_headers, req["id"]) == 0

    resp = raw_deposit(client, req["token"], "letmein")
    assert resp.status_code == 201
    assert resp.json()[0]["originalName"] == "a.txt"
    assert resp.json()[0]["size"] == 3
    assert len(stored_blobs(upload_dir)) == 1
