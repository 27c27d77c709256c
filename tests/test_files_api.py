from sharegate.models import File, SharedLink


def test_files_require_auth(client):
    assert client.get("/files").status_code == 401
    assert client.get("/files", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401


def test_register_file(client, seed, blob_store):
    owner = seed.user()
    blob_store.write_bytes("uploads/abc.bin", b"x" * 42)

    response = client.post(
        "/files",
        headers=seed.headers(owner),
        json={
            "originalName": "abc.bin",
            "fileSize": 42,
            "storagePath": "uploads/abc.bin",
            "generateShareCode": True,
            "isPublic": True,
            "password": "pw",
            "downloadLimit": 3,
            "expiresAt": "2030-01-01T12:00:00+02:00",
        },
    )

    assert response.status_code == 200
    data = response.json()
    assert len(data["shareCode"]) == 8
    assert data["shareCode"].isalnum() and data["shareCode"].upper() == data["shareCode"]
    assert data["isLocked"] is True
    assert data["downloadCount"] == 0
    assert data["expiresAt"].startswith("2030-01-01T10:00:00")
    assert "passwordHash" not in data
    stored = seed.reload(File, data["id"])
    assert stored.password_hash and stored.password_hash != "pw"


def test_register_rejects_missing_blob(client, seed):
    owner = seed.user()

    response = client.post(
        "/files",
        headers=seed.headers(owner),
        json={"originalName": "ghost.bin", "fileSize": 1, "storagePath": "nowhere/ghost.bin"},
    )

    assert response.status_code == 400


def test_register_rejects_bad_limits(client, seed, blob_store):
    owner = seed.user()
    blob_store.write_bytes("a.bin", b"a")

    response = client.post(
        "/files",
        headers=seed.headers(owner),
        json={"originalName": "a.bin", "fileSize": 1, "storagePath": "a.bin", "downloadLimit": 0},
    )

    assert response.status_code == 422


def test_register_rejects_path_traversal(client, seed):
    owner = seed.user()

    response = client.post(
        "/files",
        headers=seed.headers(owner),
        json={"originalName": "passwd", "fileSize": 1, "storagePath": "../../etc/passwd"},
    )

    assert response.status_code == 400
    assert response.json()["field"] == "storage_path"


def test_owner_isolation(client, seed):
    alice = seed.user()
    mallory = seed.user()
    f = seed.file(alice)

    assert client.get(f"/files/{f.id}", headers=seed.headers(mallory)).status_code == 404
    assert client.delete(f"/files/{f.id}", headers=seed.headers(mallory)).status_code == 404
    assert [row["id"] for row in client.get("/files", headers=seed.headers(alice)).json()] == [f.id]
    assert client.get("/files", headers=seed.headers(mallory)).json() == []


def test_download_history(client, seed):
    owner = seed.user()
    f = seed.file(owner)
    link = seed.link(f)
    client.post(f"/public/files/{f.share_code}/download")
    client.post(f"/shared/{link.share_token}/download")

    response = client.get(f"/files/{f.id}/downloads", headers=seed.headers(owner))

    assert response.status_code == 200
    methods = sorted(row["downloadMethod"] for row in response.json())
    assert methods == ["code", "link"]
    assert {row["sharedLinkId"] for row in response.json()} == {None, link.id}


def test_file_links_listing(client, seed):
    owner = seed.user()
    f = seed.file(owner)
    seed.link(f, password="pw")
    seed.link(f, link_type="email", recipient_email="kim@example.com")

    response = client.get(f"/files/{f.id}/links", headers=seed.headers(owner))

    assert response.status_code == 200
    rows = response.json()
    assert [row["linkType"] for row in rows] == ["public", "email"]
    assert [row["passwordProtected"] for row in rows] == [True, False]


def test_delete_file_removes_everything(client, seed, blob_store):
    owner = seed.user()
    f = seed.file(owner)
    link = seed.link(f)
    client.post(f"/shared/{link.share_token}/download")

    response = client.delete(f"/files/{f.id}", headers=seed.headers(owner))

    assert response.status_code == 200
    assert response.json() == {"deleted": True}
    assert seed.reload(File, f.id) is None
    assert seed.reload(SharedLink, link.id) is None
    assert blob_store.exists(f.storage_path) is False
    assert client.get(f"/shared/{link.share_token}").status_code == 404


def test_register_rejects_size_that_disagrees_with_blob(client, seed, blob_store, session_factory):
    owner = seed.user()
    blob_store.write_bytes("sized/real.bin", b"z" * 42)

    response = client.post(
        "/files",
        headers=seed.headers(owner),
        json={
            "originalName": "real.bin",
            "fileSize": 3,
            "storagePath": "sized/real.bin",
            "generateShareCode": True,
            "isPublic": True,
            "downloadLimit": 1,
        },
    )

    assert response.status_code == 400
    assert "42" in response.json()["detail"]
    session = session_factory()
    try:
        assert session.query(File).filter(File.storage_path == "sized/real.bin").count() == 0
    finally:
        session.close()


def test_registered_size_comes_from_blob_and_matches_download(client, seed, blob_store):
    owner = seed.user()
    blob_store.write_bytes("sized/auto.bin", b"q" * 42)

    created = client.post(
        "/files",
        headers=seed.headers(owner),
        json={
            "originalName": "auto.bin",
            "storagePath": "sized/auto.bin",
            "generateShareCode": True,
            "isPublic": True,
            "downloadLimit": 1,
        },
    )
    assert created.status_code == 200
    assert created.json()["fileSize"] == 42

    response = client.post(f"/public/files/{created.json()['shareCode']}/download")

    assert response.status_code == 200
    assert response.headers["content-length"] == "42"
    assert response.content == b"q" * 42
