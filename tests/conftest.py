import os
import secrets
import tempfile
from pathlib import Path

_WORKDIR = Path(tempfile.mkdtemp(prefix="sharegate-tests-"))

# Settings are read once at import time, so these must be in place first
os.environ.setdefault("CONFIG_FILE", str(_WORKDIR / "missing-config.toml"))
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_WORKDIR / 'sharegate.db'}")
os.environ.setdefault("BLOB_BACKEND", "local")
os.environ.setdefault("BLOB_BASE_PATH", str(_WORKDIR / "blobs"))
os.environ.setdefault("SHARE_PASSWORD_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from sharegate import blobs as blobs_module
from sharegate.blobs import LocalBlobStore
from sharegate.credentials import hash_share_password
from sharegate.db import Base, get_db, make_engine
from sharegate.main import app
from sharegate.models import File, SharedLink, User
from sharegate.security import create_token


@pytest.fixture()
def session_factory(tmp_path):
    """Provide an isolated SQLite database for each test."""

    engine = make_engine(f"sqlite:///{tmp_path / 'share_test.db'}")
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)

    try:
        yield TestingSessionLocal
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def blob_store(tmp_path, monkeypatch):
    store = LocalBlobStore(str(tmp_path / "blobs"))
    monkeypatch.setattr(blobs_module, "_blob_store", store)
    return store


@pytest.fixture()
def client(session_factory, blob_store):
    """FastAPI test client bound to the isolated database and blob directory."""

    previous_override = app.dependency_overrides.get(get_db)

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client

    if previous_override is not None:
        app.dependency_overrides[get_db] = previous_override
    else:
        app.dependency_overrides.pop(get_db, None)


class Seeder:
    """Writes users, files and links straight into the test database."""

    def __init__(self, session_factory, blob_store):
        self.session_factory = session_factory
        self.blob_store = blob_store

    def _save(self, row):
        session = self.session_factory()
        try:
            session.add(row)
            session.commit()
            session.refresh(row)
            session.expunge(row)
            return row
        finally:
            session.close()

    def user(self, email: str | None = None) -> User:
        return self._save(User(email=email or f"owner-{secrets.token_hex(4)}@example.com"))

    def headers(self, user: User) -> dict:
        return {"Authorization": f"Bearer {create_token(user.id)}"}

    def file(self, owner: User, *, content: bytes = b"hello share", password: str | None = None,
             share_code: str | None = None, write_blob: bool = True, **columns) -> File:
        storage_path = columns.pop("storage_path", f"{owner.id}/{secrets.token_hex(6)}.bin")
        if write_blob:
            self.blob_store.write_bytes(storage_path, content)
        columns.setdefault("is_public", True)
        return self._save(File(
            owner_id=owner.id,
            original_name=columns.pop("original_name", "report.pdf"),
            file_size=len(content),
            file_type=columns.pop("file_type", "application/pdf"),
            storage_path=storage_path,
            share_code=share_code or secrets.token_hex(4).upper(),
            password_hash=hash_share_password(password) if password else None,
            **columns,
        ))

    def link(self, file: File, *, password: str | None = None, link_type: str = "public", **columns) -> SharedLink:
        return self._save(SharedLink(
            file_id=file.id,
            link_type=link_type,
            share_token=secrets.token_urlsafe(16),
            password_hash=hash_share_password(password) if password else None,
            **columns,
        ))

    def reload(self, model, row_id):
        session = self.session_factory()
        try:
            return session.get(model, row_id)
        finally:
            session.close()


@pytest.fixture()
def seed(session_factory, blob_store):
    return Seeder(session_factory, blob_store)
