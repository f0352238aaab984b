# tests/conftest.py
"""
Shared fixtures:
- settings with a fixed secret and an in-memory SQLite database
- FakeStorage standing in for the Supabase bucket client
- app / client built through create_app() like production
"""
import pytest
from fastapi.testclient import TestClient

from config import Settings
from database import SessionLocal
from main import create_app
from models import Song
from services.storage import ObjectNotFound, StorageError
from services.transcode import Variant

SECRET = "super-secret"


class FakeStorage:
    """In-memory bucket. Missing objects raise ObjectNotFound like the real client."""

    def __init__(self):
        self.files: dict[str, bytes] = {}
        self.signed: dict[str, str] = {}
        self.uploads: list[tuple[str, list]] = []
        self.deletes: list[str] = []
        self.fail_with: Exception | None = None
        self.timeouts: list = []

    def download(self, object_path: str, timeout=None) -> bytes:
        self.timeouts.append(timeout)
        if self.fail_with:
            raise self.fail_with
        if object_path not in self.files:
            raise ObjectNotFound("object not found")
        return self.files[object_path]

    def signed_url(self, object_path: str, expires_in: int, timeout=None) -> str:
        self.timeouts.append(timeout)
        if self.fail_with:
            raise self.fail_with
        if object_path in self.signed:
            return self.signed[object_path]
        return f"https://signed.test/{object_path}?ttl={expires_in}"

    def upload_batch(self, prefix: str, files) -> None:
        if self.fail_with:
            raise self.fail_with
        self.uploads.append((prefix, list(files)))

    def delete_prefix(self, prefix: str) -> None:
        if self.fail_with:
            raise self.fail_with
        if not prefix:
            raise StorageError("cannot delete empty prefix")
        self.deletes.append(prefix)


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        secret=SECRET.encode(),
        bucket_name="music",
        supabase_url="https://project.supabase.co",
        supabase_service_key="service-key",
        database_url="sqlite://",
        segment_seconds=4,
        variants=(Variant("64k", 64), Variant("128k", 128)),
    )


@pytest.fixture()
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture()
def app(settings, storage):
    return create_app(settings=settings, storage=storage)


@pytest.fixture()
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture()
def api_headers() -> dict:
    return {"X-API-Key": SECRET}


@pytest.fixture()
def db_session(app):
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def add_song(db_session):
    def _add(song_id: str, bucket_folder: str, name: str = "Song", duration: int = 180) -> Song:
        song = Song(id=song_id, name=name, duration_seconds=duration, bucket_folder=bucket_folder)
        db_session.add(song)
        db_session.commit()
        return song
    return _add


@pytest.fixture()
def stream_query(app):
    """Build a valid ?t=..&e=.. for a file id."""
    def _query(file_id: str, ttl: int = 60) -> str:
        token, expires = app.state.signer.generate(file_id, ttl)
        return f"t={token}&e={expires}"
    return _query
