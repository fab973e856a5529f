"""Shared fixtures.

Settings are read at import time, so the environment is prepared before
anything from ``tubely`` is imported.
"""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("STORAGE_BUCKET", "tubely-test")
os.environ.setdefault("LOG_JSON", "false")

import shutil
import uuid
from typing import Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tubely.core.config import settings
from tubely.core.database import create_engine, get_db, init_db
from tubely.core.storage import Storage, StorageBackend, StorageError, StorageResult, get_storage
from tubely.main import app
from tubely.modules.transcoding.ffmpeg import (
    MediaProcessor,
    ProbeError,
    ProbeResult,
    StreamInfo,
    TranscodeError,
    processed_output_path,
)
from tubely.modules.video.service import get_media_processor

TEST_BUCKET = "tubely-test"
TEST_PASSWORD = "correct horse battery staple"


class InMemoryStorage(StorageBackend):
    """Storage backend that keeps objects in a dict and records every call."""

    def __init__(self, bucket: str = TEST_BUCKET):
        self.bucket = bucket
        self.objects: dict[tuple[str, str], bytes] = {}
        self.content_types: dict[tuple[str, str], str] = {}
        self.deleted: list[tuple[str, str]] = []
        self.presign_calls: list[tuple[str, str, int]] = []
        self.fail_uploads = False
        self.fail_presign = False

    def _put(self, data: bytes, key: str, content_type: str) -> StorageResult:
        if self.fail_uploads:
            return StorageResult(
                success=False, bucket=self.bucket, key=key, error_message="store unavailable"
            )
        self.objects[(self.bucket, key)] = data
        self.content_types[(self.bucket, key)] = content_type
        return StorageResult(success=True, bucket=self.bucket, key=key, file_size=len(data))

    def upload(self, file_path: str, key: str, content_type: str = "application/octet-stream") -> StorageResult:
        with open(file_path, "rb") as f:
            return self._put(f.read(), key, content_type)

    def delete(self, key: str, bucket: Optional[str] = None) -> bool:
        location = (bucket or self.bucket, key)
        self.deleted.append(location)
        return self.objects.pop(location, None) is not None

    def generate_presigned_url(self, bucket: str, key: str, expires_in: int) -> str:
        self.presign_calls.append((bucket, key, expires_in))
        if self.fail_presign:
            raise StorageError("signing unavailable")
        return f"https://{bucket}.s3.test/{key}?X-Amz-Expires={expires_in}&X-Amz-Signature=test"


class FakeMediaProcessor(MediaProcessor):
    """MediaProcessor that copies files and reports configured dimensions."""

    def __init__(self, width: int = 1920, height: int = 1080):
        self.width = width
        self.height = height
        self.fail_transcode = False
        self.fail_probe = False
        self.transcoded: list[str] = []
        self.probed: list[str] = []

    def process_for_fast_start(self, input_path: str) -> str:
        self.transcoded.append(input_path)
        output_path = processed_output_path(input_path)
        shutil.copyfile(input_path, output_path)
        if self.fail_transcode:
            # Leaves the partial output behind, as a crashed ffmpeg would
            raise TranscodeError("ffmpeg exited with status 1")
        return output_path

    def probe(self, input_path: str) -> ProbeResult:
        self.probed.append(input_path)
        if self.fail_probe:
            raise ProbeError("Stream data is empty")
        return ProbeResult(streams=[
            StreamInfo(index=0, codec_type="audio"),
            StreamInfo(index=1, codec_type="video", width=self.width, height=self.height),
        ])


@pytest.fixture
def storage_backend() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def media_processor() -> FakeMediaProcessor:
    return FakeMediaProcessor()


@pytest.fixture
def staging_dir(tmp_path, monkeypatch) -> str:
    """Directory uploads are staged in, so tests can check it is left empty."""
    path = tmp_path / "staging"
    path.mkdir()
    monkeypatch.setattr(settings, "UPLOAD_TEMP_DIR", str(path))
    return str(path)


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'tubely-test.db'}")
    await init_db(bind=engine)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def client(session_maker, storage_backend, media_processor, staging_dir):
    """HTTP client for the app with database, storage and ffmpeg replaced."""

    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: Storage(backend=storage_backend)
    app.dependency_overrides[get_media_processor] = lambda: media_processor

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def create_user(client):
    """Register a user and log in, returning (user_id, access_token)."""

    async def _create_user(email: Optional[str] = None) -> tuple[uuid.UUID, str]:
        email = email or f"user-{uuid.uuid4().hex[:12]}@example.com"
        resp = await client.post("/api/users", json={"email": email, "password": TEST_PASSWORD})
        assert resp.status_code == 201, resp.text

        resp = await client.post("/api/login", json={"email": email, "password": TEST_PASSWORD})
        assert resp.status_code == 200, resp.text
        body = resp.json()
        return uuid.UUID(body["id"]), body["token"]

    return _create_user
