"""End-to-end tests for the video API.

Tests complete request flows against the app including:
- Video record creation, lookup, listing and deletion
- Video upload through stage, fast-start rewrite, probe and upload
- Thumbnail upload
- Ownership and token checks before any media work
- Presigned URLs on read, including degraded signing
"""

import asyncio
import os
import tempfile
import uuid
from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import pytest
from sqlalchemy.exc import OperationalError

from tubely.core.config import settings
from tubely.modules.auth.jwt import ACCESS_TOKEN_TYPE, create_token
from tubely.modules.video.models import Video
from tubely.modules.video.references import StorageReference
from tubely.modules.video.repository import VideoRepository

MP4_BYTES = b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 4096
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 512


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def create_video(client, token: str, title: str = "Boot.dev beats") -> dict:
    resp = await client.post(
        "/api/videos",
        json={"title": title, "description": "A test video"},
        headers=auth(token),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


async def upload_video(client, token: str, video_id: str, content_type: str = "video/mp4", data: bytes = MP4_BYTES):
    return await client.post(
        f"/api/video_upload/{video_id}",
        files={"video": ("clip.mp4", data, content_type)},
        headers=auth(token),
    )


async def stored_video(session_maker, video_id: str) -> Video:
    async with session_maker() as session:
        return await VideoRepository(session).get_by_id(uuid.UUID(video_id))


BOUNDARY = "tubely-e2e-boundary"


def multipart_body(field: str, filename: str, content_type: str, data: bytes) -> bytes:
    return (
        f"--{BOUNDARY}\r\n"
        f'Content-Disposition: form-data; name="{field}"; filename="{filename}"\r\n'
        f"Content-Type: {content_type}\r\n\r\n"
    ).encode() + data + f"\r\n--{BOUNDARY}--\r\n".encode()


async def chunked(body: bytes, sent: list[int], chunk_size: int = 64 * 1024):
    """Stream ``body`` without a Content-Length, recording each chunk handed over."""
    for start in range(0, len(body), chunk_size):
        chunk = body[start:start + chunk_size]
        sent.append(len(chunk))
        yield chunk


async def upload_video_chunked(client, token: str, video_id: str, body: bytes, sent: list[int]):
    return await client.post(
        f"/api/video_upload/{video_id}",
        content=chunked(body, sent),
        headers={**auth(token), "Content-Type": f"multipart/form-data; boundary={BOUNDARY}"},
    )


@pytest.fixture
def temp_files(monkeypatch) -> list[str]:
    """Record every temporary file created while a test runs."""
    created: list[str] = []
    real_mkstemp = tempfile.mkstemp
    real_temporary_file = tempfile.TemporaryFile

    def mkstemp(*args, **kwargs):
        fd, path = real_mkstemp(*args, **kwargs)
        created.append(path)
        return fd, path

    def temporary_file(*args, **kwargs):
        created.append("<unnamed>")
        return real_temporary_file(*args, **kwargs)

    monkeypatch.setattr(tempfile, "mkstemp", mkstemp)
    monkeypatch.setattr(tempfile, "TemporaryFile", temporary_file)
    return created


class TestVideoRecords:
    """Create, read, list and delete video records."""

    @pytest.mark.asyncio
    async def test_create_and_get_video(self, client, create_user) -> None:
        user_id, token = await create_user()
        created = await create_video(client, token)

        assert created["user_id"] == str(user_id)
        assert created["video_url"] is None
        assert created["thumbnail_url"] is None

        resp = await client.get(f"/api/videos/{created['id']}")
        assert resp.status_code == 200
        assert resp.json()["title"] == "Boot.dev beats"

    @pytest.mark.asyncio
    async def test_create_requires_token(self, client) -> None:
        resp = await client.post("/api/videos", json={"title": "x", "description": ""})
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_list_returns_only_callers_videos(self, client, create_user) -> None:
        _, alice = await create_user()
        _, bob = await create_user()
        await create_video(client, alice, "alice 1")
        await create_video(client, alice, "alice 2")
        await create_video(client, bob, "bob 1")

        resp = await client.get("/api/videos", headers=auth(alice))

        assert resp.status_code == 200
        assert sorted(v["title"] for v in resp.json()) == ["alice 1", "alice 2"]

    @pytest.mark.asyncio
    async def test_get_invalid_id_is_bad_request(self, client) -> None:
        resp = await client.get("/api/videos/not-a-uuid")
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_get_missing_video_is_not_found(self, client) -> None:
        resp = await client.get(f"/api/videos/{uuid.uuid4()}")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_by_owner(self, client, create_user) -> None:
        _, token = await create_user()
        video = await create_video(client, token)

        resp = await client.delete(f"/api/videos/{video['id']}", headers=auth(token))
        assert resp.status_code == 204

        resp = await client.get(f"/api/videos/{video['id']}")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_by_other_user_is_forbidden(self, client, create_user) -> None:
        _, owner = await create_user()
        _, intruder = await create_user()
        video = await create_video(client, owner)

        resp = await client.delete(f"/api/videos/{video['id']}", headers=auth(intruder))
        assert resp.status_code == 403

        resp = await client.get(f"/api/videos/{video['id']}")
        assert resp.status_code == 200

    @pytest.mark.asyncio
    async def test_delete_without_token_is_unauthorized(self, client, create_user) -> None:
        _, owner = await create_user()
        video = await create_video(client, owner)

        resp = await client.delete(f"/api/videos/{video['id']}")
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Couldn't find JWT"

        resp = await client.get(f"/api/videos/{video['id']}")
        assert resp.status_code == 200

    @pytest.mark.asyncio
    async def test_delete_with_expired_token_is_unauthorized(self, client, create_user) -> None:
        owner_id, owner = await create_user()
        video = await create_video(client, owner)
        expired = create_token(owner_id, ACCESS_TOKEN_TYPE, timedelta(minutes=-5))

        resp = await client.delete(f"/api/videos/{video['id']}", headers=auth(expired))
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Couldn't validate JWT"

        resp = await client.get(f"/api/videos/{video['id']}")
        assert resp.status_code == 200


class TestVideoUpload:
    """The video ingestion pipeline through the HTTP surface."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "width,height,orientation",
        [
            (1920, 1080, "landscape"),
            (1080, 1920, "portrait"),
            (1000, 1000, "other"),
        ],
    )
    async def test_upload_stores_object_under_orientation(
        self,
        client,
        create_user,
        storage_backend,
        media_processor,
        session_maker,
        width,
        height,
        orientation,
    ) -> None:
        media_processor.width, media_processor.height = width, height
        _, token = await create_user()
        video = await create_video(client, token)

        resp = await upload_video(client, token, video["id"])

        assert resp.status_code == 200, resp.text
        assert len(storage_backend.objects) == 1
        (bucket, key), data = next(iter(storage_backend.objects.items()))
        assert key.startswith(f"{orientation}/")
        assert key.endswith(".mp4")
        assert data == MP4_BYTES
        assert storage_backend.content_types[(bucket, key)] == "video/mp4"

        # Stored as a reference, returned as a signed URL
        record = await stored_video(session_maker, video["id"])
        assert StorageReference.parse(record.video_url) == StorageReference(bucket, key)
        assert resp.json()["video_url"].startswith(f"https://{bucket}.s3.test/{key}?")

    @pytest.mark.asyncio
    async def test_landscape_upload_leaves_no_staged_files(
        self, client, create_user, media_processor, staging_dir
    ) -> None:
        _, token = await create_user()
        video = await create_video(client, token)

        resp = await upload_video(client, token, video["id"])

        assert resp.status_code == 200
        assert media_processor.transcoded, "upload should have been transcoded"
        assert os.listdir(staging_dir) == []

    @pytest.mark.asyncio
    async def test_unsupported_media_type_rejected_before_any_work(
        self, client, create_user, storage_backend, media_processor, staging_dir
    ) -> None:
        _, token = await create_user()
        video = await create_video(client, token)

        resp = await upload_video(client, token, video["id"], content_type="text/plain")

        assert resp.status_code == 400
        assert media_processor.transcoded == []
        assert storage_backend.objects == {}
        assert os.listdir(staging_dir) == []

    @pytest.mark.asyncio
    async def test_transcode_failure_cleans_up(
        self, client, create_user, storage_backend, media_processor, staging_dir, session_maker
    ) -> None:
        media_processor.fail_transcode = True
        _, token = await create_user()
        video = await create_video(client, token)

        resp = await upload_video(client, token, video["id"])

        assert resp.status_code == 500
        assert os.listdir(staging_dir) == []
        assert storage_backend.objects == {}
        assert (await stored_video(session_maker, video["id"])).video_url is None

    @pytest.mark.asyncio
    async def test_probe_failure_cleans_up(
        self, client, create_user, storage_backend, media_processor, staging_dir
    ) -> None:
        media_processor.fail_probe = True
        _, token = await create_user()
        video = await create_video(client, token)

        resp = await upload_video(client, token, video["id"])

        assert resp.status_code == 500
        assert os.listdir(staging_dir) == []
        assert storage_backend.objects == {}

    @pytest.mark.asyncio
    async def test_storage_failure_is_server_error(
        self, client, create_user, storage_backend, staging_dir
    ) -> None:
        storage_backend.fail_uploads = True
        _, token = await create_user()
        video = await create_video(client, token)

        resp = await upload_video(client, token, video["id"])

        assert resp.status_code == 500
        assert os.listdir(staging_dir) == []

    @pytest.mark.asyncio
    async def test_metadata_failure_deletes_uploaded_object(
        self, client, create_user, storage_backend, staging_dir, monkeypatch
    ) -> None:
        _, token = await create_user()
        video = await create_video(client, token)

        async def failing_update(self, video, **fields):
            raise OperationalError("UPDATE videos", {}, Exception("database is locked"))

        monkeypatch.setattr(VideoRepository, "update", failing_update)

        resp = await upload_video(client, token, video["id"])

        assert resp.status_code == 500
        assert storage_backend.objects == {}
        assert len(storage_backend.deleted) == 1
        assert storage_backend.deleted[0][1].startswith("landscape/")

    @pytest.mark.asyncio
    async def test_reupload_replaces_previous_object(
        self, client, create_user, storage_backend
    ) -> None:
        _, token = await create_user()
        video = await create_video(client, token)

        assert (await upload_video(client, token, video["id"])).status_code == 200
        first_key = next(iter(storage_backend.objects))[1]
        assert (await upload_video(client, token, video["id"])).status_code == 200

        assert len(storage_backend.objects) == 1
        assert next(iter(storage_backend.objects))[1] != first_key
        assert storage_backend.deleted[-1][1] == first_key

    @pytest.mark.asyncio
    async def test_missing_form_field_is_bad_request(self, client, create_user) -> None:
        _, token = await create_user()
        video = await create_video(client, token)

        resp = await client.post(
            f"/api/video_upload/{video['id']}",
            files={"file": ("clip.mp4", MP4_BYTES, "video/mp4")},
            headers=auth(token),
        )

        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_upload_to_missing_video_is_not_found(self, client, create_user) -> None:
        _, token = await create_user()
        resp = await upload_video(client, token, str(uuid.uuid4()))
        assert resp.status_code == 404


class TestUploadOwnership:
    """Only the owner may attach media; every other identity is refused."""

    @pytest.mark.asyncio
    async def test_wrong_user_is_forbidden(
        self, client, create_user, storage_backend, media_processor, staging_dir
    ) -> None:
        _, owner = await create_user()
        _, intruder = await create_user()
        video = await create_video(client, owner)

        resp = await upload_video(client, intruder, video["id"])

        assert resp.status_code == 403
        assert media_processor.transcoded == []
        assert storage_backend.objects == {}
        assert os.listdir(staging_dir) == []

    @pytest.mark.asyncio
    async def test_missing_token_is_unauthorized(
        self, client, create_user, media_processor
    ) -> None:
        _, owner = await create_user()
        video = await create_video(client, owner)

        resp = await client.post(
            f"/api/video_upload/{video['id']}",
            files={"video": ("clip.mp4", MP4_BYTES, "video/mp4")},
        )

        assert resp.status_code == 401
        assert resp.json()["detail"] == "Couldn't find JWT"
        assert media_processor.transcoded == []

    @pytest.mark.asyncio
    async def test_expired_token_is_unauthorized(
        self, client, create_user, media_processor
    ) -> None:
        owner_id, owner = await create_user()
        video = await create_video(client, owner)
        expired = create_token(owner_id, ACCESS_TOKEN_TYPE, timedelta(minutes=-5))

        resp = await upload_video(client, expired, video["id"])

        assert resp.status_code == 401
        assert resp.json()["detail"] == "Couldn't validate JWT"
        assert media_processor.transcoded == []

    @pytest.mark.asyncio
    async def test_wrong_user_cannot_upload_thumbnail(
        self, client, create_user, storage_backend
    ) -> None:
        _, owner = await create_user()
        _, intruder = await create_user()
        video = await create_video(client, owner)

        resp = await client.post(
            f"/api/thumbnail_upload/{video['id']}",
            files={"thumbnail": ("thumb.png", PNG_BYTES, "image/png")},
            headers=auth(intruder),
        )

        assert resp.status_code == 403
        assert storage_backend.objects == {}


class TestChunkedUploads:
    """Bodies sent without Content-Length are checked and capped as they stream."""

    @pytest.mark.asyncio
    async def test_wrong_user_body_is_never_spooled(
        self, client, create_user, media_processor, staging_dir, temp_files
    ) -> None:
        _, owner = await create_user()
        _, intruder = await create_user()
        video = await create_video(client, owner)
        body = multipart_body("video", "notes.txt", "text/plain", b"x" * (8 << 20))
        sent: list[int] = []

        resp = await upload_video_chunked(client, intruder, video["id"], body, sent)

        assert resp.status_code == 403
        assert temp_files == []
        assert sum(sent) < len(body)
        assert media_processor.transcoded == []
        assert os.listdir(staging_dir) == []

    @pytest.mark.asyncio
    async def test_unsupported_type_is_rejected_before_any_file(
        self, client, create_user, storage_backend, temp_files
    ) -> None:
        _, token = await create_user()
        video = await create_video(client, token)
        body = multipart_body("video", "notes.txt", "text/plain", b"x" * (2 << 20))
        sent: list[int] = []

        resp = await upload_video_chunked(client, token, video["id"], body, sent)

        assert resp.status_code == 400
        assert temp_files == []
        assert sum(sent) < len(body)
        assert storage_backend.objects == {}

    @pytest.mark.asyncio
    async def test_oversized_body_is_cut_off(
        self, client, create_user, storage_backend, media_processor, staging_dir, monkeypatch
    ) -> None:
        monkeypatch.setattr(settings, "MAX_VIDEO_UPLOAD_BYTES", 256 * 1024)
        _, token = await create_user()
        video = await create_video(client, token)
        body = multipart_body("video", "clip.mp4", "video/mp4", MP4_BYTES * 512)
        sent: list[int] = []

        resp = await upload_video_chunked(client, token, video["id"], body, sent)

        assert resp.status_code == 413
        assert sum(sent) < len(body)
        assert media_processor.transcoded == []
        assert storage_backend.objects == {}
        assert os.listdir(staging_dir) == []

    @pytest.mark.asyncio
    async def test_owner_upload_succeeds(
        self, client, create_user, storage_backend, staging_dir
    ) -> None:
        _, token = await create_user()
        video = await create_video(client, token)
        body = multipart_body("video", "clip.mp4", "video/mp4", MP4_BYTES * 64)

        resp = await upload_video_chunked(client, token, video["id"], body, [])

        assert resp.status_code == 200, resp.text
        (stored,) = storage_backend.objects.values()
        assert stored == MP4_BYTES * 64
        assert os.listdir(staging_dir) == []


class TestThumbnailUpload:
    """Thumbnails are stored as objects and signed on read like videos."""

    @pytest.mark.asyncio
    async def test_png_thumbnail_is_stored_and_signed(
        self, client, create_user, storage_backend, staging_dir
    ) -> None:
        _, token = await create_user()
        video = await create_video(client, token)

        resp = await client.post(
            f"/api/thumbnail_upload/{video['id']}",
            files={"thumbnail": ("thumb.png", PNG_BYTES, "image/png")},
            headers=auth(token),
        )

        assert resp.status_code == 200, resp.text
        (bucket, key), data = next(iter(storage_backend.objects.items()))
        assert key.startswith("thumbnails/")
        assert key.endswith(".png")
        assert data == PNG_BYTES
        assert resp.json()["thumbnail_url"].startswith(f"https://{bucket}.s3.test/{key}?")
        assert os.listdir(staging_dir) == []

    @pytest.mark.asyncio
    async def test_gif_thumbnail_is_rejected(self, client, create_user, storage_backend) -> None:
        _, token = await create_user()
        video = await create_video(client, token)

        resp = await client.post(
            f"/api/thumbnail_upload/{video['id']}",
            files={"thumbnail": ("thumb.gif", b"GIF89a", "image/gif")},
            headers=auth(token),
        )

        assert resp.status_code == 400
        assert storage_backend.objects == {}

    @pytest.mark.asyncio
    async def test_oversized_thumbnail_is_rejected(
        self, client, create_user, storage_backend, monkeypatch
    ) -> None:
        monkeypatch.setattr(settings, "MAX_THUMBNAIL_UPLOAD_BYTES", 1024)
        _, token = await create_user()
        video = await create_video(client, token)

        resp = await client.post(
            f"/api/thumbnail_upload/{video['id']}",
            files={"thumbnail": ("thumb.png", PNG_BYTES * 8, "image/png")},
            headers=auth(token),
        )

        assert resp.status_code == 413
        assert storage_backend.objects == {}


class TestSignedReads:
    """Stored references become presigned URLs on every read."""

    @pytest.mark.asyncio
    async def test_concurrent_reads_get_signed_urls_for_same_object(
        self, client, create_user, storage_backend
    ) -> None:
        _, token = await create_user()
        video = await create_video(client, token)
        assert (await upload_video(client, token, video["id"])).status_code == 200
        (bucket, key) = next(iter(storage_backend.objects))
        storage_backend.presign_calls.clear()

        first, second = await asyncio.gather(
            client.get(f"/api/videos/{video['id']}"),
            client.get(f"/api/videos/{video['id']}"),
        )

        assert first.status_code == 200
        assert second.status_code == 200
        for resp in (first, second):
            url = urlparse(resp.json()["video_url"])
            assert url.path == f"/{key}"
            assert parse_qs(url.query)["X-Amz-Expires"] == [str(24 * 60 * 60)]
        assert storage_backend.presign_calls == [(bucket, key, 86400)] * 2

    @pytest.mark.asyncio
    async def test_signing_failure_returns_unsigned_record(
        self, client, create_user, storage_backend
    ) -> None:
        _, token = await create_user()
        video = await create_video(client, token)
        assert (await upload_video(client, token, video["id"])).status_code == 200
        (bucket, key) = next(iter(storage_backend.objects))
        storage_backend.fail_presign = True

        resp = await client.get(f"/api/videos/{video['id']}")

        assert resp.status_code == 200
        assert resp.json()["video_url"] == f"{bucket},{key}"

    @pytest.mark.asyncio
    async def test_list_signs_every_video(self, client, create_user, storage_backend) -> None:
        _, token = await create_user()
        for title in ("one", "two"):
            video = await create_video(client, token, title)
            assert (await upload_video(client, token, video["id"])).status_code == 200

        resp = await client.get("/api/videos", headers=auth(token))

        assert resp.status_code == 200
        assert all(v["video_url"].startswith("https://") for v in resp.json())
