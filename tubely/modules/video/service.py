"""Video service for business logic.

Owns the ingestion pipeline for uploaded media:

    ownership -> media type -> stage -> fast-start rewrite -> probe
    -> object key -> upload -> metadata update

and the read path that turns stored references into presigned URLs.
Blocking work (file copies, ffmpeg, boto3) runs in the threadpool.
"""

import logging
import time
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tubely.core.config import Settings, settings
from tubely.core.logging import log_error, log_info, log_warning, video_context
from tubely.core.metrics import SIGNED_URL_FAILURES_TOTAL, observe_stage, record_upload
from tubely.core.storage import Storage, StorageError
from tubely.modules.transcoding.ffmpeg import (
    FFmpegProcessor,
    MediaProcessor,
    get_video_orientation,
    processed_output_path,
)
from tubely.modules.transcoding.staging import StagingArea, UploadTooLargeError
from tubely.modules.video.media import (
    THUMBNAIL_KEY_PREFIX,
    THUMBNAIL_MEDIA_TYPES,
    VIDEO_MEDIA_TYPES,
    UnsupportedMediaTypeError,
    build_object_key,
    extension_for,
    validate_media_type,
)
from tubely.modules.video.models import Video
from tubely.modules.video.references import InvalidStorageReferenceError, StorageReference
from tubely.modules.video.repository import VideoRepository
from tubely.modules.video.schemas import VideoCreate, VideoResponse
from tubely.modules.video.uploads import MultipartUpload, UploadFormError

logger = logging.getLogger(__name__)

VIDEO_KIND = "video"
THUMBNAIL_KIND = "thumbnail"


class VideoServiceError(Exception):
    """Base exception for video service errors."""

    pass


class VideoNotFoundError(VideoServiceError):
    """Raised when video is not found."""

    pass


class VideoAccessDeniedError(VideoServiceError):
    """Raised when the caller does not own the video."""

    pass


class MetadataUpdateError(VideoServiceError):
    """Raised when an uploaded object could not be recorded on its video."""

    pass


# Client-side failures, counted as rejected rather than failed uploads
_REJECTIONS = (
    VideoNotFoundError,
    VideoAccessDeniedError,
    UnsupportedMediaTypeError,
    UploadTooLargeError,
    UploadFormError,
)


@contextmanager
def _timed(stage: str) -> Iterator[None]:
    start = time.perf_counter()
    try:
        yield
    finally:
        observe_stage(stage, time.perf_counter() - start)


class VideoService:
    """Service for video records and their media."""

    def __init__(
        self,
        session: AsyncSession,
        storage: Storage,
        processor: MediaProcessor,
        config: Settings = settings,
    ):
        """Initialize service.

        Args:
            session: Async SQLAlchemy session
            storage: Object store that media is uploaded to
            processor: Media tools used for the rewrite and probe steps
            config: Settings supplying limits, temp dir and URL lifetime
        """
        self.session = session
        self.repo = VideoRepository(session)
        self.storage = storage
        self.processor = processor
        self.config = config

    # ============================================
    # Records
    # ============================================

    async def create_video(self, user_id: uuid.UUID, request: VideoCreate) -> Video:
        video = await self.repo.create(
            user_id=user_id,
            title=request.title,
            description=request.description,
        )
        log_info(logger, "Video created", video_id=str(video.id), user_id=str(user_id))
        return video

    async def get_video(self, video_id: uuid.UUID) -> Video:
        """Get a video by ID.

        Raises:
            VideoNotFoundError: If no video has this ID
        """
        video = await self.repo.get_by_id(video_id)
        if video is None:
            raise VideoNotFoundError(f"Video {video_id} not found")
        return video

    async def get_owned_video(self, video_id: uuid.UUID, user_id: uuid.UUID) -> Video:
        """Get a video and check that ``user_id`` owns it.

        Raises:
            VideoNotFoundError: If no video has this ID
            VideoAccessDeniedError: If the video belongs to someone else
        """
        video = await self.get_video(video_id)
        if not video.is_owned_by(user_id):
            raise VideoAccessDeniedError("You don't own this video")
        return video

    async def list_videos(self, user_id: uuid.UUID) -> list[Video]:
        return await self.repo.list_by_user(user_id)

    async def delete_video(self, video_id: uuid.UUID, user_id: uuid.UUID) -> None:
        """Delete a video record owned by ``user_id``."""
        video = await self.get_owned_video(video_id, user_id)
        await self.repo.delete(video)
        log_info(logger, "Video deleted", video_id=str(video_id), user_id=str(user_id))

    # ============================================
    # Uploads
    # ============================================

    async def upload_thumbnail(
        self,
        video_id: uuid.UUID,
        user_id: uuid.UUID,
        upload: MultipartUpload,
    ) -> Video:
        """Store an image as the video's thumbnail.

        Args:
            video_id: Video to attach the thumbnail to
            user_id: Authenticated caller
            upload: Unread multipart field holding the image

        Returns:
            Video: Updated video with its new thumbnail reference

        Raises:
            VideoNotFoundError, VideoAccessDeniedError,
            UnsupportedMediaTypeError, UploadTooLargeError,
            UploadFormError: Client errors
            StagingError, StorageError, MetadataUpdateError: Server errors
        """
        with video_context(video_id):
            try:
                video = await self._ingest_thumbnail(video_id, user_id, upload)
            except _REJECTIONS:
                record_upload(THUMBNAIL_KIND, "rejected")
                raise
            except Exception:
                record_upload(THUMBNAIL_KIND, "failed")
                raise
        record_upload(THUMBNAIL_KIND, "success")
        return video

    async def upload_video(
        self,
        video_id: uuid.UUID,
        user_id: uuid.UUID,
        upload: MultipartUpload,
    ) -> Video:
        """Run an uploaded MP4 through the ingestion pipeline.

        Ownership is checked before the request body is read, and the
        part's media type before anything touches disk.
        Every temporary file is removed before this returns, whatever the
        outcome.

        Returns:
            Video: Updated video whose ``video_url`` references the new object

        Raises:
            VideoNotFoundError, VideoAccessDeniedError,
            UnsupportedMediaTypeError, UploadTooLargeError,
            UploadFormError: Client errors
            StagingError, TranscodeError, ProbeError, StorageError,
            MetadataUpdateError: Server errors
        """
        with video_context(video_id):
            try:
                video = await self._ingest_video(video_id, user_id, upload)
            except _REJECTIONS:
                record_upload(VIDEO_KIND, "rejected")
                raise
            except Exception:
                record_upload(VIDEO_KIND, "failed")
                raise
        record_upload(VIDEO_KIND, "success")
        return video

    async def _ingest_thumbnail(
        self,
        video_id: uuid.UUID,
        user_id: uuid.UUID,
        upload: MultipartUpload,
    ) -> Video:
        video = await self.get_owned_video(video_id, user_id)
        await upload.open()
        media_type = validate_media_type(upload.content_type, THUMBNAIL_MEDIA_TYPES)

        with StagingArea(directory=self.config.UPLOAD_TEMP_DIR) as staging:
            with _timed("stage"):
                staged_path = await staging.stage(
                    upload.chunks(),
                    "." + extension_for(media_type),
                    self.config.MAX_THUMBNAIL_UPLOAD_BYTES,
                )

            key = build_object_key(media_type, prefix=THUMBNAIL_KEY_PREFIX)
            reference = await self._upload(staged_path, key, media_type)

        return await self._attach(video, "thumbnail_url", reference)

    async def _ingest_video(
        self,
        video_id: uuid.UUID,
        user_id: uuid.UUID,
        upload: MultipartUpload,
    ) -> Video:
        video = await self.get_owned_video(video_id, user_id)
        await upload.open()
        media_type = validate_media_type(upload.content_type, VIDEO_MEDIA_TYPES)
        log_info(logger, "Uploading video", user_id=str(user_id))

        with StagingArea(directory=self.config.UPLOAD_TEMP_DIR) as staging:
            with _timed("stage"):
                staged_path = await staging.stage(
                    upload.chunks(),
                    "." + extension_for(media_type),
                    self.config.MAX_VIDEO_UPLOAD_BYTES,
                )
            log_info(logger, "Video staged")

            # ffmpeg may leave a partial file behind when it fails
            staging.track(processed_output_path(staged_path))
            with _timed("transcode"):
                processed_path = await run_in_threadpool(
                    self.processor.process_for_fast_start, staged_path
                )
            staging.track(processed_path)
            staging.discard(staged_path)
            log_info(logger, "Video processed for fast start")

            with _timed("probe"):
                orientation = await run_in_threadpool(
                    get_video_orientation, self.processor, processed_path
                )
            log_info(logger, "Video orientation detected", orientation=orientation.value)

            key = build_object_key(media_type, orientation=orientation)
            reference = await self._upload(processed_path, key, media_type)

        return await self._attach(video, "video_url", reference)

    async def _upload(
        self,
        path: str,
        key: str,
        media_type: str,
    ) -> StorageReference:
        with _timed("upload"):
            result = await run_in_threadpool(self.storage.upload, path, key, media_type)

        if not result.success:
            raise StorageError(f"Failed to upload {key}: {result.error_message}")

        log_info(
            logger,
            "Media uploaded",
            bucket=result.bucket,
            key=result.key,
            size=result.file_size,
        )
        return StorageReference(bucket=result.bucket, key=result.key)

    async def _attach(self, video: Video, field: str, reference: StorageReference) -> Video:
        """Record an uploaded object on the video.

        If the record cannot be saved the object is deleted again, so no
        upload outlives a failed request. A previously attached object is
        deleted once the new reference is committed.
        """
        video_id = video.id
        previous = getattr(video, field)
        try:
            with _timed("metadata"):
                await self.repo.update(video, **{field: str(reference)})
                await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            log_error(
                logger,
                "Failed to update video metadata",
                exception=e,
                video_id=str(video_id),
                key=reference.key,
            )
            await self._delete_object(reference)
            raise MetadataUpdateError(f"Couldn't update video {video_id}") from e

        log_info(logger, "Video metadata updated", video_id=str(video_id), field=field)

        if previous and previous != str(reference):
            try:
                await self._delete_object(StorageReference.parse(previous))
            except InvalidStorageReferenceError:
                log_warning(
                    logger,
                    "Replaced media has an invalid storage reference",
                    video_id=str(video_id),
                    reference=previous,
                )
        return video

    async def _delete_object(self, reference: StorageReference) -> None:
        deleted = await run_in_threadpool(self.storage.delete, reference.key, reference.bucket)
        if not deleted:
            log_warning(
                logger,
                "Failed to delete stored object",
                bucket=reference.bucket,
                key=reference.key,
            )

    # ============================================
    # Signed URLs
    # ============================================

    async def sign_video(self, video: Video) -> VideoResponse:
        """Build the client view of a video with presigned media URLs.

        A reference that cannot be signed is returned as stored and a
        warning is logged; this never raises for signing problems.
        """
        response = VideoResponse.model_validate(video)
        return response.model_copy(update={
            "video_url": await self._sign(video.id, video.video_url),
            "thumbnail_url": await self._sign(video.id, video.thumbnail_url),
        })

    async def sign_videos(self, videos: list[Video]) -> list[VideoResponse]:
        return [await self.sign_video(video) for video in videos]

    async def _sign(self, video_id: uuid.UUID, value: Optional[str]) -> Optional[str]:
        if not value:
            return value

        try:
            reference = StorageReference.parse(value)
            return await run_in_threadpool(
                self.storage.generate_presigned_url,
                reference.bucket,
                reference.key,
                self.config.SIGNED_URL_EXPIRE_SECONDS,
            )
        except (InvalidStorageReferenceError, StorageError) as e:
            SIGNED_URL_FAILURES_TOTAL.inc()
            log_warning(
                logger,
                "Couldn't sign media URL, returning stored reference",
                video_id=str(video_id),
                reference=value,
                error=str(e),
            )
            return value


def get_media_processor() -> MediaProcessor:
    """Get the ffmpeg-backed media processor (FastAPI dependency)."""
    return FFmpegProcessor(settings.FFMPEG_PATH, settings.FFPROBE_PATH)
