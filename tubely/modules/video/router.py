"""Video API router.

Implements REST endpoints for video records and media uploads.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from tubely.core.config import settings
from tubely.core.database import get_db
from tubely.core.logging import log_error
from tubely.core.storage import Storage, StorageError, get_storage
from tubely.modules.auth.jwt import get_current_user_id
from tubely.modules.transcoding.ffmpeg import MediaProcessingError, MediaProcessor
from tubely.modules.transcoding.staging import StagingError, UploadTooLargeError
from tubely.modules.video.media import UnsupportedMediaTypeError
from tubely.modules.video.schemas import VideoCreate, VideoResponse
from tubely.modules.video.service import (
    MetadataUpdateError,
    VideoAccessDeniedError,
    VideoNotFoundError,
    VideoService,
    get_media_processor,
)
from tubely.modules.video.uploads import MultipartUpload, UploadFormError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["videos"])

THUMBNAIL_FIELD = "thumbnail"
VIDEO_FIELD = "video"


def get_video_service(
    db: AsyncSession = Depends(get_db),
    storage: Storage = Depends(get_storage),
    processor: MediaProcessor = Depends(get_media_processor),
) -> VideoService:
    return VideoService(db, storage, processor, settings)


def parse_video_id(video_id: str) -> uuid.UUID:
    """Path parameter parser that answers 400 rather than 422 for bad IDs."""
    try:
        return uuid.UUID(video_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid video ID")


def _to_http_exception(error: Exception, video_id: uuid.UUID) -> HTTPException:
    """Map a service failure to its HTTP response."""
    if isinstance(error, VideoNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, VideoAccessDeniedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(error))
    if isinstance(error, (UnsupportedMediaTypeError, UploadFormError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    if isinstance(error, UploadTooLargeError):
        return HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=str(error)
        )

    if isinstance(error, StagingError):
        detail = "Couldn't save upload"
    elif isinstance(error, MediaProcessingError):
        detail = "Couldn't process video"
    elif isinstance(error, StorageError):
        detail = "Couldn't upload file to storage"
    elif isinstance(error, MetadataUpdateError):
        detail = "Couldn't update video"
    else:
        detail = "Internal server error"

    log_error(logger, detail, exception=error, video_id=str(video_id))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


def _check_content_length(request: Request, max_bytes: int) -> None:
    """Reject a body that declares itself too large before reading it."""
    declared = request.headers.get("content-length")
    if declared is None:
        return
    try:
        length = int(declared)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid Content-Length")
    if length > max_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Upload exceeds maximum size of {max_bytes} bytes",
        )


@router.post("/videos", response_model=VideoResponse, status_code=status.HTTP_201_CREATED)
async def create_video(
    payload: VideoCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: VideoService = Depends(get_video_service),
):
    """Create a video record. Media is attached by the upload endpoints."""
    video = await service.create_video(user_id, payload)
    return await service.sign_video(video)


@router.get("/videos", response_model=list[VideoResponse])
async def list_videos(
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: VideoService = Depends(get_video_service),
):
    """List the caller's videos with presigned media URLs."""
    videos = await service.list_videos(user_id)
    return await service.sign_videos(videos)


@router.get("/videos/{video_id}", response_model=VideoResponse)
async def get_video(
    video_id: uuid.UUID = Depends(parse_video_id),
    service: VideoService = Depends(get_video_service),
):
    """Get one video with presigned media URLs."""
    try:
        video = await service.get_video(video_id)
    except VideoNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return await service.sign_video(video)


@router.delete("/videos/{video_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_video(
    video_id: uuid.UUID = Depends(parse_video_id),
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: VideoService = Depends(get_video_service),
):
    """Delete a video record. Only its owner may do this."""
    try:
        await service.delete_video(video_id, user_id)
    except (VideoNotFoundError, VideoAccessDeniedError) as e:
        raise _to_http_exception(e, video_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/thumbnail_upload/{video_id}", response_model=VideoResponse)
async def upload_thumbnail(
    request: Request,
    video_id: uuid.UUID = Depends(parse_video_id),
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: VideoService = Depends(get_video_service),
):
    """Attach a JPEG or PNG thumbnail sent as multipart field ``thumbnail``."""
    _check_content_length(request, settings.MAX_THUMBNAIL_UPLOAD_BYTES)

    upload = MultipartUpload(request, THUMBNAIL_FIELD, settings.MAX_THUMBNAIL_UPLOAD_BYTES)
    try:
        video = await service.upload_thumbnail(video_id, user_id, upload)
    except Exception as e:
        raise _to_http_exception(e, video_id) from e

    return await service.sign_video(video)


@router.post("/video_upload/{video_id}", response_model=VideoResponse)
async def upload_video(
    request: Request,
    video_id: uuid.UUID = Depends(parse_video_id),
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: VideoService = Depends(get_video_service),
):
    """Upload an MP4 sent as multipart field ``video``.

    The file is rewritten for fast start, classified by orientation and
    stored under ``<orientation>/<random>.mp4``.
    """
    _check_content_length(request, settings.MAX_VIDEO_UPLOAD_BYTES)

    upload = MultipartUpload(request, VIDEO_FIELD, settings.MAX_VIDEO_UPLOAD_BYTES)
    try:
        video = await service.upload_video(video_id, user_id, upload)
    except Exception as e:
        raise _to_http_exception(e, video_id) from e

    return await service.sign_video(video)
