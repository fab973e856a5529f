"""Video module.

Video records, media type rules, storage references and the ingestion
pipeline that attaches uploaded media to records.
"""

from tubely.modules.video.media import (
    THUMBNAIL_MEDIA_TYPES,
    VIDEO_MEDIA_TYPES,
    UnsupportedMediaTypeError,
    build_object_key,
    validate_media_type,
)
from tubely.modules.video.models import Video
from tubely.modules.video.references import InvalidStorageReferenceError, StorageReference
from tubely.modules.video.repository import VideoRepository
from tubely.modules.video.router import router as video_router
from tubely.modules.video.service import (
    MetadataUpdateError,
    VideoAccessDeniedError,
    VideoNotFoundError,
    VideoService,
    VideoServiceError,
    get_media_processor,
)
from tubely.modules.video.uploads import MultipartUpload, UploadFormError

__all__ = [
    # Models
    "Video",
    # Media types and keys
    "VIDEO_MEDIA_TYPES",
    "THUMBNAIL_MEDIA_TYPES",
    "UnsupportedMediaTypeError",
    "validate_media_type",
    "build_object_key",
    # References
    "StorageReference",
    "InvalidStorageReferenceError",
    # Repository
    "VideoRepository",
    # Service
    "VideoService",
    "VideoServiceError",
    "VideoNotFoundError",
    "VideoAccessDeniedError",
    "MetadataUpdateError",
    "get_media_processor",
    # Uploads
    "MultipartUpload",
    "UploadFormError",
    # Router
    "video_router",
]
