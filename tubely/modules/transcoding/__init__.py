"""Upload staging and ffmpeg-based media processing."""

from tubely.modules.transcoding.ffmpeg import (
    FFmpegProcessor,
    MediaProcessingError,
    MediaProcessor,
    Orientation,
    ProbeError,
    ProbeResult,
    StreamInfo,
    TranscodeError,
    classify_orientation,
    get_video_orientation,
)
from tubely.modules.transcoding.staging import StagingArea, StagingError, UploadTooLargeError

__all__ = [
    "FFmpegProcessor",
    "MediaProcessingError",
    "MediaProcessor",
    "Orientation",
    "ProbeError",
    "ProbeResult",
    "StreamInfo",
    "TranscodeError",
    "classify_orientation",
    "get_video_orientation",
    "StagingArea",
    "StagingError",
    "UploadTooLargeError",
]
