"""FFmpeg media processing.

Rewrites uploaded MP4s for progressive playback and probes their
dimensions to classify orientation. Both operations shell out to the
ffmpeg/ffprobe binaries behind the MediaProcessor interface so tests can
substitute an in-memory fake.
"""

import json
import logging
import math
import os
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

PROCESSED_SUFFIX = ".processing"

LANDSCAPE_RATIO = 1.778  # 16:9
PORTRAIT_RATIO = 0.563  # 9:16


class MediaProcessingError(Exception):
    """Base exception for external media tool failures."""

    pass


class TranscodeError(MediaProcessingError):
    """Raised when the re-encode step fails."""

    pass


class ProbeError(MediaProcessingError):
    """Raised when stream metadata cannot be read or interpreted."""

    pass


class Orientation(str, Enum):
    """Orientation bucket derived from a video's aspect ratio."""

    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"
    OTHER = "other"


@dataclass
class StreamInfo:
    """The subset of an ffprobe stream entry that we use."""
    index: int = 0
    codec_type: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass
class ProbeResult:
    """Parsed ffprobe output."""
    streams: list[StreamInfo] = field(default_factory=list)

    @classmethod
    def from_json(cls, raw: str) -> "ProbeResult":
        """Parse ``ffprobe -print_format json -show_streams`` output.

        Raises:
            ProbeError: If the output is not JSON or lists no streams
        """
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            raise ProbeError(f"Unparsable ffprobe output: {e}") from e

        if not isinstance(data, dict):
            raise ProbeError("Unexpected ffprobe output")

        streams = []
        for i, stream in enumerate(data.get("streams") or []):
            if not isinstance(stream, dict):
                continue
            streams.append(StreamInfo(
                index=stream.get("index", i),
                codec_type=stream.get("codec_type"),
                width=stream.get("width"),
                height=stream.get("height"),
            ))

        if not streams:
            raise ProbeError("Stream data is empty")

        return cls(streams=streams)

    def video_dimensions(self) -> tuple[int, int]:
        """Width and height of the first video stream.

        Without one, the first stream of any type that carries dimensions
        is used, since some containers omit or mislabel codec_type.

        Raises:
            ProbeError: If no stream carries dimensions
        """
        sized = [s for s in self.streams if s.width is not None and s.height is not None]
        if not sized:
            raise ProbeError("No video stream with dimensions found")

        stream = next((s for s in sized if s.codec_type == "video"), sized[0])
        return int(stream.width), int(stream.height)


def round_ratio(width: int, height: int) -> float:
    """Width/height rounded half-up to three decimal places.

    Half-up matters: 9:16 is exactly 0.5625 and must round to 0.563.
    """
    return math.floor(width / height * 1000 + 0.5) / 1000


def classify_orientation(width: int, height: int) -> Orientation:
    """Map video dimensions to an orientation bucket.

    Only exact 16:9 and 9:16 (after rounding) are recognised; anything
    else, including near misses, is OTHER.

    Args:
        width: Frame width in pixels
        height: Frame height in pixels

    Returns:
        Orientation bucket

    Raises:
        ProbeError: If either dimension is not positive
    """
    if width <= 0 or height <= 0:
        raise ProbeError(f"Invalid video dimensions {width}x{height}")

    ratio = round_ratio(width, height)
    if ratio == LANDSCAPE_RATIO:
        return Orientation.LANDSCAPE
    if ratio == PORTRAIT_RATIO:
        return Orientation.PORTRAIT
    return Orientation.OTHER


def processed_output_path(input_path: str) -> str:
    """Path the fast-start rewrite of ``input_path`` is written to."""
    return input_path + PROCESSED_SUFFIX


class MediaProcessor(ABC):
    """Interface over the external media tools."""

    @abstractmethod
    def process_for_fast_start(self, input_path: str) -> str:
        """Rewrite a video so its index sits at the start of the file.

        Returns:
            Path of the new file

        Raises:
            TranscodeError: If the rewrite fails
        """
        pass

    @abstractmethod
    def probe(self, input_path: str) -> ProbeResult:
        """Read stream metadata.

        Raises:
            ProbeError: If the file cannot be probed
        """
        pass


class FFmpegProcessor(MediaProcessor):
    """MediaProcessor backed by the ffmpeg and ffprobe binaries."""

    def __init__(self, ffmpeg_path: str = "ffmpeg", ffprobe_path: str = "ffprobe"):
        """Initialize processor.

        Args:
            ffmpeg_path: Path to ffmpeg binary
            ffprobe_path: Path to ffprobe binary
        """
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path

    def build_fast_start_command(self, input_path: str, output_path: str) -> list[str]:
        """Build the ffmpeg command for a fast-start rewrite.

        Codecs are copied unchanged; only the container layout changes.
        """
        return [
            self.ffmpeg_path,
            "-y",  # Overwrite output
            "-i", input_path,
            "-c", "copy",
            "-movflags", "faststart",
            "-f", "mp4",
            output_path,
        ]

    def build_probe_command(self, input_path: str) -> list[str]:
        return [
            self.ffprobe_path,
            "-v", "error",
            "-print_format", "json",
            "-show_streams",
            input_path,
        ]

    def process_for_fast_start(self, input_path: str) -> str:
        output_path = processed_output_path(input_path)
        cmd = self.build_fast_start_command(input_path, output_path)

        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise TranscodeError(f"Failed to run ffmpeg: {e}") from e

        if result.returncode != 0:
            raise TranscodeError(
                f"ffmpeg exited with status {result.returncode}: {result.stderr.strip()[-2000:]}"
            )

        if not os.path.exists(output_path):
            raise TranscodeError("ffmpeg reported success but produced no output file")

        logger.debug("Fast-start rewrite complete", extra={"output_path": output_path})
        return output_path

    def probe(self, input_path: str) -> ProbeResult:
        cmd = self.build_probe_command(input_path)

        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise ProbeError(f"Failed to run ffprobe: {e}") from e

        if result.returncode != 0:
            raise ProbeError(
                f"ffprobe exited with status {result.returncode}: {result.stderr.strip()[-2000:]}"
            )

        return ProbeResult.from_json(result.stdout)


def get_video_orientation(processor: MediaProcessor, input_path: str) -> Orientation:
    """Probe a file and classify its orientation.

    Raises:
        ProbeError: If probing fails or no usable video stream is found
    """
    width, height = processor.probe(input_path).video_dimensions()
    return classify_orientation(width, height)
