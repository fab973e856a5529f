"""Request-scoped temporary files for uploaded media.

External tools need real file paths, so uploads are copied to disk before
processing. A StagingArea owns every file it creates or is handed, and
removes all of them when the request is done, whether it succeeded or not.
"""

import logging
import os
import tempfile
from typing import AsyncIterable, Optional

from fastapi.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)


class StagingError(Exception):
    """Raised when an upload cannot be written to local disk."""

    pass


class UploadTooLargeError(StagingError):
    """Raised when an upload exceeds the size limit for its endpoint."""

    def __init__(self, max_bytes: int):
        self.max_bytes = max_bytes
        super().__init__(f"Upload exceeds maximum size of {max_bytes} bytes")


class StagingArea:
    """Owner of the temporary files created while handling one request.

    Usage:
        with StagingArea() as staging:
            path = await staging.stage(upload.chunks(), suffix=".mp4", max_bytes=limit)
            ...
        # every staged or tracked file is gone here
    """

    def __init__(self, directory: Optional[str] = None, prefix: str = "tubely-upload-"):
        """Initialize an empty staging area.

        Args:
            directory: Where temporary files are created (system default if None)
            prefix: Filename prefix for staged files
        """
        self.directory = directory
        self.prefix = prefix
        self._paths: list[str] = []

    def __enter__(self) -> "StagingArea":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()

    @property
    def paths(self) -> list[str]:
        """Paths currently owned by this area."""
        return list(self._paths)

    async def stage(
        self,
        chunks: AsyncIterable[bytes],
        suffix: str = "",
        max_bytes: Optional[int] = None,
    ) -> str:
        """Copy a byte stream verbatim into a new temporary file.

        Args:
            chunks: Bytes of unknown total length, e.g. a request body
            suffix: Filename suffix, e.g. ".mp4"
            max_bytes: Reject the upload once more than this many bytes arrive

        Returns:
            Path of the staged file

        Raises:
            UploadTooLargeError: If the stream is longer than max_bytes
            StagingError: If the file cannot be created or written
        """
        try:
            fd, path = tempfile.mkstemp(prefix=self.prefix, suffix=suffix, dir=self.directory)
        except OSError as e:
            raise StagingError(f"Could not create temporary file: {e}") from e

        self._paths.append(path)

        written = 0
        try:
            with os.fdopen(fd, "wb") as out:
                async for chunk in chunks:
                    written += len(chunk)
                    if max_bytes is not None and written > max_bytes:
                        raise UploadTooLargeError(max_bytes)
                    await run_in_threadpool(out.write, chunk)
        except UploadTooLargeError:
            self.discard(path)
            raise
        except OSError as e:
            self.discard(path)
            raise StagingError(f"Failed to stage upload: {e}") from e

        logger.debug("Staged upload", extra={"path": path, "size": written})
        return path

    def track(self, path: str) -> str:
        """Take ownership of a file created by someone else (e.g. ffmpeg output)."""
        if path not in self._paths:
            self._paths.append(path)
        return path

    def discard(self, path: str) -> None:
        """Remove one owned file now instead of at cleanup."""
        _remove_quietly(path)
        if path in self._paths:
            self._paths.remove(path)

    def cleanup(self) -> None:
        """Remove every owned file. Safe to call more than once."""
        for path in self._paths:
            _remove_quietly(path)
        self._paths.clear()


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError:
        logger.warning("Failed to remove temporary file", extra={"path": path}, exc_info=True)
