"""Media type validation and object key generation for uploads."""

import secrets
from typing import Optional

from tubely.modules.transcoding.ffmpeg import Orientation

VIDEO_MEDIA_TYPES = frozenset({"video/mp4"})
THUMBNAIL_MEDIA_TYPES = frozenset({"image/jpeg", "image/png"})

MEDIA_TYPE_EXTENSIONS = {
    "video/mp4": "mp4",
    "image/jpeg": "jpg",
    "image/png": "png",
}

THUMBNAIL_KEY_PREFIX = "thumbnails"
KEY_TOKEN_BYTES = 32


class UnsupportedMediaTypeError(ValueError):
    """Raised when an upload's content type is missing or not allowed."""

    pass


def parse_media_type(content_type: Optional[str]) -> str:
    """Extract the base media type from a Content-Type value.

    Parameters such as ``; charset=utf-8`` are dropped and the result is
    lower-cased.

    Raises:
        UnsupportedMediaTypeError: If the value is absent or unparsable
    """
    if content_type is None or not content_type.strip():
        raise UnsupportedMediaTypeError("Missing Content-Type")

    media_type = content_type.split(";", 1)[0].strip().lower()
    maintype, sep, subtype = media_type.partition("/")
    if not sep or not maintype or not subtype or "/" in subtype:
        raise UnsupportedMediaTypeError(f"Unparsable Content-Type: {content_type!r}")
    if any(c.isspace() for c in media_type):
        raise UnsupportedMediaTypeError(f"Unparsable Content-Type: {content_type!r}")

    return media_type


def validate_media_type(content_type: Optional[str], allowed: frozenset[str]) -> str:
    """Parse a Content-Type and check it against an allow-list.

    Args:
        content_type: Raw header value from the upload part
        allowed: Accepted base media types

    Returns:
        The accepted base media type

    Raises:
        UnsupportedMediaTypeError: If the type is missing, unparsable or
            not in ``allowed``
    """
    media_type = parse_media_type(content_type)
    if media_type not in allowed:
        raise UnsupportedMediaTypeError(
            f"Unsupported media type {media_type!r}, expected one of {', '.join(sorted(allowed))}"
        )
    return media_type


def extension_for(media_type: str) -> str:
    """File extension for an accepted media type."""
    try:
        return MEDIA_TYPE_EXTENSIONS[media_type]
    except KeyError:
        raise UnsupportedMediaTypeError(f"No extension known for {media_type!r}") from None


def build_object_key(
    media_type: str,
    orientation: Optional[Orientation] = None,
    prefix: Optional[str] = None,
) -> str:
    """Generate a fresh object key.

    Videos are namespaced by orientation (``landscape/<token>.mp4``),
    thumbnails by a fixed prefix (``thumbnails/<token>.png``). The token
    carries 256 random bits, so keys are never reused.
    """
    namespace = orientation.value if orientation is not None else prefix
    name = f"{secrets.token_urlsafe(KEY_TOKEN_BYTES)}.{extension_for(media_type)}"
    return f"{namespace}/{name}" if namespace else name
