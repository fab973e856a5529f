"""Streaming reader for the file field of a multipart upload.

Uploads are parsed straight off the request stream instead of through
Starlette's form parser, which spools every part to a temporary file
before the handler runs. Reading this way means:

- nothing is read at all until the caller decides to ``open()`` the upload
- the part's declared Content-Type is known before any of its bytes are kept
- the body is capped by bytes actually received, Content-Length or not
"""

import logging
from collections import deque
from typing import AsyncIterator, Optional

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header
from starlette.requests import Request

from tubely.modules.transcoding.staging import UploadTooLargeError

logger = logging.getLogger(__name__)

MULTIPART_FORM_DATA = b"multipart/form-data"


class UploadFormError(Exception):
    """Raised when the request body is not a usable multipart upload."""

    pass


class MultipartUpload:
    """One file field of a multipart/form-data request, read as it arrives.

    Usage:
        upload = MultipartUpload(request, "video", max_bytes=limit)
        await upload.open()
        validate(upload.content_type)
        async for chunk in upload.chunks():
            ...

    Other fields in the form are skipped. If the field occurs more than
    once, the first file part wins.
    """

    def __init__(self, request: Request, field: str, max_bytes: int):
        self.field = field
        self.max_bytes = max_bytes
        self.content_type: Optional[str] = None
        self.filename: Optional[str] = None

        self._request = request
        self._body: Optional[AsyncIterator[bytes]] = None
        self._parser: Optional[MultipartParser] = None
        self._received = 0
        self._exhausted = False

        self._headers: dict[bytes, bytes] = {}
        self._header_field = b""
        self._header_value = b""

        self._found = False
        self._in_field = False
        self._field_done = False
        self._pending: deque[bytes] = deque()

    async def open(self) -> "MultipartUpload":
        """Read the body up to the end of the field's part headers.

        Raises:
            UploadFormError: If the body is not multipart or lacks the field
            UploadTooLargeError: If the body grows past max_bytes first
        """
        if self._parser is None:
            self._parser = self._create_parser()
            self._body = self._request.stream().__aiter__()

        while not self._found:
            if not await self._feed():
                raise UploadFormError(f"Missing form file {self.field!r}")
        return self

    async def chunks(self) -> AsyncIterator[bytes]:
        """Yield the field's bytes as they arrive. ``open()`` must come first."""
        if not self._found:
            raise UploadFormError(f"Upload {self.field!r} has not been opened")

        while True:
            while self._pending:
                yield self._pending.popleft()
            if self._field_done:
                return
            if not await self._feed():
                raise UploadFormError("Request body ended inside the uploaded file")

    def _create_parser(self) -> MultipartParser:
        content_type, params = parse_options_header(self._request.headers.get("content-type", ""))
        boundary = params.get(b"boundary")
        if content_type.strip().lower() != MULTIPART_FORM_DATA or not boundary:
            raise UploadFormError("Expected a multipart/form-data body")

        callbacks = {
            "on_part_begin": self._on_part_begin,
            "on_header_field": self._on_header_field,
            "on_header_value": self._on_header_value,
            "on_header_end": self._on_header_end,
            "on_headers_finished": self._on_headers_finished,
            "on_part_data": self._on_part_data,
            "on_part_end": self._on_part_end,
        }
        return MultipartParser(boundary, callbacks)

    async def _feed(self) -> bool:
        """Push the next chunk of the body through the parser.

        Returns False once the body is exhausted.
        """
        if self._exhausted:
            return False

        try:
            chunk = await self._body.__anext__()
        except StopAsyncIteration:
            self._exhausted = True
            self._parser.finalize()
            return False

        self._received += len(chunk)
        if self._received > self.max_bytes:
            logger.info(
                "Upload body over limit",
                extra={"field": self.field, "max_bytes": self.max_bytes},
            )
            raise UploadTooLargeError(self.max_bytes)

        try:
            self._parser.write(chunk)
        except MultipartParseError as e:
            raise UploadFormError(f"Malformed multipart body: {e}") from e
        return True

    # Parser callbacks

    def _on_part_begin(self) -> None:
        self._headers = {}

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def _on_header_end(self) -> None:
        self._headers[self._header_field.lower()] = self._header_value
        self._header_field = b""
        self._header_value = b""

    def _on_headers_finished(self) -> None:
        if self._found:
            return

        _, options = parse_options_header(self._headers.get(b"content-disposition", b""))
        if options.get(b"name") != self.field.encode() or b"filename" not in options:
            return

        self._found = True
        self._in_field = True
        self.filename = options[b"filename"].decode("utf-8", errors="replace")
        declared = self._headers.get(b"content-type")
        self.content_type = declared.decode("latin-1") if declared is not None else None

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        if self._in_field and end > start:
            self._pending.append(data[start:end])

    def _on_part_end(self) -> None:
        if self._in_field:
            self._in_field = False
            self._field_done = True
