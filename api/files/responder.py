"""
Content negotiation for file records.

A file is answered as JSON when the client asks for JSON, streamed
inline when one of the client's acceptable types matches the file's
mimetype, and otherwise forced to download as an attachment.
"""

import re
from collections.abc import Iterator, Sequence
from typing import BinaryIO
from urllib.parse import quote

from fastapi import status
from fastapi.responses import JSONResponse, Response, StreamingResponse
from starlette.background import BackgroundTask

from api.files.lifecycle import FileLifecycle
from api.files.models import FileRecord, FileRecordPublic
from core.storage import CHUNK_SIZE
from core.utils import ascii_fold, slugify

DEFAULT_MIMETYPE = "application/octet-stream"

# Characters allowed unquoted in a header parameter value
_TOKEN_RE = re.compile(r"^[a-z0-9!#$%&'*.^_`|~-]+$", re.IGNORECASE)


def acceptable_content_types(accept_header: str | None) -> list[str]:
    """
    Parse an Accept header into media types, most preferred first.

    Types are ordered by descending quality; ties keep header order
    and types with q=0 are dropped.

    >>> acceptable_content_types("text/html;q=0.8, image/*")
    ['image/*', 'text/html']
    """
    if not accept_header:
        return []

    weighted = []
    for position, item in enumerate(accept_header.split(",")):
        media_type, *params = [part.strip() for part in item.split(";")]
        if not media_type:
            continue
        quality = 1.0
        for param in params:
            name, _, value = param.partition("=")
            if name.strip().lower() == "q":
                try:
                    quality = float(value)
                except ValueError:
                    quality = 0.0
        if quality > 0:
            weighted.append((-quality, position, media_type))

    return [media_type for _, _, media_type in sorted(weighted)]


def wants_json(accept_types: Sequence[str]) -> bool:
    """True when the most preferred type is a JSON type"""
    if not accept_types:
        return False
    first = accept_types[0]
    return "/json" in first or "+json" in first


def _quote_param(value: str) -> str:
    if _TOKEN_RE.match(value):
        return value
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def content_disposition(disposition: str, filename: str, default_stem: str = "file") -> str:
    """
    Build a Content-Disposition header carrying the real filename as an
    RFC 5987 `filename*` parameter and an ASCII fallback for clients
    that cannot decode it.

    When folding leaves nothing of the name before its extension, the
    fallback is `default_stem` plus the original extension.
    """
    fallback = ascii_fold(filename).replace("%", "").replace("/", "").replace("\\", "")
    stem, dot, extension = fallback.rpartition(".")
    if not dot:
        stem, extension = fallback, ""
    if fallback != filename and not stem.strip(" ."):
        fallback = f"{default_stem}{dot}{extension}"
    header = f"{disposition}; filename={_quote_param(fallback)}"
    if fallback != filename:
        header = f"{header}; filename*=utf-8''{quote(filename, safe='')}"
    return header


def _drain(stream: BinaryIO) -> Iterator[bytes]:
    """Pass bytes through from the stream, closing it on every exit path"""
    try:
        while True:
            chunk = stream.read(CHUNK_SIZE)
            if not chunk:
                break
            yield chunk
    finally:
        stream.close()


class ContentResponder:
    """Build HTTP responses for file records"""

    def __init__(self, lifecycle: FileLifecycle) -> None:
        self.lifecycle = lifecycle

    def serialize(self, record: FileRecord) -> FileRecordPublic:
        """Public representation including backend derived fields"""
        return FileRecordPublic(
            id=record.id,
            uuid=record.uuid,
            owner_type=record.owner_type,
            owner_id=record.owner_id,
            disk=record.disk,
            mimetype=record.mimetype,
            size=record.size,
            display_name=record.get_display_name(),
            path=record.path,
            filename=record.filename,
            extension=record.get_extension(),
            meta=record.meta,
            created_at=record.created_at,
            updated_at=record.updated_at,
            url=self.lifecycle.url(record),
            modified_at=self.lifecycle.modified_at(record),
        )

    def respond_to(
        self,
        record: FileRecord,
        accept_types: Sequence[str],
        prefer_json: bool = False,
    ) -> Response:
        """
        Negotiate the response for a file.

        Args:
            record: The file to answer with
            accept_types: Acceptable media types, most preferred first
            prefer_json: Answer with the record's fields instead of content

        Raises:
            BlobNotFoundError: If content is requested but missing
        """
        if prefer_json:
            return JSONResponse(content=self.serialize(record).model_dump(mode="json"))

        for accept_type in accept_types:
            if record.is_of_type(accept_type):
                return self.response(record)

        return self.download(record)

    def response(
        self,
        record: FileRecord,
        headers: dict[str, str] | None = None,
    ) -> StreamingResponse:
        """
        Stream the file content inline.

        The backend stream is opened before the response is built so a
        missing blob raises BlobNotFoundError instead of an empty body.
        """
        stream = self.lifecycle.read_stream(record)

        response_headers = {
            "Cache-Control": "must-revalidate, post-check=0, pre-check=0",
            "Content-Type": record.mimetype or DEFAULT_MIMETYPE,
        }
        if record.size is not None:
            response_headers["Content-Length"] = str(record.size)
        response_headers.update(headers or {})

        return StreamingResponse(
            _drain(stream),
            status_code=status.HTTP_200_OK,
            headers=response_headers,
            # Closes the stream even if the client disconnects before
            # the body generator starts
            background=BackgroundTask(stream.close),
        )

    def download(self, record: FileRecord) -> StreamingResponse:
        """Stream the file content as an attachment"""
        filename = record.filename or record.get_display_name()
        disposition = content_disposition(
            "attachment", filename, default_stem=slugify(record.get_display_name()) or "file"
        )
        return self.response(record, headers={"Content-Disposition": disposition})
