"""
Services for the Files API
"""

import logging
import mimetypes
from pathlib import PurePosixPath
from typing import Any
from uuid import UUID

from fastapi import HTTPException, status
from sqlmodel import Session, select

from api.files.lifecycle import FileLifecycle
from api.files.models import (
    FileRecord,
    FileRecordCreate,
    FileRecordUpdate,
    OwnerRef,
)
from core.config import get_settings
from core.storage import Contents

logger = logging.getLogger(__name__)


def detect_mimetype(filename: str) -> str:
    """
    Guess the MIME type from the filename extension.
    Returns 'application/octet-stream' if it cannot be determined.
    """
    mimetype, _ = mimetypes.guess_type(filename)
    if mimetype is None:
        return "application/octet-stream"
    return mimetype


def content_size(contents: Contents) -> int:
    """Size of contents in bytes, rewinding streams after measuring"""
    if isinstance(contents, str):
        return len(contents.encode("utf-8"))
    if isinstance(contents, (bytes, bytearray)):
        return len(contents)
    position = contents.tell()
    contents.seek(0, 2)
    size = contents.tell()
    contents.seek(position)
    return size


def safe_filename(filename: str | None) -> str:
    """
    Base name of a client supplied filename, with any directory part
    dropped.

    Raises:
        HTTPException: 400 if no usable name remains
    """
    name = PurePosixPath((filename or "").replace("\\", "/")).name
    if name in ("", ".", ".."):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid filename: {filename!r}"
        )
    return name


def _check_path_segment(field: str, value: str) -> None:
    if not value or value in (".", "..") or "/" in value or "\\" in value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {field}: {value!r}"
        )


def default_path(record: FileRecord) -> str:
    """
    Storage path used when none is given: <owner_type>/<owner_id>/<uuid>/<filename>

    Each part must be a single path segment, so distinct records never
    share a blob.

    Raises:
        HTTPException: 400 if a part is not a single path segment
    """
    _check_path_segment("owner_type", record.owner_type)
    _check_path_segment("owner_id", record.owner_id)
    _check_path_segment("filename", record.filename)
    return f"{record.owner_type}/{record.owner_id}/{record.uuid}/{record.filename}"


def create_file_record(session: Session, file_in: FileRecordCreate) -> FileRecord:
    """
    Persist a file record without storing any content.
    """
    record = FileRecord(**file_in.model_dump())
    record.filename = safe_filename(record.filename)
    if record.disk is None:
        record.disk = get_settings().FILE_DEFAULT_DISK
    if record.path is None:
        record.path = default_path(record)
    if record.mimetype is None:
        record.mimetype = detect_mimetype(record.filename)

    session.add(record)
    session.commit()
    session.refresh(record)
    return record


def get_file_by_uuid(session: Session, file_uuid: UUID) -> FileRecord:
    """
    Returns a single file by its uuid.
    Note: This is different from its internal "id".
    """
    record = session.exec(
        select(FileRecord).where(FileRecord.uuid == file_uuid)
    ).first()
    if not record:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"File with uuid '{file_uuid}' not found"
        )
    return record


def get_files_for_owner(session: Session, owner: OwnerRef) -> list[FileRecord]:
    """
    Files attached to the given owner, oldest first.
    """
    statement = (
        select(FileRecord)
        .where(FileRecord.owner_type == owner.owner_type)
        .where(FileRecord.owner_id == owner.owner_id)
        .order_by(FileRecord.id)
    )
    return list(session.exec(statement).all())


def update_file_record(
    session: Session,
    record: FileRecord,
    update_request: FileRecordUpdate,
) -> FileRecord:
    """Update only the fields that are provided"""
    for field, value in update_request.model_dump(exclude_unset=True).items():
        setattr(record, field, value)

    session.add(record)
    session.commit()
    session.refresh(record)
    return record


def attach_file(
    session: Session,
    lifecycle: FileLifecycle,
    owner: OwnerRef,
    filename: str,
    contents: Contents,
    disk: str | None = None,
    display_name: str | None = None,
    meta: dict[str, Any] | None = None,
    options: dict[str, Any] | None = None,
) -> FileRecord:
    """
    Store content for a new file and create its record.

    Content is stored first, then the record is persisted. If the
    database commit fails, the stored content is deleted again
    (best effort).

    Raises:
        HTTPException: 400 if the filename or owner cannot form a storage path
        HTTPException: 500 if the content could not be stored
    """
    filename = safe_filename(filename)
    record = FileRecord(
        owner_type=owner.owner_type,
        owner_id=owner.owner_id,
        disk=disk or get_settings().FILE_DEFAULT_DISK,
        filename=filename,
        display_name=display_name,
        mimetype=detect_mimetype(filename),
        size=content_size(contents),
        meta=meta,
    )
    record.path = default_path(record)

    logger.info("Storing file %s for %s:%s", record.path, owner.owner_type, owner.owner_id)
    store_options = {"mimetype": record.mimetype, **(options or {})}
    if not lifecycle.store(record, contents, store_options):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to store file content: {filename}"
        )

    try:
        session.add(record)
        session.commit()
    except Exception:
        logger.exception(
            "Database commit failed, rolling back stored content: %s:%s",
            record.disk,
            record.path,
        )
        session.rollback()
        if not lifecycle.storage(record).delete(record.path):
            logger.error("Failed to roll back stored content (orphaned): %s", record.path)
        raise

    session.refresh(record)
    logger.info("File record created: %s (ID: %d)", record.uuid, record.id)
    return record


def replace_file_content(
    session: Session,
    lifecycle: FileLifecycle,
    record: FileRecord,
    contents: Contents,
    filename: str | None = None,
    options: dict[str, Any] | None = None,
) -> FileRecord:
    """
    Overwrite the content of an existing file at its current path.

    Raises:
        HTTPException: 400 if the filename is not usable
        HTTPException: 500 if the content could not be stored
    """
    if filename:
        filename = safe_filename(filename)
    size = content_size(contents)
    mimetype = detect_mimetype(filename) if filename else record.mimetype

    store_options = {"mimetype": mimetype, **(options or {})}
    if not lifecycle.store(record, contents, store_options):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to store file content: {record.uuid}"
        )

    record.size = size
    record.mimetype = mimetype
    if filename:
        record.filename = filename
    session.add(record)
    session.commit()
    session.refresh(record)
    return record


def delete_file_record(
    session: Session,
    lifecycle: FileLifecycle,
    record: FileRecord,
) -> None:
    """
    Delete a file's content, then its record.

    If the content cannot be deleted the record is kept, so that no
    stored content is left without a record pointing at it.

    Raises:
        HTTPException: 409 if the stored content could not be deleted
    """
    if not lifecycle.delete(record):
        logger.error(
            "Failed to delete content for file %s, keeping record", record.uuid
        )
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Could not delete content of file '{record.uuid}'; the file was kept"
        )

    session.delete(record)
    session.commit()
    logger.info("File record deleted: %s", record.uuid)
