"""
Routes/endpoints for the Files API
"""

import json
from uuid import UUID

from fastapi import APIRouter, File, Form, HTTPException, Query, Request, Response, UploadFile, status

from api.files import services
from api.files.models import FileRecordPublic, FileRecordUpdate, OwnerRef
from api.files.responder import acceptable_content_types, wants_json
from core.deps import LifecycleDep, ResponderDep, SessionDep

router = APIRouter(prefix="/files", tags=["File Endpoints"])


def _parse_meta(meta: str | None) -> dict | None:
    if meta is None:
        return None
    try:
        parsed = json.loads(meta)
    except json.JSONDecodeError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"meta must be a JSON object: {exc.msg}"
        ) from exc
    if not isinstance(parsed, dict):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="meta must be a JSON object"
        )
    return parsed


@router.post(
    "",
    response_model=FileRecordPublic,
    status_code=status.HTTP_201_CREATED,
    tags=["File Endpoints"],
)
def upload_file(
    session: SessionDep,
    lifecycle: LifecycleDep,
    responder: ResponderDep,
    file: UploadFile = File(...),
    owner_type: str = Form(...),
    owner_id: str = Form(...),
    disk: str | None = Form(None),
    display_name: str | None = Form(None),
    meta: str | None = Form(None, description="JSON object of metadata"),
) -> FileRecordPublic:
    """
    Attach an uploaded file to an owner.
    """
    record = services.attach_file(
        session=session,
        lifecycle=lifecycle,
        owner=OwnerRef(owner_type=owner_type, owner_id=owner_id),
        filename=file.filename or "file",
        contents=file.file,
        disk=disk,
        display_name=display_name,
        meta=_parse_meta(meta),
    )
    return responder.serialize(record)


@router.get("", response_model=list[FileRecordPublic], tags=["File Endpoints"])
def list_files(
    session: SessionDep,
    responder: ResponderDep,
    owner_type: str = Query(..., description="Type of the owning entity"),
    owner_id: str = Query(..., description="Identifier of the owning entity"),
) -> list[FileRecordPublic]:
    """
    List the files attached to an owner.
    """
    records = services.get_files_for_owner(
        session, OwnerRef(owner_type=owner_type, owner_id=owner_id)
    )
    return [responder.serialize(record) for record in records]


@router.get("/{file_uuid}", tags=["File Endpoints"])
def get_file(
    file_uuid: UUID,
    request: Request,
    session: SessionDep,
    responder: ResponderDep,
) -> Response:
    """
    Returns a file, negotiated on the Accept header:

    - JSON types: the file's record
    - a type matching the file's mimetype: the content, inline
    - anything else: the content as an attachment
    """
    record = services.get_file_by_uuid(session, file_uuid)
    accept_types = acceptable_content_types(request.headers.get("accept"))
    return responder.respond_to(
        record,
        accept_types,
        prefer_json=wants_json(accept_types),
    )


@router.get("/{file_uuid}/download", tags=["File Endpoints"])
def download_file(
    file_uuid: UUID,
    session: SessionDep,
    responder: ResponderDep,
) -> Response:
    """
    Download a file as an attachment.
    """
    record = services.get_file_by_uuid(session, file_uuid)
    return responder.download(record)


@router.put("/{file_uuid}/content", response_model=FileRecordPublic, tags=["File Endpoints"])
def replace_file_content(
    file_uuid: UUID,
    session: SessionDep,
    lifecycle: LifecycleDep,
    responder: ResponderDep,
    file: UploadFile = File(...),
) -> FileRecordPublic:
    """
    Overwrite the content of a file.
    """
    record = services.get_file_by_uuid(session, file_uuid)
    record = services.replace_file_content(
        session=session,
        lifecycle=lifecycle,
        record=record,
        contents=file.file,
        filename=file.filename,
    )
    return responder.serialize(record)


@router.patch("/{file_uuid}", response_model=FileRecordPublic, tags=["File Endpoints"])
def update_file(
    file_uuid: UUID,
    update_request: FileRecordUpdate,
    session: SessionDep,
    responder: ResponderDep,
) -> FileRecordPublic:
    """
    Update a file's display name or metadata.
    """
    record = services.get_file_by_uuid(session, file_uuid)
    record = services.update_file_record(session, record, update_request)
    return responder.serialize(record)


@router.delete(
    "/{file_uuid}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["File Endpoints"],
)
def delete_file(
    file_uuid: UUID,
    session: SessionDep,
    lifecycle: LifecycleDep,
) -> None:
    """
    Delete a file's content and its record.
    """
    record = services.get_file_by_uuid(session, file_uuid)
    services.delete_file_record(session, lifecycle, record)
