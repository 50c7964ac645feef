"""
Models for the Files API

A file record links an owner (by type and id) to a blob on a named
storage disk. The owner reference is polymorphic: any entity can own
files without a foreign key constraint.
"""

from datetime import datetime
from pathlib import PurePosixPath
from typing import Any
from uuid import UUID, uuid4

from pydantic import ConfigDict
from sqlalchemy import JSON, BigInteger, CheckConstraint, Index, event, inspect, text
from sqlalchemy import select as sa_select
from sqlmodel import Column, Field, SQLModel

from core.utils import matches_pattern, slugify


class OwnerRef(SQLModel):
    """Opaque (type, id) reference to the entity owning a file"""

    owner_type: str
    owner_id: str

    model_config = ConfigDict(frozen=True)


class FileRecord(SQLModel, table=True):
    """
    Metadata record for a blob stored on a named disk.

    `uuid` is the external identifier used in URLs; `id` stays internal.
    `(disk, path)` addresses the blob, `filename` is the presented name.
    """
    __tablename__ = "file"
    __table_args__ = (
        Index("ix_file_owner", "owner_type", "owner_id"),
        CheckConstraint("size >= 0", name="ck_file_size_non_negative"),
    )

    id: int | None = Field(default=None, primary_key=True)
    uuid: UUID = Field(default_factory=uuid4, unique=True, index=True, nullable=False)
    owner_type: str = Field(max_length=255, nullable=False)
    owner_id: str = Field(max_length=255, nullable=False)
    disk: str | None = Field(default=None, max_length=100)
    path: str | None = Field(default=None, max_length=1024)
    filename: str | None = Field(default=None, max_length=255)
    display_name: str | None = Field(default=None, max_length=255)
    mimetype: str | None = Field(default=None, max_length=255)
    size: int | None = Field(default=None, sa_type=BigInteger)
    meta: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    created_at: datetime | None = Field(
        default=None,
        sa_column_kwargs={"server_default": text("CURRENT_TIMESTAMP")}
    )
    updated_at: datetime | None = Field(
        default=None,
        sa_column_kwargs={
            "server_default": text("CURRENT_TIMESTAMP"),
            "onupdate": text("CURRENT_TIMESTAMP"),
        }
    )

    model_config = ConfigDict(from_attributes=True)

    def get_owner(self) -> OwnerRef:
        return OwnerRef(owner_type=self.owner_type, owner_id=self.owner_id)

    def belongs_to(self, owner: OwnerRef) -> bool:
        return self.owner_type == owner.owner_type and self.owner_id == owner.owner_id

    def get_display_name(self) -> str:
        """
        Human label for the file.

        Falls back to a slug of the filename without its extension,
        e.g. 'My Report.PDF' -> 'my-report'. The stored column is
        never written by this method.
        """
        if self.display_name is not None:
            return self.display_name
        return slugify(PurePosixPath(self.filename or "").stem)

    def get_extension(self) -> str:
        """Extension without dot, lowercase"""
        return PurePosixPath(self.filename or "").suffix.lstrip(".").lower()

    def is_of_type(self, pattern: str) -> bool:
        """Check the mimetype against a pattern such as 'image/*'"""
        return matches_pattern(pattern, self.mimetype)


def is_persisted(record: FileRecord) -> bool:
    """True when the record has a database identity and was not deleted"""
    state = inspect(record)
    return state.has_identity and not (state.deleted or state.was_deleted)


@event.listens_for(FileRecord, "before_update")
def _prevent_uuid_change(mapper, connection, target: FileRecord) -> None:
    if not inspect(target).attrs.uuid.history.has_changes():
        return
    table = FileRecord.__table__
    stored_uuid = connection.execute(
        sa_select(table.c.uuid).where(table.c.id == target.id)
    ).scalar()
    if stored_uuid is not None and stored_uuid != target.uuid:
        raise ValueError("File uuid is immutable once assigned")


class FileRecordCreate(SQLModel):
    """Request model for creating a file record"""

    owner_type: str
    owner_id: str
    filename: str
    disk: str | None = None
    path: str | None = None
    display_name: str | None = None
    mimetype: str | None = None
    size: int | None = Field(default=None, ge=0)
    meta: dict[str, Any] | None = None

    model_config = ConfigDict(extra="forbid")


class FileRecordUpdate(SQLModel):
    """Request model for updating the descriptive fields of a file"""

    display_name: str | None = None
    meta: dict[str, Any] | None = None

    model_config = ConfigDict(extra="forbid")


class FileRecordPublic(SQLModel):
    """Public file representation"""

    id: int | None
    uuid: UUID
    owner_type: str
    owner_id: str
    disk: str | None
    mimetype: str | None
    size: int | None
    display_name: str
    path: str | None
    filename: str | None
    extension: str
    meta: dict[str, Any] | None
    created_at: datetime | None
    updated_at: datetime | None
    url: str | None = None
    modified_at: datetime | None = None
