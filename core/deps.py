"""
Define functions/aliases for dependency injection
"""
from collections.abc import Generator
from functools import lru_cache
from typing import Annotated, TypeAlias
from sqlmodel import Session
from fastapi import Depends

from api.files.lifecycle import FileLifecycle
from api.files.responder import ContentResponder
from core.db import get_engine
from core.disks import build_disks


# Define db dependency
def get_db() -> Generator[Session, None, None]:
    with Session(get_engine()) as session:
        yield session


@lru_cache
def get_file_lifecycle() -> FileLifecycle:
    """
    Application wide lifecycle, so hooks registered on it
    apply to every file.
    """
    return FileLifecycle(build_disks())


def get_content_responder(
    lifecycle: Annotated[FileLifecycle, Depends(get_file_lifecycle)],
) -> ContentResponder:
    return ContentResponder(lifecycle)


SessionDep: TypeAlias = Annotated[Session, Depends(get_db)]
LifecycleDep: TypeAlias = Annotated[FileLifecycle, Depends(get_file_lifecycle)]
ResponderDep: TypeAlias = Annotated[ContentResponder, Depends(get_content_responder)]
