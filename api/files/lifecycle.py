"""
Storing and deleting file content on the record's disk.

The lifecycle owns no storage itself: it receives the mapping of disk
names to backends at construction and resolves `record.disk` against it
on every call.

Storing content and persisting the record (and likewise deleting the
blob and deleting the row) are sequenced, not transactional. A crash
between the two steps can leave an orphaned blob or a record without
content; callers that need stronger guarantees must add their own
locking keyed by (disk, path).
"""

import logging
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any, BinaryIO

from api.files.models import FileRecord, is_persisted
from core.disks import resolve_disk
from core.storage import BlobNotFoundError, Contents, StorageBackend

logger = logging.getLogger(__name__)

StoringListener = Callable[[FileRecord], Any]
StoredListener = Callable[[FileRecord], Any]


class FileLifecycle:
    """Store, delete and check the content behind file records"""

    def __init__(self, disks: Mapping[str, StorageBackend]) -> None:
        self.disks = disks
        self._storing: list[StoringListener] = []
        self._stored: list[StoredListener] = []

    def on_storing(self, callback: StoringListener) -> StoringListener:
        """
        Register a listener called before content is written.

        Listeners run in registration order until one returns something
        other than None; returning False vetoes the store.
        """
        self._storing.append(callback)
        return callback

    def on_stored(self, callback: StoredListener) -> StoredListener:
        """Register a listener called after content was written"""
        self._stored.append(callback)
        return callback

    def storage(self, record: FileRecord) -> StorageBackend:
        return resolve_disk(self.disks, record.disk)

    def _fire_storing(self, record: FileRecord) -> bool:
        for listener in self._storing:
            result = listener(record)
            if result is not None:
                return result is not False
        return True

    def _fire_stored(self, record: FileRecord) -> None:
        for listener in self._stored:
            listener(record)

    def store(
        self,
        record: FileRecord,
        contents: Contents,
        options: dict[str, Any] | None = None,
    ) -> bool:
        """
        Write contents to the record's disk at the record's path.

        Storing again overwrites the previous content.

        Args:
            record: File record with disk and path set
            contents: Raw bytes, text or a binary stream
            options: Backend specific write options

        Returns:
            True if the content was written, False if a storing listener
            vetoed the write or the backend failed

        Raises:
            ValueError: If the record has no disk or path
        """
        if record.disk is None or record.path is None:
            raise ValueError("File record needs a disk and a path before storing content")

        if not self._fire_storing(record):
            logger.info("Storing vetoed for %s:%s", record.disk, record.path)
            return False

        stored = self.storage(record).put(record.path, contents, options or {})
        if not stored:
            logger.error("Failed to store content at %s:%s", record.disk, record.path)
            return False

        self._fire_stored(record)
        return True

    def delete(self, record: FileRecord) -> bool:
        """
        Delete the record's content ahead of deleting the record itself.

        Records that were never persisted, or whose content is already
        gone, need no backend call and succeed.
        """
        if not self.exists(record):
            return True
        return self.storage(record).delete(record.path)

    def exists(self, record: FileRecord) -> bool:
        """A file exists when its record is persisted and its blob is present"""
        if not is_persisted(record) or record.path is None:
            return False
        return self.storage(record).exists(record.path)

    def read_stream(self, record: FileRecord) -> BinaryIO:
        """
        Raises:
            BlobNotFoundError: If no content is stored at the record's path
        """
        if record.path is None:
            raise BlobNotFoundError("", disk=record.disk)
        try:
            return self.storage(record).read_stream(record.path)
        except BlobNotFoundError as exc:
            raise BlobNotFoundError(record.path, disk=record.disk) from exc

    def url(self, record: FileRecord) -> str | None:
        if record.disk is None or record.path is None:
            return None
        return self.storage(record).url(record.path)

    def modified_at(self, record: FileRecord) -> datetime | None:
        if record.disk is None or record.path is None:
            return None
        timestamp = self.storage(record).last_modified(record.path)
        if timestamp is None:
            return None
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)
