"""
Test storing, deleting and checking file content
"""

import io

import pytest
from sqlmodel import Session

from api.files.lifecycle import FileLifecycle
from api.files.models import FileRecord
from core.disks import UnknownDiskError
from core.storage import BlobNotFoundError, LocalDiskBackend


def _record(disk: str = "local", path: str = "project/P-1/notes.txt") -> FileRecord:
    return FileRecord(
        owner_type="project",
        owner_id="P-1",
        disk=disk,
        path=path,
        filename="notes.txt",
        mimetype="text/plain",
    )


def _read(lifecycle: FileLifecycle, record: FileRecord) -> bytes:
    with lifecycle.read_stream(record) as stream:
        return stream.read()


class TestStore:
    """Test FileLifecycle.store"""

    def test_round_trip(self, lifecycle: FileLifecycle):
        record = _record()
        assert lifecycle.store(record, b"hello") is True
        assert _read(lifecycle, record) == b"hello"

    def test_store_stream(self, lifecycle: FileLifecycle):
        record = _record()
        assert lifecycle.store(record, io.BytesIO(b"streamed"))
        assert _read(lifecycle, record) == b"streamed"

    def test_restore_overwrites(self, lifecycle: FileLifecycle):
        record = _record()
        lifecycle.store(record, b"first version")
        lifecycle.store(record, b"second")
        assert _read(lifecycle, record) == b"second"

    def test_store_on_s3_disk(self, lifecycle: FileLifecycle, mock_s3_client):
        record = _record(disk="s3")
        assert lifecycle.store(record, b"s3 content", {"mimetype": "text/plain"})
        assert ("test-bucket", "uploads/project/P-1/notes.txt") in mock_s3_client.objects
        assert lifecycle.read_stream(record).read() == b"s3 content"

    def test_requires_disk_and_path(self, lifecycle: FileLifecycle):
        with pytest.raises(ValueError):
            lifecycle.store(_record(path=None), b"x")
        with pytest.raises(ValueError):
            lifecycle.store(_record(disk=None), b"x")

    def test_unknown_disk(self, lifecycle: FileLifecycle):
        with pytest.raises(UnknownDiskError):
            lifecycle.store(_record(disk="nowhere"), b"x")

    def test_backend_failure_returns_false_without_stored_hook(
        self, lifecycle: FileLifecycle, mock_s3_client
    ):
        stored = []
        lifecycle.on_stored(stored.append)
        mock_s3_client.simulate_error("AccessDenied")

        assert lifecycle.store(_record(disk="s3"), b"x") is False
        assert stored == []


class TestHooks:
    """Test the storing/stored listeners"""

    def test_hooks_run_in_order(self, lifecycle: FileLifecycle):
        calls = []
        lifecycle.on_storing(lambda record: calls.append("storing-1"))
        lifecycle.on_storing(lambda record: calls.append("storing-2"))
        lifecycle.on_stored(lambda record: calls.append("stored"))

        assert lifecycle.store(_record(), b"x")
        assert calls == ["storing-1", "storing-2", "stored"]

    def test_veto_leaves_blob_untouched(self, lifecycle: FileLifecycle, local_disk: LocalDiskBackend):
        record = _record()
        lifecycle.store(record, b"original")

        stored = []
        lifecycle.on_storing(lambda record: False)
        lifecycle.on_stored(stored.append)

        assert lifecycle.store(record, b"replacement") is False
        assert _read(lifecycle, record) == b"original"
        assert stored == []

    def test_veto_before_first_write_creates_nothing(
        self, lifecycle: FileLifecycle, local_disk: LocalDiskBackend
    ):
        @lifecycle.on_storing
        def reject_executables(record):
            if record.filename.endswith(".txt"):
                return False
            return None

        record = _record()
        assert lifecycle.store(record, b"x") is False
        assert not local_disk.exists(record.path)

    def test_first_non_none_result_halts_chain(self, lifecycle: FileLifecycle):
        calls = []
        lifecycle.on_storing(lambda record: True)
        lifecycle.on_storing(lambda record: calls.append("never") or False)

        assert lifecycle.store(_record(), b"x") is True
        assert calls == []

    def test_stored_results_are_ignored(self, lifecycle: FileLifecycle):
        lifecycle.on_stored(lambda record: False)
        assert lifecycle.store(_record(), b"x") is True


class TestExistsAndDelete:
    """Test FileLifecycle.exists and FileLifecycle.delete"""

    def test_exists_requires_persisted_record(self, lifecycle: FileLifecycle, session: Session):
        record = _record()
        lifecycle.store(record, b"x")
        assert lifecycle.exists(record) is False

        session.add(record)
        session.commit()
        assert lifecycle.exists(record) is True

    def test_exists_requires_blob(
        self, lifecycle: FileLifecycle, local_disk: LocalDiskBackend, session: Session
    ):
        record = _record()
        session.add(record)
        session.commit()
        assert lifecycle.exists(record) is False

        lifecycle.store(record, b"x")
        assert lifecycle.exists(record) is True

        # Removing the blob out of band flips existence, the row stays
        local_disk.delete(record.path)
        assert lifecycle.exists(record) is False
        assert session.get(FileRecord, record.id) is not None

    def test_delete_unpersisted_record_is_noop(self, lifecycle: FileLifecycle, local_disk):
        record = _record()
        lifecycle.store(record, b"x")

        assert lifecycle.delete(record) is True
        # Nothing was deleted for a record that was never persisted
        assert local_disk.exists(record.path)

    def test_delete_without_blob_succeeds(self, lifecycle: FileLifecycle, session: Session):
        record = _record()
        session.add(record)
        session.commit()
        assert lifecycle.delete(record) is True

    def test_delete_removes_blob(
        self, lifecycle: FileLifecycle, local_disk: LocalDiskBackend, session: Session
    ):
        record = _record()
        lifecycle.store(record, b"x")
        session.add(record)
        session.commit()

        assert lifecycle.delete(record) is True
        assert not local_disk.exists(record.path)

    def test_delete_propagates_backend_result(
        self, lifecycle: FileLifecycle, session: Session, monkeypatch
    ):
        record = _record()
        lifecycle.store(record, b"x")
        session.add(record)
        session.commit()

        monkeypatch.setattr(lifecycle.disks["local"], "delete", lambda path: False)
        assert lifecycle.delete(record) is False


class TestDerivedValues:
    """Test url, modified_at and read_stream"""

    def test_read_stream_missing_blob(self, lifecycle: FileLifecycle):
        with pytest.raises(BlobNotFoundError) as exc_info:
            lifecycle.read_stream(_record())
        assert exc_info.value.disk == "local"
        assert exc_info.value.path == "project/P-1/notes.txt"

    def test_url(self, lifecycle: FileLifecycle):
        assert lifecycle.url(_record()) == "http://testserver/storage/project/P-1/notes.txt"
        assert lifecycle.url(_record(path=None)) is None

    def test_modified_at(self, lifecycle: FileLifecycle):
        record = _record()
        assert lifecycle.modified_at(record) is None
        lifecycle.store(record, b"x")
        assert lifecycle.modified_at(record).tzinfo is not None
