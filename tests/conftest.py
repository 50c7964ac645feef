import io
from datetime import datetime, timezone

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient
from sqlmodel import Session, create_engine, SQLModel
from sqlmodel.pool import StaticPool

from api.files.lifecycle import FileLifecycle
from api.files.responder import ContentResponder
from core.deps import get_db, get_file_lifecycle
from core.storage import LocalDiskBackend, S3Backend
from main import app


class MockS3Client:
    """Mock S3 client for testing"""

    def __init__(self):
        self.objects = {}  # Store object data: {(bucket, key): {"Body": bytes, ...}}
        self.error_mode = None  # For simulating errors
        self.opened_bodies = []  # Streams handed out by get_object

    def _raise_if_error(self, operation: str):
        if self.error_mode == "AccessDenied":
            raise ClientError(
                {"Error": {"Code": "AccessDenied", "Message": "Access Denied"}},
                operation,
            )

    def put_object(self, Bucket: str, Key: str, Body, **kwargs):
        """Mock put_object, accepting bytes or a file-like body"""
        self._raise_if_error("PutObject")
        if hasattr(Body, "read"):
            Body = Body.read()
        self.objects[(Bucket, Key)] = {
            "Body": Body,
            "LastModified": datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc),
            **kwargs,
        }
        return {"ETag": '"mock-etag"'}

    def get_object(self, Bucket: str, Key: str):
        """Mock get_object"""
        self._raise_if_error("GetObject")
        if (Bucket, Key) not in self.objects:
            raise ClientError(
                {"Error": {"Code": "NoSuchKey", "Message": "The specified key does not exist."}},
                "GetObject",
            )
        body = io.BytesIO(self.objects[(Bucket, Key)]["Body"])
        self.opened_bodies.append(body)
        return {"Body": body}

    def head_object(self, Bucket: str, Key: str):
        """Mock head_object"""
        self._raise_if_error("HeadObject")
        if (Bucket, Key) not in self.objects:
            raise ClientError(
                {"Error": {"Code": "404", "Message": "Not Found"}},
                "HeadObject",
            )
        obj = self.objects[(Bucket, Key)]
        return {"ContentLength": len(obj["Body"]), "LastModified": obj["LastModified"]}

    def delete_object(self, Bucket: str, Key: str):
        """Mock delete_object"""
        self._raise_if_error("DeleteObject")
        self.objects.pop((Bucket, Key), None)
        return {}

    def simulate_error(self, error_type: str):
        """
        Configure client to raise specific errors

        Args:
            error_type: "AccessDenied"
        """
        self.error_mode = error_type


@pytest.fixture(name="session")
def session_fixture():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(name="mock_s3_client")
def mock_s3_client_fixture():
    """Provide a mock S3 client for testing"""
    return MockS3Client()


@pytest.fixture(name="local_disk")
def local_disk_fixture(tmp_path):
    """Local disk rooted in a temporary directory"""
    return LocalDiskBackend(tmp_path / "local", base_url="http://testserver/storage")


@pytest.fixture(name="s3_disk")
def s3_disk_fixture(mock_s3_client: MockS3Client):
    """S3 disk backed by the mock client"""
    return S3Backend("test-bucket", client=mock_s3_client, prefix="uploads")


@pytest.fixture(name="lifecycle")
def lifecycle_fixture(local_disk: LocalDiskBackend, s3_disk: S3Backend):
    return FileLifecycle({"local": local_disk, "s3": s3_disk})


@pytest.fixture(name="responder")
def responder_fixture(lifecycle: FileLifecycle):
    return ContentResponder(lifecycle)


@pytest.fixture(name="client")
def client_fixture(session: Session, lifecycle: FileLifecycle):
    def get_db_override():
        return session

    def get_file_lifecycle_override():
        return lifecycle

    app.dependency_overrides[get_db] = get_db_override
    app.dependency_overrides[get_file_lifecycle] = get_file_lifecycle_override

    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
