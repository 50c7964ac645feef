"""
Storage backends ("disks") for file content.

Blobs are addressed by a path string relative to the disk. The file
lifecycle only depends on the StorageBackend protocol, so any blob store
implementing it can be plugged in under a disk name.
"""

import logging
import shutil
from pathlib import Path, PurePosixPath
from typing import Any, BinaryIO, Protocol, Union, runtime_checkable
from urllib.parse import quote

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

# Chunk size used when copying streams
CHUNK_SIZE = 64 * 1024

# Error codes S3 uses for a missing object
_S3_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}

Contents = Union[bytes, str, BinaryIO]


class BlobNotFoundError(Exception):
    """Raised when content is requested for a path absent on a disk."""

    def __init__(self, path: str, disk: str | None = None) -> None:
        self.path = path
        self.disk = disk
        message = f"File not found at path: {path}"
        if disk is not None:
            message = f"{message} (disk: {disk})"
        super().__init__(message)


class InvalidPathError(ValueError):
    """Raised for a blob path that does not name exactly one location."""


@runtime_checkable
class StorageBackend(Protocol):
    """Capabilities every disk must provide"""

    def exists(self, path: str) -> bool:
        """Check whether a blob is present at path."""
        ...

    def delete(self, path: str) -> bool:
        """Remove the blob at path, returning False on failure."""
        ...

    def put(self, path: str, contents: Contents, options: dict[str, Any] | None = None) -> bool:
        """Create or overwrite the blob at path, returning False on failure."""
        ...

    def read_stream(self, path: str) -> BinaryIO:
        """Open the blob at path for reading, raising BlobNotFoundError when absent."""
        ...

    def last_modified(self, path: str) -> int | None:
        """POSIX timestamp of the last write, or None when absent."""
        ...

    def url(self, path: str) -> str:
        """Public URL of the blob at path."""
        ...


def _join_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}/{quote(path.lstrip('/'))}"


class LocalDiskBackend:
    """
    Disk backed by a directory on the local filesystem.

    All paths are resolved below the root directory. Paths with a `..`
    segment or that would escape the root raise InvalidPathError.
    """

    def __init__(self, root: str | Path, base_url: str | None = None) -> None:
        self.root = Path(root).resolve()
        self.base_url = base_url or "/storage"

    def _full_path(self, path: str) -> Path:
        if ".." in PurePosixPath(path.replace("\\", "/")).parts:
            raise InvalidPathError(f"Path must not contain '..' segments: {path}")
        full_path = (self.root / path.lstrip("/")).resolve()
        try:
            full_path.relative_to(self.root)
        except ValueError as exc:
            raise InvalidPathError(f"Path escapes storage root: {path}") from exc
        return full_path

    def exists(self, path: str) -> bool:
        return self._full_path(path).is_file()

    def delete(self, path: str) -> bool:
        full_path = self._full_path(path)
        try:
            full_path.unlink()
        except FileNotFoundError:
            logger.warning("File not found on local disk (already deleted?): %s", path)
            return False
        except OSError:
            logger.exception("Failed to delete file from local disk: %s", path)
            return False
        logger.info("Deleted file from local disk: %s", path)
        return True

    def put(self, path: str, contents: Contents, options: dict[str, Any] | None = None) -> bool:
        """
        Write contents to path, creating parent directories as needed.

        Options are accepted for interface compatibility; the local disk
        has no per-object settings.
        """
        full_path = self._full_path(path)
        if isinstance(contents, str):
            contents = contents.encode("utf-8")
        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(contents, (bytes, bytearray)):
                full_path.write_bytes(contents)
            else:
                with full_path.open("wb") as target:
                    shutil.copyfileobj(contents, target, CHUNK_SIZE)
        except OSError:
            logger.exception("Failed to write file to local disk: %s", path)
            return False
        logger.info("Wrote file to local disk: %s", path)
        return True

    def read_stream(self, path: str) -> BinaryIO:
        full_path = self._full_path(path)
        if not full_path.is_file():
            raise BlobNotFoundError(path)
        return full_path.open("rb")

    def last_modified(self, path: str) -> int | None:
        try:
            return int(self._full_path(path).stat().st_mtime)
        except FileNotFoundError:
            return None

    def url(self, path: str) -> str:
        return _join_url(self.base_url, path)


class S3Backend:
    """
    Disk backed by an S3 bucket, optionally below a key prefix.
    """

    def __init__(
        self,
        bucket: str,
        client=None,
        prefix: str = "",
        base_url: str | None = None,
        region: str | None = None,
    ) -> None:
        if client is None:
            client = boto3.client("s3", region_name=region)
        self.client = client
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self.base_url = base_url
        self.region = region

    def _key(self, path: str) -> str:
        path = path.lstrip("/")
        if self.prefix:
            return f"{self.prefix}/{path}"
        return path

    @staticmethod
    def _is_missing(exc: ClientError) -> bool:
        return exc.response.get("Error", {}).get("Code") in _S3_MISSING_CODES

    def exists(self, path: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=self._key(path))
        except ClientError as exc:
            if self._is_missing(exc):
                return False
            raise
        return True

    def delete(self, path: str) -> bool:
        key = self._key(path)
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError):
            logger.exception("Failed to delete s3://%s/%s", self.bucket, key)
            return False
        logger.info("Deleted s3://%s/%s", self.bucket, key)
        return True

    def put(self, path: str, contents: Contents, options: dict[str, Any] | None = None) -> bool:
        """
        Upload contents with put_object.

        Supported options:
            mimetype: stored as the object's ContentType
            visibility: "public" uploads with a public-read ACL
        """
        options = options or {}
        key = self._key(path)
        extra_args = {}
        if options.get("mimetype"):
            extra_args["ContentType"] = options["mimetype"]
        if options.get("visibility") == "public":
            extra_args["ACL"] = "public-read"
        if isinstance(contents, str):
            contents = contents.encode("utf-8")

        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=contents,
                **extra_args,
            )
        except (ClientError, BotoCoreError):
            logger.exception("Failed to upload s3://%s/%s", self.bucket, key)
            return False
        logger.info("Uploaded s3://%s/%s", self.bucket, key)
        return True

    def read_stream(self, path: str) -> BinaryIO:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=self._key(path))
        except ClientError as exc:
            if self._is_missing(exc):
                raise BlobNotFoundError(path) from exc
            raise
        return response["Body"]

    def last_modified(self, path: str) -> int | None:
        try:
            response = self.client.head_object(Bucket=self.bucket, Key=self._key(path))
        except ClientError as exc:
            if self._is_missing(exc):
                return None
            raise
        return int(response["LastModified"].timestamp())

    def url(self, path: str) -> str:
        if self.base_url:
            return _join_url(self.base_url, self._key(path))
        if self.region:
            host = f"{self.bucket}.s3.{self.region}.amazonaws.com"
        else:
            host = f"{self.bucket}.s3.amazonaws.com"
        return f"https://{host}/{quote(self._key(path))}"
