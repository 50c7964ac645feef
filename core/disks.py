"""
Build the named storage disks from configuration.

The resulting mapping is handed to the file lifecycle explicitly;
nothing in the file core looks disks up from global state.
"""

from collections.abc import Mapping

from core.config import DiskConfig, Settings, get_settings
from core.storage import LocalDiskBackend, S3Backend, StorageBackend


class UnknownDiskError(KeyError):
    """Raised when a disk name has no configured backend."""

    def __init__(self, disk: str | None) -> None:
        self.disk = disk
        super().__init__(disk)

    def __str__(self) -> str:
        return f"Disk [{self.disk}] is not configured"


def _absolute_url(base_url: str | None, app_url: str) -> str | None:
    """Anchor a root-relative base URL at the application URL"""
    if base_url and base_url.startswith("/"):
        return f"{app_url.rstrip('/')}{base_url}"
    return base_url


def build_disk(
    name: str,
    config: DiskConfig,
    app_url: str = "",
    s3_client=None,
) -> StorageBackend:
    """
    Create the backend for a single disk.

    Raises:
        ValueError: If the disk configuration is incomplete
    """
    base_url = _absolute_url(config.url, app_url)

    if config.driver == "local":
        return LocalDiskBackend(
            root=config.root or f"storage/{name}",
            base_url=base_url,
        )

    if config.driver == "s3":
        if not config.bucket:
            raise ValueError(f"Disk [{name}] uses the s3 driver but has no bucket")
        return S3Backend(
            bucket=config.bucket,
            client=s3_client,
            prefix=config.prefix,
            base_url=base_url,
            region=config.region,
        )

    raise ValueError(f"Disk [{name}] has unsupported driver: {config.driver}")


def build_disks(
    settings: Settings | None = None,
    s3_client=None,
) -> dict[str, StorageBackend]:
    """Create one backend per configured disk"""
    if settings is None:
        settings = get_settings()
    return {
        name: build_disk(name, config, app_url=settings.APP_URL, s3_client=s3_client)
        for name, config in settings.FILE_DISKS.items()
    }


def resolve_disk(disks: Mapping[str, StorageBackend], name: str | None) -> StorageBackend:
    """Look up a disk by name, raising UnknownDiskError if missing"""
    try:
        return disks[name]
    except KeyError as exc:
        raise UnknownDiskError(name) from exc
