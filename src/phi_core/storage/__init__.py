"""Object storage collaborators."""

from phi_core.storage.base import (
    CATEGORY_FOLDERS,
    DownloadUrl,
    StorageBackend,
    StorageType,
    StoredObject,
)
from phi_core.storage.local_backend import LocalStorageBackend

__all__ = [
    "CATEGORY_FOLDERS",
    "DownloadUrl",
    "LocalStorageBackend",
    "StorageBackend",
    "StorageType",
    "StoredObject",
]
