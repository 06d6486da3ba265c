"""Base storage abstraction layer.

Note: Stored objects are PHI. Backends never decide who may read them; the
authorization engine does, and only then is a download URL issued.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from phi_core.models.enums import DocumentCategory


class StorageType(str, Enum):
    """Types of storage backends."""

    S3 = "s3"
    LOCAL = "local"


# Key prefix per document category
CATEGORY_FOLDERS: Dict[DocumentCategory, str] = {
    DocumentCategory.MEDICAL_RECORDS: "medical-records",
    DocumentCategory.MEDICAL_BILLING: "medical-bills",
    DocumentCategory.EVIDENCE: "evidence",
}


@dataclass(frozen=True)
class StoredObject:
    """Where an uploaded object landed."""

    key: str
    bucket: Optional[str]
    etag: Optional[str]
    location: str
    storage_type: StorageType


@dataclass(frozen=True)
class DownloadUrl:
    """Time-limited URL for one object."""

    url: str
    expires_at: datetime


class StorageBackend(ABC):
    """Abstract base class for storage backends."""

    storage_type: StorageType

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize storage backend.

        Args:
            config: Backend-specific configuration
        """
        self.config = config or {}
        self._validate_config()

    @abstractmethod
    def _validate_config(self) -> None:
        """Validate backend configuration."""

    @abstractmethod
    async def upload(
        self,
        data: bytes,
        owner_id: int,
        category: DocumentCategory,
        filename: str,
        mime_type: str,
    ) -> StoredObject:
        """
        Store an object.

        Args:
            data: Raw bytes
            owner_id: Patient the object belongs to
            category: Document category, used as key prefix
            filename: Server-generated secure filename
            mime_type: Content type to record

        Returns:
            StoredObject describing the stored copy
        """

    @abstractmethod
    async def generate_download_url(
        self,
        key: str,
        ttl_seconds: int,
        filename: Optional[str] = None,
        storage_type: Optional[StorageType] = None,
    ) -> DownloadUrl:
        """Issue a URL valid for ``ttl_seconds``."""

    @abstractmethod
    async def delete(self, key: str, storage_type: Optional[StorageType] = None) -> bool:
        """Delete an object. Returns False if it did not exist."""

    @staticmethod
    def object_key(owner_id: int, category: DocumentCategory, filename: str) -> str:
        """Key layout shared by all backends."""
        return f"{CATEGORY_FOLDERS[category]}/user_{owner_id}_{filename}"
