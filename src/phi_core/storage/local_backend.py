"""Local filesystem storage backend for development and tests."""

import asyncio
import hashlib
import hmac
import os
import secrets
import tempfile
import time
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import quote, urlencode

from phi_core.core.exceptions import StorageError
from phi_core.models.base import utcnow
from phi_core.models.enums import DocumentCategory
from phi_core.storage.base import DownloadUrl, StorageBackend, StorageType, StoredObject
from phi_core.utils.logging import get_logger

logger = get_logger(__name__)


class LocalStorageBackend(StorageBackend):
    """Stores objects under a base directory.

    Download URLs carry an expiry and an HMAC signature so a file server in
    front of ``base_path`` can check them.
    """

    storage_type = StorageType.LOCAL

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """Initialize local storage backend.

        Args:
            config: Configuration dictionary containing:
                - base_path: Base directory for storage
                - base_url: URL prefix the files are served under
                - signing_key: HMAC key for download URLs (random if absent)
        """
        super().__init__(config)
        self.base_path = Path(
            self.config.get(
                "base_path", os.path.join(tempfile.gettempdir(), "phi_core_uploads")
            )
        )
        self.base_url = self.config.get("base_url", "/uploads").rstrip("/")
        signing_key = self.config.get("signing_key")
        if isinstance(signing_key, str):
            signing_key = signing_key.encode()
        self.signing_key = signing_key or secrets.token_bytes(32)

    def _validate_config(self) -> None:
        signing_key = self.config.get("signing_key")
        if signing_key is not None and not isinstance(signing_key, (str, bytes)):
            raise StorageError("signing_key must be str or bytes")

    def _path_for(self, key: str) -> Path:
        path = (self.base_path / key).resolve()
        if self.base_path.resolve() not in path.parents:
            raise StorageError(f"Storage key escapes base path: {key!r}")
        return path

    async def upload(
        self,
        data: bytes,
        owner_id: int,
        category: DocumentCategory,
        filename: str,
        mime_type: str,
    ) -> StoredObject:
        """Write the object to disk."""
        key = self.object_key(owner_id, category, filename)
        path = self._path_for(key)
        try:
            await asyncio.to_thread(_write_file, path, data)
        except OSError as e:
            logger.error("storage_upload_failed", key=key, error=str(e))
            raise StorageError(f"Failed to store {key}") from e

        logger.info("storage_upload_completed", key=key, size=len(data))
        return StoredObject(
            key=key,
            bucket=None,
            etag=hashlib.md5(data, usedforsecurity=False).hexdigest(),
            location=str(path),
            storage_type=self.storage_type,
        )

    async def generate_download_url(
        self,
        key: str,
        ttl_seconds: int,
        filename: Optional[str] = None,
        storage_type: Optional[StorageType] = None,
    ) -> DownloadUrl:
        """Signed, expiring URL below ``base_url``."""
        expires_at = utcnow() + timedelta(seconds=ttl_seconds)
        expires = int(time.time()) + ttl_seconds
        signature = hmac.new(
            self.signing_key, f"{key}:{expires}".encode(), hashlib.sha256
        ).hexdigest()
        params = {"expires": expires, "signature": signature}
        if filename:
            params["filename"] = filename
        url = f"{self.base_url}/{quote(key)}?{urlencode(params)}"
        return DownloadUrl(url=url, expires_at=expires_at)

    async def delete(self, key: str, storage_type: Optional[StorageType] = None) -> bool:
        """Remove the object from disk."""
        path = self._path_for(key)
        if not path.exists():
            return False
        try:
            await asyncio.to_thread(path.unlink)
        except OSError as e:
            logger.error("storage_delete_failed", key=key, error=str(e))
            raise StorageError(f"Failed to delete {key}") from e
        logger.info("storage_delete_completed", key=key)
        return True

    def read(self, key: str) -> bytes:
        """Raw bytes of a stored object."""
        return self._path_for(key).read_bytes()


def _write_file(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
