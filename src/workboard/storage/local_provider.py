"""
Local filesystem storage provider for development.
Saves files under a local directory and signs download URLs with HMAC.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import time
from pathlib import Path
from urllib.parse import quote, urlencode

import structlog

from workboard.config import StorageConfig
from workboard.storage.provider import StorageProvider

logger = structlog.get_logger(__name__)


class LocalStorageProvider(StorageProvider):
    """Local filesystem storage provider for development."""

    def __init__(self, config: StorageConfig):
        self.config = config
        self.base_dir = Path(config.base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _get_path(self, key: str) -> Path:
        """Get the local filesystem path for a given key."""
        parts = [part for part in key.replace("\\", "/").split("/") if part not in ("", ".", "..")]
        return self.base_dir.joinpath(*parts)

    def _signature(self, key: str, expires: int) -> str:
        message = f"{key.lstrip('/')}:{expires}".encode()
        return hmac.new(self.config.signing_secret.encode(), message, hashlib.sha256).hexdigest()

    def verify(self, key: str, expires: int, signature: str) -> bool:
        """Check a download link produced by presigned_url."""
        if expires < int(time.time()):
            return False
        return hmac.compare_digest(self._signature(key, expires), signature)

    def open_path(self, key: str) -> Path | None:
        """Filesystem path of a stored object, or None if it does not exist."""
        path = self._get_path(key)
        return path if path.is_file() else None

    async def put(self, path: str, data: bytes, metadata: dict[str, str] | None = None) -> str:
        target = self._get_path(path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        await asyncio.to_thread(_write)
        logger.info("storage_object_written", path=path, size=len(data))
        return path

    async def delete(self, path: str) -> None:
        target = self._get_path(path)
        await asyncio.to_thread(target.unlink, missing_ok=True)
        logger.info("storage_object_deleted", path=path)

    async def presigned_url(self, path: str, ttl_seconds: int) -> str:
        expires = int(time.time()) + ttl_seconds
        query = urlencode({"expires": expires, "signature": self._signature(path, expires)})
        base = self.config.public_base_url.rstrip("/")
        return f"{base}/files/{quote(path.lstrip('/'))}?{query}"
