"""Storage provider interface.

The Kanban service stores uploaded attachments, deletes them when their
card or board goes away, and hands out time-limited download URLs. Any
object store can back it by implementing these three calls.
"""

from __future__ import annotations

import unicodedata
from urllib.parse import unquote


class StorageProvider:
    async def put(self, path: str, data: bytes, metadata: dict[str, str] | None = None) -> str:
        """Store an object and return the path it was stored under."""
        raise NotImplementedError

    async def delete(self, path: str) -> None:
        raise NotImplementedError

    async def presigned_url(self, path: str, ttl_seconds: int) -> str:
        """Time-limited download URL for an object."""
        raise NotImplementedError


_MOJIBAKE_MARKERS = ("Ã", "Æ", "Â", "á»", "áº")


def normalize_filename(filename: str) -> str:
    """Repair and normalize an uploaded file name.

    Percent-encoding is decoded, UTF-8 names that were read as Latin-1 are
    repaired, the result is NFC-normalized and path separators are replaced
    so the name is safe inside an object path.
    """
    name = unquote(filename)
    if any(marker in name for marker in _MOJIBAKE_MARKERS):
        try:
            name = name.encode("latin-1").decode("utf-8")
        except (UnicodeEncodeError, UnicodeDecodeError):
            pass
    name = unicodedata.normalize("NFC", name)
    name = name.replace("/", "_").replace("\\", "_").strip()
    return name or "file"
