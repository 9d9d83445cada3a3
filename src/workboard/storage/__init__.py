"""Object storage collaborator for card attachments."""

from workboard.storage.local_provider import LocalStorageProvider
from workboard.storage.provider import StorageProvider, normalize_filename

__all__ = ["LocalStorageProvider", "StorageProvider", "normalize_filename"]
