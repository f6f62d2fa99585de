"""Media store module.

Media store interface, the HTTP upload adapter and the in-memory mock.
"""

from app.providers.media.base import MediaFile, MediaStore, UploadedMedia
from app.providers.media.http_adapter import HttpMediaStore
from app.providers.media.mock_adapter import MockMediaStore

__all__ = [
    # Base types
    "MediaFile",
    "MediaStore",
    "UploadedMedia",
    # Adapters
    "HttpMediaStore",
    "MockMediaStore",
]
