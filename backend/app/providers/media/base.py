"""Abstract base class and types for media stores."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class MediaFile:
    """A validated file ready for upload.

    Attributes:
        filename: Sanitized filename.
        content_type: MIME type detected from the content.
        content: Raw bytes.
    """

    filename: str
    content_type: str
    content: bytes = field(repr=False)


@dataclass(frozen=True)
class UploadedMedia:
    """Where an uploaded file can be fetched publicly."""

    url: str


class MediaStore(ABC):
    """Abstract base class for media stores.

    Only the upload contract onboarding needs; storage internals belong to
    the store.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the media store name (e.g., "http", "mock")."""

    @abstractmethod
    async def upload(self, file: MediaFile, owner_id: str) -> UploadedMedia:
        """Upload a file on behalf of an opaque owner id.

        Raises:
            UploadRejectedError: The store refused the file.
            TransientError: Network or server failure.
        """
