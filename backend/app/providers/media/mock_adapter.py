"""Mock media store for local development and testing."""

from typing import Any

from app.providers.errors import ProviderError
from app.providers.media.base import MediaFile, MediaStore, UploadedMedia


class MockMediaStore(MediaStore):
    """Stores uploads in memory and returns predictable URLs.

    Attributes:
        base_url: Prefix for returned URLs.
        uploads: Mapping of URL to uploaded file.
        calls: Record of all uploads for test assertions.
    """

    @property
    def provider_name(self) -> str:
        """Return 'mock' for testing."""
        return "mock"

    def __init__(self, base_url: str = "https://media.test") -> None:
        self.base_url = base_url.rstrip("/")
        self.uploads: dict[str, MediaFile] = {}
        self.calls: list[dict[str, Any]] = []
        self._next_error: ProviderError | None = None

    def fail_next(self, error: ProviderError) -> None:
        """Make the next upload raise ``error``."""
        self._next_error = error

    async def upload(self, file: MediaFile, owner_id: str) -> UploadedMedia:
        """Record the file and return ``{base_url}/{owner_id}/{filename}``."""
        self.calls.append(
            {"method": "upload", "owner_id": owner_id, "filename": file.filename}
        )
        if self._next_error is not None:
            error, self._next_error = self._next_error, None
            raise error
        url = f"{self.base_url}/{owner_id}/{file.filename}"
        self.uploads[url] = file
        return UploadedMedia(url=url)
