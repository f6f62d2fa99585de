"""HTTP media store adapter.

Uploads files as multipart/form-data to a storage gateway that answers
with ``{"url": ...}``.
"""

import httpx
import structlog

from app.providers.errors import TransientError, UploadRejectedError
from app.providers.media.base import MediaFile, MediaStore, UploadedMedia

logger = structlog.get_logger()

# Video uploads are large; allow more time than metadata calls
_UPLOAD_TIMEOUT = 120.0


class HttpMediaStore(MediaStore):
    """Media store reached through a multipart upload endpoint."""

    @property
    def provider_name(self) -> str:
        """Return 'http'."""
        return "http"

    def __init__(
        self,
        *,
        upload_url: str,
        api_key: str,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            upload_url: Full URL of the upload endpoint.
            api_key: Bearer token for the storage gateway.
            client: Optional preconfigured client for tests.
        """
        self._upload_url = upload_url
        self._api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=_UPLOAD_TIMEOUT)

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def upload(self, file: MediaFile, owner_id: str) -> UploadedMedia:
        """Upload to ``{owner_id}/{filename}`` and return the public URL."""
        try:
            response = await self._client.post(
                self._upload_url,
                headers={"Authorization": f"Bearer {self._api_key}"},
                data={"owner_id": owner_id, "path": f"{owner_id}/{file.filename}"},
                files={"file": (file.filename, file.content, file.content_type)},
            )
        except httpx.TimeoutException as e:
            raise TransientError("Media upload timed out") from e
        except httpx.TransportError as e:
            raise TransientError("Media store unreachable") from e

        if response.status_code >= 500 or response.status_code == 429:
            raise TransientError(f"Media store returned {response.status_code}")
        if response.status_code == 413:
            raise UploadRejectedError("File too large", reason="too_large")
        if response.is_error:
            logger.warning(
                "media_upload_rejected",
                status=response.status_code,
                owner_id=owner_id,
            )
            raise UploadRejectedError(
                f"Media store returned {response.status_code}",
                reason=f"http_{response.status_code}",
            )

        try:
            url = response.json()["url"]
        except (ValueError, KeyError) as e:
            raise UploadRejectedError(
                "Media store response has no URL", reason="bad_response"
            ) from e
        return UploadedMedia(url=url)
