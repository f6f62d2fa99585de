"""File validation for introductory video uploads.

Validates file content by magic bytes (not the client-declared type),
enforces the configured size limit, and sanitizes filenames before they
are handed to the media store.
"""

import re
from typing import TYPE_CHECKING

import magic
import structlog

if TYPE_CHECKING:
    from fastapi import UploadFile

from app.core.errors import ValidationError

logger = structlog.get_logger()

# Chunk size for reading files (64 KB)
CHUNK_SIZE_BYTES = 64 * 1024

# Allowed video MIME types and their short names
ALLOWED_VIDEO_MIMES: dict[str, str] = {
    "video/mp4": "MP4",
    "video/quicktime": "MOV",
    "video/webm": "WEBM",
    "video/x-m4v": "M4V",
}


async def read_file_with_size_limit(file: "UploadFile", max_size: int) -> bytes:
    """Read an upload in chunks, refusing anything over max_size.

    Args:
        file: UploadFile from FastAPI.
        max_size: Maximum allowed file size in bytes.

    Returns:
        File content as bytes.

    Raises:
        ValidationError: If file exceeds size limit.
    """
    chunks: list[bytes] = []
    total_size = 0

    while True:
        chunk = await file.read(CHUNK_SIZE_BYTES)
        if not chunk:
            break
        total_size += len(chunk)
        if total_size > max_size:
            raise ValidationError(
                message=f"File too large. Maximum size: {max_size // (1024 * 1024)}MB",
                details=[{"field": "file", "error": "FILE_TOO_LARGE"}],
            )
        chunks.append(chunk)

    return b"".join(chunks)


def validate_video_content(content: bytes, filename: str) -> str:
    """Detect the video MIME type from magic bytes.

    Args:
        content: File binary content.
        filename: Original filename (for logging only).

    Returns:
        The detected MIME type, one of ALLOWED_VIDEO_MIMES.

    Raises:
        ValidationError: If the file is empty or not an allowed video type.
    """
    if not content:
        raise ValidationError(
            message="The uploaded video is empty.",
            details=[{"field": "file", "error": "EMPTY_FILE"}],
        )

    detected_mime = magic.from_buffer(content[:CHUNK_SIZE_BYTES], mime=True)

    if detected_mime not in ALLOWED_VIDEO_MIMES:
        # Log detected MIME for server-side debugging; do NOT expose to client
        logger.warning(
            "Video content validation failed",
            detected_mime=detected_mime,
            filename=filename,
        )
        allowed = ", ".join(sorted(set(ALLOWED_VIDEO_MIMES.values())))
        raise ValidationError(
            message=f"Invalid file type. Allowed: {allowed}.",
            details=[{"field": "file", "error": "INVALID_FILE_CONTENT"}],
        )

    return detected_mime


def sanitize_filename(filename: str, max_length: int = 200) -> str:
    """Reduce an uploaded filename to a safe storage key component.

    Args:
        filename: Original filename.
        max_length: Maximum allowed filename length.

    Returns:
        Sanitized filename containing only [A-Za-z0-9._-].
    """
    # Drop any directory part a client may have sent
    base = filename.replace("\\", "/").rsplit("/", 1)[-1]
    safe = re.sub(r"[^A-Za-z0-9._-]", "_", base).lstrip(".")

    if len(safe) > max_length:
        if "." in safe:
            name, ext = safe.rsplit(".", 1)
            ext = f".{ext}"
            safe = name[: max_length - len(ext)] + ext
        else:
            safe = safe[:max_length]

    if not safe:
        safe = "video"

    return safe
