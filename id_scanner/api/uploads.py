"""Temporary storage for uploaded ID images.

Uploads are written to the configured uploads directory under a unique
name and always removed when the request is done with them.
"""

import mimetypes
import random
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from fastapi import UploadFile

from id_scanner.errors import ApiError
from id_scanner.utils.config import UploadConfig
from id_scanner.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class StoredUpload:
    """An upload written to disk for the duration of a request.

    ``path`` may be reassigned when the file is converted; both the
    original and the current path are removed on cleanup.
    """

    original_path: Path
    path: Path
    file_name: str
    file_size: int
    mime_type: str


def unique_upload_name(original_name: str, mime_type: str = "") -> str:
    """Return ``id-<millis>-<random><ext>`` for an uploaded file name.

    The extension comes from the original name, or from the MIME type
    when the name has none.
    """
    suffix = Path(original_name).suffix.lower()
    if not suffix and mime_type:
        suffix = mimetypes.guess_extension(mime_type) or ""
    return f"id-{int(time.time() * 1000)}-{random.randint(0, 10**9)}{suffix}"


def check_upload(file_name: str, mime_type: str, size: int, config: UploadConfig) -> None:
    """Validate an upload against the MIME allow-list and size limit.

    Raises:
        ApiError: 400 for a disallowed type, 413 when too large.
    """
    if mime_type not in config.allowed_mime_types:
        raise ApiError("Invalid file type. Allowed types: JPG, PNG, PDF, HEIC", 400)
    if size > config.max_file_size:
        limit_mb = config.max_file_size // (1024 * 1024)
        raise ApiError(f"File too large. Maximum size is {limit_mb}MB.", 413)
    logger.debug("Accepted upload %s (%s, %d bytes)", file_name, mime_type, size)


def _remove(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.error("Failed to clean up uploaded file %s: %s", path, exc)


@contextmanager
def stored_upload(
    content: bytes, file_name: str, mime_type: str, config: UploadConfig
) -> Iterator[StoredUpload]:
    """Write upload bytes to disk and delete them on exit.

    Args:
        content: Raw file bytes.
        file_name: Name the client gave the file.
        mime_type: MIME type the client reported.
        config: Upload section of the application configuration.

    Yields:
        The stored upload.
    """
    upload_dir = Path(config.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)

    path = upload_dir / unique_upload_name(file_name, mime_type)
    path.write_bytes(content)
    upload = StoredUpload(
        original_path=path,
        path=path,
        file_name=file_name,
        file_size=len(content),
        mime_type=mime_type,
    )
    try:
        yield upload
    finally:
        _remove(upload.path)
        if upload.original_path != upload.path:
            _remove(upload.original_path)


async def read_upload(file: UploadFile, config: UploadConfig) -> bytes:
    """Read an upload, rejecting it as soon as it passes the size limit."""
    check_upload(file.filename or "", file.content_type or "", 0, config)
    content = await file.read(config.max_file_size + 1)
    check_upload(file.filename or "", file.content_type or "", len(content), config)
    return content
