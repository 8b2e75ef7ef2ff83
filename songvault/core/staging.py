"""Stage uploaded parts on local disk before they are pushed to object storage."""
import asyncio
import logging
import re
import time
import uuid
from pathlib import Path
from typing import BinaryIO, Optional

from fastapi import UploadFile

from songvault.config import MAX_UPLOAD_BYTES, UPLOAD_DIR
from songvault.errors import InvalidInput

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def has_content(upload: Optional[UploadFile]) -> bool:
    """True if a multipart file part was actually sent."""
    return upload is not None and bool(upload.filename)


def staged_name(original: str) -> str:
    """<epoch millis>-<random>-<sanitized name>; unique across concurrent requests."""
    name = _UNSAFE_CHARS.sub("_", Path(original or "upload").name).strip("._") or "upload"
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}-{name}"


def _copy_limited(source: BinaryIO, target: Path, limit: int) -> None:
    written = 0
    with target.open("wb") as out:
        while True:
            chunk = source.read(_CHUNK_SIZE)
            if not chunk:
                break
            written += len(chunk)
            if written > limit:
                raise InvalidInput(f"File too large (limit {limit} bytes)")
            out.write(chunk)


async def stage_upload(
    upload: UploadFile,
    directory: Optional[Path] = None,
    limit: Optional[int] = None,
) -> Path:
    """Write the upload to the staging directory and return its path."""
    directory = directory or UPLOAD_DIR
    limit = limit or MAX_UPLOAD_BYTES
    directory.mkdir(parents=True, exist_ok=True)
    target = directory / staged_name(upload.filename or "")
    await upload.seek(0)
    try:
        await asyncio.to_thread(_copy_limited, upload.file, target, limit)
    except BaseException:
        discard(target)
        raise
    return target


def discard(path: Optional[Path]) -> None:
    """Best-effort removal of a staged file; errors are logged, never raised."""
    if path is None:
        return
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove staged file %s: %s", path, e)
