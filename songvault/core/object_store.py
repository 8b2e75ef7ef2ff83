"""S3-compatible object storage for audio files and cover images (boto3)."""
import logging
import mimetypes
import uuid
from typing import Literal, Optional
from urllib.parse import urlparse

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from songvault.config import (
    EXTERNAL_TIMEOUT_SEC,
    STORAGE_ACCESS_KEY_ID,
    STORAGE_BUCKET,
    STORAGE_ENDPOINT_URL,
    STORAGE_PUBLIC_BASE_URL,
    STORAGE_REGION,
    STORAGE_SECRET_ACCESS_KEY,
)
from songvault.errors import DependencyFailure
from songvault.models.song import StoredObject

logger = logging.getLogger(__name__)

BlobKind = Literal["audio", "image"]

_DEFAULT_CONTENT_TYPES = {
    "audio": "audio/mpeg",
    "image": "image/jpeg",
}


def key_from_url(url: str) -> Optional[str]:
    """Derive a storage key from a public URL: last two path segments, extension stripped.

    e.g. https://cdn.example.com/v1/songs/abc123.mp3 -> "songs/abc123".
    Returns None when the URL has fewer than two path segments.
    """
    if not url:
        return None
    segments = [s for s in urlparse(url).path.split("/") if s]
    if len(segments) < 2:
        return None
    folder, name = segments[-2], segments[-1]
    return f"{folder}/{name.split('.', 1)[0]}"


class ObjectStore:
    """Uploads blobs under folder/<random id> and serves them from a public base URL."""

    def __init__(self, s3_client, bucket: str, public_base_url: str) -> None:
        self._s3 = s3_client
        self._bucket = bucket
        self._public_base_url = public_base_url.rstrip("/")

    @classmethod
    def from_config(cls) -> "ObjectStore":
        client = boto3.client(
            "s3",
            endpoint_url=STORAGE_ENDPOINT_URL or None,
            aws_access_key_id=STORAGE_ACCESS_KEY_ID or None,
            aws_secret_access_key=STORAGE_SECRET_ACCESS_KEY or None,
            region_name=STORAGE_REGION,
            config=Config(
                connect_timeout=10,
                read_timeout=EXTERNAL_TIMEOUT_SEC,
                retries={"max_attempts": 1},
            ),
        )
        if not STORAGE_BUCKET:
            logger.warning("STORAGE_BUCKET not set; uploads will fail")
        return cls(client, STORAGE_BUCKET, STORAGE_PUBLIC_BASE_URL)

    def public_url(self, key: str) -> str:
        return f"{self._public_base_url}/{key}"

    def upload(self, local_path: str, folder: str, kind: BlobKind) -> StoredObject:
        """Upload a local file; returns its key and public URL."""
        key = f"{folder}/{uuid.uuid4().hex}"
        content_type, _ = mimetypes.guess_type(local_path)
        if not content_type or not content_type.startswith(f"{kind}/"):
            content_type = _DEFAULT_CONTENT_TYPES[kind]
        try:
            self._s3.upload_file(
                str(local_path),
                self._bucket,
                key,
                ExtraArgs={"ContentType": content_type},
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("Upload of %s to %s failed: %s", local_path, key, e)
            raise DependencyFailure(f"Failed to upload {kind} file: {e}") from e
        logger.info("Uploaded %s %s", kind, key)
        return StoredObject(key=key, url=self.public_url(key))

    def delete(self, key: str, kind: BlobKind) -> None:
        """Delete a blob by key. Deleting a missing key is not an error."""
        try:
            self._s3.delete_object(Bucket=self._bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise DependencyFailure(f"Failed to delete {kind} {key}: {e}") from e
        logger.info("Deleted %s %s", kind, key)
