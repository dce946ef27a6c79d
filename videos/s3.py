import logging
import threading
from pathlib import Path

import boto3
from boto3.exceptions import Boto3Error
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings

from .exceptions import StorageError

logger = logging.getLogger(__name__)

_client = None
_client_lock = threading.Lock()


def _build_client(endpoint_url):
    session = boto3.session.Session(
        aws_access_key_id=settings.S3_ACCESS_KEY,
        aws_secret_access_key=settings.S3_SECRET_KEY,
        region_name=settings.S3_REGION,
    )
    return session.client(
        "s3",
        endpoint_url=endpoint_url,  # e.g. http://127.0.0.1:9000
        config=BotoConfig(
            s3={"addressing_style": "path"},
            signature_version="s3v4",
            connect_timeout=settings.S3_CONNECT_TIMEOUT,
            read_timeout=settings.S3_READ_TIMEOUT,
            retries={"max_attempts": settings.S3_MAX_ATTEMPTS, "mode": "standard"},
        ),
    )


def get_s3_client():
    """
    Process-wide SDK client for server-side upload/download.
    Created on first use; boto3 clients are safe to share between threads.
    """
    global _client
    with _client_lock:
        if _client is None:
            _client = _build_client(settings.S3_ENDPOINT_URL)
            logger.info("S3 client initialised (region=%s, endpoint=%s)",
                        settings.S3_REGION, settings.S3_ENDPOINT_URL or "aws")
        return _client


def reset_s3_client():
    """Drop the shared client so the next call builds a fresh one."""
    global _client
    with _client_lock:
        _client = None


def get_presign_client():
    """
    Separate client for generating presigned URLs that the browser/curl will call.
    Uses S3_PUBLIC_ENDPOINT so the URL host matches what the client reaches.
    """
    return _build_client(settings.S3_PUBLIC_ENDPOINT)


def create_presigned_get(key: str, expires: int | None = None) -> str:
    """
    Create a presigned GET URL to download an object.
    """
    s3 = get_presign_client()
    return s3.generate_presigned_url(
        ClientMethod="get_object",
        Params={"Bucket": settings.S3_BUCKET, "Key": key},
        ExpiresIn=expires or settings.S3_PRESIGN_EXPIRE_SECONDS,
        HttpMethod="GET",
    )


class S3Storage:
    """Fetch/store named blobs. ``client`` defaults to the shared SDK client."""

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        return self._client or get_s3_client()

    def fetch(self, bucket: str, key: str, destination) -> None:
        destination = Path(destination)
        logger.info("Downloading s3://%s/%s -> %s", bucket, key, destination)
        try:
            self.client.download_file(bucket, key, str(destination))
        except (Boto3Error, BotoCoreError, ClientError, OSError) as e:
            destination.unlink(missing_ok=True)
            raise StorageError(f"Download failed for {key}: {e}") from e
        logger.info("Download complete: %s (%d bytes)", destination, destination.stat().st_size)

    def store(self, bucket: str, key: str, source, content_type: str) -> str:
        """Upload ``source`` to ``key`` and return the object's ETag."""
        source = Path(source)
        try:
            size = source.stat().st_size
        except OSError as e:
            raise StorageError(f"Upload failed for {source}: {e}") from e
        if size == 0:
            raise StorageError(f"Refusing to upload zero-byte file {source}")

        logger.info("Uploading %s -> s3://%s/%s", source, bucket, key)
        try:
            self.client.upload_file(str(source), bucket, key, ExtraArgs={"ContentType": content_type})
            etag = self.client.head_object(Bucket=bucket, Key=key)["ETag"]
        except (Boto3Error, BotoCoreError, ClientError, OSError) as e:
            raise StorageError(f"Upload failed for {source} to {key}: {e}") from e
        logger.info("Upload complete for %s. ETag: %s", key, etag)
        return etag
