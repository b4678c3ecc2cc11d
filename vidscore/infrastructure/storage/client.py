"""
Object storage client for uploaded videos.

Supports Cloudflare R2 (S3-compatible) with mock mode for local development.
The API never proxies video bytes: clients upload straight to the bucket
through a presigned PUT URL, and the analysis pipeline downloads through a
presigned GET URL.

Mock mode hands out localhost URLs, enabling API testing without
provisioning actual object storage.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import boto3
from botocore.config import Config

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when storage operations fail."""
    pass


@dataclass
class StorageConfig:
    """Configuration for R2/S3-compatible storage."""
    access_key_id: str
    secret_access_key: str
    bucket_name: str
    endpoint_url: str
    region: str = "auto"  # R2 uses 'auto' for region
    url_expiry_seconds: int = 3600


@dataclass(frozen=True)
class UploadTarget:
    """Where the client PUTs the video, and where the blob will live."""
    upload_url: str
    blob_url: str


class StorageClient(Protocol):
    """
    Protocol for object storage operations.

    Routes depend on this, so tests can provide fakes and the backend can
    change without touching them.
    """

    async def generate_upload_url(self, blob_name: str, content_type: str) -> UploadTarget:
        """Issue a time-limited URL the client can PUT the video to."""
        ...

    async def get_read_url(self, blob_name: str) -> str:
        """Issue a time-limited URL the pipeline can download the video from."""
        ...


class R2StorageClient:
    """
    Cloudflare R2 object storage client.

    Uses boto3 because R2 is S3-compatible. Presigning is a local
    computation, so no request reaches the bucket until the client uses
    the URL.
    """

    def __init__(self, config: StorageConfig) -> None:
        self._config = config

        # R2 requires v4 signatures
        boto_config = Config(
            signature_version='s3v4',
            s3={'addressing_style': 'path'},
        )

        self._s3_client = boto3.client(
            's3',
            endpoint_url=config.endpoint_url,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
            region_name=config.region,
            config=boto_config,
        )

        logger.info(
            "Initialized R2 storage client",
            extra={
                "bucket": config.bucket_name,
                "endpoint": config.endpoint_url,
            }
        )

    def _blob_url(self, blob_name: str) -> str:
        return f"{self._config.endpoint_url.rstrip('/')}/{self._config.bucket_name}/{blob_name}"

    async def generate_upload_url(self, blob_name: str, content_type: str) -> UploadTarget:
        """
        Presign a put_object for `blob_name`.

        The content type is part of the signature, so the client must send
        the same Content-Type header with its PUT.
        """
        try:
            upload_url = self._s3_client.generate_presigned_url(
                'put_object',
                Params={
                    'Bucket': self._config.bucket_name,
                    'Key': blob_name,
                    'ContentType': content_type,
                },
                ExpiresIn=self._config.url_expiry_seconds,
            )
        except Exception as e:
            logger.error(
                "Failed to generate upload URL",
                extra={"blob_name": blob_name, "error": str(e)}
            )
            raise StorageError(f"Upload URL generation failed: {e}")

        return UploadTarget(upload_url=upload_url, blob_url=self._blob_url(blob_name))

    async def get_read_url(self, blob_name: str) -> str:
        try:
            return self._s3_client.generate_presigned_url(
                'get_object',
                Params={
                    'Bucket': self._config.bucket_name,
                    'Key': blob_name,
                },
                ExpiresIn=self._config.url_expiry_seconds,
            )
        except Exception as e:
            logger.error(
                "Failed to generate read URL",
                extra={"blob_name": blob_name, "error": str(e)}
            )
            raise StorageError(f"Read URL generation failed: {e}")


# ---------------------------------------------------------------------------
# Mock Storage for Local Development
# ---------------------------------------------------------------------------

class MockStorageClient:
    """
    Storage stand-in for local development.

    URLs point at localhost and nothing is signed. Issued blob names are
    remembered so tests can assert on them.
    """

    def __init__(self, base_url: str = "http://localhost:8000") -> None:
        self._base_url = base_url.rstrip("/")
        self.issued: list[str] = []
        logger.info("Initialized mock storage client")

    async def generate_upload_url(self, blob_name: str, content_type: str) -> UploadTarget:
        self.issued.append(blob_name)
        return UploadTarget(
            upload_url=f"{self._base_url}/mock-upload/{blob_name}",
            blob_url=f"{self._base_url}/mock-blob/{blob_name}",
        )

    async def get_read_url(self, blob_name: str) -> str:
        return f"{self._base_url}/mock-blob/{blob_name}"


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_storage_client(
    config: Optional[StorageConfig] = None,
    mock_mode: bool = False,
) -> StorageClient:
    """
    Create storage client based on configuration.

    Args:
        config: Storage configuration (required if not mock_mode)
        mock_mode: If True, return mock client for testing

    Returns:
        StorageClient implementation (R2 or Mock)
    """
    if mock_mode:
        return MockStorageClient()

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return R2StorageClient(config)
