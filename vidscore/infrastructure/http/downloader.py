"""
Media downloads over HTTP(S).

The analysis pipeline fetches the uploaded video from blob storage before
extracting frames. Responses are streamed to disk so large videos never
sit in memory.
"""

import logging
from pathlib import Path
from typing import Optional

import httpx

from vidscore.core.analysis.errors import DownloadError

logger = logging.getLogger(__name__)

# Global shared HTTP client instance
_shared_client: Optional[httpx.AsyncClient] = None

CHUNK_SIZE = 1024 * 1024


def get_shared_http_client(timeout_seconds: float = 300.0) -> httpx.AsyncClient:
    """
    Get or create shared async HTTP client for connection pooling.

    Reused by every pipeline run so connections to storage are kept alive.
    """
    global _shared_client

    if _shared_client is None:
        _shared_client = httpx.AsyncClient(
            timeout=timeout_seconds,
            follow_redirects=True,
            limits=httpx.Limits(
                max_keepalive_connections=20,
                max_connections=100,
                keepalive_expiry=30.0,
            ),
        )
        logger.info("Created shared HTTP client for media downloads")

    return _shared_client


async def close_shared_http_client() -> None:
    """Close shared HTTP client (call on application shutdown)."""
    global _shared_client

    if _shared_client is not None:
        await _shared_client.aclose()
        _shared_client = None
        logger.info("Closed shared HTTP client")


def _is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class HttpMediaDownloader:
    """Implementation of the MediaDownloader protocol using httpx."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 300.0,
    ) -> None:
        # None means the process-wide shared client, looked up per download
        self._client = client
        self._timeout = timeout_seconds

    def _get_client(self) -> httpx.AsyncClient:
        return self._client or get_shared_http_client(self._timeout)

    async def download(self, url: str, destination: Path) -> None:
        """
        Stream `url` into `destination`.

        The destination is opened with exclusive create, so an existing
        file is never overwritten. A partial file is removed on failure.
        """
        created = False
        try:
            async with self._get_client().stream("GET", url) as response:
                if not response.is_success:
                    raise DownloadError(
                        f"Failed to download file: {response.status_code} {response.reason_phrase}",
                        status_code=response.status_code,
                        retryable=_is_retryable_status(response.status_code),
                    )

                with open(destination, "xb") as f:
                    created = True
                    async for chunk in response.aiter_bytes(CHUNK_SIZE):
                        f.write(chunk)

        except FileExistsError as e:
            raise DownloadError(f"Download destination already exists: {destination}") from e
        except httpx.HTTPError as e:
            if created:
                destination.unlink(missing_ok=True)
            logger.warning(
                "Media download transport error",
                extra={"error": str(e)}
            )
            raise DownloadError(f"Failed to download file: {e}", retryable=True) from e

        logger.debug(
            "Downloaded media",
            extra={"path": str(destination), "size_bytes": destination.stat().st_size}
        )
