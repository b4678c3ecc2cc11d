"""
HTTP infrastructure: a shared httpx client and the media downloader.
"""

from .downloader import (
    HttpMediaDownloader,
    close_shared_http_client,
    get_shared_http_client,
)

__all__ = ["HttpMediaDownloader", "close_shared_http_client", "get_shared_http_client"]
