"""
FastAPI dependency injection.

Dependencies provide instances of services, clients, and configuration
to route handlers. Routes never build their own collaborators, so tests
swap any of them through app.dependency_overrides.

Clients that hold connection pools or SDK state (Anthropic, httpx,
storage, the pipeline itself) are built once per process with lru_cache.
Repositories get a fresh connection per request.
"""

import logging
from functools import lru_cache, partial
from pathlib import Path
from typing import Annotated, Generator

from fastapi import Depends

from ..config.settings import Settings, get_settings
from ..core.analysis.pipeline import PipelineConfig, VideoAnalysisPipeline, VideoStore
from ..core.analysis.retry import RetryPolicy
from ..core.analysis.scoring import VisionModelClient
from ..infrastructure.anthropic.client import create_anthropic_client
from ..infrastructure.http.downloader import HttpMediaDownloader
from ..infrastructure.snowflake.client import SnowflakeConfig, create_snowflake_connection
from ..infrastructure.snowflake.repositories.knowledge import KnowledgeRepository
from ..infrastructure.snowflake.repositories.videos import (
    ConnectionScopedVideoStore,
    VideoRepository,
)
from ..infrastructure.storage.client import StorageClient, StorageConfig, create_storage_client
from ..infrastructure.video.processor import create_frame_extractor

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

def _snowflake_config(settings: Settings) -> SnowflakeConfig:
    return SnowflakeConfig(
        account=settings.snowflake_account,
        user=settings.snowflake_user,
        password=settings.snowflake_password or None,
        private_key_path=settings.snowflake_private_key_path,
        database=settings.snowflake_database,
        schema=settings.snowflake_schema,
        warehouse=settings.snowflake_warehouse,
        role=settings.snowflake_role,
    )


def _connection_factory(settings: Settings):
    """Zero-argument callable returning a connection context manager."""
    if settings.snowflake_mock_mode:
        return partial(create_snowflake_connection, mock_mode=True)
    return partial(create_snowflake_connection, config=_snowflake_config(settings))


def get_video_repository(
    settings: Annotated[Settings, Depends(get_settings)],
) -> Generator[VideoRepository, None, None]:
    """
    Provide VideoRepository with database connection.

    A generator so the connection is closed after the request. In mock
    mode every request shares the same in-memory connection, so data
    persists for the life of the process.
    """
    with _connection_factory(settings)() as conn:
        yield VideoRepository(conn)


def get_knowledge_repository(
    settings: Annotated[Settings, Depends(get_settings)],
) -> Generator[KnowledgeRepository, None, None]:
    """Provide KnowledgeRepository with database connection."""
    with _connection_factory(settings)() as conn:
        yield KnowledgeRepository(
            conn,
            embedding_model=settings.embedding_model,
            embedding_dimension=settings.embedding_dimension,
        )


def get_video_store() -> VideoStore:
    """
    VideoStore for work that outlives a request.

    Opens its own connection per call instead of borrowing the request's,
    which FastAPI closes before background tasks run.
    """
    return ConnectionScopedVideoStore(_connection_factory(get_settings()))


# ---------------------------------------------------------------------------
# Process-wide clients
# ---------------------------------------------------------------------------

@lru_cache()
def get_storage_client() -> StorageClient:
    """
    Provide storage client for presigned URLs.

    Returns either R2 client or mock client based on settings.
    """
    settings = get_settings()

    if settings.r2_mock_mode:
        return create_storage_client(mock_mode=True)

    config = StorageConfig(
        access_key_id=settings.r2_access_key_id,
        secret_access_key=settings.r2_secret_access_key,
        bucket_name=settings.r2_bucket_name,
        endpoint_url=settings.r2_endpoint,
        url_expiry_seconds=settings.upload_url_expiry_seconds,
    )
    return create_storage_client(config=config)


@lru_cache()
def get_vision_client() -> VisionModelClient:
    """
    Provide the Anthropic vision client.

    Raises ConfigurationError when no API key is set. lru_cache does not
    cache exceptions, so a key added later is picked up once settings
    are reloaded.
    """
    settings = get_settings()
    return create_anthropic_client(
        api_key=settings.anthropic_api_key,
        model=settings.anthropic_model,
        max_tokens=settings.anthropic_max_tokens,
        temperature=settings.anthropic_temperature,
        timeout_seconds=settings.anthropic_timeout_seconds,
    )


@lru_cache()
def get_pipeline() -> VideoAnalysisPipeline:
    """
    Provide the shared analysis pipeline.

    Built on first use. Any ConfigurationError surfaces here, before the
    confirm route touches the video's status.
    """
    settings = get_settings()

    retry_policy = RetryPolicy(
        max_attempts=settings.retry_max_attempts,
        initial_delay=settings.retry_initial_delay_seconds,
    )

    pipeline = VideoAnalysisPipeline(
        vision_client=get_vision_client(),
        frame_extractor=create_frame_extractor(
            mock_mode=settings.video_processor_mock_mode,
            ffmpeg_path=settings.ffmpeg_path,
            ffprobe_path=settings.ffprobe_path,
        ),
        downloader=HttpMediaDownloader(timeout_seconds=settings.download_timeout_seconds),
        store=get_video_store(),
        config=PipelineConfig(
            scratch_root=Path(settings.scratch_root),
            frame_count=settings.analysis_frame_count,
            frame_width=settings.analysis_frame_width,
            download_retry=retry_policy,
            inference_retry=retry_policy,
        ),
    )

    logger.info(
        "Created video analysis pipeline",
        extra={"frame_count": settings.analysis_frame_count}
    )

    return pipeline


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

SettingsDep = Annotated[Settings, Depends(get_settings)]
VideoRepositoryDep = Annotated[VideoRepository, Depends(get_video_repository)]
KnowledgeRepositoryDep = Annotated[KnowledgeRepository, Depends(get_knowledge_repository)]
StorageClientDep = Annotated[StorageClient, Depends(get_storage_client)]
PipelineDep = Annotated[VideoAnalysisPipeline, Depends(get_pipeline)]
