"""
Snowflake repository for videos and their analyses.

This module implements the repository pattern for video data access.
The repository:
1. Translates between domain models and database rows
2. Encapsulates all SQL queries
3. Guards every status change with the status it expects to replace

The application code never writes SQL directly. It asks the repository
for what it needs in domain terms.
"""

import json
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, ContextManager, Generator, Optional

from vidscore.core.analysis.errors import PersistenceError, VideoNotFoundError
from vidscore.core.analysis.models import (
    ScoreDetails,
    Video,
    VideoAnalysis,
    VideoStatus,
)

from ..client import SnowflakeConnection

logger = logging.getLogger(__name__)


_VIDEO_COLUMNS = """
    video_id,
    filename,
    original_name,
    mime_type,
    size_bytes,
    storage_url,
    storage_key,
    status,
    created_at,
    updated_at
"""


class VideoRepository:
    """
    Repository for video and analysis persistence.

    Each method corresponds to a use case:
    - create_video / set_storage_url: the init-upload request
    - transition_status: confirm (PENDING -> PROCESSING)
    - complete_with_analysis / mark_failed: the end of a pipeline run
    - fail_stale_processing: the startup recovery sweep
    """

    def __init__(self, connection: SnowflakeConnection) -> None:
        self._conn = connection

    def ping(self) -> None:
        """Round-trip a trivial query. Raises if the database is unreachable."""
        cursor = self._conn.cursor()
        try:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        finally:
            cursor.close()

    def create_video(self, video: Video) -> Video:
        """Insert a new video row."""
        cursor = self._conn.cursor()

        try:
            cursor.execute("""
                INSERT INTO videos (
                    video_id, filename, original_name, mime_type, size_bytes,
                    storage_url, storage_key, status, created_at, updated_at
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            """, (
                video.id,
                video.filename,
                video.original_name,
                video.mime_type,
                video.size_bytes,
                video.storage_url,
                video.storage_key,
                video.status.value,
                video.created_at,
                video.updated_at,
            ))
            self._conn.commit()

        except Exception as e:
            logger.error(
                "Failed to create video",
                extra={"video_id": video.id, "error": str(e)}
            )
            raise PersistenceError(f"Failed to create video: {e}") from e
        finally:
            cursor.close()

        return video

    def set_storage_url(self, video_id: str, storage_url: str, storage_key: str) -> None:
        """Record where the upload will land. Raises VideoNotFoundError."""
        cursor = self._conn.cursor()

        try:
            cursor.execute("""
                UPDATE videos
                SET storage_url = %s, storage_key = %s, updated_at = %s
                WHERE video_id = %s
            """, (storage_url, storage_key, datetime.utcnow(), video_id))
            updated = cursor.rowcount
            self._conn.commit()

        except Exception as e:
            logger.error(
                "Failed to set storage URL",
                extra={"video_id": video_id, "error": str(e)}
            )
            raise PersistenceError(f"Failed to update video: {e}") from e
        finally:
            cursor.close()

        if not updated:
            raise VideoNotFoundError(f"Video {video_id} not found")

    def get_video(self, video_id: str) -> Video:
        """Load a video by id. Raises VideoNotFoundError."""
        cursor = self._conn.cursor()

        try:
            cursor.execute(
                f"SELECT {_VIDEO_COLUMNS} FROM videos WHERE video_id = %s",
                (video_id,)
            )
            row = cursor.fetchone()
        finally:
            cursor.close()

        if not row:
            raise VideoNotFoundError(f"Video {video_id} not found")

        return Video(
            id=row[0],
            filename=row[1],
            original_name=row[2] or "",
            mime_type=row[3] or "",
            size_bytes=row[4] or 0,
            storage_url=row[5],
            storage_key=row[6],
            status=VideoStatus(row[7]),
            created_at=row[8],
            updated_at=row[9],
        )

    def get_analysis(self, video_id: str) -> Optional[VideoAnalysis]:
        """Load the analysis for a video, or None if it has none yet."""
        cursor = self._conn.cursor()

        try:
            cursor.execute("""
                SELECT
                    analysis_id,
                    video_id,
                    overall_score,
                    summary,
                    details,
                    created_at
                FROM analyses
                WHERE video_id = %s
            """, (video_id,))
            row = cursor.fetchone()
        finally:
            cursor.close()

        if not row:
            return None

        # VARIANT columns come back as JSON text
        details = row[4]
        if isinstance(details, str):
            details = json.loads(details)

        return VideoAnalysis(
            id=row[0],
            video_id=row[1],
            overall_score=int(row[2]),
            summary=row[3] or "",
            details=ScoreDetails.from_dict(details or {}),
            created_at=row[5],
        )

    def transition_status(
        self,
        video_id: str,
        from_status: VideoStatus,
        to_status: VideoStatus,
    ) -> bool:
        """
        Move a video from one status to the next.

        The UPDATE only matches while the row still holds from_status, so
        when two callers race exactly one of them wins. Returns False when
        the row was not in from_status (or doesn't exist).
        """
        if not from_status.can_transition_to(to_status):
            raise ValueError(f"Invalid status transition {from_status.value} -> {to_status.value}")

        cursor = self._conn.cursor()

        try:
            self._update_status(cursor, video_id, from_status, to_status)
            updated = cursor.rowcount
            self._conn.commit()

        except Exception as e:
            logger.error(
                "Failed to update video status",
                extra={"video_id": video_id, "to_status": to_status.value, "error": str(e)}
            )
            raise PersistenceError(f"Failed to update video status: {e}") from e
        finally:
            cursor.close()

        return bool(updated)

    def complete_with_analysis(self, analysis: VideoAnalysis) -> None:
        """
        Store the analysis and mark the video COMPLETED in one transaction.

        The status guard runs first. If the video is no longer PROCESSING
        nothing is written and PersistenceError is raised.
        """
        cursor = self._conn.cursor()

        try:
            cursor.execute("BEGIN")

            self._update_status(
                cursor, analysis.video_id, VideoStatus.PROCESSING, VideoStatus.COMPLETED
            )
            if not cursor.rowcount:
                raise PersistenceError(
                    f"Video {analysis.video_id} is not PROCESSING"
                )

            # PARSE_JSON is not allowed in a VALUES clause
            cursor.execute("""
                INSERT INTO analyses (
                    analysis_id, video_id, overall_score, summary, details, created_at
                )
                SELECT %s, %s, %s, %s, PARSE_JSON(%s), %s
            """, (
                analysis.id,
                analysis.video_id,
                analysis.overall_score,
                analysis.summary,
                json.dumps(analysis.details.to_dict()),
                analysis.created_at,
            ))

            self._conn.commit()

        except PersistenceError:
            self._conn.rollback()
            raise
        except Exception as e:
            self._conn.rollback()
            logger.error(
                "Failed to save analysis",
                extra={"video_id": analysis.video_id, "error": str(e)}
            )
            raise PersistenceError(f"Failed to save analysis: {e}") from e
        finally:
            cursor.close()

        logger.info(
            "Saved analysis",
            extra={"video_id": analysis.video_id, "analysis_id": analysis.id}
        )

    def mark_failed(self, video_id: str) -> bool:
        return self.transition_status(video_id, VideoStatus.PROCESSING, VideoStatus.FAILED)

    def fail_stale_processing(self, updated_before: datetime) -> list[str]:
        """Fail PROCESSING videos last updated before the cutoff. Returns their ids."""
        cursor = self._conn.cursor()

        try:
            cursor.execute("""
                SELECT video_id
                FROM videos
                WHERE status = %s
                  AND updated_at < %s
            """, (VideoStatus.PROCESSING.value, updated_before))
            candidates = [row[0] for row in cursor.fetchall()]
        except Exception as e:
            raise PersistenceError(f"Failed to query stale videos: {e}") from e
        finally:
            cursor.close()

        # Each row is failed through the guarded update, so a run that
        # finishes in the meantime keeps its COMPLETED status.
        return [video_id for video_id in candidates if self.mark_failed(video_id)]

    def _update_status(
        self,
        cursor,
        video_id: str,
        from_status: VideoStatus,
        to_status: VideoStatus,
    ) -> None:
        cursor.execute("""
            UPDATE videos
            SET status = %s, updated_at = %s
            WHERE video_id = %s
              AND status = %s
        """, (to_status.value, datetime.utcnow(), video_id, from_status.value))


class ConnectionScopedVideoStore:
    """
    VideoStore that opens a connection for each call.

    Background runs outlive the request that started them, so the
    pipeline can't borrow the request's connection.
    """

    def __init__(self, connection_factory: Callable[[], ContextManager[SnowflakeConnection]]) -> None:
        self._connection_factory = connection_factory

    @contextmanager
    def _repository(self) -> Generator[VideoRepository, None, None]:
        with self._connection_factory() as conn:
            yield VideoRepository(conn)

    def complete_with_analysis(self, analysis: VideoAnalysis) -> None:
        with self._repository() as repo:
            repo.complete_with_analysis(analysis)

    def mark_failed(self, video_id: str) -> bool:
        with self._repository() as repo:
            return repo.mark_failed(video_id)

    def fail_stale_processing(self, updated_before: datetime) -> list[str]:
        with self._repository() as repo:
            return repo.fail_stale_processing(updated_before)
