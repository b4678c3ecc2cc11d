"""
Video analysis pipeline.

Drives one video from "uploaded" to "scored":
1. Download the video into a scratch file
2. Extract evenly spaced frames into a scratch directory
3. Send the frames, in order, to the vision model in a single request
4. Parse the JSON verdict
5. Persist the analysis and mark the video COMPLETED

Any failure along the way marks the video FAILED instead. The run is
started as a background task, so errors are logged here and never
re-raised to a caller. Scratch files are removed on every exit path.
"""

import asyncio
import logging
import re
import shutil
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Generator, Optional, Protocol
from uuid import uuid4

from .errors import ConfigurationError, ExtractionError, PipelineError
from .frames import sorted_frame_paths
from .models import VideoAnalysis, VideoScore, VideoSource, VideoStatus
from .retry import NO_RETRY, RetryPolicy, retry_async
from .scoring import VideoScorer, VisionModelClient, parse_score_response

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocols (collaborators)
# ---------------------------------------------------------------------------

class MediaDownloader(Protocol):
    """Fetches a URL into a local file that must not exist yet."""

    async def download(self, url: str, destination: Path) -> None:
        ...


class FrameExtractor(Protocol):
    """Writes up to `count` frames named screenshot-{n}.jpg into output_dir."""

    async def extract_frames(
        self,
        input_path: Path,
        output_dir: Path,
        count: int,
        width: int = 640,
    ) -> list[Path]:
        ...


class VideoStore(Protocol):
    """The writes the pipeline makes. Implemented by the video repository."""

    def complete_with_analysis(self, analysis: VideoAnalysis) -> None:
        """Insert the analysis and move the video to COMPLETED atomically."""
        ...

    def mark_failed(self, video_id: str) -> bool:
        """Move the video from PROCESSING to FAILED. False if it wasn't PROCESSING."""
        ...

    def fail_stale_processing(self, updated_before: datetime) -> list[str]:
        """Fail PROCESSING videos not touched since `updated_before`."""
        ...


# ---------------------------------------------------------------------------
# Scratch space
# ---------------------------------------------------------------------------

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def safe_filename(filename: str) -> str:
    """Strip directories and unusual characters from a user-supplied filename."""
    name = Path(filename).name
    name = _UNSAFE_FILENAME_CHARS.sub("_", name)
    return name or "video"


@dataclass
class ScratchSpace:
    """
    The temporary file and directory owned by a single run.

    Random prefixes keep concurrent runs from colliding, even for the
    same upload filename.
    """
    video_path: Path
    frames_dir: Path

    @classmethod
    def create(cls, root: Path, filename: str) -> "ScratchSpace":
        video_path = root / f"{uuid4()}-{safe_filename(filename)}"
        frames_dir = root / f"{uuid4()}-frames"
        frames_dir.mkdir(parents=True)
        return cls(video_path=video_path, frames_dir=frames_dir)

    def cleanup(self) -> None:
        """
        Remove the scratch file, every frame and the frame directory.

        Each removal is attempted independently and failures are only
        logged. Safe to call more than once.
        """
        if self.video_path.exists():
            try:
                self.video_path.unlink()
            except OSError as e:
                logger.warning(
                    "Error removing temp video file",
                    extra={"path": str(self.video_path), "error": str(e)}
                )

        if not self.frames_dir.exists():
            return

        for entry in self.frames_dir.iterdir():
            try:
                if entry.is_dir():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
            except OSError as e:
                logger.warning(
                    "Error removing temp frame file",
                    extra={"path": str(entry), "error": str(e)}
                )

        try:
            self.frames_dir.rmdir()
        except OSError as e:
            logger.warning(
                "Error removing temp frames directory",
                extra={"path": str(self.frames_dir), "error": str(e)}
            )


@contextmanager
def scratch_space(root: Path, filename: str) -> Generator[ScratchSpace, None, None]:
    """Provide a ScratchSpace that is cleaned up however the block exits."""
    space = ScratchSpace.create(root, filename)
    try:
        yield space
    finally:
        space.cleanup()


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PipelineConfig:
    """Knobs for a run. Built once from Settings."""
    scratch_root: Path
    frame_count: int = 5
    frame_width: int = 640
    download_retry: RetryPolicy = field(default=NO_RETRY)
    inference_retry: RetryPolicy = field(default=NO_RETRY)

    def __post_init__(self) -> None:
        if self.frame_count < 1:
            raise ValueError("frame_count must be at least 1")
        if self.frame_width < 16:
            raise ValueError("frame_width is too small")


class VideoAnalysisPipeline:
    """
    Orchestrates download, extraction, inference and persistence.

    Holds only immutable collaborators, so a single instance is shared by
    every concurrent run. Each run owns its own scratch space.
    """

    def __init__(
        self,
        vision_client: Optional[VisionModelClient],
        frame_extractor: FrameExtractor,
        downloader: MediaDownloader,
        store: VideoStore,
        config: PipelineConfig,
    ) -> None:
        if vision_client is None:
            raise ConfigurationError(
                "Vision model client is not configured. Check credentials and endpoint."
            )
        self._scorer = VideoScorer(vision_client)
        self._frame_extractor = frame_extractor
        self._downloader = downloader
        self._store = store
        self._config = config

    async def run(self, source: VideoSource) -> VideoStatus:
        """
        Analyze one video and record the outcome.

        Returns the final status (COMPLETED or FAILED). Never raises for
        pipeline failures; they are logged and turned into FAILED.
        """
        logger.info(
            "Video analysis started",
            extra={"video_id": source.video_id, "video_filename": source.filename}
        )

        try:
            score = await self._analyze(source)
        except PipelineError as e:
            logger.error(
                "Video analysis failed",
                extra={
                    "video_id": source.video_id,
                    "error_type": type(e).__name__,
                    "error": str(e),
                }
            )
            return await self._fail(source.video_id)
        except Exception as e:
            logger.error(
                "Unexpected error during video analysis",
                extra={"video_id": source.video_id, "error": str(e)},
                exc_info=e,
            )
            return await self._fail(source.video_id)

        analysis = VideoAnalysis.from_score(source.video_id, score)

        try:
            await asyncio.to_thread(self._store.complete_with_analysis, analysis)
        except Exception as e:
            logger.error(
                "Failed to persist analysis",
                extra={"video_id": source.video_id, "error": str(e)}
            )
            return await self._fail(source.video_id)

        logger.info(
            "Video analysis complete",
            extra={
                "video_id": source.video_id,
                "overall_score": score.overall_score,
            }
        )
        return VideoStatus.COMPLETED

    async def _analyze(self, source: VideoSource) -> VideoScore:
        """Steps that need scratch space. Cleanup happens before returning."""
        with scratch_space(self._config.scratch_root, source.filename) as scratch:
            await retry_async(
                lambda: self._downloader.download(source.source_url, scratch.video_path),
                self._config.download_retry,
                description=f"download {source.video_id}",
            )

            await self._frame_extractor.extract_frames(
                scratch.video_path,
                scratch.frames_dir,
                self._config.frame_count,
                self._config.frame_width,
            )

            frame_paths = sorted_frame_paths(scratch.frames_dir)
            if not frame_paths:
                raise ExtractionError(
                    "No frames extracted from video. Check ffmpeg setup or video file integrity."
                )

            frames = [await asyncio.to_thread(path.read_bytes) for path in frame_paths]

            logger.debug(
                "Frames ready for inference",
                extra={"video_id": source.video_id, "frame_count": len(frames)}
            )

            raw_response = await retry_async(
                lambda: self._scorer.request_score(frames, source.filename),
                self._config.inference_retry,
                description=f"inference {source.video_id}",
            )

        return parse_score_response(raw_response)

    async def _fail(self, video_id: str) -> VideoStatus:
        try:
            updated = await asyncio.to_thread(self._store.mark_failed, video_id)
        except Exception as e:
            logger.error(
                "Failed to mark video as FAILED",
                extra={"video_id": video_id, "error": str(e)}
            )
            return VideoStatus.FAILED

        if not updated:
            logger.warning(
                "Video was not PROCESSING when marking it FAILED",
                extra={"video_id": video_id}
            )
        return VideoStatus.FAILED


# ---------------------------------------------------------------------------
# Recovery
# ---------------------------------------------------------------------------

def recover_stale_videos(
    store: VideoStore,
    older_than: timedelta,
    now: Optional[datetime] = None,
) -> list[str]:
    """
    Fail videos stuck in PROCESSING, e.g. after a crash mid-run.

    Runs at startup. Returns the ids that were moved to FAILED.
    """
    cutoff = (now or datetime.utcnow()) - older_than
    failed = store.fail_stale_processing(cutoff)

    if failed:
        logger.warning(
            "Marked stale PROCESSING videos as FAILED",
            extra={"count": len(failed), "video_ids": failed[:10]}
        )

    return failed
