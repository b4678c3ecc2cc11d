"""
Unit tests for the video analysis pipeline.

Every collaborator is a fake, so these tests run without ffmpeg, network,
Anthropic or Snowflake. The scratch root is a pytest tmp_path, which lets
each test assert that nothing was left behind.
"""

import asyncio
import json
import logging
import os
import threading
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from vidscore.core.analysis.errors import (
    ConfigurationError,
    DownloadError,
    ExtractionError,
    InferenceError,
    PersistenceError,
)
from vidscore.core.analysis.frames import frame_filename
from vidscore.core.analysis.models import VideoAnalysis, VideoSource, VideoStatus
from vidscore.core.analysis.pipeline import (
    PipelineConfig,
    ScratchSpace,
    VideoAnalysisPipeline,
    recover_stale_videos,
    safe_filename,
    scratch_space,
)
from vidscore.core.analysis.retry import RetryPolicy


GOOD_REPLY = json.dumps({
    "overallScore": 82,
    "summary": "Strong hook, weak CTA.",
    "details": {
        "hook": {"score": 90, "feedback": "Opens on motion."},
        "pacing": {"score": 80, "feedback": "Tight cuts."},
        "visuals": {"score": 85, "feedback": "Good lighting."},
        "cta": {"score": 40, "feedback": "CTA arrives too late."},
    },
})

FAST_RETRY = RetryPolicy(max_attempts=3, initial_delay=0.0, jitter=False)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeDownloader:
    """Writes fixed bytes, after failing with the queued errors."""

    def __init__(self, *errors: Exception, content: bytes = b"fake video") -> None:
        self._errors = list(errors)
        self._content = content
        self.calls = 0

    async def download(self, url: str, destination: Path) -> None:
        self.calls += 1
        if self._errors:
            raise self._errors.pop(0)
        with open(destination, "xb") as f:
            f.write(self._content)


class FakeExtractor:
    """Writes the given frame ordinals, in the given (possibly scrambled) order."""

    def __init__(self, ordinals=(1, 2, 3, 4, 5), error: Exception = None) -> None:
        self._ordinals = list(ordinals)
        self._error = error
        self.calls = 0
        self.seen_input_exists = None

    async def extract_frames(self, input_path, output_dir, count, width=640):
        self.calls += 1
        self.seen_input_exists = input_path.exists()
        if self._error:
            raise self._error
        for ordinal in self._ordinals:
            (output_dir / frame_filename(ordinal)).write_bytes(f"frame-{ordinal}".encode())
        return []


class FakeVisionClient:
    """Returns a canned reply, after raising the queued errors."""

    def __init__(self, reply: str = GOOD_REPLY, *errors: Exception) -> None:
        self._reply = reply
        self._errors = list(errors)
        self.calls: list[list[bytes]] = []

    async def analyze_images(self, images, system_prompt, user_prompt, json_response=True):
        self.calls.append(list(images))
        if self._errors:
            raise self._errors.pop(0)
        return self._reply


class InMemoryStore:
    """VideoStore fake with the same status guards as the repository."""

    def __init__(self, video_id: str = "v1") -> None:
        self.statuses = {video_id: VideoStatus.PROCESSING}
        self.updated_at = {video_id: datetime.utcnow()}
        self.analyses: dict[str, VideoAnalysis] = {}
        self.fail_complete = False

    def complete_with_analysis(self, analysis: VideoAnalysis) -> None:
        if self.fail_complete:
            raise PersistenceError("database unavailable")
        if self.statuses.get(analysis.video_id) != VideoStatus.PROCESSING:
            raise PersistenceError("not processing")
        self.analyses[analysis.video_id] = analysis
        self.statuses[analysis.video_id] = VideoStatus.COMPLETED

    def mark_failed(self, video_id: str) -> bool:
        if self.statuses.get(video_id) != VideoStatus.PROCESSING:
            return False
        self.statuses[video_id] = VideoStatus.FAILED
        return True

    def fail_stale_processing(self, updated_before: datetime) -> list[str]:
        stale = [
            video_id for video_id, status in self.statuses.items()
            if status == VideoStatus.PROCESSING and self.updated_at[video_id] < updated_before
        ]
        return [video_id for video_id in stale if self.mark_failed(video_id)]


@pytest.fixture
def scratch_root(tmp_path) -> Path:
    root = tmp_path / "scratch"
    root.mkdir()
    return root


def build_pipeline(
    scratch_root: Path,
    store: InMemoryStore,
    downloader: FakeDownloader = None,
    extractor: FakeExtractor = None,
    vision: FakeVisionClient = None,
    frame_count: int = 5,
) -> VideoAnalysisPipeline:
    return VideoAnalysisPipeline(
        vision_client=vision or FakeVisionClient(),
        frame_extractor=extractor or FakeExtractor(),
        downloader=downloader or FakeDownloader(),
        store=store,
        config=PipelineConfig(
            scratch_root=scratch_root,
            frame_count=frame_count,
            download_retry=FAST_RETRY,
            inference_retry=FAST_RETRY,
        ),
    )


def run(pipeline: VideoAnalysisPipeline, video_id: str = "v1") -> VideoStatus:
    source = VideoSource(
        video_id=video_id,
        source_url="https://storage.example/v1-launch.mp4",
        filename="launch.mp4",
    )
    return asyncio.run(pipeline.run(source))


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------

class TestPipelineSuccess:
    """Tests for a run that scores the video."""

    def test_completes_and_stores_analysis(self, scratch_root):
        store = InMemoryStore()
        vision = FakeVisionClient()
        pipeline = build_pipeline(scratch_root, store, vision=vision)

        status = run(pipeline)

        assert status == VideoStatus.COMPLETED
        assert store.statuses["v1"] == VideoStatus.COMPLETED
        analysis = store.analyses["v1"]
        assert analysis.overall_score == 82
        assert analysis.summary == "Strong hook, weak CTA."
        assert analysis.details.cta.feedback == "CTA arrives too late."
        assert len(vision.calls) == 1
        assert len(vision.calls[0]) == 5

    def test_frames_reach_model_in_numeric_order(self, scratch_root):
        """screenshot-2 must come before screenshot-10."""
        store = InMemoryStore()
        vision = FakeVisionClient()
        extractor = FakeExtractor(ordinals=[10, 3, 1, 12, 2, 11, 4, 5, 9, 6, 8, 7])
        pipeline = build_pipeline(scratch_root, store, extractor=extractor, vision=vision, frame_count=12)

        run(pipeline)

        assert vision.calls[0] == [f"frame-{n}".encode() for n in range(1, 13)]

    def test_video_is_downloaded_before_extraction(self, scratch_root):
        extractor = FakeExtractor()
        pipeline = build_pipeline(scratch_root, InMemoryStore(), extractor=extractor)

        run(pipeline)

        assert extractor.seen_input_exists is True

    def test_frames_are_read_off_the_event_loop_thread(self, scratch_root, monkeypatch):
        reader_threads = []
        original_read_bytes = Path.read_bytes

        def recording_read_bytes(self):
            if self.name.startswith("screenshot-"):
                reader_threads.append(threading.current_thread())
            return original_read_bytes(self)

        monkeypatch.setattr(Path, "read_bytes", recording_read_bytes)
        pipeline = build_pipeline(scratch_root, InMemoryStore())

        run(pipeline)

        assert len(reader_threads) == 5
        assert threading.main_thread() not in reader_threads

    def test_scratch_space_is_removed(self, scratch_root):
        pipeline = build_pipeline(scratch_root, InMemoryStore())

        run(pipeline)

        assert os.listdir(scratch_root) == []

    def test_transient_failures_are_retried(self, scratch_root):
        store = InMemoryStore()
        downloader = FakeDownloader(
            DownloadError("503", status_code=503, retryable=True),
            DownloadError("502", status_code=502, retryable=True),
        )
        vision = FakeVisionClient(GOOD_REPLY, InferenceError("rate limited", retryable=True))
        pipeline = build_pipeline(scratch_root, store, downloader=downloader, vision=vision)

        status = run(pipeline)

        assert status == VideoStatus.COMPLETED
        assert downloader.calls == 3
        assert len(vision.calls) == 2


# ---------------------------------------------------------------------------
# Failure paths
# ---------------------------------------------------------------------------

class TestPipelineFailures:
    """Every failure ends in FAILED, with no analysis and no scratch files."""

    def test_download_404_fails_without_extraction_or_inference(self, scratch_root):
        store = InMemoryStore()
        downloader = FakeDownloader(DownloadError("Failed to download file: 404", status_code=404))
        extractor = FakeExtractor()
        vision = FakeVisionClient()
        pipeline = build_pipeline(scratch_root, store, downloader, extractor, vision)

        status = run(pipeline)

        assert status == VideoStatus.FAILED
        assert store.statuses["v1"] == VideoStatus.FAILED
        assert downloader.calls == 1
        assert extractor.calls == 0
        assert vision.calls == []
        assert store.analyses == {}
        assert os.listdir(scratch_root) == []

    def test_retries_exhausted_fails(self, scratch_root):
        store = InMemoryStore()
        downloader = FakeDownloader(*[DownloadError("503", status_code=503, retryable=True)] * 3)
        pipeline = build_pipeline(scratch_root, store, downloader=downloader)

        assert run(pipeline) == VideoStatus.FAILED
        assert downloader.calls == 3

    def test_zero_frames_fails_without_inference(self, scratch_root):
        store = InMemoryStore()
        vision = FakeVisionClient()
        pipeline = build_pipeline(scratch_root, store, extractor=FakeExtractor(ordinals=[]), vision=vision)

        status = run(pipeline)

        assert status == VideoStatus.FAILED
        assert vision.calls == []
        assert store.analyses == {}
        assert os.listdir(scratch_root) == []

    def test_extractor_error_fails(self, scratch_root):
        store = InMemoryStore()
        extractor = FakeExtractor(error=ExtractionError("moov atom not found"))
        pipeline = build_pipeline(scratch_root, store, extractor=extractor)

        assert run(pipeline) == VideoStatus.FAILED
        assert os.listdir(scratch_root) == []

    @pytest.mark.parametrize("reply", [
        "",
        "Sure! Here's the analysis...",
        json.dumps({"summary": "no score"}),
        json.dumps({"overallScore": 140, "summary": "too high"}),
    ])
    def test_malformed_reply_fails_without_analysis(self, scratch_root, reply):
        store = InMemoryStore()
        pipeline = build_pipeline(scratch_root, store, vision=FakeVisionClient(reply))

        status = run(pipeline)

        assert status == VideoStatus.FAILED
        assert store.analyses == {}
        assert os.listdir(scratch_root) == []

    def test_non_retryable_inference_error_fails_after_one_call(self, scratch_root):
        store = InMemoryStore()
        vision = FakeVisionClient(GOOD_REPLY, InferenceError("invalid request"))
        pipeline = build_pipeline(scratch_root, store, vision=vision)

        assert run(pipeline) == VideoStatus.FAILED
        assert len(vision.calls) == 1

    def test_persistence_failure_marks_failed(self, scratch_root):
        store = InMemoryStore()
        store.fail_complete = True
        pipeline = build_pipeline(scratch_root, store)

        assert run(pipeline) == VideoStatus.FAILED
        assert store.statuses["v1"] == VideoStatus.FAILED

    def test_unexpected_exception_marks_failed(self, scratch_root):
        store = InMemoryStore()
        extractor = FakeExtractor(error=RuntimeError("boom"))
        pipeline = build_pipeline(scratch_root, store, extractor=extractor)

        assert run(pipeline) == VideoStatus.FAILED
        assert store.statuses["v1"] == VideoStatus.FAILED

    def test_run_never_reaches_terminal_video_twice(self, scratch_root):
        """A second run for a finished video can't overwrite its status."""
        store = InMemoryStore()
        pipeline = build_pipeline(scratch_root, store)

        assert run(pipeline) == VideoStatus.COMPLETED
        assert run(pipeline) == VideoStatus.FAILED
        assert store.statuses["v1"] == VideoStatus.COMPLETED


class TestPipelineConfiguration:
    """Tests for construction-time checks."""

    def test_missing_vision_client_is_a_configuration_error(self, scratch_root):
        with pytest.raises(ConfigurationError):
            VideoAnalysisPipeline(
                vision_client=None,
                frame_extractor=FakeExtractor(),
                downloader=FakeDownloader(),
                store=InMemoryStore(),
                config=PipelineConfig(scratch_root=scratch_root),
            )

        assert os.listdir(scratch_root) == []

    def test_frame_count_must_be_positive(self, scratch_root):
        with pytest.raises(ValueError):
            PipelineConfig(scratch_root=scratch_root, frame_count=0)


# ---------------------------------------------------------------------------
# Scratch space
# ---------------------------------------------------------------------------

class TestScratchSpace:
    """Tests for per-run temporary files."""

    def test_paths_are_unique_per_run(self, scratch_root):
        first = ScratchSpace.create(scratch_root, "launch.mp4")
        second = ScratchSpace.create(scratch_root, "launch.mp4")

        assert first.video_path != second.video_path
        assert first.frames_dir != second.frames_dir
        assert first.video_path.name.endswith("-launch.mp4")
        assert first.frames_dir.name.endswith("-frames")

    def test_cleanup_is_idempotent(self, scratch_root):
        space = ScratchSpace.create(scratch_root, "launch.mp4")
        space.video_path.write_bytes(b"video")
        (space.frames_dir / frame_filename(1)).write_bytes(b"frame")

        space.cleanup()
        space.cleanup()

        assert os.listdir(scratch_root) == []

    def test_context_manager_cleans_up_on_error(self, scratch_root):
        with pytest.raises(RuntimeError):
            with scratch_space(scratch_root, "launch.mp4") as space:
                space.video_path.write_bytes(b"video")
                raise RuntimeError("step failed")

        assert os.listdir(scratch_root) == []

    def test_cleanup_failure_is_logged_and_cleanup_continues(self, scratch_root, monkeypatch, caplog):
        space = ScratchSpace.create(scratch_root, "launch.mp4")
        space.video_path.write_bytes(b"video")
        (space.frames_dir / frame_filename(1)).write_bytes(b"frame")

        original_unlink = Path.unlink

        def flaky_unlink(self, *args, **kwargs):
            if self == space.video_path:
                raise PermissionError("locked")
            return original_unlink(self, *args, **kwargs)

        monkeypatch.setattr(Path, "unlink", flaky_unlink)

        with caplog.at_level(logging.WARNING):
            space.cleanup()

        assert "Error removing temp video file" in caplog.text
        assert not space.frames_dir.exists()
        assert space.video_path.exists()

    def test_safe_filename_strips_directories(self):
        assert safe_filename("../../etc/passwd") == "passwd"
        assert safe_filename("my video (final).mp4") == "my_video__final_.mp4"
        assert safe_filename("") == "video"


# ---------------------------------------------------------------------------
# Recovery
# ---------------------------------------------------------------------------

class TestRecoverStaleVideos:
    """Tests for the startup sweep."""

    def test_fails_only_old_processing_videos(self):
        now = datetime(2026, 1, 1, 12, 0, 0)
        store = InMemoryStore("stuck")
        store.updated_at["stuck"] = now - timedelta(hours=2)
        store.statuses["fresh"] = VideoStatus.PROCESSING
        store.updated_at["fresh"] = now - timedelta(minutes=5)
        store.statuses["done"] = VideoStatus.COMPLETED
        store.updated_at["done"] = now - timedelta(days=1)

        failed = recover_stale_videos(store, timedelta(minutes=30), now=now)

        assert failed == ["stuck"]
        assert store.statuses["stuck"] == VideoStatus.FAILED
        assert store.statuses["fresh"] == VideoStatus.PROCESSING
        assert store.statuses["done"] == VideoStatus.COMPLETED
