"""
Frame extraction using FFmpeg.

Samples a fixed number of evenly spaced stills from a video on local disk
and writes them as screenshot-{n}.jpg, scaled down to a bounded width so
the inference payload stays small.
"""

import asyncio
import json
import logging
import subprocess
from pathlib import Path

from vidscore.core.analysis.errors import ExtractionError
from vidscore.core.analysis.frames import (
    evenly_spaced_timestamps,
    frame_filename,
    sorted_frame_paths,
)
from vidscore.core.analysis.pipeline import FrameExtractor

logger = logging.getLogger(__name__)


class FFmpegFrameExtractor:
    """
    Frame extractor backed by the ffmpeg and ffprobe binaries.

    One ffprobe call reads the duration, then one ffmpeg seek per
    timestamp writes a single JPEG. Subprocesses run in a worker thread so
    the event loop keeps serving requests.
    """

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        timeout_seconds: float = 60.0,
    ):
        self._ffmpeg = ffmpeg_path
        self._ffprobe = ffprobe_path
        self._timeout = timeout_seconds

        # verify ffmpeg is available
        try:
            result = subprocess.run(
                [self._ffmpeg, "-version"],
                capture_output=True,
                text=True,
                timeout=5
            )
            if result.returncode != 0:
                raise RuntimeError("FFmpeg not working properly")
            logger.info("FFmpeg frame extractor initialized")
        except FileNotFoundError:
            raise RuntimeError(
                "FFmpeg not found. Install with: apt-get install ffmpeg"
            )

    async def get_duration(self, input_path: Path) -> float:
        """Read the container duration in seconds via ffprobe."""
        cmd = [
            self._ffprobe,
            "-v", "error",
            "-print_format", "json",
            "-show_format",
            str(input_path),
        ]

        try:
            result = await asyncio.to_thread(
                subprocess.run,
                cmd,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired:
            raise ExtractionError("ffprobe timed out")

        if result.returncode != 0:
            raise ExtractionError(result.stderr.strip() or "ffprobe failed")

        try:
            info = json.loads(result.stdout)
            return float(info.get("format", {}).get("duration", 0))
        except (json.JSONDecodeError, TypeError, ValueError) as e:
            raise ExtractionError(f"Failed to parse ffprobe output: {e}")

    async def extract_frames(
        self,
        input_path: Path,
        output_dir: Path,
        count: int,
        width: int = 640,
    ) -> list[Path]:
        """
        Write up to `count` evenly spaced frames into output_dir.

        Returns the frames in ordinal order. Raises ExtractionError with
        ffmpeg's stderr if the tool fails, or if nothing was written.
        """
        if not input_path.exists():
            raise ExtractionError(f"Video file not found: {input_path}")
        if count < 1:
            return []

        duration = await self.get_duration(input_path)
        timestamps = evenly_spaced_timestamps(duration, count)

        for ordinal, ts in enumerate(timestamps, start=1):
            output_path = output_dir / frame_filename(ordinal)

            # -ss before -i for fast seeking
            # min(W,iw) never upscales; -2 keeps the aspect ratio with an even height
            cmd = [
                self._ffmpeg,
                "-v", "error",
                "-ss", str(ts),
                "-i", str(input_path),
                "-frames:v", "1",
                "-vf", f"scale='min({width},iw)':-2",
                "-q:v", "2",
                "-y",
                str(output_path),
            ]

            try:
                result = await asyncio.to_thread(
                    subprocess.run,
                    cmd,
                    capture_output=True,
                    text=True,
                    timeout=self._timeout,
                )
            except subprocess.TimeoutExpired:
                raise ExtractionError(f"ffmpeg timed out extracting frame at {ts}s")

            if result.returncode != 0:
                raise ExtractionError(result.stderr.strip() or f"ffmpeg exited with {result.returncode}")

        frames = sorted_frame_paths(output_dir)
        if not frames:
            raise ExtractionError(
                "No frames extracted. Check ffmpeg setup or video file integrity."
            )

        logger.info(
            "Extracted frames",
            extra={"count": len(frames), "duration": duration, "timestamps": timestamps}
        )

        return frames


# Minimal 1x1 JPEG. Enough for mock runs.
PLACEHOLDER_JPEG = bytes([
    0xFF, 0xD8, 0xFF, 0xE0, 0x00, 0x10, 0x4A, 0x46,
    0x49, 0x46, 0x00, 0x01, 0x01, 0x00, 0x00, 0x01,
    0x00, 0x01, 0x00, 0x00, 0xFF, 0xDB, 0x00, 0x43,
    0x00, 0x08, 0x06, 0x06, 0x07, 0x06, 0x05, 0x08,
    0x07, 0x07, 0x07, 0x09, 0x09, 0x08, 0x0A, 0x0C,
    0x14, 0x0D, 0x0C, 0x0B, 0x0B, 0x0C, 0x19, 0x12,
    0x13, 0x0F, 0x14, 0x1D, 0x1A, 0x1F, 0x1E, 0x1D,
    0x1A, 0x1C, 0x1C, 0x20, 0x24, 0x2E, 0x27, 0x20,
    0x22, 0x2C, 0x23, 0x1C, 0x1C, 0x28, 0x37, 0x29,
    0x2C, 0x30, 0x31, 0x34, 0x34, 0x34, 0x1F, 0x27,
    0x39, 0x3D, 0x38, 0x32, 0x3C, 0x2E, 0x33, 0x34,
    0x32, 0xFF, 0xC0, 0x00, 0x0B, 0x08, 0x00, 0x01,
    0x00, 0x01, 0x01, 0x01, 0x11, 0x00, 0xFF, 0xC4,
    0x00, 0x1F, 0x00, 0x00, 0x01, 0x05, 0x01, 0x01,
    0x01, 0x01, 0x01, 0x01, 0x00, 0x00, 0x00, 0x00,
    0x00, 0x00, 0x00, 0x00, 0x01, 0x02, 0x03, 0x04,
    0x05, 0x06, 0x07, 0x08, 0x09, 0x0A, 0x0B, 0xFF,
    0xC4, 0x00, 0xB5, 0x10, 0x00, 0x02, 0x01, 0x03,
    0x03, 0x02, 0x04, 0x03, 0x05, 0x05, 0x04, 0x04,
    0x00, 0x00, 0x01, 0x7D, 0x01, 0x02, 0x03, 0x00,
    0x04, 0x11, 0x05, 0x12, 0x21, 0x31, 0x41, 0x06,
    0x13, 0x51, 0x61, 0x07, 0x22, 0x71, 0x14, 0x32,
    0x81, 0x91, 0xA1, 0x08, 0x23, 0x42, 0xB1, 0xC1,
    0x15, 0x52, 0xD1, 0xF0, 0x24, 0x33, 0x62, 0x72,
    0x82, 0x09, 0x0A, 0x16, 0x17, 0x18, 0x19, 0x1A,
    0x25, 0x26, 0x27, 0x28, 0x29, 0x2A, 0x34, 0x35,
    0x36, 0x37, 0x38, 0x39, 0x3A, 0x43, 0x44, 0x45,
    0x46, 0x47, 0x48, 0x49, 0x4A, 0x53, 0x54, 0x55,
    0x56, 0x57, 0x58, 0x59, 0x5A, 0x63, 0x64, 0x65,
    0x66, 0x67, 0x68, 0x69, 0x6A, 0x73, 0x74, 0x75,
    0x76, 0x77, 0x78, 0x79, 0x7A, 0x83, 0x84, 0x85,
    0x86, 0x87, 0x88, 0x89, 0x8A, 0x92, 0x93, 0x94,
    0x95, 0x96, 0x97, 0x98, 0x99, 0x9A, 0xA2, 0xA3,
    0xA4, 0xA5, 0xA6, 0xA7, 0xA8, 0xA9, 0xAA, 0xB2,
    0xB3, 0xB4, 0xB5, 0xB6, 0xB7, 0xB8, 0xB9, 0xBA,
    0xC2, 0xC3, 0xC4, 0xC5, 0xC6, 0xC7, 0xC8, 0xC9,
    0xCA, 0xD2, 0xD3, 0xD4, 0xD5, 0xD6, 0xD7, 0xD8,
    0xD9, 0xDA, 0xE1, 0xE2, 0xE3, 0xE4, 0xE5, 0xE6,
    0xE7, 0xE8, 0xE9, 0xEA, 0xF1, 0xF2, 0xF3, 0xF4,
    0xF5, 0xF6, 0xF7, 0xF8, 0xF9, 0xFA, 0xFF, 0xDA,
    0x00, 0x08, 0x01, 0x01, 0x00, 0x00, 0x3F, 0x00,
    0xFB, 0xD3, 0x28, 0xA0, 0x02, 0x8A, 0x28, 0x03,
    0xFF, 0xD9
])


class MockFrameExtractor:
    """
    Mock extractor for local development without FFmpeg.

    Writes placeholder JPEGs so the rest of the pipeline runs end to end.
    """

    def __init__(self):
        logger.info("Initialized mock frame extractor")

    async def extract_frames(
        self,
        input_path: Path,
        output_dir: Path,
        count: int,
        width: int = 640,
    ) -> list[Path]:
        if not input_path.exists():
            raise ExtractionError(f"Video file not found: {input_path}")

        for ordinal in range(1, count + 1):
            (output_dir / frame_filename(ordinal)).write_bytes(PLACEHOLDER_JPEG)

        return sorted_frame_paths(output_dir)


def create_frame_extractor(
    mock_mode: bool = False,
    ffmpeg_path: str = "ffmpeg",
    ffprobe_path: str = "ffprobe",
) -> FrameExtractor:
    """
    Factory function for the frame extractor.

    Args:
        mock_mode: If True, return mock extractor (no FFmpeg required)
    """
    if mock_mode:
        return MockFrameExtractor()

    return FFmpegFrameExtractor(ffmpeg_path=ffmpeg_path, ffprobe_path=ffprobe_path)
