"""
Video processing infrastructure.

Handles server-side frame extraction using FFmpeg, plus a mock for local
development without FFmpeg installed.
"""

from .processor import (
    FFmpegFrameExtractor,
    MockFrameExtractor,
    create_frame_extractor,
)

__all__ = [
    "FFmpegFrameExtractor",
    "MockFrameExtractor",
    "create_frame_extractor",
]
