"""
Video analysis logic.

Contains the analysis pipeline, the scoring prompt and parser, domain
models, and frame ordering helpers.
"""

from .errors import (
    ConfigurationError,
    DownloadError,
    ExtractionError,
    InferenceError,
    ParseError,
    PersistenceError,
    PipelineError,
    VideoNotFoundError,
)
from .models import (
    DimensionScore,
    KnowledgeDocument,
    ScoreDetails,
    SearchResult,
    Video,
    VideoAnalysis,
    VideoScore,
    VideoSource,
    VideoStatus,
)
from .pipeline import PipelineConfig, VideoAnalysisPipeline, recover_stale_videos
from .scoring import VideoScorer, VisionModelClient

__all__ = [
    "ConfigurationError",
    "DownloadError",
    "ExtractionError",
    "InferenceError",
    "ParseError",
    "PersistenceError",
    "PipelineError",
    "VideoNotFoundError",
    "DimensionScore",
    "KnowledgeDocument",
    "ScoreDetails",
    "SearchResult",
    "Video",
    "VideoAnalysis",
    "VideoScore",
    "VideoSource",
    "VideoStatus",
    "PipelineConfig",
    "VideoAnalysisPipeline",
    "recover_stale_videos",
    "VideoScorer",
    "VisionModelClient",
]
