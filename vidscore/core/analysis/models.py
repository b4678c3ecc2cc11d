"""
Domain models for video scoring.

These models represent the core business concepts. They have no dependencies
on external frameworks, databases, or APIs. This is intentional: the domain
should be expressible without knowing how it's stored or transmitted.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import uuid4


SCORE_DIMENSIONS = ("hook", "pacing", "visuals", "cta")


class VideoStatus(Enum):
    """
    Lifecycle of an uploaded video.

    PENDING is set when the upload URL is issued, PROCESSING when the client
    confirms the upload, and exactly one of COMPLETED or FAILED when the
    analysis run finishes.
    """
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (VideoStatus.COMPLETED, VideoStatus.FAILED)

    def can_transition_to(self, target: "VideoStatus") -> bool:
        return target in _ALLOWED_TRANSITIONS[self]


_ALLOWED_TRANSITIONS: dict[VideoStatus, frozenset[VideoStatus]] = {
    VideoStatus.PENDING: frozenset({VideoStatus.PROCESSING}),
    VideoStatus.PROCESSING: frozenset({VideoStatus.COMPLETED, VideoStatus.FAILED}),
    VideoStatus.COMPLETED: frozenset(),
    VideoStatus.FAILED: frozenset(),
}


def _utcnow() -> datetime:
    return datetime.utcnow()


@dataclass
class Video:
    """
    An uploaded video and its processing status.

    storage_url stays None until the upload URL has been issued.
    """
    id: str = field(default_factory=lambda: str(uuid4()))
    filename: str = ""
    original_name: str = ""
    mime_type: str = ""
    size_bytes: int = 0
    storage_url: Optional[str] = None
    storage_key: Optional[str] = None
    status: VideoStatus = VideoStatus.PENDING
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if not self.filename.strip():
            raise ValueError("Video filename cannot be empty")
        if self.size_bytes < 0:
            raise ValueError("Video size cannot be negative")

    @property
    def blob_name(self) -> str:
        """Storage object name. The id prefix keeps names unique."""
        return self.storage_key or f"{self.id}-{self.filename}"


@dataclass(frozen=True)
class VideoSource:
    """What the analysis pipeline needs to know about a video."""
    video_id: str
    source_url: str
    filename: str


@dataclass(frozen=True)
class DimensionScore:
    """Score and feedback for one marketing dimension."""
    score: int = 0
    feedback: str = ""

    def __post_init__(self) -> None:
        if isinstance(self.score, bool) or not isinstance(self.score, int):
            raise ValueError("Dimension score must be an integer")
        if not 0 <= self.score <= 100:
            raise ValueError("Dimension score must be between 0 and 100")

    def to_dict(self) -> dict[str, Any]:
        return {"score": self.score, "feedback": self.feedback}


@dataclass(frozen=True)
class ScoreDetails:
    """Per-dimension breakdown. Missing dimensions score 0 with no feedback."""
    hook: DimensionScore = field(default_factory=DimensionScore)
    pacing: DimensionScore = field(default_factory=DimensionScore)
    visuals: DimensionScore = field(default_factory=DimensionScore)
    cta: DimensionScore = field(default_factory=DimensionScore)

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {name: getattr(self, name).to_dict() for name in SCORE_DIMENSIONS}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScoreDetails":
        return cls(**{
            name: DimensionScore(
                score=data[name].get("score", 0),
                feedback=data[name].get("feedback", ""),
            )
            for name in SCORE_DIMENSIONS
            if name in data
        })


@dataclass(frozen=True)
class VideoScore:
    """
    The parsed model verdict for one video.

    Frozen because a score is a value produced once per run.
    """
    overall_score: int
    summary: str
    details: ScoreDetails = field(default_factory=ScoreDetails)

    def __post_init__(self) -> None:
        if isinstance(self.overall_score, bool) or not isinstance(self.overall_score, int):
            raise ValueError("Overall score must be an integer")
        if not 0 <= self.overall_score <= 100:
            raise ValueError("Overall score must be between 0 and 100")


@dataclass
class VideoAnalysis:
    """
    A persisted analysis, linked one-to-one with a video.

    Created only when a run succeeds and never updated afterwards.
    """
    video_id: str
    overall_score: int
    summary: str
    details: ScoreDetails = field(default_factory=ScoreDetails)
    id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def from_score(cls, video_id: str, score: VideoScore) -> "VideoAnalysis":
        return cls(
            video_id=video_id,
            overall_score=score.overall_score,
            summary=score.summary,
            details=score.details,
        )


@dataclass
class KnowledgeDocument:
    """A knowledge base entry. The embedding is computed by the database."""
    title: str
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid4()))

    def __post_init__(self) -> None:
        if not self.title.strip():
            raise ValueError("Document title cannot be empty")
        if not self.content.strip():
            raise ValueError("Document content cannot be empty")


@dataclass(frozen=True)
class SearchResult:
    """One ranked hit from the knowledge base."""
    document_id: str
    title: str
    content: str
    metadata: dict[str, Any]
    score: float
