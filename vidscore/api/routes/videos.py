"""
Video upload and scoring endpoints.

Workflow:
1. POST /videos/init-upload creates a PENDING video and returns a presigned
   upload URL. The client PUTs the bytes straight to storage.
2. POST /videos/{id}/confirm moves the video to PROCESSING and starts the
   analysis pipeline in the background.
3. GET /videos/{id} is polled until the status is COMPLETED or FAILED.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ...core.analysis.errors import VideoNotFoundError
from ...core.analysis.models import Video, VideoAnalysis, VideoSource, VideoStatus
from ...core.analysis.pipeline import safe_filename
from ..dependencies import PipelineDep, StorageClientDep, VideoRepositoryDep

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class CamelModel(BaseModel):
    """JSON bodies use camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InitUploadRequest(CamelModel):
    """Request to start an upload."""
    filename: str = Field(min_length=1, max_length=255, description="Original filename of the video")
    mime_type: str = Field(min_length=1, description="MIME type of the video, e.g. video/mp4")
    size: int = Field(ge=0, description="Size of the video file in bytes")


class InitUploadResponse(CamelModel):
    """Where to upload, and the id to confirm with."""
    id: str = Field(description="Video identifier")
    upload_url: str = Field(description="Presigned URL to PUT the video to")
    blob_url: str = Field(description="Where the video will be stored")


class ConfirmResponse(CamelModel):
    status: VideoStatus


class AnalysisResponse(CamelModel):
    """Marketing score for a completed video."""
    id: str
    video_id: str
    overall_score: int
    summary: str
    details: dict[str, Any]
    created_at: datetime

    @classmethod
    def from_domain(cls, analysis: VideoAnalysis) -> "AnalysisResponse":
        return cls(
            id=analysis.id,
            video_id=analysis.video_id,
            overall_score=analysis.overall_score,
            summary=analysis.summary,
            details=analysis.details.to_dict(),
            created_at=analysis.created_at,
        )


class VideoResponse(CamelModel):
    """Video record with its analysis, if there is one yet."""
    id: str
    filename: str
    original_name: str
    mime_type: str
    size: int
    url: Optional[str] = None
    status: VideoStatus
    created_at: datetime
    updated_at: datetime
    analysis: Optional[AnalysisResponse] = None

    @classmethod
    def from_domain(cls, video: Video, analysis: Optional[VideoAnalysis]) -> "VideoResponse":
        return cls(
            id=video.id,
            filename=video.filename,
            original_name=video.original_name,
            mime_type=video.mime_type,
            size=video.size_bytes,
            url=video.storage_url,
            status=video.status,
            created_at=video.created_at,
            updated_at=video.updated_at,
            analysis=AnalysisResponse.from_domain(analysis) if analysis else None,
        )


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="Video not found"
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/init-upload",
    response_model=InitUploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Initiate video upload",
    description="Create a PENDING video and get a presigned upload URL",
)
async def init_upload(
    request: InitUploadRequest,
    repository: VideoRepositoryDep,
    storage: StorageClientDep,
) -> InitUploadResponse:
    """
    Create the video record, then issue the upload URL.

    The blob name embeds the video id so uploads never collide.
    """
    video = repository.create_video(Video(
        filename=safe_filename(request.filename),
        original_name=request.filename,
        mime_type=request.mime_type,
        size_bytes=request.size,
    ))

    target = await storage.generate_upload_url(video.blob_name, request.mime_type)
    repository.set_storage_url(video.id, target.blob_url, video.blob_name)

    logger.info(
        "Upload initiated",
        extra={"video_id": video.id, "size_bytes": request.size, "mime_type": request.mime_type}
    )

    return InitUploadResponse(
        id=video.id,
        upload_url=target.upload_url,
        blob_url=target.blob_url,
    )


@router.post(
    "/{video_id}/confirm",
    response_model=ConfirmResponse,
    status_code=status.HTTP_200_OK,
    summary="Confirm upload and start analysis",
    description="Returns immediately; poll GET /videos/{id} for the result",
)
async def confirm_upload(
    video_id: str,
    background_tasks: BackgroundTasks,
    repository: VideoRepositoryDep,
    storage: StorageClientDep,
    pipeline: PipelineDep,
) -> ConfirmResponse:
    """
    Move the video to PROCESSING and schedule one pipeline run.

    Only the caller whose conditional update wins starts a run. Repeated
    confirms get the current status back and start nothing.
    """
    try:
        video = repository.get_video(video_id)
    except VideoNotFoundError:
        raise _not_found()

    if video.status != VideoStatus.PENDING:
        return ConfirmResponse(status=video.status)

    source_url = await storage.get_read_url(video.blob_name)

    if not repository.transition_status(video_id, VideoStatus.PENDING, VideoStatus.PROCESSING):
        current = repository.get_video(video_id)
        logger.info(
            "Confirm lost the race to another request",
            extra={"video_id": video_id, "status": current.status.value}
        )
        return ConfirmResponse(status=current.status)

    background_tasks.add_task(
        pipeline.run,
        VideoSource(video_id=video.id, source_url=source_url, filename=video.original_name),
    )

    logger.info("Analysis scheduled", extra={"video_id": video_id})

    return ConfirmResponse(status=VideoStatus.PROCESSING)


@router.get(
    "/{video_id}",
    response_model=VideoResponse,
    status_code=status.HTTP_200_OK,
    summary="Get video status and analysis",
)
async def get_video(
    video_id: str,
    repository: VideoRepositoryDep,
) -> VideoResponse:
    try:
        video = repository.get_video(video_id)
    except VideoNotFoundError:
        raise _not_found()

    return VideoResponse.from_domain(video, repository.get_analysis(video_id))
