"""
Marketing scoring logic and prompt management.

This module contains the "analyst brain": the prompt that tells the model
what to look for and the strict parser that turns its reply into a
VideoScore. It's framework-agnostic and doesn't know about HTTP, files or
databases.

The prompts are here, not in config, because they're core business logic.
Changing them changes what the product does.
"""

import json
import logging
from typing import Any, Protocol

from .errors import InferenceError, ParseError
from .models import SCORE_DIMENSIONS, DimensionScore, ScoreDetails, VideoScore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocols (interfaces)
# ---------------------------------------------------------------------------

class VisionModelClient(Protocol):
    """
    Interface for vision-capable LLM clients.

    The scorer doesn't know or care which provider is behind this, or
    whether it's a fake in a test. It just needs something that can look
    at images and answer with text.
    """

    async def analyze_images(
        self,
        images: list[bytes],
        system_prompt: str,
        user_prompt: str,
        json_response: bool = True,
    ) -> str:
        """Analyze images and return the raw text completion."""
        ...


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = """You are an expert video marketing analyst. Analyze the provided video frames and provide a JSON response with the following structure:
{
    "overallScore": number (0-100),
    "summary": string,
    "details": {
        "hook": { "score": number, "feedback": string },
        "pacing": { "score": number, "feedback": string },
        "visuals": { "score": number, "feedback": string },
        "cta": { "score": number, "feedback": string }
    }
}
Respond ONLY with the JSON object, do not include any other text or markdown.
If any detail is not applicable, use score: 0 and empty feedback string.
Ensure scores are integers between 0 and 100."""


USER_PROMPT_TEMPLATE = """Analyze the video for {filename}. The {frame_count} frames are in chronological order. Provide detailed feedback for hook, pacing, visuals, and CTA."""


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def _parse_score_value(value: Any, field_name: str) -> int:
    """
    Accept integers and integral floats (some models emit 82.0).

    Booleans are rejected even though they are ints in Python.
    """
    if isinstance(value, bool):
        raise ParseError(f"{field_name} must be an integer, got a boolean")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int):
        raise ParseError(f"{field_name} must be an integer, got {value!r}")
    if not 0 <= value <= 100:
        raise ParseError(f"{field_name} must be between 0 and 100, got {value}")
    return value


def _parse_dimension(name: str, raw: Any) -> DimensionScore:
    if not isinstance(raw, dict):
        raise ParseError(f"details.{name} must be an object")

    feedback = raw.get("feedback", "")
    if feedback is None:
        feedback = ""
    if not isinstance(feedback, str):
        raise ParseError(f"details.{name}.feedback must be a string")

    return DimensionScore(
        score=_parse_score_value(raw.get("score", 0), f"details.{name}.score"),
        feedback=feedback,
    )


def parse_score_response(raw_response: str) -> VideoScore:
    """
    Parse the model's reply into a VideoScore.

    The reply must be a single JSON object. Anything else (empty text,
    invalid JSON, missing overallScore, scores outside 0-100) raises
    ParseError so no partial analysis is ever stored. Missing detail
    dimensions default to score 0 with empty feedback.
    """
    if not raw_response or not raw_response.strip():
        raise ParseError("Received empty response from AI model")

    try:
        payload = json.loads(raw_response)
    except json.JSONDecodeError as e:
        raise ParseError(f"Response is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise ParseError("Response must be a JSON object")

    if "overallScore" not in payload:
        raise ParseError("Response is missing overallScore")
    overall = _parse_score_value(payload["overallScore"], "overallScore")

    summary = payload.get("summary", "")
    if summary is None:
        summary = ""
    if not isinstance(summary, str):
        raise ParseError("summary must be a string")

    raw_details = payload.get("details")
    if raw_details is None:
        raw_details = {}
    if not isinstance(raw_details, dict):
        raise ParseError("details must be an object")

    details = ScoreDetails(**{
        name: _parse_dimension(name, raw_details[name])
        for name in SCORE_DIMENSIONS
        if name in raw_details
    })

    return VideoScore(overall_score=overall, summary=summary, details=details)


# ---------------------------------------------------------------------------
# Scorer Service
# ---------------------------------------------------------------------------

class VideoScorer:
    """
    Sends ordered frames to the vision model and parses the verdict.

    Stateless beyond its client, so one instance serves every run.
    """

    def __init__(self, vision_client: VisionModelClient) -> None:
        self._vision_client = vision_client

    async def request_score(self, frames: list[bytes], filename: str) -> str:
        """Make the single inference request and return the raw completion."""
        if not frames:
            raise InferenceError("At least one frame is required")

        user_prompt = USER_PROMPT_TEMPLATE.format(
            filename=filename,
            frame_count=len(frames),
        )

        return await self._vision_client.analyze_images(
            images=frames,
            system_prompt=SYSTEM_PROMPT,
            user_prompt=user_prompt,
            json_response=True,
        )
