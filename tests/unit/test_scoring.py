"""
Unit tests for the scoring prompt and the strict response parser.

A malformed reply must never turn into a stored analysis, so most of these
tests are about what the parser refuses.
"""

import asyncio
import json

import pytest

from vidscore.core.analysis.errors import InferenceError, ParseError
from vidscore.core.analysis.models import DimensionScore, ScoreDetails
from vidscore.core.analysis.scoring import (
    SYSTEM_PROMPT,
    VideoScorer,
    parse_score_response,
)


def _reply(**overrides) -> str:
    payload = {
        "overallScore": 82,
        "summary": "Strong hook, weak CTA.",
        "details": {
            "hook": {"score": 90, "feedback": "Opens on motion."},
            "pacing": {"score": 80, "feedback": "Tight cuts."},
            "visuals": {"score": 85, "feedback": "Good lighting."},
            "cta": {"score": 40, "feedback": "CTA arrives too late."},
        },
    }
    payload.update(overrides)
    return json.dumps(payload)


class RecordingVisionClient:
    """Fake VisionModelClient that records what it was sent."""

    def __init__(self, reply: str = "{}") -> None:
        self.reply = reply
        self.calls: list[dict] = []

    async def analyze_images(self, images, system_prompt, user_prompt, json_response=True):
        self.calls.append({
            "images": list(images),
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "json_response": json_response,
        })
        return self.reply


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

class TestParseScoreResponse:
    """Tests for turning the model reply into a VideoScore."""

    def test_parses_complete_reply(self):
        score = parse_score_response(_reply())

        assert score.overall_score == 82
        assert score.summary == "Strong hook, weak CTA."
        assert score.details.hook == DimensionScore(90, "Opens on motion.")
        assert score.details.cta.score == 40

    def test_missing_dimensions_default_to_zero(self):
        score = parse_score_response(_reply(details={"hook": {"score": 70, "feedback": "ok"}}))

        assert score.details.hook.score == 70
        assert score.details.pacing == DimensionScore(0, "")
        assert score.details.visuals == DimensionScore(0, "")
        assert score.details.cta == DimensionScore(0, "")

    def test_missing_details_object_defaults_everything(self):
        score = parse_score_response(json.dumps({"overallScore": 50, "summary": "meh"}))
        assert score.details.to_dict()["hook"] == {"score": 0, "feedback": ""}

    def test_integral_float_scores_are_accepted(self):
        score = parse_score_response(_reply(overallScore=82.0))
        assert score.overall_score == 82

    @pytest.mark.parametrize("raw", ["", "   ", "\n"])
    def test_empty_reply_is_rejected(self, raw):
        with pytest.raises(ParseError, match="empty response"):
            parse_score_response(raw)

    def test_invalid_json_is_rejected(self):
        with pytest.raises(ParseError, match="not valid JSON"):
            parse_score_response("Here is your analysis: great video!")

    def test_truncated_json_is_rejected(self):
        with pytest.raises(ParseError):
            parse_score_response(_reply()[:-10])

    def test_non_object_is_rejected(self):
        with pytest.raises(ParseError, match="JSON object"):
            parse_score_response("[82]")

    def test_missing_overall_score_is_rejected(self):
        with pytest.raises(ParseError, match="overallScore"):
            parse_score_response(json.dumps({"summary": "no score"}))

    @pytest.mark.parametrize("value", [101, -1, "82", 82.5, True, None])
    def test_bad_overall_score_is_rejected(self, value):
        with pytest.raises(ParseError):
            parse_score_response(_reply(overallScore=value))

    def test_bad_dimension_score_is_rejected(self):
        details = {"hook": {"score": 120, "feedback": "too good"}}
        with pytest.raises(ParseError, match="details.hook.score"):
            parse_score_response(_reply(details=details))

    def test_dimension_must_be_object(self):
        with pytest.raises(ParseError, match="details.pacing"):
            parse_score_response(_reply(details={"pacing": 50}))

    @pytest.mark.parametrize("details", [[], "", 0, False, [1, 2], "hook"])
    def test_details_must_be_object(self, details):
        with pytest.raises(ParseError, match="details must be an object"):
            parse_score_response(_reply(details=details))

    def test_null_details_defaults_everything(self):
        score = parse_score_response(_reply(details=None))
        assert score.details == ScoreDetails()

    def test_summary_must_be_string(self):
        with pytest.raises(ParseError, match="summary"):
            parse_score_response(_reply(summary=["a", "b"]))


# ---------------------------------------------------------------------------
# Scorer
# ---------------------------------------------------------------------------

class TestVideoScorer:
    """Tests for the single inference request."""

    def test_sends_all_frames_in_order_in_one_request(self):
        client = RecordingVisionClient(reply=_reply())
        scorer = VideoScorer(client)
        frames = [b"frame-1", b"frame-2", b"frame-3"]

        asyncio.run(scorer.request_score(frames, "launch.mp4"))

        assert len(client.calls) == 1
        call = client.calls[0]
        assert call["images"] == frames
        assert call["system_prompt"] == SYSTEM_PROMPT
        assert call["json_response"] is True

    def test_user_prompt_names_video_and_frame_count(self):
        client = RecordingVisionClient(reply=_reply())
        scorer = VideoScorer(client)

        asyncio.run(scorer.request_score([b"a", b"b"], "launch.mp4"))

        prompt = client.calls[0]["user_prompt"]
        assert "launch.mp4" in prompt
        assert "2 frames" in prompt
        assert "chronological" in prompt

    def test_system_prompt_describes_schema(self):
        for key in ("overallScore", "summary", "hook", "pacing", "visuals", "cta"):
            assert key in SYSTEM_PROMPT
        assert "integers between 0 and 100" in SYSTEM_PROMPT

    def test_no_frames_is_an_inference_error(self):
        scorer = VideoScorer(RecordingVisionClient())

        with pytest.raises(InferenceError):
            asyncio.run(scorer.request_score([], "launch.mp4"))

