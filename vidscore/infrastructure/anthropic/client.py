"""
Anthropic Claude API client wrapper.

This module provides a thin wrapper around the Anthropic SDK that:
1. Implements our VisionModelClient protocol
2. Handles API-specific details (base64 encoding, message format)
3. Maps SDK errors onto the pipeline's InferenceError
4. Enables easy mocking for tests

The wrapper is intentionally thin. It knows about Anthropic's API format
but nothing about marketing scores.
"""

import base64
import logging
from dataclasses import dataclass
from typing import Optional

import anthropic
from anthropic import (
    APIConnectionError,
    APIStatusError,
    InternalServerError,
    RateLimitError,
)

from vidscore.core.analysis.errors import ConfigurationError, InferenceError


logger = logging.getLogger(__name__)

# Prefilling the assistant turn with an opening brace makes Claude continue
# a JSON object instead of writing prose around it.
JSON_PREFILL = "{"


@dataclass(frozen=True)
class AnthropicConfig:
    """
    Configuration for the Anthropic client.

    Frozen so one instance can be shared across concurrent runs.
    """
    api_key: str
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 2048
    temperature: float = 0.2
    timeout_seconds: float = 120.0

    def __post_init__(self) -> None:
        if not self.api_key:
            raise ConfigurationError("Anthropic API key is required")
        if self.max_tokens < 1:
            raise ConfigurationError("max_tokens must be positive")
        if not 0 <= self.temperature <= 1:
            raise ConfigurationError("temperature must be between 0 and 1")


class AnthropicVisionClient:
    """
    Implementation of VisionModelClient using Claude.

    Sends images and text, gets text back. The SDK client is created once
    and holds no per-request state.
    """

    def __init__(
        self,
        config: AnthropicConfig,
        client: Optional[anthropic.AsyncAnthropic] = None,
    ) -> None:
        self._config = config
        self._client = client or anthropic.AsyncAnthropic(
            api_key=config.api_key,
            timeout=config.timeout_seconds,
            max_retries=0,  # retries are handled by the pipeline
        )

    async def analyze_images(
        self,
        images: list[bytes],
        system_prompt: str,
        user_prompt: str,
        json_response: bool = True,
    ) -> str:
        """
        Send images to Claude for analysis.

        Images are base64 encoded and attached in the given order, followed
        by the text prompt. With json_response the reply is constrained to
        a single JSON object.
        """
        if not images:
            raise InferenceError("At least one image is required")

        messages = [
            {"role": "user", "content": self._build_image_content(images, user_prompt)}
        ]
        if json_response:
            messages.append({"role": "assistant", "content": JSON_PREFILL})

        try:
            response = await self._client.messages.create(
                model=self._config.model,
                max_tokens=self._config.max_tokens,
                temperature=self._config.temperature,
                system=system_prompt,
                messages=messages,
            )
        except RateLimitError as e:
            logger.warning("Rate limit hit", extra={"error": str(e)})
            raise InferenceError("API rate limit exceeded", retryable=True) from e
        except APIConnectionError as e:
            # Also covers APITimeoutError
            logger.warning("API connection error", extra={"error": str(e)})
            raise InferenceError(f"API connection failed: {e}", retryable=True) from e
        except InternalServerError as e:
            logger.warning("API server error", extra={"error": str(e), "status": e.status_code})
            raise InferenceError(f"API server error: {e.message}", retryable=True) from e
        except APIStatusError as e:
            logger.error("API error", extra={"error": str(e), "status": e.status_code})
            raise InferenceError(f"API error: {e.message}") from e

        text = self._extract_text_response(response)
        if not text.strip():
            raise InferenceError("Received empty response from AI model")

        if json_response:
            return JSON_PREFILL + text
        return text

    def _build_image_content(
        self,
        images: list[bytes],
        text_prompt: str,
    ) -> list[dict]:
        """
        Build the content array for a multi-image request.

        Claude expects:
        [
            {"type": "image", "source": {"type": "base64", "media_type": "image/jpeg", "data": "..."}},
            {"type": "image", "source": {...}},
            {"type": "text", "text": "..."}
        ]
        """
        content = []

        for image in images:
            content.append({
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": self._detect_image_type(image),
                    "data": base64.b64encode(image).decode("utf-8"),
                }
            })

        content.append({
            "type": "text",
            "text": text_prompt,
        })

        return content

    def _detect_image_type(self, image_data: bytes) -> str:
        """Detect image MIME type from magic bytes."""
        if image_data[:3] == b'\xff\xd8\xff':
            return "image/jpeg"
        elif image_data[:8] == b'\x89PNG\r\n\x1a\n':
            return "image/png"
        elif image_data[:4] == b'RIFF' and image_data[8:12] == b'WEBP':
            return "image/webp"
        else:
            # Default to JPEG since that's what ffmpeg produces
            return "image/jpeg"

    def _extract_text_response(self, response) -> str:
        """Extract text content from API response."""
        if not response.content:
            return ""

        text_blocks = [
            block.text
            for block in response.content
            if hasattr(block, 'text')
        ]

        return "".join(text_blocks)


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_anthropic_client(
    api_key: str,
    model: str = "claude-sonnet-4-20250514",
    max_tokens: int = 2048,
    temperature: float = 0.2,
    timeout_seconds: float = 120.0,
) -> AnthropicVisionClient:
    """
    Factory function to create a configured client.

    Raises ConfigurationError when the key is missing, before any network
    call is made.
    """
    config = AnthropicConfig(
        api_key=api_key,
        model=model,
        max_tokens=max_tokens,
        temperature=temperature,
        timeout_seconds=timeout_seconds,
    )
    return AnthropicVisionClient(config)
