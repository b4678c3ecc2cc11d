"""
Anthropic Claude API client wrapper.

Implements the VisionModelClient protocol from core.analysis.scoring.
"""

from .client import AnthropicConfig, AnthropicVisionClient, create_anthropic_client

__all__ = ["AnthropicConfig", "AnthropicVisionClient", "create_anthropic_client"]
