"""
VidScore AI - Marketing performance scoring for short-form video.

This package contains the complete application:
- core: Framework-agnostic analysis pipeline and domain models
- infrastructure: External service integrations
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
