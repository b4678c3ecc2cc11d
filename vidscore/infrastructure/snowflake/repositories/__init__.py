"""
Repository pattern implementations for Snowflake.

Repositories translate between domain models and database representations.
"""

from .knowledge import KnowledgeRepository
from .videos import ConnectionScopedVideoStore, VideoRepository

__all__ = ["ConnectionScopedVideoStore", "KnowledgeRepository", "VideoRepository"]
