"""
API route modules.
"""

from . import health, rag, videos

__all__ = ["health", "rag", "videos"]
