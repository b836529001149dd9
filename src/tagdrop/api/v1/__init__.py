# src/tagdrop/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import drops_router

__all__ = ["drops_router"]
