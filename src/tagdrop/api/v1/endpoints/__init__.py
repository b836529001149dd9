# src/tagdrop/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .drops import router as drops_router

__all__ = ["drops_router"]
