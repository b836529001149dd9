# src/tagdrop/models/__init__.py
"""SQLAlchemy models for the Tag Drop application."""

from .drop_message import DropMessage

__all__ = ["DropMessage"]
