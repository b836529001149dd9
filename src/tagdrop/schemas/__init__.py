"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .drop import (
    DropErrorResponse,
    DropFetchResponse,
    DropMessageCreate,
    DropMessageResponse,
    DropTokenResponse,
    DropWriteResponse,
)

__all__ = [
    "DropErrorResponse",
    "DropFetchResponse",
    "DropMessageCreate",
    "DropMessageResponse",
    "DropTokenResponse",
    "DropWriteResponse",
]
