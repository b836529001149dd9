"""Business logic services for the Tag Drop application."""

from .drop_expiry import ExpiryScheduler
from .drop_tokens import DropTokenCodec, derive_public_drop_token_for_tag
from .rate_limit import MemoryRateLimiter, RateLimiter, RedisRateLimiter

__all__ = [
    "DropTokenCodec",
    "ExpiryScheduler",
    "MemoryRateLimiter",
    "RateLimiter",
    "RedisRateLimiter",
    "derive_public_drop_token_for_tag",
]
