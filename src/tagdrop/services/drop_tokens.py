# src/tagdrop/services/drop_tokens.py
"""Drop token generation, derivation, validation and hashing."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import re
import secrets
from typing import Final

from tagdrop.core.settings import settings

GENERATED_TOKEN_BYTES: Final[int] = 32
MIN_TOKEN_BYTES: Final[int] = 16  # 128-bit minimum entropy
MAX_TOKEN_BYTES: Final[int] = 64
MAX_TOKEN_CHARS: Final[int] = 128
DERIVE_PREFIX: Final[str] = "drop:"

_URL_SAFE_RE = re.compile(r"[A-Za-z0-9_-]+")


def encode_base64url(data: bytes) -> str:
    """Encode bytes as URL-safe base64 with the padding stripped."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def decode_base64url(value: str) -> bytes:
    """Decode unpadded URL-safe base64.

    Raises:
        ValueError: If the value is not decodable.
    """
    padding = "=" * (-len(value) % 4)
    try:
        return base64.urlsafe_b64decode(value + padding)
    except (binascii.Error, ValueError) as err:
        raise ValueError(f"Invalid base64url encoding: {err}") from err


class DropTokenCodec:
    """Produces, validates and hashes public drop tokens.

    Storage hashes and derived tokens are keyed by separate secrets; knowing
    one never lets a caller recompute the other.
    """

    def __init__(self, hash_secret: str, derive_secret: str | None = None) -> None:
        self._hash_key = hash_secret.encode("utf-8")
        self._derive_key = (derive_secret or hash_secret).encode("utf-8")

    @staticmethod
    def generate() -> str:
        """Return a fresh random public token (32 bytes of entropy)."""
        return encode_base64url(secrets.token_bytes(GENERATED_TOKEN_BYTES))

    def derive(self, external_id: str) -> str:
        """Return the deterministic public token bound to an external identifier."""
        digest = hmac.new(
            self._derive_key,
            f"{DERIVE_PREFIX}{external_id}".encode(),
            hashlib.sha256,
        ).digest()
        return encode_base64url(digest)

    @staticmethod
    def is_valid_format(token: str) -> bool:
        """Return True if ``token`` is a canonical base64url token of 16-64 bytes."""
        if not token or len(token) > MAX_TOKEN_CHARS or not _URL_SAFE_RE.fullmatch(token):
            return False

        try:
            decoded = decode_base64url(token)
        except ValueError:
            return False

        if not MIN_TOKEN_BYTES <= len(decoded) <= MAX_TOKEN_BYTES:
            return False

        # Rejects alternate spellings of the same bytes (e.g. non-zero trailing bits).
        canonical = encode_base64url(decoded)
        return hmac.compare_digest(token.encode("ascii"), canonical.encode("ascii"))

    def hash(self, public_token: str) -> str:
        """Return the storage key for ``public_token``."""
        digest = hmac.new(self._hash_key, public_token.encode("utf-8"), hashlib.sha256).digest()
        return encode_base64url(digest)


def get_token_codec() -> DropTokenCodec:
    """Return a codec keyed with the configured secrets."""
    return DropTokenCodec(settings.token_hash_secret, settings.token_derive_secret)


def derive_public_drop_token_for_tag(tag_code: str) -> str:
    """Return the drop token printed alongside a tag.

    The tag is not looked up; whether it exists is irrelevant to the inbox.
    """
    return get_token_codec().derive(tag_code)
