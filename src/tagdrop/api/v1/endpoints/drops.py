# src/tagdrop/api/v1/endpoints/drops.py
"""Anonymous drop endpoints.

Every response that could reveal something about a token is shaped so that
an invalid token, a rate-limited caller and a valid-but-empty inbox look
alike, and each one is delayed by a random jitter.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import HTMLResponse, JSONResponse

from tagdrop.core.settings import settings
from tagdrop.db.time import utcnow
from tagdrop.repositories.drop_repo import (
    DropRepository,
    DropStoreError,
    StoredDropMessage,
    get_drop_repository,
)
from tagdrop.schemas.drop import (
    DropErrorResponse,
    DropFetchResponse,
    DropMessageCreate,
    DropMessageResponse,
    DropTokenResponse,
    DropWriteResponse,
)
from tagdrop.services import drop_content
from tagdrop.services.drop_page import render_drop_page
from tagdrop.services.drop_tokens import DropTokenCodec, get_token_codec
from tagdrop.services.rate_limit import RateLimiter, get_rate_limiter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["drops"])

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, private, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}
LENGTH_ERROR = "Message length must be between 1 and {max_chars} characters."
UNAVAILABLE_DETAIL = "Drop service unavailable"
_FALLBACK_IP = "0.0.0.0"


def get_drop_repository_dep() -> DropRepository:
    """Return the shared drop message repository."""
    return get_drop_repository()


def get_rate_limiter_dep() -> RateLimiter:
    """Return the configured rate limiter."""
    return get_rate_limiter()


def get_token_codec_dep() -> DropTokenCodec:
    """Return a token codec keyed with the configured secrets."""
    return get_token_codec()


RepositoryDep = Annotated[DropRepository, Depends(get_drop_repository_dep)]
RateLimiterDep = Annotated[RateLimiter, Depends(get_rate_limiter_dep)]
TokenCodecDep = Annotated[DropTokenCodec, Depends(get_token_codec_dep)]


def jitter_seconds() -> float:
    """Return a random response delay within the configured bounds."""
    low = settings.drop_jitter_min_ms
    high = settings.drop_jitter_max_ms
    return random.uniform(low, high) / 1000.0


async def _jittered_json(status_code: int, payload: dict[str, Any]) -> JSONResponse:
    await asyncio.sleep(jitter_seconds())
    return JSONResponse(status_code=status_code, content=payload, headers=NO_STORE_HEADERS)


def get_requester_ip(request: Request) -> str:
    """Return the caller's address, honouring the first X-Forwarded-For hop."""
    if settings.drop_trust_forwarded_for:
        forwarded_for = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop
    if request.client is not None and request.client.host:
        return request.client.host
    return _FALLBACK_IP


def _consume_all(limiter: RateLimiter, checks: list[tuple[str, str, int]]) -> bool:
    window_ms = settings.drop_rate_limit_window_ms
    # Every bucket is charged, even after one has already denied.
    results = [
        limiter.consume(scope, identifier, ceiling, window_ms)
        for scope, identifier, ceiling in checks
    ]
    return all(results)


async def within_rate_limits(limiter: RateLimiter, checks: list[tuple[str, str, int]]) -> bool:
    """Charge each ``(scope, identifier, ceiling)`` bucket off the event loop."""
    return await asyncio.to_thread(_consume_all, limiter, checks)


def _media_quality(accept: str, media_type: str) -> tuple[float, bool]:
    """Return the q-value granted to ``media_type`` and whether it was listed explicitly."""
    main_type = media_type.split("/")[0]
    best: tuple[int, float] = (-1, 0.0)
    for part in accept.split(","):
        fields = [field.strip() for field in part.split(";")]
        candidate = fields[0].lower()
        if not candidate:
            continue
        quality = 1.0
        for param in fields[1:]:
            name, _, value = param.partition("=")
            if name.strip() == "q":
                try:
                    quality = float(value)
                except ValueError:
                    quality = 0.0
        if candidate == media_type:
            specificity = 2
        elif candidate == f"{main_type}/*":
            specificity = 1
        elif candidate == "*/*":
            specificity = 0
        else:
            continue
        if specificity > best[0]:
            best = (specificity, quality)
    return best[1], best[0] == 2


def wants_json(request: Request, format_param: str | None) -> bool:
    """Return True if the caller asked for the JSON envelope instead of the page."""
    if format_param == "json":
        return True
    accept = request.headers.get("accept", "")
    json_quality, json_explicit = _media_quality(accept, "application/json")
    html_quality, _ = _media_quality(accept, "text/html")
    if not json_explicit or json_quality <= 0:
        return False
    if json_quality != html_quality:
        return json_quality > html_quality
    lowered = accept.lower()
    html_position = lowered.find("text/html")
    return html_position == -1 or lowered.find("application/json") < html_position


def fetch_envelope(messages: list[StoredDropMessage] | None = None) -> dict[str, Any]:
    """Build the read envelope; with no messages it is the generic empty shape."""
    response = DropFetchResponse(
        messages=[
            DropMessageResponse.model_validate(item, from_attributes=True)
            for item in messages or []
        ],
        ttl_days=settings.drop_message_ttl_days,
        server_time=utcnow(),
    )
    return response.model_dump(by_alias=True, mode="json")


@router.get("/drop-token", response_model=DropTokenResponse)
async def issue_drop_token(codec: TokenCodecDep) -> JSONResponse:
    """Issue a fresh random drop token."""
    payload = DropTokenResponse(token=codec.generate())
    return JSONResponse(content=payload.model_dump(), headers=NO_STORE_HEADERS)


@router.get("/drop/{token}", response_model=DropFetchResponse)
async def read_drop(
    token: str,
    request: Request,
    repository: RepositoryDep,
    limiter: RateLimiterDep,
    codec: TokenCodecDep,
    format: Annotated[str | None, Query()] = None,  # noqa: A002 - public query name
) -> Any:
    """Return the active messages for a token, or the page that fetches them."""
    if not wants_json(request, format):
        await asyncio.sleep(jitter_seconds())
        return HTMLResponse(content=render_drop_page(token), headers=NO_STORE_HEADERS)

    allowed = await within_rate_limits(
        limiter,
        [
            ("drop-get-ip", get_requester_ip(request), settings.drop_max_gets_per_ip),
            ("drop-get-token", token, settings.drop_max_gets_per_token),
        ],
    )
    if not allowed:
        return await _jittered_json(status.HTTP_429_TOO_MANY_REQUESTS, fetch_envelope())

    if not codec.is_valid_format(token):
        return await _jittered_json(status.HTTP_200_OK, fetch_envelope())

    token_hash = codec.hash(token)
    try:
        messages = await asyncio.to_thread(
            repository.fetch_active, token_hash, settings.drop_max_messages_per_fetch
        )
    except DropStoreError:
        logger.exception("Drop read failed")
        return await _jittered_json(
            status.HTTP_500_INTERNAL_SERVER_ERROR, {"detail": UNAVAILABLE_DETAIL}
        )

    return await _jittered_json(status.HTTP_200_OK, fetch_envelope(messages))


async def _read_content(request: Request) -> str:
    """Return the ``content`` string from a JSON body, or an empty string."""
    try:
        payload = await request.json()
    except ValueError:
        return ""
    if not isinstance(payload, dict):
        return ""
    return DropMessageCreate.model_validate(payload).text()


@router.post(
    "/drop/{token}",
    response_model=DropWriteResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={400: {"model": DropErrorResponse}, 429: {"model": DropWriteResponse}},
    openapi_extra={
        "requestBody": {
            "content": {"application/json": {"schema": DropMessageCreate.model_json_schema()}}
        }
    },
)
async def write_drop(
    token: str,
    request: Request,
    repository: RepositoryDep,
    limiter: RateLimiterDep,
    codec: TokenCodecDep,
) -> JSONResponse:
    """Leave a notice on a token.

    Malformed tokens are acknowledged as accepted without storing anything.
    """
    allowed = await within_rate_limits(
        limiter,
        [
            ("drop-post-ip", get_requester_ip(request), settings.drop_max_posts_per_ip),
            ("drop-post-token", token, settings.drop_max_posts_per_token),
        ],
    )
    if not allowed:
        return await _jittered_json(
            status.HTTP_429_TOO_MANY_REQUESTS,
            DropWriteResponse(accepted=False).model_dump(),
        )

    trimmed, length = drop_content.measure(await _read_content(request))
    max_chars = settings.drop_message_max_chars
    if not 1 <= length <= max_chars:
        error = DropErrorResponse(error=LENGTH_ERROR.format(max_chars=max_chars))
        return await _jittered_json(status.HTTP_400_BAD_REQUEST, error.model_dump())

    if not codec.is_valid_format(token):
        return await _jittered_json(
            status.HTTP_202_ACCEPTED, DropWriteResponse(accepted=True).model_dump()
        )

    token_hash = codec.hash(token)
    sanitized = drop_content.sanitize(trimmed)
    try:
        inserted = await asyncio.to_thread(repository.insert, token_hash, sanitized)
    except DropStoreError:
        logger.exception("Drop write failed")
        return await _jittered_json(
            status.HTTP_500_INTERNAL_SERVER_ERROR, {"detail": UNAVAILABLE_DETAIL}
        )

    return await _jittered_json(
        status.HTTP_202_ACCEPTED, DropWriteResponse(accepted=inserted).model_dump()
    )
