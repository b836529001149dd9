# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Generator, Iterator
from datetime import UTC, datetime, timedelta

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-shared-secret")
os.environ["DROP_EXPIRY_ENABLED"] = "false"

from tagdrop.api.v1.endpoints import drops as drops_endpoints
from tagdrop.core.settings import settings
from tagdrop.db.session import Base, engine_options
from tagdrop.main import app as fastapi_app
from tagdrop.repositories.drop_repo import DropRepository
from tagdrop.services.drop_tokens import DropTokenCodec
from tagdrop.services.rate_limit import MemoryRateLimiter

TEST_HASH_SECRET = "test-hash-secret"
TEST_DERIVE_SECRET = "test-derive-secret"
TEST_RATE_LIMIT_SECRET = "test-rate-limit-secret"


class FrozenClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 14, 9, 26, 53, tzinfo=UTC))


@pytest.fixture()
def engine(tmp_path) -> Generator[Engine, None, None]:
    # A file database so worker threads each get their own connection.
    url = f"sqlite:///{tmp_path / 'drops.db'}"
    engine = create_engine(url, **engine_options(url))
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def repository(session_factory: sessionmaker[Session], clock: FrozenClock) -> DropRepository:
    return DropRepository(
        session_factory,
        daily_limit=settings.drop_token_daily_limit,
        cooldown_seconds=settings.drop_token_cooldown_seconds,
        ttl_days=settings.drop_message_ttl_days,
        clock=clock,
    )


@pytest.fixture()
def rate_limiter() -> MemoryRateLimiter:
    return MemoryRateLimiter(TEST_RATE_LIMIT_SECRET)


@pytest.fixture()
def codec() -> DropTokenCodec:
    return DropTokenCodec(TEST_HASH_SECRET, TEST_DERIVE_SECRET)


@pytest.fixture(autouse=True)
def no_jitter(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove response jitter so API tests run fast."""
    monkeypatch.setattr(settings, "drop_jitter_min_ms", 0)
    monkeypatch.setattr(settings, "drop_jitter_max_ms", 0)


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture()
def override_dependencies(
    app: FastAPI,
    repository: DropRepository,
    rate_limiter: MemoryRateLimiter,
    codec: DropTokenCodec,
) -> Iterator[None]:
    overrides = {
        drops_endpoints.get_drop_repository_dep: lambda: repository,
        drops_endpoints.get_rate_limiter_dep: lambda: rate_limiter,
        drops_endpoints.get_token_codec_dep: lambda: codec,
    }
    app.dependency_overrides.update(overrides)
    try:
        yield
    finally:
        for dependency in overrides:
            app.dependency_overrides.pop(dependency, None)


@pytest.fixture()
def client(app: FastAPI, override_dependencies: None) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client
