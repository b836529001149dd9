"""Database engine and session factory for drop storage."""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from tagdrop.core.settings import settings

SQLITE_BUSY_TIMEOUT_SECONDS = 30


class Base(DeclarativeBase):
    """Declarative base shared by all ORM models."""


# Model modules must be imported before create_all sees the metadata.
import tagdrop.models  # noqa: E402,F401


def engine_options(database_url: str) -> dict[str, Any]:
    """Return engine keyword arguments suited to ``database_url``.

    Drop store calls run on worker threads, so SQLite connections must be
    shareable across threads and wait on each other's write locks.
    """
    options: dict[str, Any] = {"pool_pre_ping": True, "echo": settings.sql_debug}
    if make_url(database_url).get_backend_name() == "sqlite":
        options["connect_args"] = {
            "check_same_thread": False,
            "timeout": SQLITE_BUSY_TIMEOUT_SECONDS,
        }
    return options


engine = create_engine(settings.database_url, **engine_options(settings.database_url))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_tables() -> None:
    """Create the drop tables on the configured database."""
    Base.metadata.create_all(bind=engine)
