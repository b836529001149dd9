"""Data access for drop messages.

This is the only module that reads or mutates ``drop_message`` rows. The
daily cap and the per-token cooldown are enforced inside the insert
statement itself so concurrent writers cannot both pass a separate check.
"""
from __future__ import annotations

import zlib
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from threading import Lock

from sqlalchemy import DateTime, String, Text, delete, func, insert, literal, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from tagdrop.core.settings import settings
from tagdrop.db.session import SessionLocal
from tagdrop.db.time import as_utc, utcnow
from tagdrop.models.drop_message import DropMessage, new_message_id

__all__ = ["DropRepository", "DropStoreError", "StoredDropMessage", "get_drop_repository"]

_LOCK_STRIPES = 64
_INSERT_LOCKS = tuple(Lock() for _ in range(_LOCK_STRIPES))
_drop_table = DropMessage.__table__


class DropStoreError(RuntimeError):
    """Raised when the backing database cannot serve a drop operation."""


@dataclass(frozen=True)
class StoredDropMessage:
    """Detached view of an active drop message."""

    id: str
    content: str
    created_at: datetime
    expires_at: datetime


def _insert_lock(token_hash: str) -> Lock:
    return _INSERT_LOCKS[zlib.crc32(token_hash.encode("utf-8")) % _LOCK_STRIPES]


class DropRepository:
    """Persistence contract for drop messages."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        daily_limit: int,
        cooldown_seconds: int,
        ttl_days: int,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the repository.

        Args:
            session_factory: Factory producing short-lived sessions, one per operation.
            daily_limit: Maximum messages per token hash in any trailing 24 hours.
            cooldown_seconds: Minimum spacing between two messages on one token hash.
            ttl_days: Lifetime of a message from creation.
            clock: Source of the current UTC time.
        """
        self._session_factory = session_factory
        self.daily_limit = daily_limit
        self.cooldown_seconds = cooldown_seconds
        self.ttl_days = ttl_days
        self._clock = clock

    def insert(self, token_hash: str, sanitized_content: str) -> bool:
        """Insert a message unless the daily cap or the cooldown forbids it.

        Returns:
            True if a row was written, False if either guard rejected it.
        """
        now = self._clock()
        timestamp_type = DateTime(timezone=True)

        daily_count = (
            select(func.count())
            .select_from(_drop_table)
            .where(
                _drop_table.c.drop_token_hash == token_hash,
                _drop_table.c.created_at >= now - timedelta(days=1),
            )
            .correlate(None)
            .scalar_subquery()
        )
        cooling_down = (
            select(_drop_table.c.id)
            .where(
                _drop_table.c.drop_token_hash == token_hash,
                _drop_table.c.created_at > now - timedelta(seconds=self.cooldown_seconds),
            )
            .correlate(None)
            .exists()
        )
        guarded_row = select(
            literal(new_message_id(), String),
            literal(token_hash, String),
            literal(sanitized_content, Text),
            literal(now, timestamp_type),
            literal(now + timedelta(days=self.ttl_days), timestamp_type),
        ).where(daily_count < self.daily_limit, ~cooling_down)

        stmt = insert(_drop_table).from_select(
            ["id", "drop_token_hash", "content", "created_at", "expires_at"],
            guarded_row,
        )

        with _insert_lock(token_hash):
            try:
                with self._session_factory() as session, session.begin():
                    if session.get_bind().dialect.name == "postgresql":
                        # Serializes writers on this hash across processes until commit.
                        session.execute(
                            text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
                            {"key": token_hash},
                        )
                    result = session.execute(stmt)
                    return result.rowcount == 1
            except SQLAlchemyError as err:
                raise DropStoreError("Drop insert failed") from err

    def fetch_active(self, token_hash: str, limit: int = 100) -> list[StoredDropMessage]:
        """Return unexpired messages for ``token_hash``, newest first."""
        now = self._clock()
        stmt = (
            select(
                DropMessage.id,
                DropMessage.content,
                DropMessage.created_at,
                DropMessage.expires_at,
            )
            .where(
                DropMessage.drop_token_hash == token_hash,
                DropMessage.expires_at > now,
            )
            .order_by(DropMessage.created_at.desc(), DropMessage.id.desc())
            .limit(limit)
        )
        try:
            with self._session_factory() as session:
                rows = session.execute(stmt).all()
        except SQLAlchemyError as err:
            raise DropStoreError("Drop fetch failed") from err

        return [
            StoredDropMessage(
                id=row.id,
                content=row.content,
                created_at=as_utc(row.created_at),
                expires_at=as_utc(row.expires_at),
            )
            for row in rows
        ]

    def count_active(self, token_hash: str) -> int:
        """Return how many unexpired messages ``token_hash`` currently holds."""
        now = self._clock()
        stmt = (
            select(func.count())
            .select_from(_drop_table)
            .where(
                _drop_table.c.drop_token_hash == token_hash,
                _drop_table.c.expires_at > now,
            )
        )
        try:
            with self._session_factory() as session:
                return int(session.execute(stmt).scalar_one())
        except SQLAlchemyError as err:
            raise DropStoreError("Drop count failed") from err

    def purge_expired(self, batch_size: int) -> int:
        """Delete up to ``batch_size`` expired rows, soonest-expiring first.

        A return value below ``batch_size`` means the expired backlog is empty.
        """
        now = self._clock()
        expired_ids = (
            select(_drop_table.c.id)
            .where(_drop_table.c.expires_at < now)
            .order_by(_drop_table.c.expires_at.asc())
            .limit(batch_size)
            .correlate(None)
        )
        stmt = delete(_drop_table).where(_drop_table.c.id.in_(expired_ids))
        try:
            with self._session_factory() as session, session.begin():
                result = session.execute(stmt)
                return int(result.rowcount or 0)
        except SQLAlchemyError as err:
            raise DropStoreError("Drop purge failed") from err


_repository: DropRepository | None = None


def get_drop_repository() -> DropRepository:
    """Return the shared repository bound to the application database."""
    global _repository
    if _repository is None:
        _repository = DropRepository(
            SessionLocal,
            daily_limit=settings.drop_token_daily_limit,
            cooldown_seconds=settings.drop_token_cooldown_seconds,
            ttl_days=settings.drop_message_ttl_days,
        )
    return _repository
