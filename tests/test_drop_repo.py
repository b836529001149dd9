# tests/test_drop_repo.py
"""Tests for the drop message repository."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from tagdrop.models import DropMessage
from tagdrop.repositories.drop_repo import DropRepository, DropStoreError

TOKEN_HASH = "h" * 43
OTHER_HASH = "o" * 43


def _make_repository(session_factory, clock, *, daily_limit=250, cooldown_seconds=5):
    return DropRepository(
        session_factory,
        daily_limit=daily_limit,
        cooldown_seconds=cooldown_seconds,
        ttl_days=7,
        clock=clock,
    )


def test_first_insert_succeeds_and_second_hits_cooldown(repository: DropRepository, clock) -> None:
    assert repository.insert(TOKEN_HASH, "hello") is True
    assert repository.insert(TOKEN_HASH, "again") is False

    clock.advance(seconds=4)
    assert repository.insert(TOKEN_HASH, "still too soon") is False

    clock.advance(seconds=1)
    assert repository.insert(TOKEN_HASH, "now fine") is True


def test_cooldown_is_per_token_hash(repository: DropRepository) -> None:
    assert repository.insert(TOKEN_HASH, "one") is True
    assert repository.insert(OTHER_HASH, "two") is True


def test_inserted_row_has_fixed_ttl(repository: DropRepository, session_factory, clock) -> None:
    repository.insert(TOKEN_HASH, "hello")

    with session_factory() as session:
        row = session.query(DropMessage).one()

    assert row.drop_token_hash == TOKEN_HASH
    assert row.content == "hello"
    assert len(row.id) == 36
    assert row.expires_at - row.created_at == timedelta(days=7)


def test_daily_cap_blocks_regardless_of_cooldown(session_factory, clock) -> None:
    repository = _make_repository(session_factory, clock, daily_limit=3)

    for _ in range(3):
        assert repository.insert(TOKEN_HASH, "msg") is True
        clock.advance(seconds=10)

    assert repository.insert(TOKEN_HASH, "over cap") is False
    clock.advance(hours=1)
    assert repository.insert(TOKEN_HASH, "still over cap") is False

    # All three messages now fall outside the trailing 24h window.
    clock.advance(hours=23)
    assert repository.insert(TOKEN_HASH, "window moved") is True


@pytest.mark.asyncio
async def test_concurrent_inserts_yield_single_success(repository: DropRepository) -> None:
    attempts = 8
    results = await asyncio.gather(
        *(asyncio.to_thread(repository.insert, TOKEN_HASH, f"msg {i}") for i in range(attempts))
    )

    assert results.count(True) == 1
    assert repository.count_active(TOKEN_HASH) == 1


def test_fetch_active_orders_newest_first_and_limits(repository: DropRepository, clock) -> None:
    for index in range(4):
        repository.insert(TOKEN_HASH, f"msg {index}")
        clock.advance(seconds=6)
    repository.insert(OTHER_HASH, "elsewhere")

    messages = repository.fetch_active(TOKEN_HASH, limit=3)

    assert [message.content for message in messages] == ["msg 3", "msg 2", "msg 1"]
    assert all(message.created_at.tzinfo is not None for message in messages)


def test_fetch_active_hides_expired_rows_before_purge(repository: DropRepository, clock) -> None:
    repository.insert(TOKEN_HASH, "old")
    clock.advance(days=3)
    repository.insert(TOKEN_HASH, "new")

    clock.advance(days=4)  # "old" expires exactly now

    messages = repository.fetch_active(TOKEN_HASH)
    assert [message.content for message in messages] == ["new"]
    assert all(message.expires_at > clock.now for message in messages)


def test_purge_expired_drains_in_batches(repository: DropRepository, session_factory, clock) -> None:
    for index in range(5):
        repository.insert(f"{index:043d}", f"expiring {index}")
    clock.advance(days=1)
    repository.insert(TOKEN_HASH, "keeper")
    clock.advance(days=6, seconds=1)

    assert repository.purge_expired(2) == 2
    assert repository.purge_expired(2) == 2
    assert repository.purge_expired(2) == 1
    assert repository.purge_expired(2) == 0

    with session_factory() as session:
        remaining = session.query(DropMessage).all()

    assert [row.content for row in remaining] == ["keeper"]


def test_purge_removes_soonest_expiring_first(repository: DropRepository, session_factory, clock) -> None:
    repository.insert(TOKEN_HASH, "first")
    clock.advance(hours=1)
    repository.insert(OTHER_HASH, "second")
    clock.advance(days=8)

    assert repository.purge_expired(1) == 1

    with session_factory() as session:
        remaining = [row.content for row in session.query(DropMessage).all()]
    assert remaining == ["second"]


def test_store_errors_are_wrapped(clock) -> None:
    failing_factory = MagicMock(side_effect=OperationalError("SELECT 1", {}, Exception("down")))
    repository = _make_repository(failing_factory, clock)

    with pytest.raises(DropStoreError):
        repository.fetch_active(TOKEN_HASH)
    with pytest.raises(DropStoreError):
        repository.insert(TOKEN_HASH, "x")
    with pytest.raises(DropStoreError):
        repository.purge_expired(10)
