# tests/services/test_drop_expiry.py
"""Tests for the drop expiry sweep and its scheduler."""

import asyncio
import logging
from unittest.mock import MagicMock

import pytest

from tagdrop.repositories.drop_repo import DropStoreError
from tagdrop.services import drop_expiry
from tagdrop.services.drop_expiry import ExpiryScheduler, purge_expired_drop_messages


def _repository(*deleted: int) -> MagicMock:
    repository = MagicMock()
    repository.purge_expired.side_effect = list(deleted)
    return repository


@pytest.mark.asyncio
async def test_sweep_drains_backlog_in_batches() -> None:
    repository = _repository(2, 2, 1)

    assert await purge_expired_drop_messages(repository, batch_size=2) == 5
    assert repository.purge_expired.call_count == 3
    assert not drop_expiry.sweep_in_progress()


@pytest.mark.asyncio
async def test_sweep_stops_after_empty_batch() -> None:
    repository = _repository(2, 0)

    assert await purge_expired_drop_messages(repository, batch_size=2) == 2
    assert repository.purge_expired.call_count == 2


@pytest.mark.asyncio
async def test_overlapping_sweep_is_skipped(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(drop_expiry, "_sweep_in_progress", True)
    repository = _repository(10)

    assert await purge_expired_drop_messages(repository, batch_size=2) == 0
    repository.purge_expired.assert_not_called()


@pytest.mark.asyncio
async def test_flag_released_after_failure() -> None:
    repository = MagicMock()
    repository.purge_expired.side_effect = DropStoreError("down")

    with pytest.raises(DropStoreError):
        await purge_expired_drop_messages(repository, batch_size=2)

    assert not drop_expiry.sweep_in_progress()


@pytest.mark.asyncio
async def test_run_sweep_logs_store_failures(caplog: pytest.LogCaptureFixture) -> None:
    repository = MagicMock()
    repository.purge_expired.side_effect = DropStoreError("down")
    scheduler = ExpiryScheduler(repository, MagicMock(), batch_size=5)

    with caplog.at_level(logging.ERROR, logger="tagdrop.services.drop_expiry"):
        assert await scheduler.run_sweep() == 0

    assert "Drop expiry sweep failed" in caplog.text
    assert not drop_expiry.sweep_in_progress()


@pytest.mark.asyncio
async def test_run_sweep_reports_deleted_rows(caplog: pytest.LogCaptureFixture) -> None:
    scheduler = ExpiryScheduler(_repository(3), MagicMock(), batch_size=5)

    with caplog.at_level(logging.INFO, logger="tagdrop.services.drop_expiry"):
        assert await scheduler.run_sweep() == 3

    assert "deleted 3 messages" in caplog.text


@pytest.mark.asyncio
async def test_scheduler_sweeps_on_start_and_stops_cleanly() -> None:
    repository = MagicMock()
    repository.purge_expired.return_value = 0
    scheduler = ExpiryScheduler(
        repository, MagicMock(), interval_seconds=60, prune_interval_seconds=60, batch_size=5
    )

    await scheduler.start()
    assert scheduler.running
    for _ in range(50):
        if repository.purge_expired.called:
            break
        await asyncio.sleep(0.01)
    await scheduler.stop()

    assert not scheduler.running
    repository.purge_expired.assert_called_once_with(5)


@pytest.mark.asyncio
async def test_scheduler_repeats_sweeps_and_prunes() -> None:
    repository = MagicMock()
    repository.purge_expired.return_value = 0
    limiter = MagicMock()
    limiter.prune.return_value = 2
    scheduler = ExpiryScheduler(
        repository, limiter, interval_seconds=0.02, prune_interval_seconds=0.02, batch_size=5
    )

    await scheduler.start()
    await asyncio.sleep(0.15)
    await scheduler.stop()

    assert repository.purge_expired.call_count >= 2
    assert limiter.prune.call_count >= 1


@pytest.mark.asyncio
async def test_stop_without_start_is_noop() -> None:
    scheduler = ExpiryScheduler(MagicMock(), MagicMock())
    await scheduler.stop()
    assert not scheduler.running


@pytest.mark.asyncio
async def test_prune_only_scheduler_leaves_rows_to_cron() -> None:
    repository = MagicMock()
    limiter = MagicMock()
    limiter.prune.return_value = 0
    scheduler = ExpiryScheduler(
        repository, limiter, prune_interval_seconds=0.02, sweep_expired=False
    )

    await scheduler.start()
    await asyncio.sleep(0.1)
    await scheduler.stop()

    repository.purge_expired.assert_not_called()
    assert limiter.prune.call_count >= 2


@pytest.mark.asyncio
async def test_run_sweep_survives_unexpected_errors(caplog: pytest.LogCaptureFixture) -> None:
    repository = MagicMock()
    repository.purge_expired.side_effect = RuntimeError("driver bug")
    scheduler = ExpiryScheduler(repository, MagicMock(), batch_size=5)

    with caplog.at_level(logging.ERROR, logger="tagdrop.services.drop_expiry"):
        assert await scheduler.run_sweep() == 0

    assert "failed unexpectedly" in caplog.text
    assert not drop_expiry.sweep_in_progress()


@pytest.mark.asyncio
async def test_stop_completes_after_failed_sweep() -> None:
    repository = MagicMock()
    repository.purge_expired.side_effect = KeyError("boom")
    scheduler = ExpiryScheduler(
        repository, MagicMock(), interval_seconds=60, prune_interval_seconds=60, batch_size=5
    )

    await scheduler.start()
    for _ in range(50):
        if repository.purge_expired.called:
            break
        await asyncio.sleep(0.01)
    await scheduler.stop()

    assert not scheduler.running
