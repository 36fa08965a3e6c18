"""Tests for the synthesis lock."""

import asyncio
import json
import os
from pathlib import Path

import pytest

from soulweaver.core.errors import ErrorCode, SynthesisInProgressError
from soulweaver.cycle.lock import (
    LOCK_FILE,
    STALE_PREFIX,
    _try_create,
    acquire_lock,
    hold_lock,
    is_process_alive,
    lock_path,
    read_lock_pid,
)
from soulweaver.cycle.persistence import TEMP_PREFIX


class TestAcquireLock:
    @pytest.mark.asyncio
    async def test_writes_holder_record(self, tmp_path: Path):
        lock = await acquire_lock(tmp_path)

        record = json.loads(lock_path(tmp_path).read_text())
        assert record["pid"] == os.getpid()
        assert "acquiredAt" in record
        assert lock.pid == os.getpid()

        await lock.release()
        assert not lock_path(tmp_path).exists()

    @pytest.mark.asyncio
    async def test_exactly_one_of_three_concurrent_attempts_wins(self, tmp_path: Path):
        results = await asyncio.gather(
            *(acquire_lock(tmp_path) for _ in range(3)),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, BaseException)]
        losers = [r for r in results if isinstance(r, SynthesisInProgressError)]
        assert len(winners) == 1
        assert len(losers) == 2
        assert all(e.code == ErrorCode.SYNTHESIS_IN_PROGRESS for e in losers)
        assert "already in progress" in str(losers[0])

        await winners[0].release()

    @pytest.mark.asyncio
    async def test_stale_lock_from_dead_process_is_reclaimed(self, tmp_path: Path):
        path = lock_path(tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"pid": 424242, "acquiredAt": "2024-01-01T00:00:00+00:00"}))

        lock = await acquire_lock(tmp_path, is_alive=lambda pid: False)

        assert read_lock_pid(path) == os.getpid()
        await lock.release()

    @pytest.mark.asyncio
    async def test_legacy_plain_pid_lock(self, tmp_path: Path):
        path = lock_path(tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text("424242")
        seen = []

        def alive(pid: int) -> bool:
            seen.append(pid)
            return True

        with pytest.raises(SynthesisInProgressError) as exc_info:
            await acquire_lock(tmp_path, is_alive=alive)

        assert seen == [424242]
        assert "424242" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_unreadable_lock_is_treated_as_held(self, tmp_path: Path):
        path = lock_path(tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text("garbage")

        with pytest.raises(SynthesisInProgressError):
            await acquire_lock(tmp_path, is_alive=lambda pid: False)

    @pytest.mark.asyncio
    async def test_cleans_orphaned_temp_files(self, tmp_path: Path):
        state = tmp_path / ".soulweaver"
        state.mkdir()
        (state / f"{TEMP_PREFIX}1234").write_text("partial")

        async with hold_lock(tmp_path):
            assert sorted(p.name for p in state.iterdir()) == [LOCK_FILE]

    @pytest.mark.asyncio
    async def test_busy_attempt_leaves_holder_temp_file(self, tmp_path: Path):
        async with hold_lock(tmp_path):
            inflight = tmp_path / ".soulweaver" / f"{TEMP_PREFIX}inflight"
            inflight.write_text("partial soul")

            with pytest.raises(SynthesisInProgressError):
                await acquire_lock(tmp_path)

            assert inflight.exists()

    @pytest.mark.asyncio
    async def test_reclaim_keeps_lock_created_by_another_process(self, tmp_path: Path):
        path = lock_path(tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"pid": 424242, "token": "dead"}))
        rivals = []

        def reclaimed_meanwhile(pid: int) -> bool:
            # Another process reclaims the same stale lock while we check it
            path.unlink()
            rivals.append(_try_create(tmp_path, path))
            return False

        with pytest.raises(SynthesisInProgressError):
            await acquire_lock(tmp_path, is_alive=reclaimed_meanwhile)

        assert json.loads(path.read_text())["token"] == rivals[0].token
        assert list(path.parent.glob(f"{STALE_PREFIX}*")) == []

        await rivals[0].release()
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_reclaim_after_stale_lock_vanished(self, tmp_path: Path):
        path = lock_path(tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text("424242")

        def released_meanwhile(pid: int) -> bool:
            path.unlink()
            return False

        lock = await acquire_lock(tmp_path, is_alive=released_meanwhile)

        assert json.loads(path.read_text())["token"] == lock.token
        await lock.release()

    @pytest.mark.asyncio
    async def test_hold_lock_releases_on_error(self, tmp_path: Path):
        with pytest.raises(RuntimeError):
            async with hold_lock(tmp_path):
                raise RuntimeError("synthesis failed")

        assert not lock_path(tmp_path).exists()

    @pytest.mark.asyncio
    async def test_release_leaves_foreign_lock(self, tmp_path: Path):
        lock = await acquire_lock(tmp_path)
        lock_path(tmp_path).write_text(json.dumps({"pid": 1, "token": "someone-else"}))

        await lock.release()

        assert lock_path(tmp_path).exists()

    @pytest.mark.asyncio
    async def test_release_is_idempotent(self, tmp_path: Path):
        lock = await acquire_lock(tmp_path)
        await lock.release()
        await lock.release()
        assert lock.released


class TestLiveness:
    def test_current_process_is_alive(self):
        assert is_process_alive(os.getpid())

    def test_nonpositive_pid_is_dead(self):
        assert not is_process_alive(0)
        assert not is_process_alive(-5)

    def test_nonexistent_pid(self):
        assert not is_process_alive(2**22 + 12345)
