"""
Tests for the store lock.
"""

import pytest

from extrunner.build.lock import StoreLock


class TestStoreLock:
    def test_lock_lives_beside_work_dir(self, tmp_path):
        lock = StoreLock.for_work_dir(tmp_path / "work")

        assert lock.lock_file_path == tmp_path / ".work.lock"

    @pytest.mark.asyncio
    async def test_acquire_and_release(self, tmp_path):
        lock = StoreLock(tmp_path / "store.lock")

        async with lock:
            assert lock.is_locked()
        assert not lock.is_locked()

    @pytest.mark.asyncio
    async def test_second_holder_times_out(self, tmp_path):
        first = StoreLock(tmp_path / "store.lock")
        second = StoreLock(tmp_path / "store.lock", timeout=0.2, poll_interval=0.05)

        async with first:
            with pytest.raises(TimeoutError):
                await second.acquire()
        assert second.lock_file is None

    @pytest.mark.asyncio
    async def test_reacquire_after_release(self, tmp_path):
        first = StoreLock(tmp_path / "store.lock")
        second = StoreLock(tmp_path / "store.lock", timeout=0.2, poll_interval=0.05)

        async with first:
            pass
        async with second:
            assert second.lock_file is not None

    def test_release_without_acquire(self, tmp_path):
        StoreLock(tmp_path / "store.lock").release()

    def test_unlocked_when_missing(self, tmp_path):
        assert not StoreLock(tmp_path / "store.lock").is_locked()
