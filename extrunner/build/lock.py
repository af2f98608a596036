"""
File lock guarding the shared dependency store.
"""
import asyncio
import fcntl
import logging
import os
import time
from pathlib import Path
from typing import IO, Optional


class StoreLock:
    """
    Exclusive lock on a work directory and its dependency store.

    Two runners sharing a work directory must not interleave their fetch
    and build phases on the same store. Uses a non-blocking flock retried
    until the timeout expires.
    """

    def __init__(self, lock_file_path: Path, timeout: float = 30, poll_interval: float = 0.5):
        """
        Initialize store lock.

        Args:
            lock_file_path: Lock file; must live outside any directory the
                runner cleans
            timeout: Lock acquisition timeout in seconds
            poll_interval: Delay between attempts while the lock is held
        """
        self.lock_file_path = Path(lock_file_path)
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.lock_file: Optional[IO[str]] = None
        self.logger = logging.getLogger(__name__)

        self.lock_file_path.parent.mkdir(parents=True, exist_ok=True)

    @classmethod
    def for_work_dir(cls, work_dir: Path, timeout: float = 30) -> 'StoreLock':
        """Lock kept beside the work directory, which holds the store"""
        work_dir = Path(work_dir)
        return cls(work_dir.parent / f".{work_dir.name}.lock", timeout=timeout)

    async def __aenter__(self):
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False

    async def acquire(self) -> None:
        """
        Acquire the store lock.

        Raises:
            TimeoutError: If the lock cannot be acquired within the timeout
        """
        start_time = time.monotonic()
        self.logger.debug(f"Attempting to acquire store lock: {self.lock_file_path}")

        lock_file = open(self.lock_file_path, 'a+')
        while True:
            try:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                elapsed = time.monotonic() - start_time
                if elapsed >= self.timeout:
                    lock_file.close()
                    self.logger.error(f"Failed to acquire store lock after {self.timeout}s timeout")
                    raise TimeoutError(
                        f"Could not acquire store lock within {self.timeout}s. "
                        "Another runner may be using the same work directory."
                    )

                self.logger.debug(
                    f"Store lock held by another process, retrying... "
                    f"({elapsed:.1f}s / {self.timeout}s)"
                )
                await asyncio.sleep(self.poll_interval)
                continue
            except OSError:
                lock_file.close()
                raise

            lock_file.seek(0)
            lock_file.truncate()
            lock_file.write(f"{os.getpid()}\n")
            lock_file.flush()
            self.lock_file = lock_file
            self.logger.info("Store lock acquired")
            return

    def release(self) -> None:
        if self.lock_file is None:
            return

        fcntl.flock(self.lock_file.fileno(), fcntl.LOCK_UN)
        self.lock_file.close()
        self.lock_file = None
        self.logger.info("Store lock released")

    def is_locked(self) -> bool:
        """Non-blocking check whether any process holds the lock"""
        if not self.lock_file_path.exists():
            return False

        with open(self.lock_file_path, 'a+') as probe:
            try:
                fcntl.flock(probe.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                return True
            fcntl.flock(probe.fileno(), fcntl.LOCK_UN)
            return False
