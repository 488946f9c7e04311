"""Exclusive lock over one stats directory.

A :class:`StatsLock` opens ``<directory>/stats.lock`` once and keeps the
descriptor for the life of its store.  Entering the lock serializes the
store's own worker threads with a mutex, then other processes (and other
stores on the same directory) with an advisory lock on that descriptor.
The OS drops the advisory lock if its holder dies.
"""

from __future__ import annotations

import os
import threading

LOCK_NAME = "stats.lock"

try:
    import fcntl

    def _acquire(fd: int) -> None:
        fcntl.flock(fd, fcntl.LOCK_EX)

    def _release(fd: int) -> None:
        fcntl.flock(fd, fcntl.LOCK_UN)

except ImportError:
    import msvcrt

    def _acquire(fd: int) -> None:
        os.lseek(fd, 0, os.SEEK_SET)
        msvcrt.locking(fd, msvcrt.LK_LOCK, 1)

    def _release(fd: int) -> None:
        os.lseek(fd, 0, os.SEEK_SET)
        msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)


class StatsLock:
    """Context manager guarding one read-modify-write on a stats directory."""

    def __init__(self, directory: str | os.PathLike[str]):
        self.path = os.path.join(os.fspath(directory), LOCK_NAME)
        self._mutex = threading.Lock()
        self._fd: int | None = os.open(
            self.path, os.O_CREAT | os.O_RDWR | getattr(os, "O_CLOEXEC", 0)
        )

    def __repr__(self) -> str:
        return f"StatsLock({self.path!r})"

    @property
    def closed(self) -> bool:
        return self._fd is None

    def __enter__(self) -> StatsLock:
        self._mutex.acquire()
        if self._fd is None:
            self._mutex.release()
            raise ValueError(f"{self!r} is closed")
        try:
            _acquire(self._fd)
        except BaseException:
            self._mutex.release()
            raise
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            _release(self._fd)
        finally:
            self._mutex.release()
        return False

    def close(self) -> None:
        with self._mutex:
            if self._fd is not None:
                os.close(self._fd)
                self._fd = None
