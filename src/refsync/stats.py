"""Outcome counters shared by every push worker.

Two stores with the same contract: :class:`SyncStats` keeps totals in
memory behind a lock; :class:`FileSyncStats` keeps them in a directory so
an interrupted run leaves its totals behind for inspection.
"""

from __future__ import annotations

import os
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from ._lock import StatsLock
from .refs import RefKind

COUNTERS = ("pushed", "skipped_diverged", "pruned")
LISTS = ("diverged", "failed")


def _check_name(name: str, allowed: tuple[str, ...], what: str) -> None:
    if name not in allowed:
        raise ValueError(f"Unknown {what} {name!r} (expected one of {', '.join(allowed)})")


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StatsSnapshot:
    """Read-only totals, taken after all workers have joined."""
    pushed: dict[RefKind, int]
    skipped_diverged: dict[RefKind, int]
    pruned: dict[RefKind, int]
    diverged: tuple[tuple[RefKind, str], ...]
    failed: tuple[tuple[RefKind, str], ...]

    @property
    def total_pushed(self) -> int:
        return sum(self.pushed.values())

    @property
    def total_skipped(self) -> int:
        return sum(self.skipped_diverged.values())

    @property
    def total_pruned(self) -> int:
        return sum(self.pruned.values())

    def to_dict(self) -> dict:
        def _counts(d):
            return {kind.value: d[kind] for kind in RefKind}

        def _entries(entries):
            return [f"{kind.value}:{name}" for kind, name in entries]

        return {
            "pushed": _counts(self.pushed),
            "skipped_diverged": _counts(self.skipped_diverged),
            "pruned": _counts(self.pruned),
            "diverged": _entries(self.diverged),
            "failed": _entries(self.failed),
        }


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------

class SyncStats:
    """Lock-protected counters and append-only lists.

    ``increment`` and ``append`` are safe to call from any number of
    worker threads; totals after the workers join equal the sum of all
    updates.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._counters = {(c, k): 0 for c in COUNTERS for k in RefKind}
        self._lists: dict[str, list[tuple[RefKind, str]]] = {name: [] for name in LISTS}

    @contextmanager
    def _locked(self):
        with self._lock:
            yield

    def _read_counter(self, counter: str, kind: RefKind) -> int:
        return self._counters[(counter, kind)]

    def _write_counter(self, counter: str, kind: RefKind, value: int) -> None:
        self._counters[(counter, kind)] = value

    def _add_entry(self, list_name: str, kind: RefKind, name: str) -> None:
        self._lists[list_name].append((kind, name))

    def _read_list(self, list_name: str) -> list[tuple[RefKind, str]]:
        return list(self._lists[list_name])

    def increment(self, counter: str, kind: RefKind, amount: int = 1) -> None:
        _check_name(counter, COUNTERS, "counter")
        if amount < 0:
            raise ValueError(f"Counters only grow (got amount={amount})")
        with self._locked():
            self._write_counter(counter, kind, self._read_counter(counter, kind) + amount)

    def append(self, list_name: str, kind: RefKind, name: str) -> None:
        _check_name(list_name, LISTS, "list")
        with self._locked():
            self._add_entry(list_name, kind, name)

    def snapshot(self) -> StatsSnapshot:
        with self._locked():
            counts = {c: {k: self._read_counter(c, k) for k in RefKind} for c in COUNTERS}
            lists = {name: tuple(self._read_list(name)) for name in LISTS}
        return StatsSnapshot(
            pushed=counts["pushed"],
            skipped_diverged=counts["skipped_diverged"],
            pruned=counts["pruned"],
            diverged=lists["diverged"],
            failed=lists["failed"],
        )

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


# ---------------------------------------------------------------------------
# Directory-backed store
# ---------------------------------------------------------------------------

class FileSyncStats(SyncStats):
    """Stats persisted under *directory*, one file per counter and list.

    Counter files (``pushed_branch``, ``skipped_diverged_tag``, ...) hold a
    decimal total; list files (``diverged``, ``failed``) hold one
    ``kind:name`` line per entry.  Reopening an existing directory resumes
    from its totals.  Safe across threads and processes.
    """

    def __init__(self, directory: str | os.PathLike[str]):
        super().__init__()
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._file_lock = StatsLock(self.directory)
        with self._locked():
            for counter in COUNTERS:
                for kind in RefKind:
                    path = self._counter_path(counter, kind)
                    if not path.exists():
                        path.write_text("0\n")
            for name in LISTS:
                self._list_path(name).touch()

    def __repr__(self) -> str:
        return f"FileSyncStats({str(self.directory)!r})"

    def close(self) -> None:
        """Release the lock file descriptor; totals stay on disk."""
        self._file_lock.close()

    def _counter_path(self, counter: str, kind: RefKind) -> Path:
        return self.directory / f"{counter}_{kind.value}"

    def _list_path(self, list_name: str) -> Path:
        return self.directory / list_name

    @contextmanager
    def _locked(self):
        with self._file_lock:
            yield

    def _read_counter(self, counter: str, kind: RefKind) -> int:
        text = self._counter_path(counter, kind).read_text().strip()
        return int(text or 0)

    def _write_counter(self, counter: str, kind: RefKind, value: int) -> None:
        self._counter_path(counter, kind).write_text(f"{value}\n")

    def _add_entry(self, list_name: str, kind: RefKind, name: str) -> None:
        with open(self._list_path(list_name), "a", encoding="utf-8") as f:
            f.write(f"{kind.value}:{name}\n")

    def _read_list(self, list_name: str) -> list[tuple[RefKind, str]]:
        entries = []
        for line in self._list_path(list_name).read_text(encoding="utf-8").splitlines():
            kind, _, name = line.partition(":")
            if name:
                entries.append((RefKind(kind), name))
        return entries
