"""Batch scheduling under a bounded number of concurrent push workers."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .refs import Decision, Ref, RefKind, RefState

if TYPE_CHECKING:
    from .executor import PushExecutor

logger = logging.getLogger(__name__)

DRY_RUN_PREVIEW = 5


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class Batch:
    """Refs of one kind transferred together, in encounter order.

    ``settled`` holds the names whose outcome is already in the stats
    store; the rest are still owed one.
    """
    kind: RefKind
    members: list[Ref] = field(default_factory=list)
    settled: set[str] = field(default_factory=set)

    def __len__(self) -> int:
        return len(self.members)

    def unsettled(self) -> list[Ref]:
        return [r for r in self.members if r.name not in self.settled]


@dataclass
class PhaseReport:
    """Classification tallies and dispatched batch sizes for one ref kind."""
    kind: RefKind
    total: int = 0
    new: int = 0
    changed: int = 0
    up_to_date: int = 0
    invalid: int = 0
    batches: list[int] = field(default_factory=list)

    @property
    def dispatched(self) -> int:
        """Refs handed to workers (``new + changed``)."""
        return self.new + self.changed

    def count(self, state: RefState) -> None:
        self.total += 1
        attr = {
            Decision.NEW: "new",
            Decision.CHANGED: "changed",
            Decision.UP_TO_DATE: "up_to_date",
            Decision.INVALID: "invalid",
        }[state.decision]
        setattr(self, attr, getattr(self, attr) + 1)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "total": self.total,
            "new": self.new,
            "changed": self.changed,
            "up_to_date": self.up_to_date,
            "invalid": self.invalid,
            "batches": list(self.batches),
        }


# ---------------------------------------------------------------------------
# Job slots
# ---------------------------------------------------------------------------

class JobSlots:
    """A counting semaphore of *capacity* worker threads.

    :meth:`spawn` blocks while every slot is busy; :meth:`drain` waits for
    all in-flight workers.  ``peak`` records the highest number of workers
    ever running at once.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._slots = threading.BoundedSemaphore(capacity)
        self._guard = threading.Lock()
        self._threads: list[threading.Thread] = []
        self.active = 0
        self.peak = 0
        self.dispatched = 0

    def spawn(self, fn: Callable[..., None], *args) -> None:
        self._slots.acquire()
        with self._guard:
            self.active += 1
            self.dispatched += 1
            self.peak = max(self.peak, self.active)
        thread = threading.Thread(target=self._run, args=(fn, args),
                                  name=f"refsync-worker-{self.dispatched}", daemon=True)
        try:
            thread.start()
        except BaseException:
            self._release()
            raise
        self._threads.append(thread)

    def _release(self) -> None:
        with self._guard:
            self.active -= 1
        self._slots.release()

    def _run(self, fn, args) -> None:
        try:
            fn(*args)
        finally:
            self._release()

    def drain(self) -> None:
        threads, self._threads = self._threads, []
        if threads:
            logger.info("Waiting for all parallel jobs to complete...")
        for thread in threads:
            thread.join()


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------

class BatchScheduler:
    """Groups classified refs into batches and dispatches them to workers.

    Args:
        executor: Performs each batch's transfer.
        slots: Bounds how many batches are in flight.
        batch_size: Maximum refs per batch.
        dry_run: Build and log batches without transferring anything.
    """

    def __init__(self, executor: PushExecutor, slots: JobSlots, batch_size: int,
                 *, dry_run: bool = False) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.executor = executor
        self.slots = slots
        self.batch_size = batch_size
        self.dry_run = dry_run

    def _work(self, batch: Batch) -> None:
        try:
            self.executor.push_batch(batch)
        except Exception:
            logger.exception("Worker crashed pushing %d %s(s)", len(batch), batch.kind.value)
            for ref in batch.unsettled():
                self.executor.stats.append("failed", batch.kind, ref.name)

    def dispatch(self, batch: Batch) -> None:
        if self.dry_run:
            names = ", ".join(r.name for r in batch.members[:DRY_RUN_PREVIEW])
            more = "..." if len(batch) > DRY_RUN_PREVIEW else ""
            logger.info("[DRY RUN] Would push %d %s(s): %s%s",
                        len(batch), batch.kind.value, names, more)
            return
        self.slots.spawn(self._work, batch)

    def run_phase(self, kind: RefKind, states: Iterable[RefState]) -> PhaseReport:
        """Consume *states* for *kind*, dispatching full batches as they fill.

        Returns once the final partial batch is flushed and every worker of
        this phase has finished.
        """
        report = PhaseReport(kind)
        members: list[Ref] = []

        def flush():
            batch = Batch(kind, members[:])
            members.clear()
            report.batches.append(len(batch))
            self.dispatch(batch)

        try:
            for state in states:
                report.count(state)
                if not state.needs_push:
                    continue
                members.append(state.ref)
                if len(members) >= self.batch_size:
                    flush()
            if members:
                flush()
        finally:
            self.slots.drain()
        return report
