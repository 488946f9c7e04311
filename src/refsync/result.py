"""The outcome of one sync run."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .stats import StatsSnapshot, SyncStats

if TYPE_CHECKING:
    from .mirror import MirrorDiff
    from .scheduler import PhaseReport


def _empty_stats() -> StatsSnapshot:
    return SyncStats().snapshot()


@dataclass
class SyncResult:
    """Everything the reporter needs once all workers have joined.

    Attributes:
        mode: ``"batched"`` or ``"mirror"``.
        dry_run: No transfer was attempted.
        stats: Final outcome totals.
        phases: One report per ref kind (batched mode).
        mirror_diff: Ref changes of a mirror push (mirror mode).
        error: Run-level failure (e.g. the mirror push itself failed).
        duration: Wall-clock seconds.
        max_parallel_jobs: Configured concurrency limit.
        peak_jobs: Highest number of transfers observed in flight.
    """
    mode: str
    dry_run: bool = False
    stats: StatsSnapshot = field(default_factory=_empty_stats)
    phases: list[PhaseReport] = field(default_factory=list)
    mirror_diff: MirrorDiff | None = None
    error: str | None = None
    duration: float = 0.0
    max_parallel_jobs: int = 0
    peak_jobs: int = 0

    @property
    def ok(self) -> bool:
        """``True`` unless a ref hard-failed or the run itself failed."""
        return not self.stats.failed and self.error is None
