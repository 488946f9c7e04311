"""Sync configuration and the initial / subsequent mode presets."""

from __future__ import annotations

from dataclasses import dataclass, fields

from .exceptions import ConfigError

# Initial migrations: smaller batches, more workers, no ancestry checks.
INIT_DEFAULTS = {
    "batch_size": 50,
    "max_parallel_jobs": 16,
    "skip_commit_check": True,
    "use_mirror_push": False,
}

SUBSEQUENT_DEFAULTS = {
    "batch_size": 100,
    "max_parallel_jobs": 8,
    "skip_commit_check": False,
    "use_mirror_push": False,
}


@dataclass
class SyncConfig:
    """Options for one sync run.

    Fields left as ``None`` are filled from :data:`INIT_DEFAULTS` when
    *initial_sync* is true, else from :data:`SUBSEQUENT_DEFAULTS`.

    Attributes:
        initial_sync: Use the initial-migration presets.
        batch_size: Maximum refs per push.
        max_parallel_jobs: Maximum pushes in flight.
        skip_commit_check: Push every existing ref without comparing it.
        use_mirror_push: Replace the target's whole ref set in one push.
        force_push: Overwrite diverged refs on the target.
        skip_diverged: Report rejected refs as skipped rather than failed.
        prune_deleted: Delete target branches and tags missing locally.
        dry_run: Classify and batch, but transfer nothing.
    """
    initial_sync: bool = False
    batch_size: int | None = None
    max_parallel_jobs: int | None = None
    skip_commit_check: bool | None = None
    use_mirror_push: bool | None = None
    force_push: bool = False
    skip_diverged: bool = True
    prune_deleted: bool = False
    dry_run: bool = False

    def __post_init__(self):
        defaults = INIT_DEFAULTS if self.initial_sync else SUBSEQUENT_DEFAULTS
        for name, value in defaults.items():
            if getattr(self, name) is None:
                setattr(self, name, value)

    @property
    def mode(self) -> str:
        if self.use_mirror_push:
            return "mirror"
        return "initial" if self.initial_sync else "subsequent"

    def validate(self) -> None:
        """Raise :class:`ConfigError` if a precondition is violated."""
        if self.batch_size < 1:
            raise ConfigError(f"batch_size must be positive, got {self.batch_size}")
        if self.max_parallel_jobs < 1:
            raise ConfigError(
                f"max_parallel_jobs must be positive, got {self.max_parallel_jobs}"
            )
        if self.use_mirror_push and not self.force_push:
            raise ConfigError("Mirror push requires force push to be enabled (--force)")

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}
