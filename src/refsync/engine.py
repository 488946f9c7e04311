"""Sync orchestration: config check, mirror fast-path or two batched phases."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence

from .config import SyncConfig
from .executor import PushExecutor
from .mirror import run_mirror
from .refs import RefKind, RemoteRef, RemoteSnapshot, classify
from .result import SyncResult
from .scheduler import BatchScheduler, JobSlots
from .stats import SyncStats
from .transport import Transport

logger = logging.getLogger(__name__)


def _log_banner(config: SyncConfig) -> None:
    if config.use_mirror_push:
        logger.info("MIRROR MODE: all refs in a single push")
    elif config.initial_sync:
        logger.info("INIT MODE: optimized for initial sync")
    else:
        logger.info("SUBSEQUENT MODE: incremental sync")
    if not config.use_mirror_push:
        logger.info("   batch size: %d, parallel jobs: %d, skip commit checks: %s",
                    config.batch_size, config.max_parallel_jobs, config.skip_commit_check)
    if config.force_push:
        logger.warning("FORCE PUSH MODE ENABLED - will overwrite remote history!")
    if config.dry_run:
        logger.info("DRY RUN MODE - no changes will be pushed")


class SyncEngine:
    """Reconcile the local branches and tags of *transport* onto its target.

    Args:
        transport: Local repository + target remote.
        config: Run options; validated at the start of :meth:`run`.
        stats: Outcome store; a fresh in-memory :class:`SyncStats` by default.
    """

    def __init__(self, transport: Transport, config: SyncConfig | None = None,
                 *, stats: SyncStats | None = None) -> None:
        self.transport = transport
        self.config = config or SyncConfig()
        self.stats = stats if stats is not None else SyncStats()

    def run(self) -> SyncResult:
        """Run one sync.

        Raises :class:`~refsync.exceptions.ConfigError` before any transfer
        if the config is invalid, and
        :class:`~refsync.exceptions.TransportError` if the target cannot be
        listed.  Every per-ref failure is recorded in the result instead.
        """
        config = self.config
        config.validate()
        start = time.monotonic()
        _log_banner(config)

        if config.use_mirror_push:
            result = run_mirror(self.transport, config, self.stats)
        else:
            result = self._run_batched()

        result.duration = time.monotonic() - start
        result.max_parallel_jobs = config.max_parallel_jobs
        return result

    def _run_batched(self) -> SyncResult:
        config = self.config
        snapshot = RemoteSnapshot.fetch(self.transport)
        slots = JobSlots(config.max_parallel_jobs)
        executor = PushExecutor(self.transport, self.stats,
                                force=config.force_push,
                                skip_diverged=config.skip_diverged)
        scheduler = BatchScheduler(executor, slots, config.batch_size, dry_run=config.dry_run)

        phases = []
        local_refs = []
        for kind in RefKind:
            logger.info("Checking %s for updates...", kind.plural)
            refs = self.transport.list_local(kind)
            logger.info("Found %d local %s", len(refs), kind.plural)
            local_refs.extend(refs)
            states = classify(self.transport, refs, snapshot,
                              skip_commit_check=config.skip_commit_check)
            phases.append(scheduler.run_phase(kind, states))

        if config.prune_deleted:
            self._prune(snapshot.stale(local_refs))

        return SyncResult(
            mode="batched",
            dry_run=config.dry_run,
            stats=self.stats.snapshot(),
            phases=phases,
            peak_jobs=slots.peak,
        )

    def _prune(self, stale: Sequence[RemoteRef]) -> None:
        if not stale:
            logger.info("No deleted refs to prune from target")
            return
        logger.info("Pruning %d deleted ref(s) from target...", len(stale))
        if self.config.dry_run:
            logger.info("[DRY RUN] Would delete: %s", ", ".join(r.full_name for r in stale))
            return
        try:
            outcome = self.transport.prune_remote_only(stale)
        except Exception as exc:
            logger.debug("Transport raised during prune", exc_info=True)
            message = f"{type(exc).__name__}: {exc}"
        else:
            if outcome.ok:
                for r in stale:
                    self.stats.increment("pruned", r.kind)
                return
            message = outcome.message
        logger.error("Failed to prune deleted refs: %s", message)
        for r in stale:
            self.stats.append("failed", r.kind, r.name)


def sync(transport: Transport, config: SyncConfig | None = None,
         *, stats: SyncStats | None = None) -> SyncResult:
    """Shorthand for ``SyncEngine(transport, config, stats=stats).run()``."""
    return SyncEngine(transport, config, stats=stats).run()
