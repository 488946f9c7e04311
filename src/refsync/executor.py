"""Push executor: one bulk transfer per batch, per-ref retry on failure."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from .refs import Ref, RefKind
from .transport import TransferResult, TransferStatus

if TYPE_CHECKING:
    from .scheduler import Batch
    from .stats import SyncStats
    from .transport import Transport

logger = logging.getLogger(__name__)

ERROR_CONTEXT_LINES = 3


def _head(message: str, lines: int = ERROR_CONTEXT_LINES) -> str:
    return "\n".join(message.strip().splitlines()[:lines])


class PushExecutor:
    """Transfers batches and records each ref's outcome in *stats*.

    Args:
        transport: Where refs are pushed.
        stats: Shared outcome store.
        force: Ask the transport to overwrite non-fast-forward updates.
        skip_diverged: Record rejected refs as diverged (skipped) instead of
            failed.
    """

    def __init__(
        self,
        transport: Transport,
        stats: SyncStats,
        *,
        force: bool = False,
        skip_diverged: bool = True,
    ) -> None:
        self.transport = transport
        self.stats = stats
        self.force = force
        self.skip_diverged = skip_diverged

    def _transfer(self, kind: RefKind, refs: Sequence[Ref]) -> TransferResult:
        try:
            return self.transport.transfer(kind, refs, force=self.force)
        except Exception as exc:
            logger.debug("Transport raised during push", exc_info=True)
            return TransferResult.error(f"{type(exc).__name__}: {exc}")

    def push_batch(self, batch: Batch) -> None:
        kind = batch.kind
        logger.info("Pushing batch of %d %s(s)...", len(batch), kind.value)
        result = self._transfer(kind, batch.members)
        if result.ok:
            self.stats.increment("pushed", kind, len(batch))
            batch.settled.update(r.name for r in batch.members)
            return

        logger.error("Failed to push batch of %d %s(s): %s",
                     len(batch), kind.value, _head(result.message, 1))
        logger.info("Retrying failed batch individually...")
        for ref in batch.members:
            self.push_one(ref)
            batch.settled.add(ref.name)

    def push_one(self, ref: Ref) -> None:
        """Push a single ref and classify the outcome."""
        kind = ref.kind
        result = self._transfer(kind, [ref])
        if result.ok:
            logger.info("Successfully pushed: %s", ref.name)
            self.stats.increment("pushed", kind)
        elif result.status is TransferStatus.REJECTED and not self.force:
            self._record_divergence(ref)
        else:
            logger.error("Failed to push %s: %s", ref.name, _head(result.message))
            self.stats.append("failed", kind, ref.name)

    def _record_divergence(self, ref: Ref) -> None:
        kind = ref.kind
        if self.skip_diverged:
            logger.warning("Skipped diverged %s: %s (use --force to override)",
                           kind.value, ref.name)
            self.stats.increment("skipped_diverged", kind)
            self.stats.append("diverged", kind, ref.name)
        else:
            logger.error("Diverged %s: %s", kind.value, ref.name)
            self.stats.append("failed", kind, ref.name)
