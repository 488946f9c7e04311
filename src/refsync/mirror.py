"""Mirror fast-path: replace the target's whole ref set in one push.

Skips classification and batching entirely.  Destructive by definition
(remote-only refs are deleted, diverged refs overwritten), so it only runs
with force push enabled; :meth:`SyncConfig.validate` enforces that.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .refs import Ref
from .result import SyncResult

if TYPE_CHECKING:
    from .config import SyncConfig
    from .stats import SyncStats
    from .transport import Transport

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class RefChange:
    """A single ref change in a :class:`MirrorDiff`.

    Attributes:
        ref: Full ref name (e.g. ``"refs/heads/main"``).
        old_target: Target's current SHA, or ``None`` for adds.
        new_target: Local SHA, or ``None`` for deletes.
    """
    ref: str
    old_target: str | None = None
    new_target: str | None = None


@dataclass
class MirrorDiff:
    """What a mirror push changes (or would change) on the target."""
    add: list[RefChange] = field(default_factory=list)
    update: list[RefChange] = field(default_factory=list)
    delete: list[RefChange] = field(default_factory=list)

    @property
    def in_sync(self) -> bool:
        return not self.add and not self.update and not self.delete

    @property
    def total(self) -> int:
        return len(self.add) + len(self.update) + len(self.delete)

    def to_dict(self) -> dict:
        def _changes(changes):
            return [
                {"ref": c.ref, "old": c.old_target, "new": c.new_target}
                for c in changes
            ]

        return {
            "add": _changes(self.add),
            "update": _changes(self.update),
            "delete": _changes(self.delete),
        }


def diff_refs(local_refs: dict[str, str], remote_refs: dict[str, str]) -> MirrorDiff:
    """Compare ``{ref: sha}`` maps for a local -> remote mirror push."""
    diff = MirrorDiff()
    for ref, sha in sorted(local_refs.items()):
        if ref not in remote_refs:
            diff.add.append(RefChange(ref, new_target=sha))
        elif remote_refs[ref] != sha:
            diff.update.append(RefChange(ref, old_target=remote_refs[ref], new_target=sha))
    for ref, sha in sorted(remote_refs.items()):
        if ref not in local_refs:
            diff.delete.append(RefChange(ref, old_target=sha))
    return diff


# ---------------------------------------------------------------------------
# Fast path
# ---------------------------------------------------------------------------

def _credit(stats: SyncStats, diff: MirrorDiff) -> None:
    """Count mirrored branches and tags; other namespaces are not tracked."""
    for change in diff.add + diff.update:
        ref = Ref.from_full_name(change.ref)
        if ref is not None:
            stats.increment("pushed", ref.kind)
    for change in diff.delete:
        ref = Ref.from_full_name(change.ref)
        if ref is not None:
            stats.increment("pruned", ref.kind)


def run_mirror(transport: Transport, config: SyncConfig, stats: SyncStats) -> SyncResult:
    """Push every local ref to the target in a single operation."""
    logger.info("Using mirror mode: pushing ALL refs (branches, tags, everything) in one operation")
    diff = diff_refs(transport.local_ref_map(), transport.remote_ref_map())
    result = SyncResult(mode="mirror", dry_run=config.dry_run, mirror_diff=diff)

    if config.dry_run:
        logger.info("[DRY RUN] Would mirror %d ref change(s) (%d add, %d update, %d delete)",
                    diff.total, len(diff.add), len(diff.update), len(diff.delete))
    elif diff.in_sync:
        logger.info("Nothing to push: target is already in sync")
    else:
        logger.info("Pushing all refs in one operation...")
        try:
            outcome = transport.mirror()
        except Exception as exc:
            logger.debug("Transport raised during mirror push", exc_info=True)
            result.error = f"{type(exc).__name__}: {exc}"
        else:
            if outcome.ok:
                _credit(stats, diff)
            else:
                result.error = outcome.message or "mirror push failed"
        if result.error:
            logger.error("Mirror push failed: %s", result.error)

    result.stats = stats.snapshot()
    return result
