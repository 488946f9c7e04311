"""End-of-run summary and exit status."""

from __future__ import annotations

from .refs import RefKind
from .result import SyncResult

RULE = "=" * 42


def format_duration(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs}s"


def exit_status(result: SyncResult) -> int:
    """0 unless a ref hard-failed or the run failed; skipped divergences are fine."""
    return 0 if result.ok else 1


def _summary_header() -> list[str]:
    return [RULE, "           SYNC SUMMARY", RULE]


def _mirror_lines(result: SyncResult) -> list[str]:
    lines = _summary_header()
    lines.append("Mode: mirror push")
    diff = result.mirror_diff
    if diff is not None:
        lines.append(
            f"Ref changes: {diff.total} "
            f"({len(diff.add)} add, {len(diff.update)} update, {len(diff.delete)} delete)"
        )
        if result.dry_run:
            for label, changes in (("add", diff.add), ("update", diff.update), ("delete", diff.delete)):
                for c in changes:
                    old = (c.old_target or "")[:7]
                    new = (c.new_target or "")[:7]
                    arrow = f"{old} -> {new}" if old and new else (new or old)
                    lines.append(f"  {label:<6}  {c.ref}  {arrow}")
    lines.append(f"Duration: {format_duration(result.duration)}")
    lines.append(RULE)
    return lines


def _batched_lines(result: SyncResult) -> list[str]:
    stats = result.stats
    lines = _summary_header()
    for kind in RefKind:
        label = kind.plural.capitalize()
        lines.append(f"{label} pushed: {stats.pushed[kind]}")
        lines.append(f"{label} skipped (diverged): {stats.skipped_diverged[kind]}")
    if stats.total_pruned:
        lines.append(f"Refs pruned: {stats.total_pruned}")
    lines.append(f"Failed pushes: {len(stats.failed)}")
    lines.append(f"Duration: {format_duration(result.duration)}")
    lines.append(f"Parallel jobs: {result.max_parallel_jobs} (peak {result.peak_jobs})")
    lines.append(RULE)
    return lines


def render_summary(result: SyncResult) -> str:
    """Human-readable report of *result*, one line per fact."""
    stats = result.stats
    if result.mode == "mirror":
        lines = _mirror_lines(result)
    else:
        lines = _batched_lines(result)

    if stats.diverged:
        lines.append("")
        lines.append("Diverged refs skipped (histories don't match):")
        lines.extend(f"  - {kind.value}:{name}" for kind, name in stats.diverged)
        lines.append("To force push these refs, run with --force")
        lines.append("WARNING: Force pushing will overwrite remote history!")

    if stats.failed:
        lines.append("")
        lines.append("Some refs failed to push:")
        lines.extend(f"  - {kind.value}:{name}" for kind, name in stats.failed)

    if result.error:
        lines.append("")
        lines.append(f"ERROR: {result.error}")

    lines.append("")
    if not result.ok:
        lines.append("Sync finished with failures")
    elif result.dry_run:
        lines.append("DRY RUN complete - no changes were pushed")
    else:
        lines.append("Sync complete successfully!")
    return "\n".join(lines)


def result_to_dict(result: SyncResult) -> dict:
    """JSON-serializable form of *result*."""
    return {
        "mode": result.mode,
        "dry_run": result.dry_run,
        "ok": result.ok,
        "exit_status": exit_status(result),
        "duration": round(result.duration, 3),
        "max_parallel_jobs": result.max_parallel_jobs,
        "peak_jobs": result.peak_jobs,
        "stats": result.stats.to_dict(),
        "phases": [p.to_dict() for p in result.phases],
        "mirror": result.mirror_diff.to_dict() if result.mirror_diff is not None else None,
        "error": result.error,
    }
