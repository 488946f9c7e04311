"""The sync and status commands."""

from __future__ import annotations

import json

import click

from ..config import SyncConfig
from ..engine import SyncEngine
from ..exceptions import RefSyncError
from ..refs import RefKind, RemoteSnapshot, classify, count_decisions
from ..report import exit_status, render_summary, result_to_dict
from ..stats import FileSyncStats
from ._helpers import (
    main,
    _backend_option,
    _dry_run_option,
    _explicit,
    _format_option,
    _open_transport,
    _repo_option,
)


# ---------------------------------------------------------------------------
# sync
# ---------------------------------------------------------------------------

@main.command("sync")
@_repo_option
@click.argument("target")
@click.option("--init", "initial_sync", is_flag=True, default=False, envvar="REFSYNC_INIT",
              help="Initial migration presets: batch 50, 16 jobs, no commit checks.")
@click.option("--batch-size", type=click.IntRange(min=1), default=None,
              envvar="REFSYNC_BATCH_SIZE", help="Refs per push (default: 100, or 50 with --init).")
@click.option("--jobs", "-j", "max_parallel_jobs", type=click.IntRange(min=1), default=None,
              envvar="REFSYNC_MAX_PARALLEL_JOBS",
              help="Concurrent pushes (default: 8, or 16 with --init).")
@click.option("--skip-commit-check/--commit-check", "skip_commit_check", default=False,
              envvar="REFSYNC_SKIP_COMMIT_CHECK",
              help="Push every existing ref without comparing commits.")
@click.option("--mirror/--no-mirror", "use_mirror_push", default=False, envvar="REFSYNC_MIRROR",
              help="Replace the target's whole ref set in one push (requires --force).")
@click.option("--force", "force_push", is_flag=True, default=False, envvar="REFSYNC_FORCE",
              help="Overwrite diverged refs on the target. Destroys remote history!")
@click.option("--skip-diverged/--no-skip-diverged", default=True, envvar="REFSYNC_SKIP_DIVERGED",
              help="Report diverged refs as skipped (default) or as failures.")
@click.option("--prune", "prune_deleted", is_flag=True, default=False, envvar="REFSYNC_PRUNE",
              help="Delete target branches and tags that no longer exist locally.")
@_dry_run_option
@_backend_option
@click.option("--stats-dir", type=click.Path(file_okay=False), default=None,
              envvar="REFSYNC_STATS_DIR",
              help="Keep running totals in this directory (survives interruption).")
@_format_option
@click.pass_context
def sync_cmd(ctx, target, initial_sync, batch_size, max_parallel_jobs, skip_commit_check,
             use_mirror_push, force_push, skip_diverged, prune_deleted, dry_run, backend,
             stats_dir, fmt):
    """Push branches and tags from --repo to TARGET.

    Branches are synced first, then tags, each in batches pushed by a
    bounded pool of parallel jobs. Exits 1 if any ref failed to push;
    diverged refs that were skipped do not count as failures.
    """
    config = SyncConfig(
        initial_sync=initial_sync,
        batch_size=batch_size,
        max_parallel_jobs=max_parallel_jobs,
        skip_commit_check=_explicit(ctx, "skip_commit_check", skip_commit_check),
        use_mirror_push=_explicit(ctx, "use_mirror_push", use_mirror_push),
        force_push=force_push,
        skip_diverged=skip_diverged,
        prune_deleted=prune_deleted,
        dry_run=dry_run,
    )
    stats = None
    try:
        config.validate()
        if stats_dir:
            try:
                stats = FileSyncStats(stats_dir)
            except OSError as exc:
                raise click.ClickException(f"Cannot use stats directory {stats_dir}: {exc}")
        with _open_transport(ctx, backend, target) as transport:
            result = SyncEngine(transport, config, stats=stats).run()
    except RefSyncError as exc:
        raise click.ClickException(str(exc))
    finally:
        if stats is not None:
            stats.close()

    if fmt == "json":
        click.echo(json.dumps(result_to_dict(result), indent=2))
    else:
        click.echo(render_summary(result))
    ctx.exit(exit_status(result))


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------

@main.command("status")
@_repo_option
@click.argument("target")
@click.option("--skip-commit-check", is_flag=True, default=False,
              help="Treat every ref present on both sides as changed.")
@_backend_option
@_format_option
@click.pass_context
def status_cmd(ctx, target, skip_commit_check, backend, fmt):
    """Show how each local branch and tag compares with TARGET.

    Read-only: lists every ref as new, changed, up-to-date, or invalid
    against a single listing of TARGET.
    """
    try:
        with _open_transport(ctx, backend, target) as transport:
            snapshot = RemoteSnapshot.fetch(transport)
            states = []
            for kind in RefKind:
                states.extend(classify(transport, transport.list_local(kind), snapshot,
                                       skip_commit_check=skip_commit_check))
    except RefSyncError as exc:
        raise click.ClickException(str(exc))

    if fmt == "json":
        click.echo(json.dumps([
            {
                "ref": s.ref.full_name,
                "kind": s.ref.kind.value,
                "decision": s.decision.value,
                "local": s.local_oid,
                "remote": s.remote_oid,
            }
            for s in states
        ], indent=2))
        return

    for s in states:
        click.echo(f"{s.decision.value:<10}  {s.ref.kind.value:<6}  {s.ref.name}")
    counts = count_decisions(states)
    click.echo(", ".join(f"{n} {d.value}" for d, n in counts.items()))
