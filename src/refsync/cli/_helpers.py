"""Shared helpers, option decorators, and the main CLI group."""

from __future__ import annotations

import logging

import click
from click.core import ParameterSource

from .._log import setup_logging
from ..exceptions import RefSyncError
from ..transport import BACKENDS, Transport, open_transport


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _store_repo(ctx, param, value):
    """Click callback: store --repo value in the context."""
    ctx.ensure_object(dict)
    if value is not None:
        ctx.obj["repo_path"] = value
    return value


def _repo_option(f):
    """Shared --repo/-r option decorator for all commands."""
    return click.option(
        "--repo", "-r", type=click.Path(), envvar="REFSYNC_REPO",
        help="Path to the local source repository (or set REFSYNC_REPO).",
        expose_value=False, callback=_store_repo, is_eager=True,
    )(f)


def _require_repo(ctx) -> str:
    """Get the repo path from context, raising a clear error if missing."""
    repo = ctx.obj.get("repo_path")
    if not repo:
        raise click.ClickException(
            "No repository specified. Use --repo or set REFSYNC_REPO."
        )
    return repo


def _dry_run_option(f):
    return click.option(
        "-n", "--dry-run", "dry_run", is_flag=True, default=False, envvar="REFSYNC_DRY_RUN",
        help="Classify and batch refs, but push nothing.",
    )(f)


def _backend_option(f):
    return click.option(
        "--backend", type=click.Choice(sorted(BACKENDS)), default="dulwich",
        envvar="REFSYNC_BACKEND", show_default=True,
        help="Transport used to talk to git.",
    )(f)


def _format_option(f):
    return click.option(
        "--format", "fmt", type=click.Choice(["text", "json"]), default="text",
        help="Output format.",
    )(f)


def _explicit(ctx, name: str, value):
    """Return *value* if the user set it (flag or env var), else ``None``."""
    source = ctx.get_parameter_source(name)
    if source is None or source is ParameterSource.DEFAULT:
        return None
    return value


def _open_transport(ctx, backend: str, target: str) -> Transport:
    try:
        return open_transport(backend, _require_repo(ctx), target)
    except RefSyncError as exc:
        raise click.ClickException(str(exc))


# ---------------------------------------------------------------------------
# Main group
# ---------------------------------------------------------------------------

@click.group()
@click.option("--repo", "-r", type=click.Path(), envvar="REFSYNC_REPO",
              help="Path to the local source repository (or set REFSYNC_REPO).",
              expose_value=False, callback=_store_repo, is_eager=True)
@click.option("-v", "--verbose", is_flag=True, help="Debug output on stderr.")
@click.option("-q", "--quiet", is_flag=True, help="Only warnings and errors on stderr.")
@click.pass_context
def main(ctx, verbose, quiet):
    """refsync: reconcile branches and tags onto another repository.

    Pushes refs in bounded batches with a bounded number of parallel
    pushes, so repositories with thousands of refs sync without hitting
    remote-side limits.

    \b
    Quick start:
      refsync status -r src.git git@host:org/dst.git
      refsync sync -r src.git git@host:org/dst.git --init
      refsync sync -r src.git git@host:org/dst.git

    \b
    Diverged refs are skipped and reported unless --force is given.
    Set REFSYNC_REPO to avoid passing --repo on every call.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO
    setup_logging(level)
