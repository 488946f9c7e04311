"""Transport that drives the ``git`` executable.

Useful when the target needs whatever ssh / credential configuration the
user's git already has.  Push outcomes are read from ``git push
--porcelain`` status flags rather than from free-form error text.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from collections.abc import Sequence

from ..exceptions import TransportError
from ..refs import Ref, RefKind, RemoteRef
from ._base import Transport, TransferResult


def _first_line(text: str) -> str:
    text = text.strip()
    return text.splitlines()[0] if text else ""


def _parse_porcelain(stdout: str) -> list[tuple[str, str, str]]:
    """Return ``(flag, dst_ref, summary)`` for each ref line of ``push --porcelain``."""
    statuses = []
    for line in stdout.splitlines():
        parts = line.split("\t")
        if len(parts) < 3 or len(parts[0]) != 1:
            continue
        flag, refspec, summary = parts[0], parts[1], parts[2]
        statuses.append((flag, refspec.rpartition(":")[2], summary))
    return statuses


class GitCliTransport(Transport):
    """Sync refs from the repository at *repo_path* to *remote* (URL, path,
    or configured remote name) by running git subcommands.
    """

    def __init__(self, repo_path: str | os.PathLike[str], remote: str):
        if shutil.which("git") is None:
            raise TransportError("git executable not found on PATH")
        self.repo_path = os.fspath(repo_path)
        self.remote = remote
        proc = self._git("rev-parse", "--git-dir")
        if proc.returncode != 0:
            raise TransportError(f"Not a git repository: {self.repo_path}")

    def __repr__(self) -> str:
        return f"GitCliTransport({self.repo_path!r}, {self.remote!r})"

    def _git(self, *args: str) -> subprocess.CompletedProcess[str]:
        env = dict(os.environ, GIT_TERMINAL_PROMPT="0")
        return subprocess.run(
            ["git", "-C", self.repo_path, *args],
            capture_output=True,
            text=True,
            check=False,
            env=env,
        )

    # -- listing -----------------------------------------------------------

    def remote_ref_map(self) -> dict[str, str]:
        proc = self._git("ls-remote", self.remote)
        if proc.returncode != 0:
            raise TransportError(
                f"Cannot access target repository: {self.remote} ({_first_line(proc.stderr)})"
            )
        refs = {}
        for line in proc.stdout.splitlines():
            sha, _, ref = line.partition("\t")
            if ref and ref != "HEAD" and not ref.endswith("^{}"):
                refs[ref] = sha
        return refs

    def local_ref_map(self) -> dict[str, str]:
        proc = self._git("for-each-ref", "--format=%(objectname) %(refname)")
        if proc.returncode != 0:
            raise TransportError(f"Cannot list local refs: {_first_line(proc.stderr)}")
        refs = {}
        for line in proc.stdout.splitlines():
            sha, _, ref = line.partition(" ")
            if ref:
                refs[ref] = sha
        return refs

    # -- objects -----------------------------------------------------------

    def resolve_local(self, ref: Ref) -> str | None:
        proc = self._git("rev-parse", "--verify", "--quiet", ref.full_name)
        sha = proc.stdout.strip()
        if proc.returncode != 0 or not sha:
            return None
        if self._git("cat-file", "-e", sha).returncode != 0:
            return None
        return sha

    def has_object(self, oid: str) -> bool:
        return self._git("cat-file", "-e", oid).returncode == 0

    def ancestry_distance(self, old: str, new: str) -> int | None:
        # exit 0: ancestor, 1: not an ancestor, anything else: unknown object
        if self._git("merge-base", "--is-ancestor", old, new).returncode != 0:
            return None
        proc = self._git("rev-list", "--count", f"{old}..{new}")
        if proc.returncode != 0:
            return None
        return int(proc.stdout.strip() or 0)

    # -- transfers ---------------------------------------------------------

    def _push(self, *args: str) -> TransferResult:
        proc = self._git("push", "--porcelain", *args)
        statuses = _parse_porcelain(proc.stdout)
        failed = [(dst, summary) for flag, dst, summary in statuses if flag == "!"]
        if proc.returncode == 0 and not failed:
            return TransferResult.success()
        message = "\n".join(f"{dst}: {summary}" for dst, summary in failed)
        if failed and all(summary.startswith("[rejected]") for _, summary in failed):
            return TransferResult.reject([dst for dst, _ in failed], message)
        detail = proc.stderr.strip()
        return TransferResult.error("\n".join(filter(None, [message, detail])) or "git push failed")

    def transfer(self, kind: RefKind, refs: Sequence[Ref], *, force: bool = False) -> TransferResult:
        flags = ["--force"] if force else []
        refspecs = [f"{r.full_name}:{r.full_name}" for r in refs]
        return self._push(*flags, self.remote, *refspecs)

    def prune_remote_only(self, stale: Sequence[RemoteRef]) -> TransferResult:
        if not stale:
            return TransferResult.success()
        return self._push(self.remote, *(f":{r.full_name}" for r in stale))

    def mirror(self) -> TransferResult:
        return self._push("--mirror", "--force", self.remote)
