"""Pure-Python transport backed by dulwich."""

from __future__ import annotations

import os
from collections.abc import Sequence

from dulwich.client import get_transport_and_path as _get_transport_and_path
from dulwich.errors import GitProtocolError, NotGitRepository
from dulwich.graph import can_fast_forward as _can_fast_forward
from dulwich.porcelain import ls_remote as _ls_remote
from dulwich.protocol import ZERO_SHA as _ZERO_SHA
from dulwich.repo import Repo as _DRepo

from ..exceptions import TransportError
from ..refs import Ref, RefKind, RemoteRef
from ._base import Transport, TransferResult

# Per-ref status codes sent by receive-pack that mean "would lose history".
_REJECT_REASONS = frozenset({
    "non-fast-forward",
    "fetch first",
    "already exists",
    "stale info",
})


class _Rejected(Exception):
    """Aborts send_pack from inside update_refs before anything is sent."""


def _status_result(ref_status: dict) -> TransferResult:
    """Turn a send_pack ``ref_status`` mapping into a :class:`TransferResult`."""
    failures = {}
    for ref, msg in ref_status.items():
        if not msg:
            continue
        name = ref.decode() if isinstance(ref, bytes) else ref
        failures[name] = msg.decode() if isinstance(msg, bytes) else str(msg)
    if not failures:
        return TransferResult.success()
    message = "\n".join(f"{ref}: {msg}" for ref, msg in failures.items())
    rejected = [ref for ref, msg in failures.items() if msg.strip() in _REJECT_REASONS]
    if len(rejected) == len(failures):
        return TransferResult.reject(rejected, message)
    return TransferResult.error(message)


class DulwichTransport(Transport):
    """Sync refs from the repository at *repo_path* to *url* using dulwich.

    A fresh dulwich ``Repo`` and client are opened for every call so that
    worker threads never share one.
    """

    def __init__(self, repo_path: str | os.PathLike[str], url: str):
        self.repo_path = os.fspath(repo_path)
        self.url = url
        try:
            _DRepo(self.repo_path).close()
        except NotGitRepository as exc:
            raise TransportError(f"Not a git repository: {self.repo_path}") from exc

    def __repr__(self) -> str:
        return f"DulwichTransport({self.repo_path!r}, {self.url!r})"

    def _open(self) -> _DRepo:
        return _DRepo(self.repo_path)

    # -- listing -----------------------------------------------------------

    def remote_ref_map(self) -> dict[str, str]:
        try:
            remote_result = _ls_remote(self.url)
        except (NotGitRepository, GitProtocolError, OSError) as exc:
            raise TransportError(f"Cannot access target repository: {self.url} ({exc})") from exc
        refs_dict = remote_result.refs if hasattr(remote_result, "refs") else remote_result
        return {
            ref.decode(): sha.decode()
            for ref, sha in refs_dict.items()
            if ref != b"HEAD" and not ref.endswith(b"^{}") and sha is not None
        }

    def local_ref_map(self) -> dict[str, str]:
        with self._open() as drepo:
            return {
                ref.decode(): sha.decode()
                for ref, sha in drepo.get_refs().items()
                if ref != b"HEAD"
            }

    # -- objects -----------------------------------------------------------

    def resolve_local(self, ref: Ref) -> str | None:
        with self._open() as drepo:
            try:
                sha = drepo.refs[ref.full_name.encode()]
            except KeyError:
                return None
            if sha not in drepo.object_store:
                return None
            return sha.decode()

    def has_object(self, oid: str) -> bool:
        with self._open() as drepo:
            return oid.encode() in drepo.object_store

    @staticmethod
    def _is_ancestor(drepo: _DRepo, old: bytes, new: bytes) -> bool:
        store = drepo.object_store
        if old not in store or new not in store:
            return False
        try:
            return _can_fast_forward(drepo, old, new)
        except (KeyError, AttributeError):
            # Missing parents (shallow history) or a non-commit object.
            return False

    def ancestry_distance(self, old: str, new: str) -> int | None:
        old_b, new_b = old.encode(), new.encode()
        with self._open() as drepo:
            if not self._is_ancestor(drepo, old_b, new_b):
                return None
            if old_b == new_b:
                return 0
            return sum(1 for _ in drepo.get_walker(include=[new_b], exclude=[old_b]))

    # -- transfers ---------------------------------------------------------

    def _send_pack(self, drepo: _DRepo, update_refs) -> TransferResult:
        def gen_pack(have, want, *, ofs_delta=False, progress=None):
            return drepo.object_store.generate_pack_data(
                have, want, ofs_delta=ofs_delta, progress=progress,
            )

        try:
            client, path = _get_transport_and_path(self.url)
            result = client.send_pack(path, update_refs, gen_pack)
        except GitProtocolError as exc:
            # Older dulwich raises UpdateRefsError carrying the per-ref status.
            ref_status = getattr(exc, "ref_status", None)
            if ref_status:
                return _status_result(ref_status)
            return TransferResult.error(str(exc))
        except (NotGitRepository, OSError) as exc:
            return TransferResult.error(f"{type(exc).__name__}: {exc}")
        return _status_result(getattr(result, "ref_status", None) or {})

    def transfer(self, kind: RefKind, refs: Sequence[Ref], *, force: bool = False) -> TransferResult:
        rejected: list[str] = []
        with self._open() as drepo:
            local_refs = {}
            for ref in refs:
                name = ref.full_name.encode()
                try:
                    local_refs[name] = drepo.refs[name]
                except KeyError:
                    return TransferResult.error(f"No valid ref {ref.full_name} in local repository")

            def update_refs(remote_refs):
                if not force:
                    for name, sha in local_refs.items():
                        old = remote_refs.get(name)
                        if old is None or old == sha:
                            continue
                        # Tags never fast-forward: any change rewrites them.
                        if kind is RefKind.TAG or not self._is_ancestor(drepo, old, sha):
                            rejected.append(name.decode())
                    if rejected:
                        raise _Rejected()
                return dict(local_refs)

            try:
                return self._send_pack(drepo, update_refs)
            except _Rejected:
                return TransferResult.reject(rejected)

    def prune_remote_only(self, stale: Sequence[RemoteRef]) -> TransferResult:
        if not stale:
            return TransferResult.success()
        deletes = {r.full_name.encode(): _ZERO_SHA for r in stale}

        def update_refs(remote_refs):
            return {ref: sha for ref, sha in deletes.items() if ref in remote_refs}

        with self._open() as drepo:
            return self._send_pack(drepo, update_refs)

    def mirror(self) -> TransferResult:
        with self._open() as drepo:
            local_refs = {
                ref: sha
                for ref, sha in drepo.get_refs().items()
                if ref != b"HEAD"
            }

            def update_refs(remote_refs):
                new_refs = dict(local_refs)
                for ref in remote_refs:
                    if ref not in local_refs and ref != b"HEAD" and not ref.endswith(b"^{}"):
                        new_refs[ref] = _ZERO_SHA
                return new_refs

            return self._send_pack(drepo, update_refs)
