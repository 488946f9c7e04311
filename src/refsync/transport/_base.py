"""Transport capability shared by every backend."""

from __future__ import annotations

import abc
import enum
from collections.abc import Sequence
from dataclasses import dataclass, field

from ..refs import Ref, RefKind, RemoteRef


class TransferStatus(enum.Enum):
    OK = "ok"
    REJECTED = "rejected"
    ERROR = "error"


@dataclass(frozen=True)
class TransferResult:
    """Outcome of one transfer request.

    Attributes:
        status: ``OK``, ``REJECTED`` (non-fast-forward / tag already
            exists) or ``ERROR`` (anything else).
        message: Human-readable detail from the transport, possibly multi-line.
        rejected: Full ref names the transport refused as diverged.
    """
    status: TransferStatus
    message: str = ""
    rejected: tuple[str, ...] = field(default=())

    @property
    def ok(self) -> bool:
        return self.status is TransferStatus.OK

    @classmethod
    def success(cls, message: str = "") -> TransferResult:
        return cls(TransferStatus.OK, message)

    @classmethod
    def reject(cls, rejected: Sequence[str], message: str = "") -> TransferResult:
        if not message:
            message = "rejected (non-fast-forward): " + ", ".join(rejected)
        return cls(TransferStatus.REJECTED, message, tuple(rejected))

    @classmethod
    def error(cls, message: str) -> TransferResult:
        return cls(TransferStatus.ERROR, message)


class Transport(abc.ABC):
    """Ref-level view of a local repository and one target remote.

    Subclasses provide the raw ref maps, ancestry, and the transfer
    primitives; listing and local enumeration are derived here.
    """

    # -- listing -----------------------------------------------------------

    @abc.abstractmethod
    def remote_ref_map(self) -> dict[str, str]:
        """Return ``{full_ref_name: hex_sha}`` for the target, minus ``HEAD``
        and peeled ``^{}`` entries.

        Raises :class:`~refsync.exceptions.TransportError` when the target
        cannot be listed.
        """

    @abc.abstractmethod
    def local_ref_map(self) -> dict[str, str]:
        """Return ``{full_ref_name: hex_sha}`` for the local repo, minus ``HEAD``."""

    def list_refs(self) -> list[RemoteRef]:
        """Snapshot of the target's branches and tags."""
        refs = []
        for full_name, oid in self.remote_ref_map().items():
            ref = Ref.from_full_name(full_name)
            if ref is not None:
                refs.append(RemoteRef(ref.name, ref.kind, oid))
        return refs

    def list_local(self, kind: RefKind) -> list[Ref]:
        """Local refs of *kind*, sorted by name."""
        names = sorted(
            full[len(kind.namespace):]
            for full in self.local_ref_map()
            if full.startswith(kind.namespace)
        )
        return [Ref(name, kind) for name in names]

    # -- objects -----------------------------------------------------------

    @abc.abstractmethod
    def resolve_local(self, ref: Ref) -> str | None:
        """Hex SHA of *ref* if it resolves to an object in the local store."""

    @abc.abstractmethod
    def has_object(self, oid: str) -> bool:
        """Whether *oid* exists in the local object store.

        The target is never fetched from, so a remote tip missing here
        means the target holds commits the local repository has not seen.
        """

    @abc.abstractmethod
    def ancestry_distance(self, old: str, new: str) -> int | None:
        """Commits reachable from *new* but not from *old*, if *old* is an
        ancestor of (or equal to) *new*; ``None`` otherwise, including when
        either object is unknown locally.
        """

    # -- transfers ---------------------------------------------------------

    @abc.abstractmethod
    def transfer(self, kind: RefKind, refs: Sequence[Ref], *, force: bool = False) -> TransferResult:
        """Push *refs* to the same names on the target in one request."""

    @abc.abstractmethod
    def prune_remote_only(self, stale: Sequence[RemoteRef]) -> TransferResult:
        """Delete *stale* refs from the target in one request."""

    @abc.abstractmethod
    def mirror(self) -> TransferResult:
        """Make the target's ref set identical to the local one (force + delete)."""

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
