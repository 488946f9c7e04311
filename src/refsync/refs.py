"""Ref inventory and sync classification.

Local refs are enumerated once per phase, the remote listing is fetched
once per run (see :class:`RemoteSnapshot`), and every local ref is given a
:class:`Decision` without any further remote round trips.
"""

from __future__ import annotations

import enum
import logging
from collections import Counter
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .transport import Transport

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

class RefKind(enum.Enum):
    BRANCH = "branch"
    TAG = "tag"

    @property
    def namespace(self) -> str:
        return "refs/heads/" if self is RefKind.BRANCH else "refs/tags/"

    @property
    def plural(self) -> str:
        return "branches" if self is RefKind.BRANCH else "tags"


class Decision(enum.Enum):
    NEW = "new"
    CHANGED = "changed"
    UP_TO_DATE = "up-to-date"
    INVALID = "invalid"


def _validate_ref_name(name: str) -> None:
    """Reject empty ref names and names containing ':', space, tab, or newline."""
    if not name:
        raise ValueError("Ref name must not be empty")
    for ch, label in ((":", "colon"), (" ", "space"), ("\t", "tab"), ("\n", "newline")):
        if ch in name:
            raise ValueError(f"Invalid ref name {name!r}: contains {label}")


@dataclass(frozen=True)
class Ref:
    """A branch or tag, identified by its short name."""
    name: str
    kind: RefKind

    def __post_init__(self):
        _validate_ref_name(self.name)

    @property
    def full_name(self) -> str:
        return self.kind.namespace + self.name

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.name}"

    @classmethod
    def from_full_name(cls, full_name: str) -> Ref | None:
        """Parse ``refs/heads/x`` or ``refs/tags/x``; other namespaces give ``None``."""
        for kind in RefKind:
            if full_name.startswith(kind.namespace):
                return cls(full_name[len(kind.namespace):], kind)
        return None


@dataclass(frozen=True)
class RemoteRef:
    """One entry of the target's ref listing."""
    name: str
    kind: RefKind
    oid: str

    @property
    def ref(self) -> Ref:
        return Ref(self.name, self.kind)

    @property
    def full_name(self) -> str:
        return self.kind.namespace + self.name


@dataclass(frozen=True)
class RefState:
    """Classification of one local ref against the remote snapshot.

    Attributes:
        ref: The local ref.
        local_oid: Hex SHA of the local ref, or ``None`` if it does not resolve.
        remote_oid: Hex SHA of the same-named remote ref, or ``None`` if absent.
        decision: What the sync should do with this ref.
    """
    ref: Ref
    local_oid: str | None
    remote_oid: str | None
    decision: Decision

    @property
    def needs_push(self) -> bool:
        return self.decision in (Decision.NEW, Decision.CHANGED)


# ---------------------------------------------------------------------------
# Remote snapshot
# ---------------------------------------------------------------------------

class RemoteSnapshot:
    """The remote ref set, listed once and cached for every lookup."""

    def __init__(self, refs: Iterable[RemoteRef]):
        self._refs: dict[tuple[RefKind, str], RemoteRef] = {
            (r.kind, r.name): r for r in refs
        }

    @classmethod
    def fetch(cls, transport: Transport) -> RemoteSnapshot:
        logger.info("Fetching remote refs from target (this may take a moment)...")
        snapshot = cls(transport.list_refs())
        logger.info("Cached %d remote refs", len(snapshot))
        return snapshot

    def __len__(self) -> int:
        return len(self._refs)

    def __contains__(self, ref: Ref) -> bool:
        return (ref.kind, ref.name) in self._refs

    def lookup(self, ref: Ref) -> str | None:
        """Return the remote oid for *ref*, or ``None`` if the remote lacks it."""
        entry = self._refs.get((ref.kind, ref.name))
        return entry.oid if entry is not None else None

    def stale(self, local_refs: Iterable[Ref]) -> list[RemoteRef]:
        """Remote refs with no local counterpart, in listing order."""
        local = {(r.kind, r.name) for r in local_refs}
        return [r for key, r in self._refs.items() if key not in local]


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def _classify_branch(transport: Transport, ref: Ref, local_oid: str, remote_oid: str,
                     position: str) -> Decision:
    if local_oid == remote_oid:
        logger.debug("%s Branch %s is up to date", position, ref.name)
        return Decision.UP_TO_DATE
    if not transport.has_object(remote_oid):
        # Never fetched: the target has commits we lack, so it is ahead of
        # us or diverged in a way only a fetch could show. Leave it alone.
        logger.warning("%s Branch %s: target has commits not in the local repository, "
                       "leaving it unchanged", position, ref.name)
        return Decision.UP_TO_DATE
    ahead = transport.ancestry_distance(remote_oid, local_oid)
    if ahead is None:
        if transport.ancestry_distance(local_oid, remote_oid) is not None:
            logger.debug("%s Branch %s is behind the remote", position, ref.name)
            return Decision.UP_TO_DATE
        logger.info("%s Branch %s does not descend from the remote", position, ref.name)
        return Decision.CHANGED
    if ahead > 0:
        logger.info("%s Branch %s has %d new commit(s)", position, ref.name, ahead)
        return Decision.CHANGED
    logger.debug("%s Branch %s is up to date", position, ref.name)
    return Decision.UP_TO_DATE


def classify(
    transport: Transport,
    refs: Iterable[Ref],
    snapshot: RemoteSnapshot,
    *,
    skip_commit_check: bool = False,
) -> Iterator[RefState]:
    """Yield a :class:`RefState` for each ref in *refs*, in order.

    Rules, first match wins: unresolvable local ref is ``INVALID``;
    absent on the remote is ``NEW``; *skip_commit_check* makes everything
    else ``CHANGED``; branches then compare ancestry and tags compare the
    pointed-to object.
    """
    refs = list(refs)
    total = len(refs)
    for i, ref in enumerate(refs, 1):
        position = f"[{i}/{total}]"
        local_oid = transport.resolve_local(ref)
        remote_oid = snapshot.lookup(ref)

        if local_oid is None:
            logger.warning("%s Skipping invalid %s: %s", position, ref.kind.value, ref.name)
            decision = Decision.INVALID
        elif remote_oid is None:
            logger.info("%s New %s: %s", position, ref.kind.value, ref.name)
            decision = Decision.NEW
        elif skip_commit_check:
            decision = Decision.CHANGED
        elif ref.kind is RefKind.BRANCH:
            decision = _classify_branch(transport, ref, local_oid, remote_oid, position)
        elif local_oid != remote_oid:
            logger.info("%s Tag %s has changed", position, ref.name)
            decision = Decision.CHANGED
        else:
            logger.debug("%s Tag %s is up to date", position, ref.name)
            decision = Decision.UP_TO_DATE

        yield RefState(ref, local_oid, remote_oid, decision)


def count_decisions(states: Iterable[RefState]) -> dict[Decision, int]:
    """Tally *states* by decision, with every decision present."""
    counts = Counter(s.decision for s in states)
    return {d: counts.get(d, 0) for d in Decision}
