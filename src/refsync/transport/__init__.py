"""Transport backends: the engine's only view of git objects and the target."""

from __future__ import annotations

import os

from ._base import Transport, TransferResult, TransferStatus
from ._dulwich import DulwichTransport
from ._git import GitCliTransport

BACKENDS = {
    "dulwich": DulwichTransport,
    "git": GitCliTransport,
}


def open_transport(backend: str, repo_path: str | os.PathLike[str], target: str) -> Transport:
    """Create the transport named *backend* for *repo_path* -> *target*."""
    try:
        cls = BACKENDS[backend]
    except KeyError:
        raise ValueError(
            f"Unknown transport backend {backend!r} (choose from {', '.join(BACKENDS)})"
        ) from None
    return cls(repo_path, target)


__all__ = [
    "Transport", "TransferResult", "TransferStatus",
    "DulwichTransport", "GitCliTransport", "BACKENDS", "open_transport",
]
