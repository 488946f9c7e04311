from .config import SyncConfig
from .engine import SyncEngine, sync
from .exceptions import ConfigError, RefSyncError, TransportError
from .mirror import MirrorDiff, RefChange
from .refs import Decision, Ref, RefKind, RefState, RemoteRef, RemoteSnapshot, classify
from .report import exit_status, render_summary, result_to_dict
from .result import SyncResult
from .scheduler import Batch, BatchScheduler, JobSlots, PhaseReport
from .stats import FileSyncStats, StatsSnapshot, SyncStats
from .transport import DulwichTransport, GitCliTransport, TransferResult, TransferStatus, Transport, open_transport

__all__ = [
    "SyncConfig", "SyncEngine", "sync", "SyncResult",
    "ConfigError", "RefSyncError", "TransportError",
    "MirrorDiff", "RefChange",
    "Decision", "Ref", "RefKind", "RefState", "RemoteRef", "RemoteSnapshot", "classify",
    "exit_status", "render_summary", "result_to_dict",
    "Batch", "BatchScheduler", "JobSlots", "PhaseReport",
    "FileSyncStats", "StatsSnapshot", "SyncStats",
    "DulwichTransport", "GitCliTransport", "TransferResult", "TransferStatus", "Transport",
    "open_transport",
]
