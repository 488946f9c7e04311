"""Exceptions for refsync."""


class RefSyncError(Exception):
    """Base class for errors that abort a sync run."""


class ConfigError(RefSyncError):
    """Raised when the configuration violates a precondition.

    Always raised before any transfer is attempted, e.g. mirror mode
    requested without ``force_push``.
    """


class TransportError(RefSyncError):
    """Raised when the target cannot be reached during pre-flight.

    Per-ref push failures are never raised; they are reported as
    :class:`~refsync.transport.TransferResult` values.
    """
