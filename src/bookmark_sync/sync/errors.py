"""Typed synchronization errors and their classification.

Every failure the engine knows how to react to is a :class:`SyncError`
carrying a :class:`SyncErrorKind`.  The kind determines the
:class:`ErrorSeverity`, which in turn decides whether synchronization
keeps running or has to be stopped until restarted explicitly.
"""

from __future__ import annotations

import errno
from enum import StrEnum


class SyncErrorKind(StrEnum):
    """What went wrong."""

    FILE_UNAVAILABLE = "file_unavailable"
    QUOTA_EXCEEDED = "quota_exceeded"
    SERVER_UNAVAILABLE = "server_unavailable"
    RELOAD_TIMEOUT = "reload_timeout"
    CLOUD_UNAVAILABLE = "cloud_unavailable"
    CONTAINER_NOT_FOUND = "container_not_found"
    LOCAL_DIRECTORY_UNAVAILABLE = "local_directory_unavailable"
    LOCAL_CONTENT_UNREADABLE = "local_content_unreadable"
    LOCAL_IO = "local_io"


class ErrorSeverity(StrEnum):
    """How the engine reacts to an error of a given kind."""

    TRANSIENT = "transient"
    FATAL = "fatal"
    LOCAL_IO = "local_io"


_SEVERITIES: dict[SyncErrorKind, ErrorSeverity] = {
    SyncErrorKind.FILE_UNAVAILABLE: ErrorSeverity.TRANSIENT,
    SyncErrorKind.QUOTA_EXCEEDED: ErrorSeverity.TRANSIENT,
    SyncErrorKind.SERVER_UNAVAILABLE: ErrorSeverity.TRANSIENT,
    SyncErrorKind.RELOAD_TIMEOUT: ErrorSeverity.TRANSIENT,
    SyncErrorKind.CLOUD_UNAVAILABLE: ErrorSeverity.FATAL,
    SyncErrorKind.CONTAINER_NOT_FOUND: ErrorSeverity.FATAL,
    SyncErrorKind.LOCAL_DIRECTORY_UNAVAILABLE: ErrorSeverity.FATAL,
    SyncErrorKind.LOCAL_CONTENT_UNREADABLE: ErrorSeverity.FATAL,
    SyncErrorKind.LOCAL_IO: ErrorSeverity.LOCAL_IO,
}


class SyncError(Exception):
    """A classified synchronization failure.

    Args:
        kind: The error classification.
        message: Human-readable detail.
    """

    def __init__(self, kind: SyncErrorKind, message: str = "") -> None:
        super().__init__(message or kind.value)
        self.kind = kind
        self.message = message or kind.value

    @property
    def severity(self) -> ErrorSeverity:
        return _SEVERITIES[self.kind]

    @property
    def is_fatal(self) -> bool:
        """``True`` if synchronization must stop until restarted."""
        return self.severity is ErrorSeverity.FATAL

    def __repr__(self) -> str:
        return f"SyncError({self.kind.value!r}, {self.message!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SyncError):
            return NotImplemented
        return self.kind == other.kind and self.message == other.message

    def __hash__(self) -> int:
        return hash((self.kind, self.message))


_QUOTA_ERRNOS = {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)}
_UNAVAILABLE_ERRNOS = {errno.ENOENT, errno.EBUSY, errno.EAGAIN}


def classify_os_error(exc: OSError, *, cloud: bool) -> SyncError:
    """Translate an ``OSError`` raised while executing an action.

    Args:
        exc: The error raised by the filesystem call.
        cloud: Whether the failing call targeted the cloud container.

    Returns:
        A ``SyncError`` of the matching kind.  Errors on the local side
        that are not otherwise recognised become ``LOCAL_IO`` faults.
    """
    detail = f"{exc.strerror or exc}: {exc.filename}" if exc.filename else str(exc)
    if cloud and exc.errno in _QUOTA_ERRNOS:
        return SyncError(SyncErrorKind.QUOTA_EXCEEDED, detail)
    if cloud and exc.errno in _UNAVAILABLE_ERRNOS:
        return SyncError(SyncErrorKind.FILE_UNAVAILABLE, detail)
    return SyncError(SyncErrorKind.LOCAL_IO, detail)
