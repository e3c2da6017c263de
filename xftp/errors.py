"""Exception taxonomy shared by every xftp backend and the transfer engine.

Every error carries the operation that failed and the path it was working
on so that a caller can show an actionable message without parsing text.
"""

from __future__ import annotations


class XftpError(Exception):
    """Base class for all xftp errors."""

    def __init__(self, operation: str, path: str = "", cause: object = None) -> None:
        """Initialise with the failing *operation*, its *path* and an optional *cause*."""
        self.operation = operation
        self.path = path
        self.cause = cause
        message = f"{operation} {path}".strip()
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class ConnectError(XftpError):
    """SSH dial, SFTP channel negotiation, close or connection-state failure.

    ``phase`` is one of ``"dial"``, ``"channel"``, ``"close"`` or ``"state"``.
    """

    def __init__(
        self,
        phase: str,
        path: str = "",
        cause: object = None,
    ) -> None:
        """Initialise with the connection *phase* that failed."""
        self.phase = phase
        super().__init__(f"connect[{phase}]", path, cause)


class ReadError(XftpError):
    """Listing, stat or open-for-read failure."""


class WriteError(XftpError):
    """Create, delete or open-for-write failure."""


class UnsupportedOperation(XftpError):
    """The requested operation is not supported for these locations."""
