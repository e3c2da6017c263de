"""xftp — local and SFTP file stores behind one contract, plus a transfer engine."""

from __future__ import annotations

from xftp.backend import Entry, LocalBackend, StoreBackend
from xftp.connection import ConnectionConfig, ConnectionState, SFTPBackend
from xftp.errors import (
    ConnectError,
    ReadError,
    UnsupportedOperation,
    WriteError,
    XftpError,
)
from xftp.filesystem import FileSystem
from xftp.transfer import TransferKind, TransferManager, TransferProgress

__version__ = "0.1.0"

__all__ = [
    "ConnectError",
    "ConnectionConfig",
    "ConnectionState",
    "Entry",
    "FileSystem",
    "LocalBackend",
    "ReadError",
    "SFTPBackend",
    "StoreBackend",
    "TransferKind",
    "TransferManager",
    "TransferProgress",
    "UnsupportedOperation",
    "WriteError",
    "XftpError",
]
