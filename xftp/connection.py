"""SSH/SFTP remote store backend for xftp.

Implements :class:`xftp.backend.StoreBackend` over a single paramiko SSH
transport and one SFTP channel opened on top of it.  The backend follows a
simple state machine::

    UNCONNECTED --connect()--> CONNECTED --close()--> CLOSED

All calls are blocking and run on the caller's thread; one backend instance
must not be used by two transfers at once.
"""

from __future__ import annotations

import logging
import os
import posixpath
import socket
import stat
from dataclasses import dataclass, field
from enum import Enum, auto

import paramiko

from xftp.backend import Entry, ProgressCallback, StoreBackend
from xftp.errors import ConnectError, ReadError, WriteError
from xftp.utils.streams import CHUNK_SIZE, stream_file

logger = logging.getLogger(__name__)

# Errors paramiko raises from SFTP calls: OSError for status replies,
# SSHException when the channel or transport has gone away.
_SFTP_ERRORS = (OSError, paramiko.SSHException)

DEFAULT_PORT = 22
DEFAULT_TIMEOUT = 15.0  # seconds


# ---------------------------------------------------------------------------
# Connection parameters
# ---------------------------------------------------------------------------


@dataclass
class ConnectionConfig:
    """Parameters for a password-authenticated SFTP session.

    Consumed once by :meth:`SFTPBackend.connect`; never written to disk.
    """

    host: str
    port: int = DEFAULT_PORT
    username: str = ""
    password: str = field(default="", repr=False)

    def __post_init__(self) -> None:
        """Validate host, username and port range."""
        if not self.host:
            raise ValueError("Host must not be empty")
        if not self.username:
            raise ValueError("Username must not be empty")
        if isinstance(self.port, bool) or not isinstance(self.port, int):
            raise ValueError(f"Port must be an integer, got {self.port!r}")
        if not 1 <= self.port <= 65535:
            raise ValueError(f"Port must be between 1 and 65535, got {self.port}")


# ---------------------------------------------------------------------------
# Host-key policy
# ---------------------------------------------------------------------------


class _TrustingPolicy(paramiko.MissingHostKeyPolicy):
    """Accepts any host key, logging its fingerprint.

    Host keys are not verified: a man-in-the-middle cannot be detected.
    """

    def missing_host_key(
        self,
        client: paramiko.SSHClient,
        hostname: str,
        key: paramiko.PKey,
    ) -> None:
        """Log the unverified fingerprint and accept the key for this session."""
        fingerprint = ":".join(f"{b:02x}" for b in key.get_fingerprint())
        logger.warning(
            "Host key for %s not verified (%s %s)",
            hostname,
            key.get_name(),
            fingerprint,
        )


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


class ConnectionState(Enum):
    """States of the SFTP backend lifecycle."""

    UNCONNECTED = auto()
    CONNECTED = auto()
    CLOSED = auto()


# ---------------------------------------------------------------------------
# SFTPBackend
# ---------------------------------------------------------------------------


class SFTPBackend(StoreBackend):
    """A remote store reached over SSH/SFTP with username/password auth."""

    pathmod = posixpath

    def __init__(
        self,
        config: ConnectionConfig,
        timeout: float = DEFAULT_TIMEOUT,
        chunk_size: int = CHUNK_SIZE,
    ) -> None:
        """Initialise connection parameters (does NOT connect yet).

        Args:
            config: Host, port and credentials.
            timeout: TCP connect and authentication timeout in seconds.
            chunk_size: Bytes per read/write call during transfers.
        """
        self.config = config
        self.timeout = timeout
        self.chunk_size = chunk_size

        self._client: paramiko.SSHClient | None = None
        self._sftp: paramiko.SFTPClient | None = None
        self._state = ConnectionState.UNCONNECTED

    @property
    def state(self) -> ConnectionState:
        """Current lifecycle state."""
        return self._state

    def __repr__(self) -> str:
        return f"SFTPBackend({self._address}, {self._state.name})"

    @property
    def _address(self) -> str:
        return f"{self.config.username}@{self.config.host}:{self.config.port}"

    # ------------------------------------------------------------------
    # Connect / close
    # ------------------------------------------------------------------

    def connect(self) -> None:
        """Open the SSH transport and the SFTP channel.

        On failure the backend stays UNCONNECTED and every partially opened
        resource is released.

        Raises:
            ConnectError: ``phase="dial"`` for network or authentication
                failures, ``phase="channel"`` if the SFTP subsystem cannot be
                opened, ``phase="state"`` if the backend was already closed.
        """
        if self._state is ConnectionState.CONNECTED:
            logger.debug("connect() called but already connected to %s", self._address)
            return
        if self._state is ConnectionState.CLOSED:
            raise ConnectError("state", self._address, "backend has been closed")

        logger.info("Connecting to %s", self._address)
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(_TrustingPolicy())

        try:
            client.connect(
                hostname=self.config.host,
                port=self.config.port,
                username=self.config.username,
                password=self.config.password,
                timeout=self.timeout,
                allow_agent=False,
                look_for_keys=False,
            )
        except (paramiko.SSHException, socket.timeout, OSError) as exc:
            client.close()
            logger.warning("SSH dial to %s failed: %s", self._address, exc)
            raise ConnectError("dial", self._address, exc) from exc

        try:
            sftp = client.open_sftp()
        except (paramiko.SSHException, OSError) as exc:
            client.close()
            logger.warning("SFTP channel to %s failed: %s", self._address, exc)
            raise ConnectError("channel", self._address, exc) from exc

        self._client = client
        self._sftp = sftp
        self._state = ConnectionState.CONNECTED
        logger.info("Connected to %s", self._address)

    def close(self) -> None:
        """Release the SFTP channel, then the SSH transport.

        Both releases are attempted; the first error is raised after the
        backend has moved to CLOSED.  Closing a backend that is not
        connected is a no-op.

        Raises:
            ConnectError: ``phase="close"`` wrapping the first release error.
        """
        if self._state is not ConnectionState.CONNECTED:
            logger.debug("close() on %s backend — nothing to release", self._state.name)
            return

        first_error: Exception | None = None
        for resource in (self._sftp, self._client):
            if resource is None:
                continue
            try:
                resource.close()
            except Exception as exc:
                logger.warning("Error while closing %s: %s", self._address, exc)
                if first_error is None:
                    first_error = exc

        self._sftp = None
        self._client = None
        self._state = ConnectionState.CLOSED
        logger.info("Disconnected from %s", self._address)

        if first_error is not None:
            raise ConnectError("close", self._address, first_error) from first_error

    def _require_sftp(self) -> paramiko.SFTPClient:
        """Return the active SFTP client.

        Raises:
            ConnectError: If not currently connected.
        """
        if self._state is not ConnectionState.CONNECTED or self._sftp is None:
            raise ConnectError(
                "state", self._address, f"not connected (state: {self._state.name})"
            )
        return self._sftp

    # ------------------------------------------------------------------
    # Listing and directory management
    # ------------------------------------------------------------------

    def list(self, path: str) -> list[Entry]:
        sftp = self._require_sftp()
        try:
            attrs = sftp.listdir_attr(path)
        except _SFTP_ERRORS as exc:
            raise ReadError("list", path, exc) from exc
        logger.debug("Listed %d entries in %s", len(attrs), path)
        return [
            Entry.from_stat(attr.filename, posixpath.join(path, attr.filename), attr)
            for attr in attrs
        ]

    def create_directory(self, path: str) -> None:
        sftp = self._require_sftp()
        cumulative = "/" if path.startswith("/") else ""
        for part in [p for p in path.split("/") if p]:
            cumulative = posixpath.join(cumulative, part)
            try:
                attr = sftp.stat(cumulative)
            except FileNotFoundError:
                attr = None
            except _SFTP_ERRORS as exc:
                raise WriteError("mkdir", cumulative, exc) from exc

            if attr is not None:
                if not stat.S_ISDIR(attr.st_mode or 0):
                    raise WriteError("mkdir", cumulative, "exists and is not a directory")
                continue
            try:
                sftp.mkdir(cumulative)
            except _SFTP_ERRORS as exc:
                raise WriteError("mkdir", cumulative, exc) from exc
            logger.debug("Created remote directory %s", cumulative)

    def delete(self, path: str) -> None:
        sftp = self._require_sftp()
        try:
            attr = sftp.lstat(path)
        except _SFTP_ERRORS as exc:
            raise WriteError("delete", path, exc) from exc

        if stat.S_ISDIR(attr.st_mode or 0):
            try:
                children = sftp.listdir_attr(path)
            except _SFTP_ERRORS as exc:
                raise WriteError("delete", path, exc) from exc
            for child in children:
                self.delete(posixpath.join(path, child.filename))
            try:
                sftp.rmdir(path)
            except _SFTP_ERRORS as exc:
                raise WriteError("delete", path, exc) from exc
        else:
            try:
                sftp.remove(path)
            except _SFTP_ERRORS as exc:
                raise WriteError("delete", path, exc) from exc
        logger.debug("Deleted remote %s", path)

    def rename(self, path: str, new_name: str) -> str:
        sftp = self._require_sftp()
        new_path = self.renamed_path(path, new_name)
        try:
            sftp.rename(path, new_path)
        except _SFTP_ERRORS as exc:
            raise WriteError("rename", path, exc) from exc
        logger.info("Renamed remote %s → %s", path, new_path)
        return new_path

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    def upload(
        self,
        local_path: str,
        remote_path: str,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """Upload a local file or directory tree to *remote_path*.

        Directories are mirrored pre-order: each remote directory is created
        before any of its children are uploaded.
        """
        sftp = self._require_sftp()
        self._upload(sftp, local_path, remote_path, on_progress)
        logger.info("Upload complete: %s → %s", local_path, remote_path)

    def _upload(
        self,
        sftp: paramiko.SFTPClient,
        local_path: str,
        remote_path: str,
        on_progress: ProgressCallback | None,
    ) -> None:
        try:
            st = os.lstat(local_path)
        except OSError as exc:
            raise ReadError("upload", local_path, exc) from exc

        if stat.S_ISLNK(st.st_mode):
            try:
                target = os.readlink(local_path)
            except OSError as exc:
                raise ReadError("upload", local_path, exc) from exc
            try:
                sftp.symlink(target, remote_path)
            except _SFTP_ERRORS as exc:
                raise WriteError("upload", remote_path, exc) from exc
            logger.debug("Linked remote %s → %s", remote_path, target)
            return

        if stat.S_ISDIR(st.st_mode):
            self.create_directory(remote_path)
            try:
                names = os.listdir(local_path)
            except OSError as exc:
                raise ReadError("upload", local_path, exc) from exc
            for name in names:
                self._upload(
                    sftp,
                    os.path.join(local_path, name),
                    posixpath.join(remote_path, name),
                    on_progress,
                )
            return

        def _open_remote():
            fh = sftp.open(remote_path, "wb")
            fh.set_pipelined(True)
            return fh

        stream_file(
            lambda: open(local_path, "rb"),
            _open_remote,
            local_path,
            remote_path,
            st.st_size,
            self.chunk_size,
            on_progress,
        )

    # ------------------------------------------------------------------
    # Download
    # ------------------------------------------------------------------

    def download(
        self,
        remote_path: str,
        local_path: str,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """Download a remote file or directory tree to *local_path*.

        Local directories are created before any contained file is written.
        """
        sftp = self._require_sftp()
        self._download(sftp, remote_path, local_path, on_progress)
        logger.info("Download complete: %s → %s", remote_path, local_path)

    def _download(
        self,
        sftp: paramiko.SFTPClient,
        remote_path: str,
        local_path: str,
        on_progress: ProgressCallback | None,
    ) -> None:
        try:
            attr = sftp.lstat(remote_path)
        except _SFTP_ERRORS as exc:
            raise ReadError("download", remote_path, exc) from exc

        if stat.S_ISLNK(attr.st_mode or 0):
            try:
                target = sftp.readlink(remote_path)
            except _SFTP_ERRORS as exc:
                raise ReadError("download", remote_path, exc) from exc
            try:
                os.symlink(target, local_path)
            except OSError as exc:
                raise WriteError("download", local_path, exc) from exc
            logger.debug("Linked %s → %s", local_path, target)
            return

        if stat.S_ISDIR(attr.st_mode or 0):
            try:
                os.makedirs(local_path, exist_ok=True)
            except OSError as exc:
                raise WriteError("mkdir", local_path, exc) from exc
            try:
                children = sftp.listdir_attr(remote_path)
            except _SFTP_ERRORS as exc:
                raise ReadError("download", remote_path, exc) from exc
            for child in children:
                self._download(
                    sftp,
                    posixpath.join(remote_path, child.filename),
                    os.path.join(local_path, child.filename),
                    on_progress,
                )
            return

        total = attr.st_size or 0

        def _open_remote():
            fh = sftp.open(remote_path, "rb")
            # Pipeline read requests instead of waiting for each reply in turn
            if total > 0:
                fh.prefetch(total)
            return fh

        stream_file(
            _open_remote,
            lambda: open(local_path, "wb"),
            remote_path,
            local_path,
            total,
            self.chunk_size,
            on_progress,
        )
