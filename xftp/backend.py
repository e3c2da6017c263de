"""Store backend contract and the local-disk implementation.

Both :class:`LocalBackend` and :class:`xftp.connection.SFTPBackend` satisfy
:class:`StoreBackend`, so the filesystem facade and any presentation layer
see one capability surface regardless of where the files live.
"""

from __future__ import annotations

import logging
import os
import stat
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from xftp.errors import ReadError, UnsupportedOperation, WriteError
from xftp.utils.path_helpers import is_within
from xftp.utils.streams import CHUNK_SIZE, stream_file

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class Entry:
    """One file-or-directory record returned by a listing."""

    name: str
    path: str
    size: int
    mtime: datetime
    is_dir: bool
    permissions: str | None = None

    @classmethod
    def from_stat(cls, name: str, path: str, st) -> Entry:
        """Build an entry from an ``os.stat_result`` or ``paramiko.SFTPAttributes``."""
        mode = getattr(st, "st_mode", None)
        return cls(
            name=name,
            path=path,
            size=max(0, int(getattr(st, "st_size", 0) or 0)),
            mtime=datetime.fromtimestamp(getattr(st, "st_mtime", 0) or 0),
            is_dir=bool(mode) and stat.S_ISDIR(mode),
            permissions=stat.filemode(mode) if mode is not None else None,
        )


def copy_symlink(operation: str, source: str, dest: str) -> None:
    """Recreate the local symlink *source* at *dest* without following it."""
    try:
        target = os.readlink(source)
    except OSError as exc:
        raise ReadError(operation, source, exc) from exc
    try:
        os.symlink(target, dest)
    except OSError as exc:
        raise WriteError(operation, dest, exc) from exc
    logger.debug("Linked %s → %s", dest, target)


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


class StoreBackend(ABC):
    """Capability set shared by the local disk and remote stores.

    ``pathmod`` is the path flavour of the store (``os.path`` locally,
    ``posixpath`` over SFTP); use :meth:`join` and :meth:`basename` to build
    paths that belong to this store.
    """

    pathmod = os.path

    def join(self, *parts: str) -> str:
        """Join *parts* using this store's path rules."""
        return self.pathmod.join(*parts)

    def basename(self, path: str) -> str:
        """Return the final component of *path*, ignoring a trailing separator."""
        return self.pathmod.basename(path.rstrip(self.pathmod.sep) or path)

    @abstractmethod
    def list(self, path: str) -> list[Entry]:
        """Return the entries of directory *path* in the store's native order.

        Raises:
            ReadError: *path* is missing, unreadable or not a directory.
        """
        raise NotImplementedError

    @abstractmethod
    def create_directory(self, path: str) -> None:
        """Create *path* and any missing parents; succeed if it already exists.

        Raises:
            WriteError: On permission, quota or non-directory-in-the-way errors.
        """
        raise NotImplementedError

    @abstractmethod
    def delete(self, path: str) -> None:
        """Recursively remove a file or directory tree.

        Children are removed depth-first before their parent.  The first
        failure aborts the walk; entries already removed stay removed.

        Raises:
            WriteError: Naming the first path that could not be removed.
        """
        raise NotImplementedError

    @abstractmethod
    def rename(self, path: str, new_name: str) -> str:
        """Rename *path* to *new_name* within its parent directory.

        Returns the new path.

        Raises:
            ValueError: *new_name* is empty, ``.``/``..`` or contains a separator.
            WriteError: The store refused the rename.
        """
        raise NotImplementedError

    def renamed_path(self, path: str, new_name: str) -> str:
        """Return the sibling of *path* called *new_name*."""
        sep = self.pathmod.sep
        if not new_name or new_name in (".", "..") or sep in new_name or "/" in new_name:
            raise ValueError(f"invalid name for rename: {new_name!r}")
        parent = self.pathmod.dirname(path.rstrip(sep) or path)
        return self.pathmod.join(parent, new_name)

    @abstractmethod
    def upload(
        self,
        local_path: str,
        remote_path: str,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """Copy a local file or directory tree into this store.

        Symbolic links are recreated as links, never followed.
        """
        raise NotImplementedError

    @abstractmethod
    def download(
        self,
        remote_path: str,
        local_path: str,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """Copy a file or directory tree from this store to the local disk.

        Symbolic links are recreated as links, never followed.
        """
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        """Release any resources held by the backend."""
        raise NotImplementedError


# ---------------------------------------------------------------------------
# LocalBackend
# ---------------------------------------------------------------------------


class LocalBackend(StoreBackend):
    """The local disk, addressed through the operating system's file APIs."""

    def __init__(self, chunk_size: int = CHUNK_SIZE) -> None:
        self.chunk_size = chunk_size

    def list(self, path: str) -> list[Entry]:
        entries: list[Entry] = []
        try:
            with os.scandir(path) as it:
                for dir_entry in it:
                    try:
                        st = dir_entry.stat()
                    except OSError as exc:
                        # Vanished or dangling symlink — skip it, keep listing
                        logger.warning("Skipping %s: %s", dir_entry.path, exc)
                        continue
                    entries.append(Entry.from_stat(dir_entry.name, dir_entry.path, st))
        except OSError as exc:
            raise ReadError("list", path, exc) from exc
        logger.debug("Listed %d entries in %s", len(entries), path)
        return entries

    def create_directory(self, path: str) -> None:
        try:
            os.makedirs(path, exist_ok=True)
        except OSError as exc:
            raise WriteError("mkdir", path, exc) from exc

    def delete(self, path: str) -> None:
        try:
            st = os.lstat(path)
        except OSError as exc:
            raise WriteError("delete", path, exc) from exc

        if stat.S_ISDIR(st.st_mode):
            try:
                names = os.listdir(path)
            except OSError as exc:
                raise WriteError("delete", path, exc) from exc
            for name in names:
                self.delete(os.path.join(path, name))
            try:
                os.rmdir(path)
            except OSError as exc:
                raise WriteError("delete", path, exc) from exc
        else:
            try:
                os.remove(path)
            except OSError as exc:
                raise WriteError("delete", path, exc) from exc
        logger.debug("Deleted %s", path)

    def rename(self, path: str, new_name: str) -> str:
        new_path = self.renamed_path(path, new_name)
        try:
            os.rename(path, new_path)
        except OSError as exc:
            raise WriteError("rename", path, exc) from exc
        logger.info("Renamed %s → %s", path, new_path)
        return new_path

    def upload(
        self,
        local_path: str,
        remote_path: str,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self._copy_checked("upload", local_path, remote_path, on_progress)

    def download(
        self,
        remote_path: str,
        local_path: str,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self._copy_checked("download", remote_path, local_path, on_progress)

    def close(self) -> None:
        pass

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _copy_checked(
        self,
        operation: str,
        source: str,
        dest: str,
        on_progress: ProgressCallback | None,
    ) -> None:
        """Refuse to copy a path onto itself or into its own subtree, then copy."""
        if is_within(dest, source):
            raise UnsupportedOperation(
                operation, dest, f"destination lies inside source {source}"
            )
        self._copy(operation, source, dest, on_progress)
        logger.info("%s complete: %s → %s", operation.capitalize(), source, dest)

    def _copy(
        self,
        operation: str,
        source: str,
        dest: str,
        on_progress: ProgressCallback | None,
    ) -> None:
        """Mirror *source* at *dest*, directories before their children."""
        try:
            st = os.lstat(source)
        except OSError as exc:
            raise ReadError(operation, source, exc) from exc

        if stat.S_ISLNK(st.st_mode):
            copy_symlink(operation, source, dest)
            return

        if stat.S_ISDIR(st.st_mode):
            self.create_directory(dest)
            try:
                names = os.listdir(source)
            except OSError as exc:
                raise ReadError(operation, source, exc) from exc
            for name in names:
                self._copy(
                    operation,
                    os.path.join(source, name),
                    os.path.join(dest, name),
                    on_progress,
                )
            return

        stream_file(
            lambda: open(source, "rb"),
            lambda: open(dest, "wb"),
            source,
            dest,
            st.st_size,
            self.chunk_size,
            on_progress,
        )
