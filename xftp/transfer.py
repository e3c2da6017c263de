"""File transfer engine for xftp.

Copies or moves files and directory trees with per-chunk progress:
- MOVE first tries an atomic rename and falls back to copy + delete
  (typically when source and destination live on different volumes)
- directories are mirrored depth-first in listing order
- transfers between a local and a remote store are routed to the remote
  backend's upload/download, with progress normalised to one record type

There is no rollback: the first error aborts the transfer and whatever was
already copied (or removed) stays that way.
"""

from __future__ import annotations

import logging
import os
import stat
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable

from xftp.backend import LocalBackend, ProgressCallback, copy_symlink
from xftp.errors import ReadError, UnsupportedOperation, WriteError
from xftp.filesystem import FileSystem
from xftp.utils.path_helpers import is_within
from xftp.utils.streams import CHUNK_SIZE, ProgressReader, stream_file

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------


class TransferKind(Enum):
    """Whether the source survives the transfer."""

    COPY = auto()
    MOVE = auto()


@dataclass(frozen=True)
class TransferProgress:
    """One progress report for the file currently being transferred."""

    total_size: int
    transferred_size: int
    current_file: str
    completed: bool
    transfer_kind: TransferKind

    @property
    def percentage(self) -> float:
        """Percent of the current file transferred; may exceed 100 if it grew."""
        if self.total_size <= 0:
            return 100.0 if self.completed else 0.0
        return self.transferred_size / self.total_size * 100


TransferCallback = Callable[[TransferProgress], None]


# ---------------------------------------------------------------------------
# TransferManager
# ---------------------------------------------------------------------------


class TransferManager:
    """Synchronous copy/move engine with inline progress callbacks."""

    def __init__(
        self,
        on_progress: TransferCallback | None = None,
        chunk_size: int = CHUNK_SIZE,
    ) -> None:
        """Initialise the engine.

        Args:
            on_progress: Called with a :class:`TransferProgress` after every
                chunk.  Runs on the transferring thread; a slow callback
                slows the transfer.
            chunk_size: Bytes per read call.
        """
        self.on_progress = on_progress
        self.chunk_size = chunk_size
        self._local = LocalBackend(chunk_size=chunk_size)

    def _emit(self, progress: TransferProgress) -> None:
        if self.on_progress:
            self.on_progress(progress)

    # ------------------------------------------------------------------
    # Local transfers
    # ------------------------------------------------------------------

    def transfer(
        self,
        source: str,
        destination_dir: str,
        kind: TransferKind = TransferKind.COPY,
    ) -> None:
        """Copy or move *source* into *destination_dir* on the local disk.

        Raises:
            ReadError: The source cannot be stat'ed, listed or read.
            WriteError: A destination cannot be created or written, or a
                moved source cannot be removed.
            UnsupportedOperation: The destination is the source itself or
                lies inside it.
        """
        try:
            st = os.lstat(source)
        except OSError as exc:
            raise ReadError("stat", source, exc) from exc

        name = os.path.basename(os.path.normpath(source))
        dest = os.path.join(destination_dir, name)
        is_link = stat.S_ISLNK(st.st_mode)
        if not is_link and is_within(dest, source):
            raise UnsupportedOperation(
                kind.name.lower(), dest, f"destination lies inside source {source}"
            )

        if kind is TransferKind.MOVE:
            try:
                os.rename(source, dest)
            except OSError as exc:
                logger.debug(
                    "Rename %s → %s failed (%s) — falling back to copy and delete",
                    source,
                    dest,
                    exc,
                )
            else:
                self._emit(TransferProgress(0, 0, name, True, kind))
                logger.info("Moved %s → %s by rename", source, dest)
                return

        if is_link:
            self._transfer_link(source, dest, kind)
        elif stat.S_ISDIR(st.st_mode):
            self._transfer_dir(source, dest, kind)
        else:
            self._transfer_file(source, dest, kind)
        logger.info("%s complete: %s → %s", kind.name.capitalize(), source, dest)

    def _transfer_dir(self, source: str, dest: str, kind: TransferKind) -> None:
        """Recreate *source* at *dest*, children depth-first, then drop the source on MOVE."""
        try:
            os.makedirs(dest, exist_ok=True)
        except OSError as exc:
            raise WriteError("mkdir", dest, exc) from exc

        try:
            with os.scandir(source) as it:
                children = [
                    (entry.name, entry.is_symlink(), entry.is_dir(follow_symlinks=False))
                    for entry in it
                ]
        except OSError as exc:
            raise ReadError("list", source, exc) from exc

        for name, is_link, is_dir in children:
            src_child = os.path.join(source, name)
            dst_child = os.path.join(dest, name)
            if is_link:
                self._transfer_link(src_child, dst_child, kind)
            elif is_dir:
                self._transfer_dir(src_child, dst_child, kind)
            else:
                self._transfer_file(src_child, dst_child, kind)

        if kind is TransferKind.MOVE:
            self._local.delete(source)
        logger.debug("Directory %s → %s done", source, dest)

    def _transfer_file(self, source: str, dest: str, kind: TransferKind) -> None:
        """Stream one file with progress; remove the source on MOVE once fully copied."""
        try:
            total = os.stat(source).st_size
        except OSError as exc:
            raise ReadError("stat", source, exc) from exc
        name = os.path.basename(source)

        def _on_read(transferred: int) -> None:
            self._emit(
                TransferProgress(total, transferred, name, transferred == total, kind)
            )

        copied = stream_file(
            lambda: ProgressReader(open(source, "rb"), _on_read),
            lambda: open(dest, "wb"),
            source,
            dest,
            total,
            self.chunk_size,
        )
        if copied == 0:
            _on_read(0)

        if kind is TransferKind.MOVE:
            self._local.delete(source)

    def _transfer_link(self, source: str, dest: str, kind: TransferKind) -> None:
        """Recreate the symlink itself; its target is never read or removed."""
        copy_symlink(kind.name.lower(), source, dest)
        self._emit(TransferProgress(0, 0, os.path.basename(source), True, kind))
        if kind is TransferKind.MOVE:
            self._local.delete(source)

    # ------------------------------------------------------------------
    # Cross-store transfers
    # ------------------------------------------------------------------

    def transfer_between(
        self,
        source_fs: FileSystem,
        target_fs: FileSystem,
        source_path: str,
        kind: TransferKind = TransferKind.COPY,
    ) -> None:
        """Transfer *source_path* from one facade into the other's current path.

        Local→local goes through :meth:`transfer`.  A COPY between the local
        disk and a remote store uses that store's upload or download.

        Raises:
            UnsupportedOperation: MOVE across stores, or any transfer between
                two remote stores.
        """
        source_remote = source_fs.remote
        target_remote = target_fs.remote

        if source_remote is None and target_remote is None:
            self.transfer(source_path, target_fs.get_current_path(), kind)
            return

        if kind is TransferKind.MOVE:
            raise UnsupportedOperation(
                "move", source_path, "moving between different stores is not supported"
            )
        if source_remote is not None and target_remote is not None:
            raise UnsupportedOperation(
                "copy", source_path, "copying between two remote stores is not supported"
            )

        name = source_fs.backend.basename(source_path)
        dest = target_fs.backend.join(target_fs.get_current_path(), name)
        on_progress = self._byte_progress(name, kind)

        if target_remote is not None:
            target_remote.upload(source_path, dest, on_progress)
        else:
            source_remote.download(source_path, dest, on_progress)

    def _byte_progress(self, name: str, kind: TransferKind) -> ProgressCallback:
        """Adapt ``(transferred, total)`` callbacks to :class:`TransferProgress`."""

        def _callback(transferred: int, total: int) -> None:
            self._emit(TransferProgress(total, transferred, name, transferred == total, kind))

        return _callback
