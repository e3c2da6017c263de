"""Filesystem facade: one entry point over the local disk or a remote store."""

from __future__ import annotations

import logging

from xftp.backend import Entry, LocalBackend, StoreBackend
from xftp.utils.path_helpers import home_or_root

logger = logging.getLogger(__name__)


class FileSystem:
    """Holds a current path and routes operations to the active backend.

    The active backend is the attached remote backend when there is one,
    otherwise the local disk.  The facade exclusively owns the remote
    backend: replacing or detaching it closes the previous one.
    """

    def __init__(self, path: str = "", local: LocalBackend | None = None) -> None:
        """Initialise at *path* (home directory when empty)."""
        self._local = local or LocalBackend()
        self._remote: StoreBackend | None = None
        self._current_path = ""
        self.set_current_path(path)

    # ------------------------------------------------------------------
    # Backend routing
    # ------------------------------------------------------------------

    @property
    def remote(self) -> StoreBackend | None:
        """The attached remote backend, or ``None`` when browsing locally."""
        return self._remote

    @property
    def backend(self) -> StoreBackend:
        """The backend every operation is delegated to."""
        return self._remote if self._remote is not None else self._local

    @property
    def is_remote(self) -> bool:
        return self._remote is not None

    def set_remote(self, backend: StoreBackend | None) -> None:
        """Attach *backend* as the remote store, or detach with ``None``.

        Any previously attached backend is closed first.  If that close
        fails, the error propagates and *backend* is not installed.
        """
        previous = self._remote
        if previous is not None and previous is not backend:
            previous.close()
            logger.info("Closed previous remote backend %r", previous)
        self._remote = backend
        logger.debug("Remote backend set to %r", backend)

    def close(self) -> None:
        """Close and detach the remote backend, if any."""
        self.set_remote(None)

    # ------------------------------------------------------------------
    # Current path
    # ------------------------------------------------------------------

    def get_current_path(self) -> str:
        return self._current_path

    def set_current_path(self, path: str) -> None:
        """Set the current path; an empty string resets to the home directory."""
        self._current_path = path or home_or_root()

    # ------------------------------------------------------------------
    # Delegated operations
    # ------------------------------------------------------------------

    def list_files(self, path: str | None = None) -> list[Entry]:
        """List *path* (the current path when omitted) on the active backend."""
        return self.backend.list(self._current_path if path is None else path)

    def create_directory(self, path: str) -> None:
        self.backend.create_directory(path)

    def delete_file(self, path: str) -> None:
        """Recursively delete *path* on the active backend."""
        self.backend.delete(path)

    def rename_file(self, path: str, new_name: str) -> str:
        """Rename *path* within its directory; returns the new path."""
        return self.backend.rename(path, new_name)
