"""Path and size helpers for the local disk."""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


def home_or_root() -> str:
    """Return the user's home directory, or ``/`` when it cannot be determined."""
    try:
        home = Path.home()
    except (KeyError, RuntimeError) as exc:
        logger.debug("Home directory unavailable (%s) — falling back to /", exc)
        return "/"
    return str(home)


def is_within(path: str | os.PathLike[str], parent: str | os.PathLike[str]) -> bool:
    """Return True if *path* is *parent* itself or lies beneath it on the local disk."""
    child = os.path.realpath(path)
    root = os.path.realpath(parent)
    return child == root or child.startswith(root.rstrip(os.sep) + os.sep)


def human_readable_size(size_bytes: int | float) -> str:
    """Convert a byte count to a human-readable string (e.g. "4.2 MB").

    Uses 1024-based units (KiB/MiB/GiB) but labels them KB/MB/GB for
    familiarity with everyday usage.
    """
    if size_bytes < 0:
        return "0 B"
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if size_bytes < 1024.0:
            if unit == "B":
                return f"{int(size_bytes)} B"
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024.0
    return f"{size_bytes:.1f} PB"
