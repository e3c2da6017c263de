"""Settings management for xftp.

Settings live in ``~/.xftp/config.json``.  Connection credentials are
never written to disk.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_CONFIG: dict[str, Any] = {
    "transfer_chunk_size": 32768,
    "ssh_timeout": 15,
    "default_port": 22,
    "local_start_path": "",
    "remote_start_path": "/",
    "log_level": "INFO",
}

_SECRET_KEYS = frozenset({"password"})

# ---------------------------------------------------------------------------
# ConfigManager
# ---------------------------------------------------------------------------


class ConfigManager:
    """Transfer, SSH and start-path settings backed by one JSON file.

    Unknown keys are kept; missing keys fall back to :data:`DEFAULT_CONFIG`.
    An unreadable or malformed file is replaced with the defaults.
    """

    def __init__(self, base_dir: Path | None = None) -> None:
        self._base = base_dir or Path.home() / ".xftp"
        self._config_path = self._base / "config.json"

        self._base.mkdir(parents=True, exist_ok=True)
        self._config: dict[str, Any] = self._load()

    @property
    def path(self) -> Path:
        return self._config_path

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _save(self) -> None:
        """Write the settings to a sibling temp file, then swap it in."""
        tmp = self._config_path.with_suffix(".tmp")
        try:
            tmp.write_text(json.dumps(self._config, indent=2), encoding="utf-8")
            tmp.replace(self._config_path)
        except OSError as exc:
            logger.error("Failed to write %s: %s", self._config_path, exc)
            raise

    def _reset(self) -> dict[str, Any]:
        self._config = dict(DEFAULT_CONFIG)
        self._save()
        return self._config

    def _load(self) -> dict[str, Any]:
        if not self._config_path.exists():
            logger.debug("No settings at %s, writing defaults", self._config_path)
            return self._reset()

        try:
            loaded = json.loads(self._config_path.read_text(encoding="utf-8"))
            if not isinstance(loaded, dict):
                raise ValueError("settings root must be a JSON object")
        except (ValueError, OSError) as exc:
            logger.warning("Unusable %s (%s), resetting to defaults", self._config_path, exc)
            return self._reset()

        dropped = _SECRET_KEYS.intersection(loaded)
        if dropped:
            logger.warning("Ignoring credential keys in settings: %s", ", ".join(sorted(dropped)))
        return {**DEFAULT_CONFIG, **{k: v for k, v in loaded.items() if k not in _SECRET_KEYS}}

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        return self._config.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Store *key* and persist immediately.

        Raises:
            ValueError: *key* names a credential.
        """
        if key in _SECRET_KEYS:
            raise ValueError(f"Refusing to store credential key {key!r}")
        self._config[key] = value
        self._save()
        logger.debug("Setting %s = %r", key, value)

    def get_all(self) -> dict[str, Any]:
        return dict(self._config)
