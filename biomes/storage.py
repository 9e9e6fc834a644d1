"""
Client-local key/value storage.

Holds best-effort hints that survive restarts, such as the identifier used
for the last dev login. Nothing stored here is required for correctness:
read failures return None and write failures are logged.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEV_LOGIN_KEY = "devLoginUsernameOrId"


def default_storage_path() -> Path:
    """Location of the persistent storage file (honours XDG_CONFIG_HOME)."""
    base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / "biomes" / "local_storage.json"


class ClientStorage:
    """String key/value store, persisted to a JSON file when given a path.

    Usage:
        storage = ClientStorage()                 # in-memory
        storage = ClientStorage(default_storage_path())
        storage.set_item("devLoginUsernameOrId", "ada")
    """

    def __init__(self, path: Optional[Path] = None):
        self._path = path
        self._lock = threading.Lock()
        self._items: dict[str, str] = self._read() if path is not None else {}

    def _read(self) -> dict[str, str]:
        assert self._path is not None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable client storage {self._path}: {e}")
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _write(self) -> None:
        if self._path is None:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(self._items), encoding="utf-8")
        except OSError as e:
            logger.warning(f"Failed to persist client storage {self._path}: {e}")

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._items[key] = value
            self._write()

    def remove_item(self, key: str) -> None:
        with self._lock:
            if self._items.pop(key, None) is not None:
                self._write()
