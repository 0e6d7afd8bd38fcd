"""
Durable key-value storage for walker state.
Persists to disk so state survives a full teardown of the process.
"""

import json
import logging
import os
import shutil
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Minimal persistent store contract: get / set / remove."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value for key, or default."""

    @abstractmethod
    def set(self, key: str, value: Any):
        """Store a JSON-serializable value under key."""

    @abstractmethod
    def remove(self, key: str):
        """Delete key if present."""


class JsonFileStore(KeyValueStore):
    """Stores all keys in a single JSON document, written atomically."""

    def __init__(self, state_dir: str = "walker_state"):
        """
        Initialize store with state directory.

        Args:
            state_dir: Directory to store the state file
        """
        self.state_dir = Path(state_dir)
        self.state_file = self.state_dir / "state.json"
        self.state_dir.mkdir(parents=True, exist_ok=True)

    def _read(self) -> Dict[str, Any]:
        if not self.state_file.exists():
            return {}

        try:
            with open(self.state_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise TypeError(f"expected object, got {type(data).__name__}")
            return data
        except (json.JSONDecodeError, TypeError, UnicodeDecodeError) as e:
            logger.warning("State file corrupted: %s", e)
            self._backup_corrupted()
            return {}

    def _backup_corrupted(self):
        """Move a corrupted state file aside so the next write starts clean."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        backup_path = self.state_dir / f"state.corrupted.{timestamp}.json"
        try:
            shutil.move(str(self.state_file), backup_path)
            logger.warning("Backed up corrupted state to %s", backup_path)
        except OSError as e:
            logger.error("Failed to backup corrupted state: %s", e)

    def _write(self, data: Dict[str, Any]):
        # Atomic write: write to temp file, then replace
        temp_file = self.state_dir / "state.tmp.json"
        try:
            with open(temp_file, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_file, self.state_file)
        except Exception:
            if temp_file.exists():
                temp_file.unlink()
            raise

    def get(self, key: str, default: Any = None) -> Any:
        return self._read().get(key, default)

    def set(self, key: str, value: Any):
        data = self._read()
        data[key] = value
        self._write(data)

    def remove(self, key: str):
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)


def create_store(backend: str = "json", state_dir: Optional[str] = None) -> KeyValueStore:
    """
    Create the configured persistent store.

    Args:
        backend: "json" or "sqlite"
        state_dir: Directory holding the state file or database

    Returns:
        KeyValueStore instance

    Raises:
        ValueError: If the backend is unknown
    """
    state_dir = state_dir or "walker_state"
    if backend == "json":
        return JsonFileStore(state_dir)
    if backend == "sqlite":
        from .kv_store_db import SqliteStore
        return SqliteStore(str(Path(state_dir) / "state.db"))
    raise ValueError(f"Unknown store backend: {backend}. Must be 'json' or 'sqlite'")
