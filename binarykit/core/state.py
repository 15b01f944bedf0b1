"""
Key-value persistence for binarykit.

The installer keeps a small amount of state across sessions (such as the time
of the last update check). The host application decides where that lives by
passing a ``StateStore``; ``JsonStateStore`` persists to a JSON file with
atomic writes and ``MemoryStateStore`` keeps everything in process.

Example:
    >>> store = JsonStateStore(Path('~/.binarykit/state.json').expanduser())
    >>> store.set('last_update_check', time.time())
    >>> store.get('last_update_check')
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

from binarykit.core.filesystem import atomic_write

logger = logging.getLogger(__name__)


class StateStore(ABC):
    """Abstract key-value store for values that must survive a session."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value for ``key`` or ``default``."""
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store a JSON-serializable ``value`` under ``key``."""
        pass


class MemoryStateStore(StateStore):
    """Process-local store; state is lost when the process exits."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value


class JsonStateStore(StateStore):
    """
    Store backed by a JSON object file.

    A missing or corrupted file reads as empty; every ``set`` rewrites the
    file atomically.

    Attributes:
        state_file: Path to the JSON file
    """

    def __init__(self, state_file: Path):
        self.state_file = Path(state_file)
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, Any]:
        if not self.state_file.exists():
            logger.debug(f"State file not found: {self.state_file}")
            return {}

        try:
            with open(self.state_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Invalid state file {self.state_file}, ignoring: {e}")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"State file {self.state_file} is not an object, ignoring")
            return {}
        return data

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            atomic_write(self.state_file, json.dumps(data, indent=2, sort_keys=True))
            logger.debug(f"Saved state key '{key}' to {self.state_file}")
