"""
History Store

Persistence interface for pipeline state. Each stage owns one or more keys
(filter rules, trend history, digest history, run history) and reads/writes
them through an injected store so the numeric core stays free of I/O.

Contract:
- load_history() never raises; a missing key means "no prior state"
- save_history() never raises; write failures are logged and reported
  through the boolean return value
"""

import copy
import json
import logging
import re
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from utils.datetime_utils import utc_now
from utils.json_utils import NumpyJSONEncoder, dump_json

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")

DEFAULT_STORE_DIR = Path(__file__).parent.parent / "data" / "history"


class HistoryStore(ABC):
    """Key/value persistence for JSON-compatible pipeline state."""

    @abstractmethod
    def load_history(self, key: str) -> Optional[Any]:
        """Return the stored value for key, or None if absent or unreadable."""

    @abstractmethod
    def save_history(self, key: str, data: Any) -> bool:
        """Persist data under key. Returns False on failure instead of raising."""

    def list_keys(self) -> List[str]:
        """List stored keys (optional for implementations)."""
        return []


class InMemoryHistoryStore(HistoryStore):
    """
    Process-local store.

    Values are deep-copied on the way in and out so callers can never
    mutate stored history by reference.
    """

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self._lock = threading.Lock()
        self.save_count = 0

    def load_history(self, key: str) -> Optional[Any]:
        with self._lock:
            if key not in self._data:
                return None
            return copy.deepcopy(self._data[key])

    def save_history(self, key: str, data: Any) -> bool:
        # Round-trip through JSON so in-memory behaves like the file store
        try:
            snapshot = json.loads(json.dumps(data, cls=NumpyJSONEncoder))
        except (TypeError, ValueError) as e:
            logger.error(f"InMemoryHistoryStore: cannot serialize '{key}': {e}")
            return False

        with self._lock:
            self._data[key] = snapshot
            self.save_count += 1
        return True

    def list_keys(self) -> List[str]:
        with self._lock:
            return sorted(self._data)


class JsonHistoryStore(HistoryStore):
    """
    File-backed store: one JSON file per key under storage_dir.

    Files are written to a temporary sibling and renamed into place so a
    crash mid-write never leaves a truncated history file behind.
    """

    def __init__(self, storage_dir: Optional[Union[str, Path]] = None):
        """
        Initialize storage.

        Args:
            storage_dir: Directory for history files (default: data/history)
        """
        self.storage_dir = Path(storage_dir) if storage_dir else DEFAULT_STORE_DIR
        self._lock = threading.Lock()

        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"JsonHistoryStore: cannot create {self.storage_dir}: {e}")

        logger.info(f"JsonHistoryStore initialized at {self.storage_dir}")

    def _get_path(self, key: str) -> Path:
        """Get file path for a key."""
        safe_key = _UNSAFE_KEY_CHARS.sub("_", key).strip("._") or "_"
        return self.storage_dir / f"{safe_key}.json"

    def load_history(self, key: str) -> Optional[Any]:
        filepath = self._get_path(key)

        if not filepath.exists():
            logger.debug(f"No stored history for '{key}' at {filepath}")
            return None

        try:
            with open(filepath, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            logger.warning(
                f"JsonHistoryStore: failed to load '{key}' from {filepath}: {e}, "
                f"starting with empty state"
            )
            return None

        if isinstance(data, dict) and "_storage" in data:
            return data.get("payload")
        return data

    def save_history(self, key: str, data: Any) -> bool:
        filepath = self._get_path(key)
        tmp_path = filepath.with_suffix(".json.tmp")

        envelope = {
            "_storage": {
                "key": key,
                "saved_at": utc_now().isoformat(),
                "version": "1.0"
            },
            "payload": data
        }

        with self._lock:
            try:
                self.storage_dir.mkdir(parents=True, exist_ok=True)
                with open(tmp_path, 'w', encoding='utf-8') as f:
                    dump_json(envelope, f)
                tmp_path.replace(filepath)
            except (OSError, TypeError, ValueError) as e:
                logger.error(f"JsonHistoryStore: failed to save '{key}' to {filepath}: {e}")
                try:
                    tmp_path.unlink()
                except OSError as cleanup_error:
                    logger.debug(f"JsonHistoryStore: no temp file to remove for '{key}': {cleanup_error}")
                return False

        logger.debug(f"JsonHistoryStore: saved '{key}' to {filepath}")
        return True

    def list_keys(self) -> List[str]:
        return sorted(p.stem for p in self.storage_dir.glob("*.json"))


def append_capped(history: List[Any], item: Any, max_items: int) -> List[Any]:
    """Append item and keep only the newest max_items entries."""
    history.append(item)
    if max_items > 0 and len(history) > max_items:
        del history[:len(history) - max_items]
    return history
