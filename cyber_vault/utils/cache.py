import time
import threading
import logging
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class TTLCache:
    """In-memory response cache. Entries expire `ttl` seconds after being stored."""

    def __init__(self, ttl: float = 300):
        self.ttl = ttl
        self._data: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if time.time() - stored_at < self.ttl:
                logger.debug(f"Cache hit for {key}")
                return value
            del self._data[key]
            return None

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = (time.time(), value)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
