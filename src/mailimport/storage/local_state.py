from __future__ import annotations
import threading
from typing import Dict, List, Optional, Protocol


# -----------------------------
# Persisted key-value properties
# -----------------------------
class PropertyStore(Protocol):
    """String key-value store for cursors, ledgers and progress."""
    def get(self, key: str) -> Optional[str]: ...
    def set(self, key: str, value: str) -> None: ...
    def delete(self, key: str) -> None: ...
    def list_keys(self, prefix: str = "") -> List[str]: ...


class InMemoryPropertyStore:
    """Process-local store; state survives re-invocations only within one process."""
    def __init__(self) -> None:
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"Property values must be strings, got {type(value).__name__}")
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def list_keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))
