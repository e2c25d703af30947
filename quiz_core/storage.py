"""Key-value persistence used by the delivery runtime and the reporter.

The compiled artifact uses ``localStorage``; Python callers inject one of the
stores below.  Every key is scoped by the artifact id so two quizzes opened on
the same device never share attempt or session state.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol

log = logging.getLogger(__name__)


def scoped_key(artifact_id: str, name: str) -> str:
    return f"quiz:{artifact_id}:{name}"


class KeyValueStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def put_many(self, values: Mapping[str, Any], delete: tuple[str, ...] = ()) -> None:
        """Write ``values`` and remove ``delete`` keys as one atomic batch."""
        ...


class MemoryStore:
    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()
        for k, v in (initial or {}).items():
            self._data[k] = json.dumps(v)

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._data.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            log.warning("unreadable value under %s; treating as absent", key)
            return default

    def put_many(self, values: Mapping[str, Any], delete: tuple[str, ...] = ()) -> None:
        encoded = {k: json.dumps(v, sort_keys=True) for k, v in values.items()}
        with self._lock:
            self._data.update(encoded)
            for k in delete:
                self._data.pop(k, None)

    def put_raw(self, key: str, raw: str) -> None:
        """Store an undecoded string; lets callers simulate corrupted entries."""
        with self._lock:
            self._data[key] = raw

    def keys(self) -> list[str]:
        return sorted(self._data)


class JsonFileStore:
    """Whole-document JSON file; each batch is written to a temp file and swapped in."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            log.warning("store %s is unreadable; starting empty", self.path)
            return {}
        if not isinstance(data, dict):
            log.warning("store %s does not hold an object; starting empty", self.path)
            return {}
        return data

    def _write(self, payload: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
        tmp.replace(self.path)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._read().get(key, default)

    def put_many(self, values: Mapping[str, Any], delete: tuple[str, ...] = ()) -> None:
        with self._lock:
            data = self._read()
            data.update(values)
            for k in delete:
                data.pop(k, None)
            self._write(data)
