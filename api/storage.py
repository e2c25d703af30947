"""JSON-file persistence for the result collector.

Each folder (the ``folderName`` a teacher configures in the quiz) gets its own
directory under ``DATA_DIR`` holding one JSON document per category.  Results
are keyed by session id, so a retried delivery overwrites rather than
duplicates.
"""

from __future__ import annotations

import json
import logging
import os
import re
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

log = logging.getLogger(__name__)

DATA_ROOT = Path(os.getenv("DATA_DIR", "data")).resolve()
CATEGORIES = ("results", "tests", "bank")

_LOCK = threading.Lock()
_FOLDER_RX = re.compile(r"^[A-Za-z0-9 _.\-]{1,64}$")


def valid_folder(folder: str) -> bool:
    return bool(_FOLDER_RX.match(folder or "")) and folder.strip(". ") != ""


def _folder_dir(folder: str) -> Path:
    if not valid_folder(folder):
        raise ValueError(f"invalid folder name: {folder!r}")
    return DATA_ROOT / folder


def _path(folder: str, category: str) -> Path:
    return _folder_dir(folder) / f"{category}.json"


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        log.warning("unreadable collector file %s; treating as empty", path)
        return default


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False), encoding="utf-8")
    tmp.replace(path)


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _results_index(path: Path) -> Dict[str, Dict[str, Any]]:
    index = _read_json(path, {})
    if not isinstance(index, dict):
        return {}
    return {sid: rec for sid, rec in index.items() if isinstance(rec, dict)}


def save_result(folder: str, result: Dict[str, Any]) -> bool:
    """Store ``result`` under its session id; returns False when it was already there."""

    sid = str(result["sessionId"])
    path = _path(folder, "results")
    with _LOCK:
        index = _results_index(path)
        created = sid not in index
        record = dict(result)
        record["receivedAt"] = (index.get(sid) or {}).get("receivedAt") or utcnow_iso()
        index[sid] = record
        _write_json(path, index)
    return created


def load_result(folder: str, session_id: str) -> Optional[Dict[str, Any]]:
    return _results_index(_path(folder, "results")).get(session_id)


def list_results(folder: str) -> List[Dict[str, Any]]:
    out = list(_results_index(_path(folder, "results")).values())
    out.sort(key=lambda r: str(r.get("receivedAt", "")))
    return out


def append_upload(folder: str, category: str, payload: Dict[str, Any]) -> int:
    """Append a published test or a bank upload; returns the new entry count."""

    if category not in CATEGORIES or category == "results":
        raise ValueError(f"unknown upload category: {category}")
    path = _path(folder, category)
    with _LOCK:
        entries: List[Dict[str, Any]] = _read_json(path, [])
        if not isinstance(entries, list):
            entries = []
        entries.append({"receivedAt": utcnow_iso(), "payload": payload})
        _write_json(path, entries)
        return len(entries)


def list_uploads(folder: str, category: str) -> List[Dict[str, Any]]:
    entries = _read_json(_path(folder, category), [])
    return entries if isinstance(entries, list) else []
