"""Grade-sheet exports of stored session results in JSON/CSV formats."""
from __future__ import annotations

from typing import Iterable, List, Dict, Any
import csv
import io

_FIELDS: tuple[str, ...] = (
    "session_id",
    "artifact_id",
    "name",
    "attempt",
    "status",
    "score",
    "max_score",
    "percentage",
    "tier",
    "started_at",
    "ended_at",
    "strikes",
    "manual_review",
)

_SOURCE = {
    "session_id": "sessionId",
    "artifact_id": "artifactId",
    "max_score": "maxScore",
    "started_at": "startedAt",
    "ended_at": "endedAt",
    "manual_review": "manualReview",
}


def _normalize_result(result: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key in _FIELDS:
        val = result.get(_SOURCE.get(key, key))
        if key == "attempt":
            try:
                out[key] = int(val)
            except (TypeError, ValueError):
                out[key] = 0
        elif key in {"score", "max_score"}:
            try:
                out[key] = float(val)
            except (TypeError, ValueError):
                out[key] = 0.0
        elif key in {"percentage", "started_at", "ended_at"}:
            try:
                out[key] = float(val)
            except (TypeError, ValueError):
                out[key] = None
        elif key == "strikes":
            out[key] = len(val) if isinstance(val, list) else 0
        elif key == "manual_review":
            out[key] = " ".join(str(v) for v in val) if isinstance(val, list) else ""
        else:
            out[key] = "" if val is None else str(val)
    return out


def to_json(results: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """Return a JSON-safe grade sheet."""

    normalized: List[Dict[str, Any]] = [_normalize_result(r or {}) for r in results]
    return {"results": normalized}


def to_csv(results: Iterable[Dict[str, Any]]) -> str:
    """Render results as CSV with a fixed header."""

    normalized = [_normalize_result(r or {}) for r in results]
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=_FIELDS)
    writer.writeheader()
    for row in normalized:
        writer.writerow(row)
    return buf.getvalue()


__all__ = ["to_json", "to_csv"]
