"""Local-first result persistence with best-effort cloud delivery.

Results are always written to the injected store before anything touches the
network.  Deliveries sit in a persisted outbox and are retried with
exponential backoff; entries that exhaust their attempts move to a dead-letter
list that stays on the device for manual export.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import requests

from . import config
from .storage import KeyValueStore, scoped_key
from .types import QuizSettings, SessionResult

log = logging.getLogger(__name__)

CATEGORY_FLAGS = {"results": "sync_grades", "tests": "sync_tests", "bank": "sync_bank"}

Transport = Callable[[str, Dict[str, Any], float], None]


def post_json(url: str, payload: Dict[str, Any], timeout: float) -> None:
    resp = requests.post(url, json=payload, timeout=timeout)
    resp.raise_for_status()


class ResultReporter:
    def __init__(
        self,
        store: KeyValueStore,
        artifact_id: str,
        settings: QuizSettings,
        transport: Transport = post_json,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
        max_attempts: int = config.REPORT_MAX_ATTEMPTS,
        backoff_base: float = config.REPORT_BACKOFF_BASE,
        backoff_cap: float = config.REPORT_BACKOFF_CAP,
        background: bool = config.REPORT_IN_BACKGROUND,
    ):
        self.store = store
        self.artifact_id = artifact_id
        self.settings = settings
        self.transport = transport
        self.clock = clock
        self.sleep = sleep
        self.max_attempts = max(1, int(max_attempts))
        self.backoff_base = float(backoff_base)
        self.backoff_cap = float(backoff_cap)
        self.background = background
        self._flush_lock = threading.Lock()
        self._worker: Optional[threading.Thread] = None

    def _key(self, name: str) -> str:
        return scoped_key(self.artifact_id, name)

    def _list(self, name: str) -> List[Dict[str, Any]]:
        raw = self.store.get(self._key(name), [])
        if not isinstance(raw, list):
            log.warning("%s list for %s unreadable; starting empty", name, self.artifact_id)
            return []
        return [r for r in raw if isinstance(r, dict)]

    # ---- configuration ----
    def sync_enabled(self, category: str) -> bool:
        cloud = self.settings.cloud_config
        if self.settings.offline_mode or not (cloud.cloud_url or "").strip():
            return False
        flag = CATEGORY_FLAGS.get(category)
        return bool(flag and getattr(cloud, flag, False))

    def endpoint(self, category: str) -> str:
        cloud = self.settings.cloud_config
        folder = (cloud.folder_name or "").strip() or config.DEFAULT_FOLDER
        return f"{cloud.cloud_url.rstrip('/')}/{category}/{quote(folder, safe='')}"

    def backoff(self, attempts: int) -> float:
        return min(self.backoff_cap, self.backoff_base * (2 ** max(attempts - 1, 0)))

    def _entry(self, category: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "id": uuid.uuid4().hex,
            "category": category,
            "url": self.endpoint(category),
            "payload": payload,
            "attempts": 0,
            "nextAt": 0.0,
        }

    # ---- local persistence ----
    def results(self) -> List[Dict[str, Any]]:
        return self._list("results")

    def pending(self) -> List[Dict[str, Any]]:
        return self._list("outbox")

    def dead_letters(self) -> List[Dict[str, Any]]:
        return self._list("dead-letter")

    def abandoned(self) -> List[Dict[str, Any]]:
        return self._list("abandoned")

    def commit(
        self,
        result: SessionResult,
        extra: Optional[Dict[str, Any]] = None,
        delete: tuple[str, ...] = (),
    ) -> None:
        """Persist ``result`` (plus ``extra`` keys) in one store batch and queue delivery."""

        record = result.to_dict()
        results = self.results()
        if any(r.get("sessionId") == result.session_id for r in results):
            log.info("result %s already stored locally", result.session_id)
        else:
            results.append(record)
        values: Dict[str, Any] = {self._key("results"): results}
        values.update(extra or {})
        if self.sync_enabled("results"):
            payload = dict(record)
            payload["deviceId"] = self.store.get(self._key("device"))
            outbox = self.pending()
            outbox.append(self._entry("results", payload))
            values[self._key("outbox")] = outbox
        elif self.settings.offline_mode:
            log.debug("offline mode: result %s kept local only", result.session_id)
        self.store.put_many(values, delete=delete)

    def record_abandoned(self, result: SessionResult, delete: tuple[str, ...] = ()) -> None:
        rows = self.abandoned()
        rows.append(result.to_dict())
        self.store.put_many({self._key("abandoned"): rows}, delete=delete)
        log.info("session %s abandoned without score", result.session_id)

    def enqueue(self, category: str, payload: Dict[str, Any]) -> bool:
        """Queue an arbitrary upload (published test, bank export); False when sync is off."""

        if not self.sync_enabled(category):
            return False
        outbox = self.pending()
        outbox.append(self._entry(category, payload))
        self.store.put_many({self._key("outbox"): outbox})
        return True

    # ---- delivery ----
    def _settle(self, entry: Dict[str, Any], error: Optional[Exception], now: float) -> str:
        """Apply one delivery outcome to the outbox as it is stored now, not as it was read."""

        outbox = [e for e in self.pending() if e.get("id") != entry.get("id")]
        values: Dict[str, Any] = {}
        if error is None:
            outcome = "sent"
        else:
            entry["attempts"] = int(entry.get("attempts", 0)) + 1
            entry["lastError"] = str(error)
            if entry["attempts"] >= self.max_attempts:
                log.warning("giving up on %s delivery %s: %s", entry.get("category"), entry.get("id"), error)
                values[self._key("dead-letter")] = self.dead_letters() + [entry]
                outcome = "dead"
            else:
                entry["nextAt"] = now + self.backoff(entry["attempts"])
                log.info("delivery %s failed (%s); retry in %.0fs", entry.get("id"), error, entry["nextAt"] - now)
                outbox.append(entry)
                outcome = "retry"
        values[self._key("outbox")] = outbox
        self.store.put_many(values)
        return outcome

    def flush(self) -> Dict[str, int]:
        """Attempt every due outbox entry once."""

        stats = {"sent": 0, "retry": 0, "dead": 0}
        with self._flush_lock:
            now = self.clock()
            due = [e for e in self.pending() if float(e.get("nextAt", 0.0) or 0.0) <= now]
            for entry in due:
                try:
                    self.transport(entry["url"], entry["payload"], config.REPORT_TIMEOUT)
                except Exception as e:
                    stats[self._settle(entry, e, now)] += 1
                    continue
                stats[self._settle(entry, None, now)] += 1
        return stats

    def drain(self) -> None:
        """Flush until the outbox is empty, sleeping until the next entry is due."""

        while True:
            self.flush()
            outbox = self.pending()
            if not outbox:
                return
            due = min(float(e.get("nextAt", 0.0) or 0.0) for e in outbox)
            self.sleep(max(0.0, due - self.clock()))

    def _drain_safely(self) -> None:
        try:
            self.drain()
        except Exception:
            log.exception("background delivery stopped; entries remain queued")

    def deliver_detached(self) -> None:
        """Start delivery without holding up the caller."""

        if not self.pending():
            return
        if not self.background:
            self.flush()
            return
        if self._worker is not None and self._worker.is_alive():
            return
        self._worker = threading.Thread(target=self._drain_safely, name="quiz-reporter", daemon=True)
        self._worker.start()
