from __future__ import annotations
import os, json, pathlib


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


# Feedback banding (percent lower bounds below full mark).
BAND_EXCELLENT: float = 90.0
BAND_VERY_GOOD: float = 75.0
BAND_GOOD: float = 60.0
BAND_FAIR: float = 40.0

ALLOW_REVISIT: bool = True

ANTICHEAT_STRIKE_LIMIT: int = 3
ANTICHEAT_REACTION: str = "lock"

# Reporter delivery
REPORT_MAX_ATTEMPTS: int = 5
REPORT_BACKOFF_BASE: float = 2.0
REPORT_BACKOFF_CAP: float = 300.0
REPORT_TIMEOUT: float = 10.0
REPORT_IN_BACKGROUND: bool = True
DEFAULT_FOLDER: str = "default"

ASSET_ROOT: str | None = None
RUNTIME_POLL_MS: int = 250

# // env overrides for deployments; defaults stay the documented policy.
BAND_EXCELLENT = _env_float("BAND_EXCELLENT", BAND_EXCELLENT)
BAND_VERY_GOOD = _env_float("BAND_VERY_GOOD", BAND_VERY_GOOD)
BAND_GOOD = _env_float("BAND_GOOD", BAND_GOOD)
BAND_FAIR = _env_float("BAND_FAIR", BAND_FAIR)
ALLOW_REVISIT = _env_bool("ALLOW_REVISIT", ALLOW_REVISIT)
ANTICHEAT_STRIKE_LIMIT = _env_int("ANTICHEAT_STRIKE_LIMIT", ANTICHEAT_STRIKE_LIMIT)
ANTICHEAT_REACTION = (os.getenv("ANTICHEAT_REACTION") or ANTICHEAT_REACTION).strip().lower()
REPORT_MAX_ATTEMPTS = _env_int("REPORT_MAX_ATTEMPTS", REPORT_MAX_ATTEMPTS)
REPORT_BACKOFF_BASE = _env_float("REPORT_BACKOFF_BASE", REPORT_BACKOFF_BASE)
REPORT_BACKOFF_CAP = _env_float("REPORT_BACKOFF_CAP", REPORT_BACKOFF_CAP)
REPORT_TIMEOUT = _env_float("REPORT_TIMEOUT", REPORT_TIMEOUT)
REPORT_IN_BACKGROUND = _env_bool("REPORT_IN_BACKGROUND", REPORT_IN_BACKGROUND)
ASSET_ROOT = os.getenv("QUIZ_ASSET_ROOT", None)


def load_config() -> dict:
    cfg = {}
    p = pathlib.Path("config.json")
    if p.exists():
        try: cfg = json.loads(p.read_text(encoding="utf-8"))
        except Exception: cfg = {}
    e = os.environ
    if e.get("QUIZ_CLOUD_URL"): cfg["cloudUrl"] = e.get("QUIZ_CLOUD_URL")
    if e.get("QUIZ_FOLDER"): cfg["folderName"] = e.get("QUIZ_FOLDER")
    if e.get("QUIZ_OFFLINE"): cfg["offlineMode"] = _env_bool("QUIZ_OFFLINE", False)
    if e.get("SEED"): cfg["SEED"] = int(e.get("SEED"))
    return cfg
