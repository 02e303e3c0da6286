# config.py
import os
from pathlib import Path


def _env_int(name, default):
    raw = os.environ.get(name)
    return int(raw) if raw not in (None, "") else default


def _env_float(name, default):
    raw = os.environ.get(name)
    return float(raw) if raw not in (None, "") else default


APP_TITLE = os.environ.get("APP_TITLE", "Ephemeral File Share")

UPLOAD_DIR = Path(os.environ.get("UPLOAD_DIR", "uploads"))
TEMP_DIR = Path(os.environ.get("TEMP_DIR", "temp_uploads"))
LOCK_DIR = Path(os.environ.get("LOCK_DIR", "locks"))
DB_PATH = Path(os.environ.get("DB_PATH", "db/history.db"))

MAX_FILE_SIZE = _env_int("MAX_FILE_SIZE", 10 * 1024 * 1024 * 1024)  # 10 GiB
CHUNK_SIZE_MAX = _env_int("CHUNK_SIZE_MAX", 16 * 1024 * 1024)       # 16 MiB per chunk
MAX_DURATION_HOURS = _env_int("MAX_DURATION_HOURS", 24)
CREDENTIAL_LENGTH = _env_int("CREDENTIAL_LENGTH", 4)

LOCK_BACKEND = os.environ.get("LOCK_BACKEND", "file")               # "file" or "memory"
LOCK_STALE_SECONDS = _env_float("LOCK_STALE_SECONDS", 30.0)
LOCK_MAX_ATTEMPTS = _env_int("LOCK_MAX_ATTEMPTS", 10)
LOCK_BACKOFF_BASE = _env_float("LOCK_BACKOFF_BASE", 0.05)           # seconds, doubled per attempt
LOCK_BACKOFF_MAX = _env_float("LOCK_BACKOFF_MAX", 1.0)

TEMP_STALE_HOURS = _env_float("TEMP_STALE_HOURS", 24.0)
TEMP_ORPHAN_GRACE_SECONDS = _env_float("TEMP_ORPHAN_GRACE_SECONDS", 600.0)  # temp dir with no metadata yet
CLEANUP_INTERVAL_SECONDS = _env_int("CLEANUP_INTERVAL_SECONDS", 15 * 60)
CLEANUP_TOKEN = os.environ.get("CLEANUP_TOKEN") or None

SETTING_NAMES = (
    "APP_TITLE",
    "UPLOAD_DIR",
    "TEMP_DIR",
    "LOCK_DIR",
    "DB_PATH",
    "MAX_FILE_SIZE",
    "CHUNK_SIZE_MAX",
    "MAX_DURATION_HOURS",
    "CREDENTIAL_LENGTH",
    "LOCK_BACKEND",
    "LOCK_STALE_SECONDS",
    "LOCK_MAX_ATTEMPTS",
    "LOCK_BACKOFF_BASE",
    "LOCK_BACKOFF_MAX",
    "TEMP_STALE_HOURS",
    "TEMP_ORPHAN_GRACE_SECONDS",
    "CLEANUP_INTERVAL_SECONDS",
    "CLEANUP_TOKEN",
)


def defaults():
    """Return the module settings as a dict suitable for app.config."""
    return {name: globals()[name] for name in SETTING_NAMES}


def ensure_dirs(*paths):
    """Create storage directories (idempotent)."""
    for p in paths:
        Path(p).mkdir(parents=True, exist_ok=True)
