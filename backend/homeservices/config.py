import os
from pathlib import Path

NEGOTIATION_NOTE_MAX_CHARS = 300
LOCATION_LABEL_MAX_CHARS = 60


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes"}


def parse_csv_env(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


default_db = str(Path(__file__).resolve().parents[1] / "data" / "dispatch.sqlite3")

DB_PATH = os.getenv("DISPATCH_DB_PATH", default_db)
STORE_TIMEOUT_SECONDS = _float_env("STORE_TIMEOUT_SECONDS", 5.0)
BOOKING_WRITE_ATTEMPTS = _int_env("BOOKING_WRITE_ATTEMPTS", 5)
SEED_PROVIDERS = _bool_env("SEED_PROVIDERS", True)
