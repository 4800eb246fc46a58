import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, List

from homeservices.services.errors import StorageUnavailableError


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SqliteStore:
    """Shared connection handling for the sqlite-backed stores.

    Every connection is opened with a bounded busy timeout, and sqlite
    operational failures are reported as ``StorageUnavailableError`` so callers
    never hang on a locked database.
    """

    def __init__(self, db_path: str, timeout_seconds: float = 5.0) -> None:
        path = Path(db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = str(path)
        self.timeout_seconds = timeout_seconds

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.timeout_seconds, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise StorageUnavailableError(f"Storage unavailable: {exc}") from exc
        try:
            yield conn
            conn.commit()
        except sqlite3.OperationalError as exc:
            conn.rollback()
            raise StorageUnavailableError(f"Storage unavailable: {exc}") from exc
        except sqlite3.DatabaseError as exc:
            conn.rollback()
            raise StorageUnavailableError(f"Storage error: {exc}") from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _ensure_column(self, conn: sqlite3.Connection, table: str, column: str, definition: str) -> None:
        columns = conn.execute(f"PRAGMA table_info({table})").fetchall()
        existing = {row["name"] for row in columns}
        if column in existing:
            return
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")

    def _safe_json_list(self, raw_value: Any) -> List[Any]:
        if raw_value in (None, ""):
            return []
        if isinstance(raw_value, list):
            return raw_value
        if not isinstance(raw_value, str):
            return []
        try:
            parsed = json.loads(raw_value)
        except json.JSONDecodeError:
            return []
        return parsed if isinstance(parsed, list) else []

    def _safe_json_records(self, raw_value: Any) -> List[dict]:
        return [item for item in self._safe_json_list(raw_value) if isinstance(item, dict)]

    def _safe_json_object(self, raw_value: Any) -> Any:
        if raw_value in (None, ""):
            return None
        if not isinstance(raw_value, str):
            return None
        try:
            parsed = json.loads(raw_value)
        except json.JSONDecodeError:
            return None
        return parsed if isinstance(parsed, dict) else None
