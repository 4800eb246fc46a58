import json
import sqlite3
from typing import List, Optional
from uuid import uuid4

from pydantic import ValidationError

from homeservices import config
from homeservices.models import NegotiationMirror, ResidentRequest, ResidentRequestUpdate
from homeservices.services.errors import InvalidArgumentError, NotFoundError, StorageUnavailableError
from homeservices.services.store_base import SqliteStore, utc_now_iso


class ResidentRequestStore(SqliteStore):
    def __init__(self, db_path: str, timeout_seconds: float = 5.0) -> None:
        super().__init__(db_path, timeout_seconds=timeout_seconds)
        self._init_db()

    def _init_db(self) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS resident_requests (
                    id TEXT PRIMARY KEY,
                    homeowner_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    service_type TEXT NOT NULL DEFAULT '',
                    description TEXT NOT NULL DEFAULT '',
                    scheduled_for TEXT,
                    priority TEXT NOT NULL DEFAULT 'routine',
                    location_label TEXT NOT NULL DEFAULT 'Home',
                    booking_id TEXT,
                    status TEXT NOT NULL DEFAULT 'pending',
                    negotiation_json TEXT,
                    synced_booking_version INTEGER,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            self._ensure_column(conn, "resident_requests", "synced_booking_version", "INTEGER")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_resident_requests_homeowner ON resident_requests (homeowner_id)")

    def _row_to_request(self, row: sqlite3.Row) -> ResidentRequest:
        negotiation_raw = self._safe_json_object(row["negotiation_json"])
        try:
            negotiation = NegotiationMirror(**negotiation_raw) if negotiation_raw else None
        except ValidationError as exc:
            raise StorageUnavailableError(f"Stored resident request {row['id']} is malformed") from exc
        return ResidentRequest(
            id=row["id"],
            homeowner_id=row["homeowner_id"],
            title=row["title"],
            service_type=row["service_type"],
            description=row["description"],
            scheduled_for=row["scheduled_for"],
            priority=row["priority"],
            location_label=row["location_label"],
            booking_id=row["booking_id"],
            status=row["status"],
            negotiation=negotiation,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def create(
        self,
        *,
        homeowner_id: str,
        title: str,
        service_type: str = "",
        description: str = "",
        scheduled_for: Optional[str] = None,
        location_label: str = "",
        booking_id: Optional[str] = None,
        priority: str = "routine",
    ) -> ResidentRequest:
        if not homeowner_id:
            raise InvalidArgumentError("Homeowner is required")
        now_iso = utc_now_iso()
        request = ResidentRequest(
            id=f"req_{uuid4().hex[:10]}",
            homeowner_id=homeowner_id,
            title=title,
            service_type=service_type,
            description=description.strip()[:400],
            scheduled_for=scheduled_for,
            priority="urgent" if priority == "urgent" else "routine",
            location_label=location_label.strip()[: config.LOCATION_LABEL_MAX_CHARS] or "Home",
            booking_id=booking_id,
            status="pending",
            created_at=now_iso,
            updated_at=now_iso,
        )
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO resident_requests (
                    id, homeowner_id, title, service_type, description, scheduled_for, priority,
                    location_label, booking_id, status, negotiation_json, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, NULL, ?, ?)
                """,
                (
                    request.id,
                    request.homeowner_id,
                    request.title,
                    request.service_type,
                    request.description,
                    request.scheduled_for,
                    request.priority,
                    request.location_label,
                    request.booking_id,
                    request.status,
                    request.created_at,
                    request.updated_at,
                ),
            )
        return request

    def get(self, request_id: str) -> ResidentRequest:
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM resident_requests WHERE id = ?", (request_id,)).fetchone()
        if not row:
            raise NotFoundError("Request not found")
        return self._row_to_request(row)

    def list_for_homeowner(self, homeowner_id: str) -> List[ResidentRequest]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM resident_requests WHERE homeowner_id = ? ORDER BY created_at DESC",
                (homeowner_id,),
            ).fetchall()
        return [self._row_to_request(row) for row in rows]

    def update_by_id(self, request_id: str, update: ResidentRequestUpdate) -> Optional[ResidentRequest]:
        """Apply a partial update.

        When ``update.booking_version`` is set the write only lands if no newer
        booking state has been mirrored yet; a stale write returns ``None``.
        """
        columns = {}
        if update.status is not None:
            columns["status"] = update.status
        if update.scheduled_for is not None:
            columns["scheduled_for"] = update.scheduled_for
        if update.negotiation is not None:
            columns["negotiation_json"] = json.dumps(update.negotiation.model_dump(mode="json"))
        columns["updated_at"] = utc_now_iso()
        where = "id = ?"
        params = [request_id]
        if update.booking_version is not None:
            columns["synced_booking_version"] = update.booking_version
            where += " AND (synced_booking_version IS NULL OR synced_booking_version < ?)"
            params.append(update.booking_version)

        assignments = ", ".join(f"{name} = ?" for name in columns)
        with self._transaction() as conn:
            cursor = conn.execute(
                f"UPDATE resident_requests SET {assignments} WHERE {where}",
                (*columns.values(), *params),
            )
            if cursor.rowcount == 0:
                exists = conn.execute("SELECT 1 FROM resident_requests WHERE id = ?", (request_id,)).fetchone()
                if not exists:
                    raise NotFoundError("Resident request not found")
                return None
            row = conn.execute("SELECT * FROM resident_requests WHERE id = ?", (request_id,)).fetchone()
        return self._row_to_request(row)


resident_request_store = ResidentRequestStore(db_path=config.DB_PATH, timeout_seconds=config.STORE_TIMEOUT_SECONDS)
