import json
import logging
import sqlite3
from typing import Callable, Iterable, List, Optional

from pydantic import ValidationError

from homeservices import config
from homeservices.models import BOOKING_OPEN_STATUSES, Booking, ExtraItem, Negotiation, ProviderResponse
from homeservices.services.errors import ConcurrentUpdateError, NotFoundError, StorageUnavailableError
from homeservices.services.store_base import SqliteStore, utc_now_iso

logger = logging.getLogger(__name__)

BookingTransition = Callable[[Booking], Booking]


class BookingStore(SqliteStore):
    """Persists bookings with their response log and negotiation as JSON columns.

    Writes go through ``update_booking``, which performs an optimistic
    read-modify-write keyed on the row's ``version``. Different bookings never
    contend with each other; two writers on the same booking cannot both win.
    """

    def __init__(self, db_path: str, timeout_seconds: float = 5.0, max_write_attempts: int = 5) -> None:
        super().__init__(db_path, timeout_seconds=timeout_seconds)
        self.max_write_attempts = max_write_attempts
        self._init_db()

    def _init_db(self) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS bookings (
                    id TEXT PRIMARY KEY,
                    service_id TEXT NOT NULL DEFAULT '',
                    service_name TEXT NOT NULL,
                    service_category TEXT NOT NULL DEFAULT '',
                    customer_id TEXT,
                    customer_name TEXT NOT NULL DEFAULT 'Guest',
                    customer_phone TEXT NOT NULL DEFAULT '',
                    customer_address TEXT NOT NULL DEFAULT '',
                    booking_date TEXT NOT NULL DEFAULT '',
                    booking_time TEXT NOT NULL DEFAULT '',
                    base_price REAL NOT NULL DEFAULT 0,
                    total_price REAL NOT NULL DEFAULT 0,
                    payment_method TEXT NOT NULL DEFAULT 'cash',
                    quantity INTEGER NOT NULL DEFAULT 1,
                    extras_json TEXT NOT NULL DEFAULT '[]',
                    notes TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL,
                    provider_responses_json TEXT NOT NULL DEFAULT '[]',
                    negotiation_json TEXT,
                    resident_request_id TEXT,
                    assigned_provider TEXT,
                    provider_name TEXT,
                    version INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_bookings_service_status ON bookings (service_name, status)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_bookings_assigned ON bookings (assigned_provider, status)")

    def _row_to_booking(self, row: sqlite3.Row) -> Booking:
        try:
            return self._build_booking(row)
        except ValidationError as exc:
            raise StorageUnavailableError(f"Stored booking {row['id']} is malformed") from exc

    def _build_booking(self, row: sqlite3.Row) -> Booking:
        negotiation_raw = self._safe_json_object(row["negotiation_json"])
        return Booking(
            id=row["id"],
            service_id=row["service_id"],
            service_name=row["service_name"],
            service_category=row["service_category"],
            customer_id=row["customer_id"],
            customer_name=row["customer_name"],
            customer_phone=row["customer_phone"],
            customer_address=row["customer_address"],
            booking_date=row["booking_date"],
            booking_time=row["booking_time"],
            base_price=float(row["base_price"]),
            total_price=float(row["total_price"]),
            payment_method=row["payment_method"],
            quantity=int(row["quantity"]),
            extras=tuple(ExtraItem(**item) for item in self._safe_json_records(row["extras_json"])),
            notes=row["notes"],
            status=row["status"],
            provider_responses=tuple(
                ProviderResponse(**item) for item in self._safe_json_records(row["provider_responses_json"])
            ),
            negotiation=Negotiation.model_validate(negotiation_raw) if negotiation_raw else None,
            resident_request_id=row["resident_request_id"],
            assigned_provider=row["assigned_provider"],
            provider_name=row["provider_name"],
            version=int(row["version"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _mutable_columns(self, booking: Booking) -> dict:
        return {
            "total_price": booking.total_price,
            "status": booking.status,
            "provider_responses_json": json.dumps(
                [item.model_dump(mode="json") for item in booking.provider_responses]
            ),
            "negotiation_json": (
                json.dumps(booking.negotiation.model_dump(mode="json")) if booking.negotiation else None
            ),
            "resident_request_id": booking.resident_request_id,
            "assigned_provider": booking.assigned_provider,
            "provider_name": booking.provider_name,
        }

    def insert_booking(self, booking: Booking) -> Booking:
        now_iso = utc_now_iso()
        stored = booking.model_copy(update={"version": 1, "created_at": now_iso, "updated_at": now_iso})
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO bookings (
                    id, service_id, service_name, service_category, customer_id, customer_name, customer_phone,
                    customer_address, booking_date, booking_time, base_price, total_price, payment_method,
                    quantity, extras_json, notes, status, provider_responses_json, negotiation_json,
                    resident_request_id, assigned_provider, provider_name, version, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    stored.id,
                    stored.service_id,
                    stored.service_name,
                    stored.service_category,
                    stored.customer_id,
                    stored.customer_name,
                    stored.customer_phone,
                    stored.customer_address,
                    stored.booking_date,
                    stored.booking_time,
                    stored.base_price,
                    stored.total_price,
                    stored.payment_method,
                    stored.quantity,
                    json.dumps([item.model_dump() for item in stored.extras]),
                    stored.notes,
                    stored.status,
                    "[]",
                    None,
                    stored.resident_request_id,
                    stored.assigned_provider,
                    stored.provider_name,
                    stored.version,
                    stored.created_at,
                    stored.updated_at,
                ),
            )
        return stored

    def get_booking(self, booking_id: str) -> Booking:
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM bookings WHERE id = ?", (booking_id,)).fetchone()
        if not row:
            raise NotFoundError("Booking not found")
        return self._row_to_booking(row)

    def _compare_and_swap(self, updated: Booking, expected_version: int) -> Optional[Booking]:
        stored = updated.model_copy(update={"version": expected_version + 1, "updated_at": utc_now_iso()})
        columns = self._mutable_columns(stored)
        assignments = ", ".join(f"{name} = ?" for name in columns)
        with self._transaction() as conn:
            cursor = conn.execute(
                f"UPDATE bookings SET {assignments}, version = ?, updated_at = ? WHERE id = ? AND version = ?",
                (*columns.values(), stored.version, stored.updated_at, stored.id, expected_version),
            )
            if cursor.rowcount != 1:
                return None
        return stored

    def update_booking(self, booking_id: str, transition: BookingTransition) -> Booking:
        """Apply ``transition`` to the freshest copy of a booking and persist it atomically.

        The transition runs again against a re-read booking whenever another
        writer got there first, so anything it computes (eligibility counts,
        rejection tallies) always reflects the state it is written over.
        Exceptions raised by the transition abort the write untouched.
        """
        for attempt in range(1, self.max_write_attempts + 1):
            current = self.get_booking(booking_id)
            updated = transition(current)
            stored = self._compare_and_swap(updated, expected_version=current.version)
            if stored is not None:
                return stored
            logger.info(
                "Booking %s changed during update (attempt %s/%s); re-applying",
                booking_id,
                attempt,
                self.max_write_attempts,
            )
        raise ConcurrentUpdateError("Booking is being updated by another request, please retry")

    def list_open_for_services(self, service_names: Iterable[str]) -> List[Booking]:
        names = list(dict.fromkeys(service_names))
        if not names:
            return []
        statuses = sorted(BOOKING_OPEN_STATUSES)
        query = (
            "SELECT * FROM bookings WHERE service_name IN ({names}) AND status IN ({statuses}) "
            "ORDER BY created_at DESC"
        ).format(names=", ".join("?" for _ in names), statuses=", ".join("?" for _ in statuses))
        with self._transaction() as conn:
            rows = conn.execute(query, (*names, *statuses)).fetchall()
        return [self._row_to_booking(row) for row in rows]

    def list_assigned(self, provider_id: str, statuses: Iterable[str]) -> List[Booking]:
        wanted = list(statuses)
        query = (
            "SELECT * FROM bookings WHERE assigned_provider = ? AND status IN ({statuses}) "
            "ORDER BY booking_date ASC"
        ).format(statuses=", ".join("?" for _ in wanted))
        with self._transaction() as conn:
            rows = conn.execute(query, (provider_id, *wanted)).fetchall()
        return [self._row_to_booking(row) for row in rows]


booking_store = BookingStore(
    db_path=config.DB_PATH,
    timeout_seconds=config.STORE_TIMEOUT_SECONDS,
    max_write_attempts=config.BOOKING_WRITE_ATTEMPTS,
)
