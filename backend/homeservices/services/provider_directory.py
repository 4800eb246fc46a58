import json
import logging
import sqlite3
from threading import Lock
from typing import Iterable, List, Optional
from uuid import uuid4

from homeservices import config
from homeservices.models import ServiceProvider, ServiceRate
from homeservices.services.errors import InvalidArgumentError, NotFoundError
from homeservices.services.store_base import SqliteStore

logger = logging.getLogger(__name__)

PROVIDER_STATUSES = {"active", "pending", "suspended"}

SEED_PROVIDERS = [
    {
        "id": "prv_plumb_1",
        "name": "Ravi Plumbing Works",
        "email": "ravi@plumbing.example",
        "phone": "9000000001",
        "services": ["Plumbing"],
        "rates": {"Plumbing": 450},
    },
    {
        "id": "prv_plumb_2",
        "name": "FlowFix Services",
        "email": "hello@flowfix.example",
        "phone": "9000000002",
        "services": ["Plumbing", "Electrician"],
        "rates": {"Plumbing": 500, "Electrician": 550},
    },
    {
        "id": "prv_drive_1",
        "name": "Suresh Kumar",
        "email": "suresh@drivers.example",
        "phone": "9000000003",
        "services": ["Driving"],
        "rates": {"Driving": 800},
    },
    {
        "id": "prv_cook_1",
        "name": "Annapurna Home Chefs",
        "email": "chefs@annapurna.example",
        "phone": "9000000004",
        "services": ["Cooking", "Cleaning"],
        "rates": {"Cooking": 600, "Cleaning": 350},
    },
    {
        "id": "prv_clean_1",
        "name": "Sparkle Cleaners",
        "email": "team@sparkle.example",
        "phone": "9000000005",
        "services": ["Cleaning"],
        "rates": {"Cleaning": 300},
        "status": "pending",
    },
]


class ProviderDirectory(SqliteStore):
    """Read model over provider records. The dispatch engine never writes here."""

    def __init__(self, db_path: str, timeout_seconds: float = 5.0, seed: bool = False) -> None:
        super().__init__(db_path, timeout_seconds=timeout_seconds)
        self._lock = Lock()
        self._init_db()
        if seed:
            self._seed_if_needed()

    def _init_db(self) -> None:
        with self._lock:
            with self._transaction() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS providers (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL,
                        email TEXT NOT NULL DEFAULT '',
                        phone TEXT NOT NULL DEFAULT '',
                        services_json TEXT NOT NULL DEFAULT '[]',
                        service_rates_json TEXT NOT NULL DEFAULT '[]',
                        status TEXT NOT NULL DEFAULT 'active'
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS provider_services (
                        provider_id TEXT NOT NULL,
                        service_name TEXT NOT NULL,
                        PRIMARY KEY (provider_id, service_name)
                    )
                    """
                )

    def _seed_if_needed(self) -> None:
        with self._lock:
            with self._transaction() as conn:
                existing = conn.execute("SELECT COUNT(*) AS total FROM providers").fetchone()
                if existing["total"]:
                    return
                for item in SEED_PROVIDERS:
                    rates = [ServiceRate(service_name=name, price=price) for name, price in item["rates"].items()]
                    self._insert_provider(
                        conn,
                        ServiceProvider(
                            id=item["id"],
                            name=item["name"],
                            email=item["email"],
                            phone=item["phone"],
                            services=list(item["services"]),
                            service_rates=rates,
                            status=item.get("status", "active"),
                        ),
                    )
        logger.info("Seeded %s providers into %s", len(SEED_PROVIDERS), self.db_path)

    def _insert_provider(self, conn: sqlite3.Connection, provider: ServiceProvider) -> None:
        conn.execute(
            """
            INSERT INTO providers (id, name, email, phone, services_json, service_rates_json, status)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                provider.id,
                provider.name,
                provider.email,
                provider.phone,
                json.dumps(provider.services),
                json.dumps([rate.model_dump() for rate in provider.service_rates]),
                provider.status,
            ),
        )
        conn.executemany(
            "INSERT OR IGNORE INTO provider_services (provider_id, service_name) VALUES (?, ?)",
            [(provider.id, name) for name in provider.services],
        )

    def _row_to_provider(self, row: sqlite3.Row) -> ServiceProvider:
        return ServiceProvider(
            id=row["id"],
            name=row["name"],
            email=row["email"] or "",
            phone=row["phone"] or "",
            services=[str(item) for item in self._safe_json_list(row["services_json"])],
            service_rates=[ServiceRate(**item) for item in self._safe_json_list(row["service_rates_json"])],
            status=row["status"] or "active",
        )

    def add_provider(
        self,
        *,
        name: str,
        services: Iterable[str],
        rates: Optional[dict] = None,
        status: str = "active",
        provider_id: Optional[str] = None,
        email: str = "",
        phone: str = "",
    ) -> ServiceProvider:
        """Register a provider record. Used by seeding and fixtures; profile CRUD lives elsewhere."""
        if not name.strip():
            raise InvalidArgumentError("Provider name is required")
        if status not in PROVIDER_STATUSES:
            raise InvalidArgumentError("Invalid status. Allowed: active, pending, suspended")
        provider = ServiceProvider(
            id=provider_id or f"prv_{uuid4().hex[:8]}",
            name=name.strip(),
            email=email,
            phone=phone,
            services=list(dict.fromkeys(services)),
            service_rates=[ServiceRate(service_name=key, price=value) for key, value in (rates or {}).items()],
            status=status,  # type: ignore[arg-type]
        )
        with self._transaction() as conn:
            self._insert_provider(conn, provider)
        return provider

    def set_status(self, provider_id: str, status: str) -> ServiceProvider:
        if status not in PROVIDER_STATUSES:
            raise InvalidArgumentError("Invalid status. Allowed: active, pending, suspended")
        with self._transaction() as conn:
            cursor = conn.execute("UPDATE providers SET status = ? WHERE id = ?", (status, provider_id))
            if cursor.rowcount == 0:
                raise NotFoundError("Provider not found")
        return self.find_by_id(provider_id)

    def find_by_id(self, provider_id: str) -> ServiceProvider:
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM providers WHERE id = ?", (provider_id,)).fetchone()
        if not row:
            raise NotFoundError("Provider not found")
        return self._row_to_provider(row)

    def find_eligible(self, service_name: str) -> List[ServiceProvider]:
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT p.* FROM providers p
                JOIN provider_services ps ON ps.provider_id = p.id
                WHERE ps.service_name = ? AND p.status = 'active'
                ORDER BY p.name
                """,
                (service_name,),
            ).fetchall()
        return [self._row_to_provider(row) for row in rows]

    def count_eligible(self, service_name: str) -> int:
        with self._transaction() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) AS total FROM providers p
                JOIN provider_services ps ON ps.provider_id = p.id
                WHERE ps.service_name = ? AND p.status = 'active'
                """,
                (service_name,),
            ).fetchone()
        return int(row["total"])


provider_directory = ProviderDirectory(
    db_path=config.DB_PATH,
    timeout_seconds=config.STORE_TIMEOUT_SECONDS,
    seed=config.SEED_PROVIDERS,
)
