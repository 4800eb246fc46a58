from types import SimpleNamespace

from homeservices.models import BookingCreateRequest
from homeservices.services.booking_store import BookingStore
from homeservices.services.dispatch_engine import DispatchEngine
from homeservices.services.negotiation import NegotiationManager
from homeservices.services.provider_directory import ProviderDirectory
from homeservices.services.resident_request_store import ResidentRequestStore
from homeservices.services.resident_sync import ResidentRequestSynchronizer


def build_dispatch(tmp_path, max_write_attempts: int = 5) -> SimpleNamespace:
    db_path = str(tmp_path / "dispatch.sqlite3")
    providers = ProviderDirectory(db_path=db_path)
    bookings = BookingStore(db_path=db_path, max_write_attempts=max_write_attempts)
    requests = ResidentRequestStore(db_path=db_path)
    synchronizer = ResidentRequestSynchronizer(requests=requests)
    return SimpleNamespace(
        providers=providers,
        bookings=bookings,
        requests=requests,
        synchronizer=synchronizer,
        engine=DispatchEngine(bookings=bookings, providers=providers, requests=requests, synchronizer=synchronizer),
        negotiation=NegotiationManager(
            bookings=bookings, providers=providers, requests=requests, synchronizer=synchronizer
        ),
    )


def booking_request(provider_id: str, service_name: str, **overrides) -> BookingCreateRequest:
    payload = {
        "service_id": f"svc_{service_name.lower()}",
        "service_name": service_name,
        "service_category": service_name.lower(),
        "customer_name": "Asha",
        "customer_phone": "9876543210",
        "customer_address": "12 Lake View Road, Pune",
        "booking_date": "2026-11-02",
        "booking_time": "10:30",
        "provider_id": provider_id,
    }
    payload.update(overrides)
    return BookingCreateRequest(**payload)
