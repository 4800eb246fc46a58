import logging
import math
from typing import Any, Optional

from homeservices import config
from homeservices.models import (
    BOOKING_CLOSED_STATUSES,
    Booking,
    Negotiation,
    NegotiationSnapshot,
    ResidentRequest,
    ResidentRequestUpdate,
)
from homeservices.services.booking_store import BookingStore, booking_store
from homeservices.services.errors import InvalidArgumentError, InvalidStateError, NotFoundError
from homeservices.services.provider_directory import ProviderDirectory, provider_directory
from homeservices.services.resident_request_store import ResidentRequestStore, resident_request_store
from homeservices.services.resident_sync import ResidentRequestSynchronizer, resident_sync
from homeservices.services.store_base import utc_now_iso

logger = logging.getLogger(__name__)

NEGOTIATION_ACTIONS = {"accept", "decline"}


def parse_proposed_amount(value: Any) -> float:
    if isinstance(value, bool):
        raise InvalidArgumentError("Invalid proposed amount")
    try:
        amount = float(value.strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        raise InvalidArgumentError("Invalid proposed amount") from None
    if not math.isfinite(amount) or amount <= 0:
        raise InvalidArgumentError("Invalid proposed amount")
    return amount


class NegotiationManager:
    """Counter offers from providers and the resident's answer to them.

    Only the latest offer on a booking is live. Earlier offers stay in
    ``negotiation.history`` for dispute resolution and are never replayed.
    """

    def __init__(
        self,
        bookings: BookingStore,
        providers: ProviderDirectory,
        requests: ResidentRequestStore,
        synchronizer: ResidentRequestSynchronizer,
    ) -> None:
        self.bookings = bookings
        self.providers = providers
        self.requests = requests
        self.synchronizer = synchronizer

    def propose_amount(
        self,
        booking_id: Optional[str],
        provider_id: Optional[str],
        proposed_amount: Any,
        note: Optional[str] = None,
        provider_name: Optional[str] = None,
    ) -> NegotiationSnapshot:
        if not booking_id or not provider_id or proposed_amount is None:
            raise InvalidArgumentError("Booking, provider and proposed amount are required")
        amount = parse_proposed_amount(proposed_amount)
        trimmed_note = (note or "")[: config.NEGOTIATION_NOTE_MAX_CHARS]

        def propose(current: Booking) -> Booking:
            if current.status in BOOKING_CLOSED_STATUSES:
                raise InvalidStateError("Negotiation is not allowed for this booking state")
            provider = self.providers.find_by_id(provider_id)
            if not provider.offers(current.service_name):
                raise InvalidArgumentError("Provider does not offer this service")
            snapshot = NegotiationSnapshot(
                proposed_amount=amount,
                provider_id=provider_id,
                provider_name=provider_name or provider.name,
                note=trimmed_note,
                status="pending",
                created_at=utc_now_iso(),
            )
            return current.model_copy(
                update={
                    "status": "negotiating",
                    "negotiation": Negotiation.open_with(current.negotiation, snapshot),
                }
            )

        booking = self.bookings.update_booking(booking_id, propose)
        negotiation = booking.negotiation
        snapshot = negotiation.history[-1]
        logger.info(
            "Provider %s proposed %.2f on booking %s (round %s)",
            provider_id,
            snapshot.proposed_amount,
            booking.id,
            len(negotiation.history),
        )

        self.synchronizer.sync_from_booking(
            booking.resident_request_id,
            ResidentRequestUpdate(
                negotiation=negotiation.mirror(updated_at=utc_now_iso()),
                booking_version=booking.version,
            ),
        )
        return snapshot

    def respond_to_negotiation(self, resident_request_id: str, homeowner_id: str, action: str) -> ResidentRequest:
        """Resident accepts or declines the provider's latest counter offer."""
        if action not in NEGOTIATION_ACTIONS:
            raise InvalidArgumentError("Unsupported negotiation action")

        resident_request = self.requests.get(resident_request_id)
        if resident_request.homeowner_id != homeowner_id:
            raise NotFoundError("Request not found")
        if not resident_request.booking_id:
            raise InvalidStateError("No linked booking for negotiation")

        def respond(current: Booking) -> Booking:
            negotiation = current.negotiation
            if negotiation is None or not negotiation.is_active:
                raise InvalidStateError("No active negotiation")
            if current.status in BOOKING_CLOSED_STATUSES:
                raise InvalidStateError("Negotiation is not allowed for this booking state")
            now_iso = utc_now_iso()
            if action == "accept":
                return current.model_copy(
                    update={
                        "status": "accepted",
                        "assigned_provider": negotiation.provider_id,
                        "provider_name": negotiation.provider_name,
                        "total_price": negotiation.proposed_amount,
                        "negotiation": negotiation.close("accepted", now_iso),
                    }
                )
            return current.model_copy(
                update={"status": "offered", "negotiation": negotiation.close("declined", now_iso)}
            )

        booking = self.bookings.update_booking(resident_request.booking_id, respond)
        logger.info(
            "Resident %s %s offer from %s on booking %s",
            homeowner_id,
            booking.negotiation.status,
            booking.negotiation.provider_id,
            booking.id,
        )

        synced = self.synchronizer.sync_from_booking(
            resident_request.id,
            ResidentRequestUpdate(
                status="accepted" if action == "accept" else "pending",
                negotiation=booking.negotiation.mirror(updated_at=utc_now_iso()),
                booking_version=booking.version,
            ),
        )
        return synced or resident_request


negotiation_manager = NegotiationManager(
    bookings=booking_store,
    providers=provider_directory,
    requests=resident_request_store,
    synchronizer=resident_sync,
)
