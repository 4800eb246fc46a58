import logging
from typing import Optional
from uuid import uuid4

from homeservices.models import (
    BOOKING_CLOSED_STATUSES,
    Booking,
    BookingCreateRequest,
    BookingCreateResult,
    BookingStatusView,
    ProviderInbox,
    ProviderInboxStats,
    ProviderRequestView,
    ProviderResponse,
    ResidentRequestUpdate,
)
from homeservices.services.booking_store import BookingStore, booking_store
from homeservices.services.errors import InvalidArgumentError, InvalidStateError
from homeservices.services.provider_directory import ProviderDirectory, provider_directory
from homeservices.services.resident_request_store import ResidentRequestStore, resident_request_store
from homeservices.services.resident_sync import ResidentRequestSynchronizer, resident_sync
from homeservices.services.store_base import utc_now_iso

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_REASON = "Not specified"

REQUIRED_BOOKING_FIELDS = (
    "service_id",
    "service_name",
    "service_category",
    "customer_phone",
    "customer_address",
    "booking_date",
    "booking_time",
    "provider_id",
)


class DispatchEngine:
    """Offers bookings to eligible providers and records their responses.

    Eligibility is evaluated live on every call: a provider that stops being
    active shrinks the pool immediately, which can make a cascade rejection
    fire earlier than the initial set of offers would have.
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

    def create_booking(self, request: BookingCreateRequest) -> BookingCreateResult:
        for field in REQUIRED_BOOKING_FIELDS:
            if not getattr(request, field):
                raise InvalidArgumentError(f"{field} is required")

        provider = self.providers.find_by_id(request.provider_id)
        if not provider.is_eligible_for(request.service_name):
            raise InvalidArgumentError("Selected service partner is no longer available for this service")
        base_price = provider.price_for(request.service_name)
        if base_price is None:
            raise InvalidArgumentError("Selected partner has not set a price for this service")

        extras_total = sum(extra.price for extra in request.extras)
        booking = self.bookings.insert_booking(
            Booking(
                id=f"bkg_{uuid4().hex[:10]}",
                service_id=request.service_id,
                service_name=request.service_name,
                service_category=request.service_category,
                customer_id=request.customer_id,
                customer_name=request.customer_name or "Guest",
                customer_phone=request.customer_phone,
                customer_address=request.customer_address,
                booking_date=request.booking_date,
                booking_time=request.booking_time,
                base_price=base_price,
                total_price=(base_price + extras_total) * request.quantity,
                payment_method=request.payment_method or "cash",
                quantity=request.quantity,
                extras=tuple(request.extras),
                notes=request.notes,
                status="pending",
            )
        )

        resident_request_id = None
        if booking.customer_id:
            resident_request = self.requests.create(
                homeowner_id=booking.customer_id,
                title=booking.service_name,
                service_type=booking.service_category,
                description=booking.notes,
                scheduled_for=booking.booking_date,
                location_label=booking.customer_address,
                booking_id=booking.id,
            )
            resident_request_id = resident_request.id

        eligible = self.providers.find_eligible(booking.service_name)

        def link_and_offer(current: Booking) -> Booking:
            return current.model_copy(
                update={
                    "resident_request_id": resident_request_id,
                    "status": "offered" if eligible else current.status,
                }
            )

        if resident_request_id or eligible:
            booking = self.bookings.update_booking(booking.id, link_and_offer)

        if eligible:
            logger.info(
                "Booking %s created for %s; offered to %s providers",
                booking.id,
                booking.service_name,
                len(eligible),
            )
        else:
            logger.warning("Booking %s created but no active provider offers %s", booking.id, booking.service_name)

        return BookingCreateResult(
            booking=booking,
            resident_request_id=resident_request_id,
            notified_providers=len(eligible),
        )

    def record_provider_rejection(
        self,
        booking_id: Optional[str],
        provider_id: Optional[str],
        reason: Optional[str] = None,
    ) -> BookingStatusView:
        if not booking_id or not provider_id:
            raise InvalidArgumentError("Booking ID and Provider ID are required")

        def reject(current: Booking) -> Booking:
            if current.status in BOOKING_CLOSED_STATUSES:
                raise InvalidStateError(f"Booking is already {current.status}")
            now_iso = utc_now_iso()
            updated = current.with_response(
                ProviderResponse(
                    provider_id=provider_id,
                    response="rejected",
                    responded_at=now_iso,
                    rejection_reason=reason or DEFAULT_REJECTION_REASON,
                )
            )
            eligible_count = self.providers.count_eligible(current.service_name)
            if updated.rejected_count() < eligible_count:
                return updated
            negotiation = updated.negotiation
            if negotiation is not None and negotiation.is_active:
                negotiation = negotiation.close("declined", now_iso)
            return updated.model_copy(update={"status": "rejected", "negotiation": negotiation})

        booking = self.bookings.update_booking(booking_id, reject)
        logger.info(
            "Provider %s rejected booking %s. Reason: %s",
            provider_id,
            booking_id,
            reason or DEFAULT_REJECTION_REASON,
        )

        if booking.status == "rejected":
            logger.warning("All eligible providers rejected booking %s (%s)", booking.id, booking.service_name)
            update = ResidentRequestUpdate(status="denied", booking_version=booking.version)
            if booking.negotiation is not None:
                update.negotiation = booking.negotiation.mirror(updated_at=utc_now_iso())
            self.synchronizer.sync_from_booking(booking.resident_request_id, update)

        return BookingStatusView(id=booking.id, status=booking.status)

    def record_provider_acceptance(
        self,
        booking_id: Optional[str],
        provider_id: Optional[str],
        provider_name: Optional[str] = None,
    ) -> Booking:
        if not booking_id or not provider_id:
            raise InvalidArgumentError("Booking ID and Provider ID are required")

        def accept(current: Booking) -> Booking:
            if current.status == "accepted":
                raise InvalidStateError("This booking has already been accepted by another provider")
            if current.status in BOOKING_CLOSED_STATUSES:
                raise InvalidStateError(f"Booking is already {current.status}")
            provider = self.providers.find_by_id(provider_id)
            if not provider.offers(current.service_name):
                raise InvalidArgumentError("Provider does not offer this service")

            now_iso = utc_now_iso()
            negotiation = current.negotiation
            if negotiation is not None and negotiation.is_active:
                outcome = "accepted" if negotiation.provider_id == provider_id else "declined"
                negotiation = negotiation.close(outcome, now_iso)
            updated = current.with_response(
                ProviderResponse(provider_id=provider_id, response="accepted", responded_at=now_iso)
            )
            return updated.model_copy(
                update={
                    "status": "accepted",
                    "assigned_provider": provider_id,
                    "provider_name": provider_name or provider.name,
                    "negotiation": negotiation,
                }
            )

        booking = self.bookings.update_booking(booking_id, accept)
        logger.info("Booking %s accepted by %s (%s)", booking.id, booking.provider_name, provider_id)

        update = ResidentRequestUpdate(
            status="accepted",
            scheduled_for=booking.booking_date or None,
            booking_version=booking.version,
        )
        if booking.negotiation is not None:
            update.negotiation = booking.negotiation.mirror(updated_at=utc_now_iso())
        self.synchronizer.sync_from_booking(booking.resident_request_id, update)
        return booking

    def list_provider_requests(self, provider_id: str) -> ProviderInbox:
        provider = self.providers.find_by_id(provider_id)
        open_bookings = [
            booking
            for booking in self.bookings.list_open_for_services(provider.services)
            if not booking.has_response_from(provider.id)
        ]
        assigned = self.bookings.list_assigned(provider.id, statuses=("accepted", "completed"))
        completed_count = sum(1 for booking in assigned if booking.status == "completed")
        return ProviderInbox(
            provider=provider,
            stats=ProviderInboxStats(
                pending_requests=len(open_bookings),
                accepted_bookings=len(assigned),
                completed_bookings=completed_count,
            ),
            pending_requests=[self._request_view(booking) for booking in open_bookings],
            accepted_bookings=assigned,
        )

    def _request_view(self, booking: Booking) -> ProviderRequestView:
        return ProviderRequestView(
            id=booking.id,
            service_name=booking.service_name,
            service_category=booking.service_category,
            customer_name=booking.customer_name,
            customer_phone=booking.customer_phone,
            customer_address=booking.customer_address,
            booking_date=booking.booking_date,
            booking_time=booking.booking_time,
            base_price=booking.base_price,
            extras=list(booking.extras),
            total_price=booking.total_price,
            payment_method=booking.payment_method,
            notes=booking.notes,
            status=booking.status,
            created_at=booking.created_at,
            negotiation=booking.negotiation.latest() if booking.negotiation else None,
        )


dispatch_engine = DispatchEngine(
    bookings=booking_store,
    providers=provider_directory,
    requests=resident_request_store,
    synchronizer=resident_sync,
)
