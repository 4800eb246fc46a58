from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

BookingStatus = Literal[
    "pending",
    "offered",
    "negotiating",
    "accepted",
    "rejected",
    "completed",
    "cancelled",
]
ProviderStatus = Literal["active", "pending", "suspended"]
NegotiationStatus = Literal["pending", "accepted", "declined"]
ResidentRequestStatus = Literal[
    "draft",
    "pending",
    "scheduled",
    "ongoing",
    "completed",
    "cancelled",
    "accepted",
    "denied",
]

BOOKING_OPEN_STATUSES = {"pending", "offered", "negotiating"}
BOOKING_TERMINAL_STATUSES = {"rejected", "completed", "cancelled"}
# Statuses in which a booking no longer takes provider responses or counter offers.
BOOKING_CLOSED_STATUSES = BOOKING_TERMINAL_STATUSES | {"accepted"}


class ServiceRate(BaseModel):
    service_name: str
    price: float


class ServiceProvider(BaseModel):
    id: str
    name: str
    email: str = ""
    phone: str = ""
    services: list[str] = Field(default_factory=list)
    service_rates: list[ServiceRate] = Field(default_factory=list)
    status: ProviderStatus = "active"

    def offers(self, service_name: str) -> bool:
        return service_name in self.services

    def is_eligible_for(self, service_name: str) -> bool:
        return self.status == "active" and self.offers(service_name)

    def price_for(self, service_name: str) -> Optional[float]:
        for rate in self.service_rates:
            if rate.service_name == service_name:
                return rate.price
        return None


class ExtraItem(BaseModel):
    name: str
    price: float = 0.0


class ProviderResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider_id: str
    response: Literal["accepted", "rejected"]
    responded_at: str
    rejection_reason: Optional[str] = None


class NegotiationSnapshot(BaseModel):
    """One provider counter offer as it was made. Never edited after creation."""

    model_config = ConfigDict(frozen=True)

    proposed_amount: float
    provider_id: str
    provider_name: str
    note: str = ""
    status: NegotiationStatus = "pending"
    created_at: str


class NegotiationMirror(BaseModel):
    """Negotiation view copied onto a resident request (history stays on the booking)."""

    is_active: bool
    proposed_amount: float
    provider_id: str
    provider_name: str
    note: str = ""
    status: NegotiationStatus
    updated_at: str


class Negotiation(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_active: bool
    proposed_amount: float
    provider_id: str
    provider_name: str
    note: str = ""
    status: NegotiationStatus = "pending"
    created_at: str
    responded_at: Optional[str] = None
    history: tuple[NegotiationSnapshot, ...] = ()

    @classmethod
    def open_with(cls, previous: Optional["Negotiation"], snapshot: NegotiationSnapshot) -> "Negotiation":
        prior = previous.history if previous is not None else ()
        return cls(
            is_active=True,
            proposed_amount=snapshot.proposed_amount,
            provider_id=snapshot.provider_id,
            provider_name=snapshot.provider_name,
            note=snapshot.note,
            status=snapshot.status,
            created_at=snapshot.created_at,
            responded_at=None,
            history=prior + (snapshot,),
        )

    def close(self, status: NegotiationStatus, responded_at: str) -> "Negotiation":
        return self.model_copy(update={"is_active": False, "status": status, "responded_at": responded_at})

    def latest(self) -> NegotiationSnapshot:
        return NegotiationSnapshot(
            proposed_amount=self.proposed_amount,
            provider_id=self.provider_id,
            provider_name=self.provider_name,
            note=self.note,
            status=self.status,
            created_at=self.created_at,
        )

    def mirror(self, updated_at: str) -> NegotiationMirror:
        return NegotiationMirror(
            is_active=self.is_active,
            proposed_amount=self.proposed_amount,
            provider_id=self.provider_id,
            provider_name=self.provider_name,
            note=self.note,
            status=self.status,
            updated_at=updated_at,
        )


class Booking(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    service_id: str = ""
    service_name: str
    service_category: str = ""
    customer_id: Optional[str] = None
    customer_name: str = "Guest"
    customer_phone: str = ""
    customer_address: str = ""
    booking_date: str = ""
    booking_time: str = ""
    base_price: float = 0.0
    total_price: float = 0.0
    payment_method: str = "cash"
    quantity: int = 1
    extras: tuple[ExtraItem, ...] = ()
    notes: str = ""
    status: BookingStatus = "pending"
    provider_responses: tuple[ProviderResponse, ...] = ()
    negotiation: Optional[Negotiation] = None
    resident_request_id: Optional[str] = None
    assigned_provider: Optional[str] = None
    provider_name: Optional[str] = None
    version: int = 0
    created_at: str = ""
    updated_at: str = ""

    def rejected_count(self) -> int:
        return sum(1 for item in self.provider_responses if item.response == "rejected")

    def has_response_from(self, provider_id: str) -> bool:
        return any(item.provider_id == provider_id for item in self.provider_responses)

    def with_response(self, response: ProviderResponse) -> "Booking":
        return self.model_copy(update={"provider_responses": self.provider_responses + (response,)})


class ResidentRequest(BaseModel):
    id: str
    homeowner_id: str
    title: str
    service_type: str = ""
    description: str = ""
    scheduled_for: Optional[str] = None
    priority: Literal["routine", "urgent"] = "routine"
    location_label: str = "Home"
    booking_id: Optional[str] = None
    status: ResidentRequestStatus = "pending"
    negotiation: Optional[NegotiationMirror] = None
    created_at: str = ""
    updated_at: str = ""


class ResidentRequestUpdate(BaseModel):
    """Partial update applied to a resident request. Unset fields are left alone."""

    status: Optional[ResidentRequestStatus] = None
    scheduled_for: Optional[str] = None
    negotiation: Optional[NegotiationMirror] = None
    booking_version: Optional[int] = None


class BookingCreateRequest(BaseModel):
    service_id: Optional[str] = None
    service_name: Optional[str] = None
    service_category: Optional[str] = None
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    booking_date: Optional[str] = None
    booking_time: Optional[str] = None
    provider_id: Optional[str] = None
    payment_method: str = "cash"
    quantity: int = Field(default=1, ge=1)
    extras: list[ExtraItem] = Field(default_factory=list)
    notes: str = ""


class BookingCreateResult(BaseModel):
    booking: Booking
    resident_request_id: Optional[str] = None
    notified_providers: int = 0


class ProviderRejectionRequest(BaseModel):
    booking_id: Optional[str] = None
    provider_id: Optional[str] = None
    reason: Optional[str] = None


class ProviderAcceptanceRequest(BaseModel):
    booking_id: Optional[str] = None
    provider_id: Optional[str] = None
    provider_name: Optional[str] = None


class NegotiationProposalRequest(BaseModel):
    booking_id: Optional[str] = None
    provider_id: Optional[str] = None
    provider_name: Optional[str] = None
    # Parsed by the negotiation manager so "abc" is a 400, not a schema error.
    proposed_amount: Any = None
    note: Optional[str] = None


class NegotiationResponseRequest(BaseModel):
    homeowner_id: str
    action: str


class BookingStatusView(BaseModel):
    id: str
    status: BookingStatus


class ProviderRequestView(BaseModel):
    id: str
    service_name: str
    service_category: str
    customer_name: str
    customer_phone: str
    customer_address: str
    booking_date: str
    booking_time: str
    base_price: float
    extras: list[ExtraItem] = Field(default_factory=list)
    total_price: float
    payment_method: str
    notes: str = ""
    status: BookingStatus
    created_at: str
    negotiation: Optional[NegotiationSnapshot] = None


class ProviderInboxStats(BaseModel):
    pending_requests: int
    accepted_bookings: int
    completed_bookings: int


class ProviderInbox(BaseModel):
    provider: ServiceProvider
    stats: ProviderInboxStats
    pending_requests: list[ProviderRequestView]
    accepted_bookings: list[Booking]


class ApiResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: Optional[Any] = None
