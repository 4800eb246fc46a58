from fastapi import APIRouter

from homeservices.models import (
    ApiResponse,
    BookingCreateRequest,
    NegotiationProposalRequest,
    ProviderAcceptanceRequest,
    ProviderRejectionRequest,
)
from homeservices.routers.http_errors import raise_dispatch_http_error
from homeservices.services.booking_store import booking_store
from homeservices.services.dispatch_engine import dispatch_engine
from homeservices.services.errors import DispatchError
from homeservices.services.negotiation import negotiation_manager

router = APIRouter(tags=["bookings"])


@router.post("/create", response_model=ApiResponse, status_code=201)
def create_booking(request: BookingCreateRequest):
    try:
        result = dispatch_engine.create_booking(request)
    except DispatchError as exc:
        raise_dispatch_http_error(exc)
    return ApiResponse(
        message="Booking created successfully! Service providers will be notified.",
        data=result,
    )


@router.post("/reject", response_model=ApiResponse)
def reject_booking(request: ProviderRejectionRequest):
    try:
        result = dispatch_engine.record_provider_rejection(
            booking_id=request.booking_id,
            provider_id=request.provider_id,
            reason=request.reason,
        )
    except DispatchError as exc:
        raise_dispatch_http_error(exc)
    if result.status == "rejected":
        message = "Booking rejected. No other providers are available for this service."
    else:
        message = "Booking rejected. It will be offered to other providers."
    return ApiResponse(message=message, data=result)


@router.post("/accept", response_model=ApiResponse)
def accept_booking(request: ProviderAcceptanceRequest):
    try:
        booking = dispatch_engine.record_provider_acceptance(
            booking_id=request.booking_id,
            provider_id=request.provider_id,
            provider_name=request.provider_name,
        )
    except DispatchError as exc:
        raise_dispatch_http_error(exc)
    return ApiResponse(message="Booking accepted successfully!", data=booking)


@router.post("/negotiate", response_model=ApiResponse)
def negotiate_booking(request: NegotiationProposalRequest):
    try:
        snapshot = negotiation_manager.propose_amount(
            booking_id=request.booking_id,
            provider_id=request.provider_id,
            proposed_amount=request.proposed_amount,
            note=request.note,
            provider_name=request.provider_name,
        )
    except DispatchError as exc:
        raise_dispatch_http_error(exc)
    return ApiResponse(data=snapshot)


@router.get("/{booking_id}", response_model=ApiResponse)
def get_booking(booking_id: str):
    try:
        return ApiResponse(data=booking_store.get_booking(booking_id))
    except DispatchError as exc:
        raise_dispatch_http_error(exc)
