from fastapi import APIRouter, Query

from homeservices.models import ApiResponse, NegotiationResponseRequest
from homeservices.routers.http_errors import raise_dispatch_http_error
from homeservices.services.errors import DispatchError, NotFoundError
from homeservices.services.negotiation import negotiation_manager
from homeservices.services.resident_request_store import resident_request_store

router = APIRouter(tags=["resident-requests"])


@router.get("", response_model=ApiResponse)
def list_requests(homeowner_id: str = Query(...)):
    try:
        return ApiResponse(data=resident_request_store.list_for_homeowner(homeowner_id))
    except DispatchError as exc:
        raise_dispatch_http_error(exc)


@router.get("/{request_id}", response_model=ApiResponse)
def get_request(request_id: str, homeowner_id: str = Query(...)):
    try:
        resident_request = resident_request_store.get(request_id)
        if resident_request.homeowner_id != homeowner_id:
            raise NotFoundError("Request not found")
        return ApiResponse(data=resident_request)
    except DispatchError as exc:
        raise_dispatch_http_error(exc)


@router.post("/{request_id}/negotiation", response_model=ApiResponse)
def respond_to_negotiation(request_id: str, request: NegotiationResponseRequest):
    try:
        updated = negotiation_manager.respond_to_negotiation(
            resident_request_id=request_id,
            homeowner_id=request.homeowner_id,
            action=request.action,
        )
    except DispatchError as exc:
        raise_dispatch_http_error(exc)
    return ApiResponse(data=updated)
