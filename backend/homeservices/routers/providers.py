from fastapi import APIRouter, Query

from homeservices.models import ApiResponse
from homeservices.routers.http_errors import raise_dispatch_http_error
from homeservices.services.dispatch_engine import dispatch_engine
from homeservices.services.errors import DispatchError
from homeservices.services.provider_directory import provider_directory

router = APIRouter(tags=["providers"])


@router.get("/eligible", response_model=ApiResponse)
def list_eligible_providers(service_name: str = Query(...)):
    try:
        return ApiResponse(data=provider_directory.find_eligible(service_name))
    except DispatchError as exc:
        raise_dispatch_http_error(exc)


@router.get("/{provider_id}/requests", response_model=ApiResponse)
def provider_requests(provider_id: str):
    try:
        return ApiResponse(data=dispatch_engine.list_provider_requests(provider_id))
    except DispatchError as exc:
        raise_dispatch_http_error(exc)
