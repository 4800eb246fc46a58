from fastapi import HTTPException

from homeservices.services.errors import (
    ConcurrentUpdateError,
    DispatchError,
    NotFoundError,
    StorageUnavailableError,
)


def raise_dispatch_http_error(exc: DispatchError) -> None:
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ConcurrentUpdateError):
        raise HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, StorageUnavailableError):
        raise HTTPException(status_code=503, detail=str(exc))
    raise HTTPException(status_code=400, detail=str(exc))
