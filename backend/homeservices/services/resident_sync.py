import logging
from typing import Optional

from homeservices.models import ResidentRequest, ResidentRequestUpdate
from homeservices.services.errors import NotFoundError, StorageUnavailableError
from homeservices.services.resident_request_store import ResidentRequestStore, resident_request_store

logger = logging.getLogger(__name__)


class ResidentRequestSynchronizer:
    """Copies booking outcomes onto the linked resident request.

    Runs after the booking write has committed, so a failure here is logged and
    reported as ``None`` instead of being raised to the caller. Updates carry
    the booking version they were built from; one that arrives after a newer
    version has been mirrored is dropped and also reported as ``None``.
    """

    def __init__(self, requests: ResidentRequestStore) -> None:
        self.requests = requests

    def sync_from_booking(
        self,
        resident_request_id: Optional[str],
        update: ResidentRequestUpdate,
    ) -> Optional[ResidentRequest]:
        if not resident_request_id:
            return None
        try:
            return self.requests.update_by_id(resident_request_id, update)
        except NotFoundError:
            logger.warning("Resident request %s not found; booking update not mirrored", resident_request_id)
        except StorageUnavailableError:
            logger.exception("Resident request %s sync failed; booking update not mirrored", resident_request_id)
        return None


resident_sync = ResidentRequestSynchronizer(requests=resident_request_store)
