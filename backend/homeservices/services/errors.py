class DispatchError(ValueError):
    """Base class for user-visible dispatch errors."""


class InvalidArgumentError(DispatchError):
    pass


class NotFoundError(DispatchError):
    pass


class InvalidStateError(DispatchError):
    pass


class ConcurrentUpdateError(DispatchError):
    """Raised when a booking keeps changing underneath a read-modify-write."""


class StorageUnavailableError(DispatchError):
    """Backing store timed out or could not be reached."""
