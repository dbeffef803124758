class BookingNotFoundError(LookupError):
    """Raised when a booking id does not resolve to a stored booking."""
    pass


class ServiceNotFoundError(LookupError):
    """Raised when a service id is not present in the service catalog."""
    pass


class BookingConflictError(RuntimeError):
    """Raised by a store when a write would overlap another active booking of the same provider."""
    pass


class StoreUnavailableError(RuntimeError):
    """Raised when the backing store cannot be read or written (I/O failure, corrupted data)."""
    pass
