class BookingError(RuntimeError):
    """Base class for booking engine failures surfaced to callers."""
    pass


class ValidationError(BookingError):
    """Raised for bad or missing input, before any external call is made."""
    pass


class SlotConflict(BookingError):
    """Raised when the chosen staff/date/time is no longer free. Caller must re-fetch availability."""
    pass


class PaymentFailed(BookingError):
    """Raised when the payment gateway declined or timed out. No booking is created."""
    pass


class PersistenceError(BookingError):
    """Raised when a booking could not be written after payment succeeded and retries ran out."""
    pass


class ReservationStoreError(RuntimeError):
    """Raised by reservation store adapters for write failures other than a slot conflict."""
    pass


class BookingNotFound(BookingError):
    pass


class CancellationNotAllowed(BookingError):
    pass


class InvalidStatusTransition(BookingError):
    pass


class PaymentProviderError(RuntimeError):
    """Raised when a payment provider fails (auth, network, unexpected payload)."""
    pass
