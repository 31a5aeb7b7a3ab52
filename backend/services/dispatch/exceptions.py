"""Custom exceptions for transport offer dispatch."""


class DispatchError(Exception):
    """Base class for dispatch errors surfaced to API clients."""
    error_code = "dispatch_error"
    status_code = 400
    default_message = "Unable to process this transport offer."

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NoCandidatesError(DispatchError):
    """Raised when a dispatch is requested with zero ranked transporters."""
    error_code = "no_candidates"
    status_code = 422
    default_message = "No transport available for this order."


class InvalidCandidatesError(DispatchError):
    """Raised when the candidate list cannot be mapped onto the tier sequence."""
    error_code = "invalid_candidates"
    status_code = 400
    default_message = "The transporter selection is not valid."


class DispatchExistsError(DispatchError):
    """Raised when the order already has an open or assigned dispatch."""
    error_code = "dispatch_exists"
    status_code = 409
    default_message = "Transport is already being arranged for this order."


class OrderNotFoundError(DispatchError):
    """Raised when the referenced order cannot be found."""
    error_code = "order_not_found"
    status_code = 404
    default_message = "Order not found."


class OfferNotFoundError(DispatchError):
    """Raised when a transport offer cannot be found."""
    error_code = "offer_not_found"
    status_code = 404
    default_message = "Transport offer not found."


class NotActiveError(DispatchError):
    """Raised when acting on a tier record that does not hold the offer."""
    error_code = "offer_not_active"
    status_code = 409
    default_message = "This offer is no longer yours to act on."


class AlreadyRespondedError(DispatchError):
    """Raised when acting on an offer that was already resolved."""
    error_code = "already_responded"
    status_code = 409
    default_message = "This offer was already handled."


class ForbiddenError(DispatchError):
    """Raised when the caller is not the transporter the offer was made to."""
    error_code = "forbidden"
    status_code = 403
    default_message = "You do not have permission to act on this offer."


class ConflictError(DispatchError):
    """Raised when a concurrent transition won the race for the record."""
    error_code = "offer_conflict"
    status_code = 409
    default_message = "This offer is no longer available. Please refresh."
