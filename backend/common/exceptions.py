"""
Domain exceptions shared by the orders, drivers and realtime apps.

Every error carries the HTTP status and error code the API layer responds
with, so views only need to catch ``DispatchError``.
"""


class DispatchError(Exception):
    """Base class for all dispatch-core errors."""
    status_code = 400
    error_code = "dispatch_error"

    def as_response_data(self):
        return {"error": self.error_code, "message": str(self)}


class ValidationError(DispatchError):
    """Raised when input is missing or malformed. Nothing has been changed."""
    status_code = 400
    error_code = "validation_error"


class NotFoundError(DispatchError):
    """Raised when an order or driver cannot be found."""
    status_code = 404
    error_code = "not_found"


class ConflictError(DispatchError):
    """Raised when a write lost a race or the record is not in the expected state."""
    status_code = 409
    error_code = "conflict"


class InvalidTransitionError(ConflictError):
    """Raised when a status change is not allowed by the order state machine."""
    status_code = 400
    error_code = "invalid_transition"


class UpstreamDependencyError(DispatchError):
    """Raised when an external collaborator (profile lookup) fails."""
    status_code = 400
    error_code = "upstream_unavailable"
