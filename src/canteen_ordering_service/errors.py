"""Domain error taxonomy for the canteen ordering service.

Services raise these exceptions and the HTTP layer maps each type to a
status code and a ``{"success": false, "message": ...}`` body.
"""


class CanteenError(Exception):
    """Base class for all domain errors.

    Attributes:
        message: Human readable description returned to API callers
        status_code: HTTP status code the API layer responds with
    """

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(CanteenError):
    """Missing or malformed input, unknown enum token, incomplete special offer."""

    status_code = 400


class InvalidTransitionError(ValidationError):
    """Requested order status change is not an edge of the status graph."""

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f"Cannot change order status from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested


class NotFoundError(CanteenError):
    """Referenced entity does not exist."""

    status_code = 404


class AuthError(CanteenError):
    """Missing, invalid or expired credentials, or a deactivated account.

    Uses 401 by default; pass ``status_code=403`` for authenticated callers
    that are not allowed to perform the operation.
    """

    def __init__(self, message: str, status_code: int = 401) -> None:
        super().__init__(message)
        self.status_code = status_code


class ServerError(CanteenError):
    """Unexpected storage or runtime failure."""

    status_code = 500
