"""Login error taxonomy.

Errors that reach the caller carry an HTTP-style status code and a user-facing
message. Authentication and authorization messages are deliberately generic so
they never reveal which field was wrong.
"""
from typing import Optional


class LoginError(Exception):
    """Base class for login pipeline failures."""
    status_code = 500
    default_message = "Login failed. Please try again later."
    expose = True  # False: never shown to the client as-is

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {'ok': False, 'error': self.message}


class ValidationError(LoginError):
    """A required field is missing."""
    status_code = 400
    default_message = "Required login fields are missing."

    def __init__(self, field: str, message: Optional[str] = None):
        self.field = field
        super().__init__(message or f"'{field}' is required.")

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload['field'] = self.field
        return payload


class AuthenticationError(LoginError):
    """No credential match."""
    status_code = 401
    default_message = "The login details are incorrect."


class AuthorizationError(LoginError):
    """Credential matched (or was never checked) but login is not permitted."""
    status_code = 403
    default_message = "This account cannot log in. Please contact an administrator."


class CrossRoleConflictError(LoginError):
    """A trial login hit an account that already belongs to a privileged role."""
    status_code = 409
    default_message = "This number is already registered as a partner or administrator. Please log in with that role."


class RateLimitError(LoginError):
    """Too many attempts from the same client."""
    status_code = 429
    default_message = "Too many login attempts. Please try again shortly."

    def __init__(self, retry_after: int, message: Optional[str] = None):
        self.retry_after = retry_after
        super().__init__(message)

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload['retryAfter'] = self.retry_after
        return payload


class ConflictError(LoginError):
    """Unique-constraint race on create. Recovered internally by re-reading."""
    status_code = 409
    expose = False


class ProvisioningError(LoginError):
    """A best-effort side effect (trip, attribution) failed. Never surfaced."""
    expose = False
