from typing import ClassVar


class HbgError(Exception):
    """Base class for errors that are reported to API and hub clients."""

    status_code: ClassVar[int] = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    @property
    def error_type(self) -> str:
        return type(self).__name__


class NotFoundException(HbgError):
    """Raised when a requested entity does not exist or is not visible."""

    status_code = 404


class AccessDeniedException(HbgError):
    """Raised when the current user lacks the permission for an operation."""

    status_code = 403


class AuthenticationFailedException(HbgError):
    """Raised when a request or connection carries no valid credentials."""

    status_code = 401


class ValidationFailedException(HbgError):
    """Raised when hub arguments do not match the expected schema."""

    status_code = 422
