"""
Domain errors raised by the share and export services.

Routers let these propagate; the handlers registered in app.main turn them
into JSON responses (see register_exception_handlers).
"""
from typing import Dict, List, Optional


class ShareExportError(Exception):
    """Base class for share/export domain errors."""

    status_code: int = 400
    error_code: str = "SHARE_EXPORT_ERROR"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or ""

    def to_dict(self) -> dict:
        return {"message": self.message, "error_code": self.error_code}


class ValidationError(ShareExportError):
    """Malformed input or ownership violation."""

    status_code = 422
    error_code = "VALIDATION_ERROR"

    def __init__(self, errors: Dict[str, List[str]], message: str = "The given data was invalid."):
        super().__init__(message)
        self.errors = errors

    def to_dict(self) -> dict:
        return {"message": self.message, "error_code": self.error_code, "errors": self.errors}


class RateLimitedError(ShareExportError):
    """Too many attempts."""

    status_code = 429
    error_code = "RATE_LIMITED"

    def __init__(self, retry_after: int, message: Optional[str] = None):
        super().__init__(message or f"Too many share creation attempts. Please try again in {retry_after} seconds.")
        self.retry_after = max(1, int(retry_after))

    def to_dict(self) -> dict:
        return {"message": self.message, "error_code": self.error_code, "retry_after": self.retry_after}


class NotFoundError(ShareExportError):
    """Resource not found."""

    status_code = 404
    error_code = "NOT_FOUND"


class GoneError(ShareExportError):
    """Resource has expired."""

    status_code = 410
    error_code = "GONE"


class AuthorizationError(ShareExportError):
    """This action is unauthorized."""

    status_code = 403
    error_code = "FORBIDDEN"


class InvalidPasswordError(ValidationError):
    """Wrong password for a password-protected share."""

    error_code = "INVALID_PASSWORD"

    def __init__(self, message: str = "Invalid password"):
        super().__init__({"password": [message]}, message=message)


class RenderError(Exception):
    """Renderer could not produce an artifact. Never leaves ExportService."""


class ExportGenerationError(ShareExportError):
    """
    Export could not be produced.

    Always wraps the underlying cause. `transient` marks failures worth a
    client retry (timeouts, storage hiccups): 503 instead of 422.
    """

    error_code = "EXPORT_GENERATION_FAILED"

    def __init__(self, message: str, cause: Optional[BaseException] = None, transient: bool = False):
        super().__init__(message)
        self.cause = cause
        self.transient = transient
        self.status_code = 503 if transient else 422
        if cause is not None:
            self.__cause__ = cause
