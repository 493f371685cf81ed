"""
Domain errors raised by the tracking and reporting core.

None of these are fatal: each one is scoped to a single user action and
is mapped to a JSON error body by the handlers registered in
`healcore.main.create_app`.
"""

from typing import Optional


class HealCoreError(Exception):
    """Base error with a machine-readable code and HTTP status."""

    status_code: int = 400
    error_code: str = "HEALCORE_ERROR"

    def __init__(self, message: str, *, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict:
        return {"error": self.message, "detail": self.detail, "error_code": self.error_code}


class CheckinNotFound(HealCoreError):
    status_code = 404
    error_code = "CHECKIN_NOT_FOUND"


class InvalidTransition(HealCoreError):
    """An event that the check-in flow does not accept in its current step."""

    status_code = 409
    error_code = "INVALID_TRANSITION"


class CheckinWriteError(HealCoreError):
    """A step write failed; the user may retry from the same step."""

    status_code = 503
    error_code = "CHECKIN_WRITE_FAILED"


class ExportError(HealCoreError):
    """Rendering an export artifact failed. Stored data is untouched."""

    status_code = 500
    error_code = "EXPORT_FAILED"
