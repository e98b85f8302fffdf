"""
Domain errors for vlink.

Every error carries a stable machine-readable `code` and the HTTP status the
API layer maps it to. Handlers in `main.py` turn them into `{code, message}`
bodies; nothing else in the package knows about HTTP.
"""

from typing import Optional


class VlinkError(Exception):
    """Base class for all expected vlink failures."""

    code = "INTERNAL_ERROR"
    status_code = 500
    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidUrlError(VlinkError):
    code = "INVALID_URL"
    status_code = 400
    default_message = "The provided URL is not valid"


class MissingUrlError(InvalidUrlError):
    code = "MISSING_URL"
    default_message = "Original URL is required"


class InvalidCustomCodeError(VlinkError):
    code = "INVALID_CUSTOM_CODE"
    status_code = 400
    default_message = "Custom code must be 1-32 characters of 0-9a-zA-Z"


class CodeTakenError(VlinkError):
    code = "CUSTOM_CODE_TAKEN"
    status_code = 409
    default_message = "The requested custom code is already in use"


class AllocationExhaustedError(VlinkError):
    code = "ALLOCATION_EXHAUSTED"
    status_code = 500
    default_message = "Could not allocate a free short code"


class NotFoundError(VlinkError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Short URL not found"


class EncodingTooLargeError(VlinkError):
    code = "ENCODING_TOO_LARGE"
    status_code = 400
    default_message = "Data too long to fit in any QR code version"


class InvalidOptionsError(VlinkError):
    code = "INVALID_OPTIONS"
    status_code = 400
    default_message = "Invalid QR code options"


class StoreUnavailableError(VlinkError):
    code = "DATABASE_ERROR"
    status_code = 500
    default_message = "Database connection error"
