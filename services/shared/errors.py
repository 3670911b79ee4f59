"""Error taxonomy shared by the invoice services.

Each error carries the HTTP status it maps to and, where the failure belongs
to a single form field, the dotted field path (e.g. ``sender.email``) so the
client can show it next to that input instead of as a global alert.
"""


class InvoiceError(Exception):
    """Base class for all user-facing service errors."""

    status_code: int = 500

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict[str, str | None]:
        """Serialize for a JSON error response."""
        return {"error": self.message, "field": self.field}


class ValidationError(InvoiceError):
    """Bad input shape or size; user-correctable."""

    status_code = 400


class RateLimitExceeded(InvoiceError):
    """Caller exhausted the quota for the current window."""

    status_code = 429

    def __init__(self, message: str = "Rate limit exceeded. Please try again later.") -> None:
        super().__init__(message)


class UpstreamTimeout(InvoiceError, TimeoutError):
    """An upstream step did not finish within its ceiling; retrying may help."""

    status_code = 408


class PDFGenerationTimeout(UpstreamTimeout):
    """PDF rendering exceeded its ceiling."""


class RequestTimeout(UpstreamTimeout):
    """The email-sending call exceeded its ceiling."""


class PayloadTooLarge(InvoiceError):
    """Attachment or image exceeds the accepted size."""

    status_code = 413


class UpstreamError(InvoiceError):
    """Opaque third-party failure."""

    status_code = 500
