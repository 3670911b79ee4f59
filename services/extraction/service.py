"""Invoice extraction service: the guarded entry point for AI form filling.

Wraps an ExtractionProvider with everything that must happen around a model
call:

1. Per-caller rate limit (checked before anything else)
2. Input validation (non-empty, bounded length)
3. Prompt-injection sanitization
4. Hard timeout on the provider call
5. Post-validation of the model output (item cap, low-confidence detection,
   invoice name fallback)
"""

import asyncio
import logging
from typing import Any

import pydantic

from services.extraction.base import ExtractionProvider
from services.extraction.sanitize import sanitize_input
from services.invoice.naming import generate_invoice_name
from services.invoice.schema import MAX_ITEMS, ParsedInvoice
from services.ratelimit.limiter import FixedWindowRateLimiter
from services.shared.config import Settings
from services.shared.errors import (
    RateLimitExceeded,
    UpstreamError,
    UpstreamTimeout,
    ValidationError,
)

logger = logging.getLogger(__name__)

NO_DATA_WARNING = (
    "The content provided does not appear to contain invoice information. "
    "Please provide specific invoice details."
)
TRUNCATED_WARNING = (
    f"We've included the first {MAX_ITEMS} items from your invoice. "
    "You can add more items manually if needed."
)

# Keys the model must not be able to set
_RESULT_FLAGS = ("warning", "lowConfidence", "low_confidence", "truncated")


class InvoiceExtractionService:
    """Extracts structured invoice fields from free text."""

    def __init__(
        self,
        settings: Settings,
        provider: ExtractionProvider,
        limiter: FixedWindowRateLimiter,
    ) -> None:
        """Initialize extraction service.

        Args:
            settings: Application settings
            provider: Language model backend
            limiter: Per-caller limiter for extraction requests
        """
        self.settings = settings
        self.provider = provider
        self.limiter = limiter

    async def extract(self, text: Any, caller_key: str) -> ParsedInvoice:
        """Extract invoice fields from user text.

        Args:
            text: Free text typed or pasted by the user
            caller_key: Rate limit key for the caller

        Returns:
            ParsedInvoice; ``low_confidence`` is set when nothing usable was found

        Raises:
            RateLimitExceeded: If the caller exhausted the extraction quota
            ValidationError: If text is empty, not a string, or too long
            UpstreamTimeout: If the model call exceeded the timeout
            UpstreamError: For any other model failure
        """
        if not self.limiter.check_and_consume(caller_key):
            raise RateLimitExceeded()

        self._validate_text(text)
        sanitized = sanitize_input(text)

        timeout = self.settings.extraction_timeout_seconds
        try:
            # The worker thread is abandoned on timeout, not cancelled.
            result = await asyncio.wait_for(
                asyncio.to_thread(self.provider.extract_invoice_fields, sanitized),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning(f"Extraction exceeded {timeout}s via {self.provider.provider_name}")
            raise UpstreamTimeout("Request timed out. Please try again.") from e

        if not result.success or result.data is None:
            logger.error(f"Extraction failed via {result.provider}: {result.error}")
            if result.timed_out:
                raise UpstreamTimeout("Request timed out. Please try again.")
            raise UpstreamError("Unable to process the response. Please try again.")

        return self.post_validate(result.data)

    def _validate_text(self, text: Any) -> None:
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Text content is required", field="text")
        if len(text) > self.settings.extraction_max_text_length:
            raise ValidationError("Text exceeds maximum allowed length", field="text")

    def post_validate(self, data: dict[str, Any]) -> ParsedInvoice:
        """Turn the model's JSON object into a ParsedInvoice.

        Args:
            data: Raw JSON object from the provider

        Returns:
            ParsedInvoice with flags applied

        Raises:
            UpstreamError: If the object does not fit the invoice shape
        """
        cleaned = {key: value for key, value in data.items() if key not in _RESULT_FLAGS}
        try:
            parsed = ParsedInvoice.model_validate(cleaned)
        except pydantic.ValidationError as e:
            logger.warning(f"Model output does not match invoice shape: {e}")
            raise UpstreamError("Unable to process the response. Please try again.") from e

        if not parsed.has_invoice_data():
            logger.info("Extraction found no invoice data")
            return ParsedInvoice(warning=NO_DATA_WARNING, low_confidence=True)

        if parsed.items and len(parsed.items) > MAX_ITEMS:
            parsed.items = parsed.items[:MAX_ITEMS]
            parsed.truncated = True
            parsed.warning = TRUNCATED_WARNING

        if not parsed.invoice_name or not parsed.invoice_name.strip():
            parsed.invoice_name = generate_invoice_name(parsed)

        return parsed
