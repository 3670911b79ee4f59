"""Invoice email delivery through the Resend HTTP API.

The service owns its own per-caller rate limit and rejects malformed
requests locally, so a bad address or an oversized attachment never costs a
network round trip or a quota slot at the provider.
"""

import base64
import logging
from html import escape
from typing import Any

import httpx

from services.invoice.currency import format_currency
from services.invoice.form_schema import is_valid_email
from services.invoice.schema import Invoice
from services.ratelimit.limiter import FixedWindowRateLimiter
from services.shared.config import Settings
from services.shared.errors import (
    PayloadTooLarge,
    RateLimitExceeded,
    RequestTimeout,
    UpstreamError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def attachment_filename(invoice: Invoice) -> str:
    """File name used for both downloads and email attachments."""
    return f"invoice-{invoice.invoice_number or 'preview'}.pdf"


def build_subject(invoice: Invoice) -> str:
    return f"Invoice #{invoice.invoice_number} from {invoice.sender.name}"


def build_html(invoice: Invoice) -> str:
    """Render the HTML summary shown in the email body."""
    number = escape(invoice.invoice_number)
    sender = escape(invoice.sender.name)
    total = escape(format_currency(invoice.total, invoice.currency))
    return f"""
<div style="font-family: Arial, sans-serif; padding: 20px;">
  <h1 style="color: #05a588;">Your Invoice #{number}</h1>
  <p>Hello from {sender},</p>
  <p>Please find your invoice attached.</p>
  <div style="margin: 20px 0; padding: 20px; border: 1px solid #e5e7eb; border-radius: 5px;">
    <h2>Invoice Summary</h2>
    <p><strong>Invoice Number:</strong> {number}</p>
    <p><strong>Issue Date:</strong> {escape(invoice.date)}</p>
    <p><strong>Due Date:</strong> {escape(invoice.due_date)}</p>
    <p><strong>Total Amount:</strong> {total} {escape(invoice.currency)}</p>
  </div>
  <p>Thank you for your business!</p>
</div>
"""


class EmailService:
    """Sends rendered invoices as email attachments."""

    def __init__(
        self,
        settings: Settings,
        limiter: FixedWindowRateLimiter,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize email service.

        Args:
            settings: Application settings
            limiter: Per-caller limiter for email sends
            client: Optional shared HTTP client (tests inject a mock)
        """
        self.settings = settings
        self.limiter = limiter
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.settings.resend_base_url,
                timeout=self.settings.email_timeout_seconds,
            )
        return self._client

    def check_request(
        self, invoice: Invoice, recipient_email: str | None, pdf: bytes | None
    ) -> None:
        """Validate an email request without touching the network.

        Raises:
            ValidationError: Bad address, missing sender or missing PDF
            PayloadTooLarge: PDF exceeds the configured ceiling
        """
        if not recipient_email or not is_valid_email(recipient_email):
            raise ValidationError("Invalid email address", field="recipientEmail")
        if not invoice.sender.name.strip():
            raise ValidationError("Sender information is required", field="sender.name")
        if not pdf:
            raise ValidationError("PDF content is required", field="pdf")
        if len(pdf) > self.settings.pdf_max_bytes:
            raise PayloadTooLarge(
                "PDF file is too large to send via email. Please reduce the content or logo size."
            )

    async def send_invoice(
        self,
        invoice: Invoice,
        recipient_email: str | None,
        pdf: bytes | None,
        caller_key: str,
    ) -> dict[str, Any]:
        """Send an invoice PDF to a recipient.

        Args:
            invoice: Invoice view-model used for subject and summary
            recipient_email: Target address
            pdf: Rendered PDF bytes
            caller_key: Rate limit key for the caller

        Returns:
            Provider response payload (contains the message id)

        Raises:
            ValidationError: Bad address, missing sender or missing PDF
            PayloadTooLarge: PDF exceeds the configured ceiling
            RateLimitExceeded: Caller exhausted the email quota
            RequestTimeout: Provider did not answer in time
            UpstreamError: Provider not configured or returned an error
        """
        # Malformed requests never consume quota
        self.check_request(invoice, recipient_email, pdf)

        if not self.limiter.check_and_consume(caller_key):
            raise RateLimitExceeded("Too many emails sent. Please try again later.")

        if not self.settings.resend_api_key:
            logger.error("Email delivery requested but APP_RESEND_API_KEY is not set")
            raise UpstreamError("Failed to send email. Please try again later.")

        payload = {
            "from": self.settings.email_from,
            "to": [recipient_email],
            "subject": build_subject(invoice),
            "html": build_html(invoice),
            "attachments": [
                {
                    "filename": attachment_filename(invoice),
                    "content": base64.b64encode(pdf).decode("ascii"),
                }
            ],
        }

        try:
            response = await self._get_client().post(
                "/emails",
                json=payload,
                headers={"Authorization": f"Bearer {self.settings.resend_api_key}"},
            )
        except httpx.TimeoutException as e:
            logger.warning(f"Email provider timed out: {e}")
            raise RequestTimeout("Request timed out. Please try again.") from e
        except httpx.HTTPError as e:
            logger.error(f"Email provider request failed: {e}")
            raise UpstreamError("Failed to send email. Please try again later.") from e

        if response.status_code >= 400:
            logger.error(f"Email provider returned {response.status_code}: {response.text}")
            raise UpstreamError("Failed to send email. Please try again later.")

        try:
            data: dict[str, Any] = response.json()
        except ValueError as e:
            logger.error(f"Email provider returned a non-JSON body: {response.text[:200]}")
            raise UpstreamError("Failed to send email. Please try again later.") from e
        logger.info(f"Invoice {invoice.invoice_number or 'preview'} emailed, id={data.get('id')}")
        return data

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
