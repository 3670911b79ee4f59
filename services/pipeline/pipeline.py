"""Download and email workflows for a finished invoice form.

Both actions share the same shape: build the invoice view-model, record the
attempt on the chat and CRM channels (best-effort, once per session), then do
the primary work. Notifications run before PDF generation, so an attempted
send is recorded even when rendering or delivery fails afterwards.

Every step after validation is bounded by its own timeout. Nothing is retried.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from prometheus_client import Counter

from services.email.service import EmailService, attachment_filename
from services.invoice.form_schema import is_valid_email
from services.invoice.schema import Company, Invoice, InvoiceFormData
from services.invoice.totals import build_invoice
from services.notifications.hubspot import HubSpotClient
from services.notifications.slack import SlackNotifier
from services.pdf.renderer import render_invoice_pdf
from services.pipeline.session import Action, Channel, NotificationSession
from services.shared.config import Settings
from services.shared.errors import (
    InvoiceError,
    PDFGenerationTimeout,
    RequestTimeout,
    UpstreamError,
    ValidationError,
)

logger = logging.getLogger(__name__)

notifications_total = Counter(
    "notifications_total",
    "Best-effort notification attempts",
    ["channel", "status"],  # status: success, failed, skipped
)

Renderer = Callable[[Invoice], bytes]


@dataclass(frozen=True)
class PdfDocument:
    """Rendered invoice ready to hand to the browser."""

    content: bytes
    filename: str

    media_type = "application/pdf"


@dataclass(frozen=True)
class EmailOutcome:
    """Result of a successful email action."""

    data: dict[str, Any]
    session: NotificationSession
    sent_at: float
    confirmation_expires_at: float

    def is_confirmation_visible(self, now: float) -> bool:
        """True while the transient 'sent' confirmation should be shown."""
        return now < self.confirmation_expires_at


class NotificationPipeline:
    """Runs the download and email actions."""

    def __init__(
        self,
        settings: Settings,
        email_service: EmailService,
        slack: SlackNotifier,
        hubspot: HubSpotClient,
        renderer: Renderer = render_invoice_pdf,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize pipeline.

        Args:
            settings: Application settings (timeouts, size ceiling)
            email_service: Delivers the PDF by email
            slack: Chat notifier
            hubspot: CRM client
            renderer: Invoice to PDF bytes; runs in a worker thread
            clock: Wall clock used for the confirmation window
        """
        self.settings = settings
        self.email_service = email_service
        self.slack = slack
        self.hubspot = hubspot
        self.renderer = renderer
        self.clock = clock

    async def download(self, form: InvoiceFormData, session: NotificationSession) -> PdfDocument:
        """Render the invoice for download.

        Args:
            form: Current form state
            session: Notification state for this form (updated in place)

        Returns:
            PdfDocument with bytes and file name

        Raises:
            ValidationError: Form cannot be turned into an invoice
            PDFGenerationTimeout: Rendering exceeded its ceiling
            UpstreamError: Rendering failed
        """
        invoice = build_invoice(form)
        await self.notify(invoice.sender, invoice.recipient, session, "download")
        content = await self._render(invoice)
        return PdfDocument(content=content, filename=attachment_filename(invoice))

    async def email(
        self,
        form: InvoiceFormData,
        session: NotificationSession,
        caller_key: str,
        recipient_email: str | None = None,
    ) -> EmailOutcome:
        """Render the invoice and email it.

        The target address defaults to the sender's email.

        Args:
            form: Current form state
            session: Notification state for this form (updated in place)
            caller_key: Rate limit key for the caller
            recipient_email: Explicit target address

        Returns:
            EmailOutcome with provider data and confirmation window

        Raises:
            ValidationError: Bad target address or form
            PDFGenerationTimeout: Rendering exceeded its ceiling
            PayloadTooLarge: Rendered PDF exceeds the ceiling
            RateLimitExceeded: Caller exhausted the email quota
            RequestTimeout: Email provider exceeded its ceiling
            UpstreamError: Rendering or delivery failed
        """
        if recipient_email is None:
            target, field = form.sender.email, "sender.email"
        else:
            target, field = recipient_email, "recipientEmail"
        if not target or not target.strip():
            raise ValidationError("Email address is required", field=field)
        if not is_valid_email(target.strip()):
            raise ValidationError("Invalid email address", field=field)
        target = target.strip()

        invoice = build_invoice(form)
        await self.notify(invoice.sender, invoice.recipient, session, "email")

        pdf = await self._render(invoice)
        self.email_service.check_request(invoice, target, pdf)

        timeout = self.settings.email_timeout_seconds
        try:
            data = await asyncio.wait_for(
                self.email_service.send_invoice(invoice, target, pdf, caller_key),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning(f"Email send exceeded {timeout}s")
            raise RequestTimeout("Request timed out. Please try again.") from e

        now = self.clock()
        return EmailOutcome(
            data=data,
            session=session,
            sent_at=now,
            confirmation_expires_at=now + self.settings.email_confirmation_seconds,
        )

    async def notify(
        self,
        sender: Company,
        recipient: Company,
        session: NotificationSession,
        action: Action,
    ) -> None:
        """Fire chat and CRM notifications not yet attempted for this action.

        Never raises. A channel is only marked once its call is actually made.
        """
        if not (sender.has_contact_details() and recipient.has_contact_details()):
            logger.debug(f"Skipping {action} notifications: party details incomplete")
            notifications_total.labels(channel="all", status="skipped").inc()
            return

        calls: list[Awaitable[None]] = []
        if not session.has_notified(action, "chat"):
            session.mark(action, "chat")
            calls.append(self._best_effort("chat", self.slack.notify(sender, recipient, action)))
        if not session.has_notified(action, "crm"):
            session.mark(action, "crm")
            calls.append(
                self._best_effort("crm", self.hubspot.upsert_contact(sender, recipient))
            )
        if calls:
            await asyncio.gather(*calls)

    async def _best_effort(self, channel: Channel, call: Awaitable[Any]) -> None:
        try:
            await asyncio.wait_for(call, timeout=self.settings.notification_timeout_seconds)
        except Exception as e:
            # Notification failures never affect the primary action
            logger.warning(f"{channel} notification failed: {e!r}")
            notifications_total.labels(channel=channel, status="failed").inc()
            return
        notifications_total.labels(channel=channel, status="success").inc()

    async def _render(self, invoice: Invoice) -> bytes:
        timeout = self.settings.pdf_timeout_seconds
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.renderer, invoice), timeout=timeout
            )
        except asyncio.TimeoutError as e:
            logger.warning(f"PDF generation exceeded {timeout}s")
            raise PDFGenerationTimeout(
                "PDF generation timed out. Please try again with fewer items or a smaller logo."
            ) from e
        except InvoiceError:
            raise
        except Exception as e:
            logger.error(f"PDF generation failed: {e}")
            raise UpstreamError("Failed to generate PDF. Please try again.") from e
