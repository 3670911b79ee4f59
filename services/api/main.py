"""FastAPI application for the invoice generator.

Endpoints:
- Health, readiness and Prometheus metrics
- AI extraction of invoice fields from free text
- Logo file validation
- Invoice preview, PDF download and email delivery
- Direct chat (Slack) and CRM (HubSpot) notification relays

Based on FastAPI best practices:
https://fastapi.tiangolo.com/
"""

import base64
import binascii
import logging
import time
from typing import Any

from fastapi import FastAPI, File, Request, Response, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from services.api import metrics
from services.api.security import apply_security_headers, preflight_response
from services.email.service import EmailService
from services.extraction.factory import create_extraction_provider
from services.extraction.service import InvoiceExtractionService
from services.files.validator import FileSignatureValidator
from services.invoice.currency import format_currency
from services.invoice.form_schema import validate_invoice_form
from services.invoice.schema import CamelModel, Invoice, InvoiceFormData
from services.invoice.totals import build_invoice
from services.notifications.hubspot import HubSpotClient
from services.notifications.slack import SlackNotifier
from services.pdf.renderer import render_invoice_pdf
from services.pipeline.pipeline import NotificationPipeline
from services.pipeline.session import NotificationSession
from services.ratelimit.limiter import FixedWindowRateLimiter, client_key
from services.shared.config import get_settings
from services.shared.errors import InvoiceError, ValidationError

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Invoice Generator",
    description="Invoice preview, PDF rendering, email delivery and AI form filling",
    version=settings.service_version,
)

extraction_limiter = FixedWindowRateLimiter(
    "extraction",
    limit=settings.extraction_rate_limit,
    window_seconds=settings.extraction_rate_window_seconds,
    max_keys=settings.rate_limit_max_keys,
)
email_limiter = FixedWindowRateLimiter(
    "email",
    limit=settings.email_rate_limit,
    window_seconds=settings.email_rate_window_seconds,
    max_keys=settings.rate_limit_max_keys,
)


def render_with_metrics(invoice: Invoice) -> bytes:
    """Render a PDF and record how long it took."""
    with metrics.pdf_render_duration_seconds.time():
        return render_invoice_pdf(invoice)


extraction_service = InvoiceExtractionService(
    settings, create_extraction_provider(settings), extraction_limiter
)
email_service = EmailService(settings, email_limiter)
slack_notifier = SlackNotifier(settings)
hubspot_client = HubSpotClient(settings)
file_validator = FileSignatureValidator(max_bytes=settings.logo_max_bytes)
pipeline = NotificationPipeline(
    settings, email_service, slack_notifier, hubspot_client, renderer=render_with_metrics
)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware to collect request metrics.

    Tracks:
    - Request count by method, endpoint, and status
    - Request duration by method and endpoint
    """
    # Skip metrics for /metrics endpoint itself
    if request.url.path == "/metrics":
        return await call_next(request)

    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    metrics.http_requests_total.labels(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code,
    ).inc()

    metrics.http_request_duration_seconds.labels(
        method=request.method,
        endpoint=request.url.path,
    ).observe(duration)

    return response


@app.middleware("http")
async def security_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Answer CORS preflights and stamp security headers on every response."""
    path = request.url.path
    if request.method == "OPTIONS":
        preflight = preflight_response(settings.allowed_origin)
        return apply_security_headers(preflight, path, settings.allowed_origin)

    response = await call_next(request)
    return apply_security_headers(response, path, settings.allowed_origin)


@app.exception_handler(InvoiceError)
async def invoice_error_handler(request: Request, exc: InvoiceError) -> JSONResponse:
    """Render service errors as ``{"error": ..., "field": ...}``."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(
            f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.message}"
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report malformed request bodies in the same shape as service errors."""
    errors = exc.errors()
    field = None
    if errors:
        loc = [str(part) for part in errors[0].get("loc", ()) if part != "body"]
        field = ".".join(loc) or None
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid request body", "field": field},
    )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    service: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool


class ExtractRequest(BaseModel):
    """Free text to extract from; type is checked by the service."""

    text: Any = None


class SendEmailRequest(CamelModel):
    """Pre-rendered invoice email request."""

    invoice: dict[str, Any] | None = None
    recipient_email: str | None = None
    pdf_base64: str | None = None


class InvoiceActionRequest(CamelModel):
    """Form state plus notification session for download/email."""

    form: InvoiceFormData = Field(default_factory=InvoiceFormData)
    session: NotificationSession = Field(default_factory=NotificationSession)
    recipient_email: str | None = None


@app.get("/health", response_model=HealthResponse, tags=["Health"])
def health_check() -> HealthResponse:
    """Health check endpoint for liveness probe.

    Returns:
        Health status information
    """
    return HealthResponse(
        status="healthy", version=settings.service_version, service=settings.service_name
    )


@app.get("/ready", response_model=ReadinessResponse, tags=["Health"])
def readiness_check() -> ReadinessResponse:
    """Readiness check endpoint for Kubernetes readiness probe.

    Returns:
        Readiness status
    """
    return ReadinessResponse(ready=True)


@app.get("/metrics", tags=["Monitoring"])
def get_metrics() -> Response:
    """Prometheus metrics endpoint.

    Returns:
        Prometheus metrics in text format
    """
    metrics_data, content_type = metrics.get_metrics()
    return Response(content=metrics_data, media_type=content_type)


@app.post("/api/extract-invoice", tags=["Extraction"])
async def extract_invoice(body: ExtractRequest, request: Request) -> JSONResponse:
    """Extract invoice fields from free text.

    Every key of the result is present; fields not found in the text are
    null. Text without any invoice data yields ``lowConfidence: true`` and a
    warning instead of an error.

    ## Errors

    - 400 if text is missing, empty or longer than the configured maximum
    - 429 if the caller exceeded the extraction quota
    - 408 if the model did not answer in time
    - 500 if the model failed or returned something unusable
    """
    start = time.time()
    try:
        parsed = await extraction_service.extract(
            body.text, client_key(request.headers, "extract")
        )
    except InvoiceError as e:
        outcome = "rejected" if e.status_code in (400, 429) else "failed"
        metrics.extraction_requests_total.labels(status=outcome).inc()
        raise
    finally:
        metrics.extraction_duration_seconds.observe(time.time() - start)

    outcome = "low_confidence" if parsed.low_confidence else "success"
    metrics.extraction_requests_total.labels(status=outcome).inc()
    return JSONResponse(content=parsed.model_dump(by_alias=True))


@app.post("/api/send-invoice-email", tags=["Email"])
async def send_invoice_email(body: SendEmailRequest, request: Request) -> dict[str, Any]:
    """Email a PDF the client already rendered.

    ## Errors

    - 400 for missing invoice, bad address, missing sender or PDF
    - 413 if the PDF exceeds the size ceiling
    - 429 if the caller exceeded the email quota
    - 500 if the email provider failed
    """
    if not body.invoice or not body.recipient_email:
        raise ValidationError("Invoice data and recipient email are required")
    try:
        invoice = Invoice.model_validate(body.invoice)
    except PydanticValidationError as e:
        raise ValidationError("Invalid invoice data", field="invoice") from e
    try:
        pdf = base64.b64decode(body.pdf_base64 or "", validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("Invalid PDF content", field="pdf") from e

    try:
        data = await email_service.send_invoice(
            invoice, body.recipient_email, pdf, client_key(request.headers, "email")
        )
    except InvoiceError:
        metrics.emails_sent_total.labels(status="failed").inc()
        raise
    metrics.emails_sent_total.labels(status="success").inc()
    return {"data": data}


@app.post("/api/validate-logo-file", tags=["Files"])
async def validate_logo_file(
    file: UploadFile | None = File(None, description="Logo image (PNG or JPEG)"),  # noqa: B008
) -> JSONResponse:
    """Check a logo upload by size, declared type and magic number."""
    if file is None:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"valid": False, "error": "No file provided"},
        )

    content = await file.read()
    try:
        result = file_validator.validate(content, file.content_type)
    except ValidationError as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"valid": False, "error": e.message},
        )
    return JSONResponse(content=result.model_dump())


@app.post("/api/notify-chat", tags=["Notifications"])
async def notify_chat(body: dict[str, Any]) -> dict[str, bool]:
    """Relay pre-built Slack blocks to the configured webhook."""
    blocks = body.get("blocks")
    if not isinstance(blocks, list) or not blocks:
        raise ValidationError("Slack blocks are required", field="blocks")
    await slack_notifier.post_blocks(blocks)
    return {"success": True}


@app.post("/api/notify-crm", tags=["Notifications"])
async def notify_crm(body: dict[str, Any]) -> dict[str, bool]:
    """Relay contact and address fields to the CRM."""
    fields = dict(body)
    context = fields.pop("context", None)
    await hubspot_client.submit_contact(fields, context)
    return {"success": True}


@app.post("/api/invoices/preview", tags=["Invoices"])
def preview_invoice(form: InvoiceFormData) -> dict[str, Any]:
    """Derive the invoice view-model and field errors for the live preview."""
    invoice = build_invoice(form)
    currency = invoice.currency
    formatted = {
        "items": [format_currency(item.amount, currency) for item in invoice.items],
        "subtotal": format_currency(invoice.subtotal, currency),
        "taxAmount": format_currency(invoice.tax_amount, currency),
        "shipping": format_currency(invoice.shipping, currency),
        "total": format_currency(invoice.total, currency),
    }
    return {
        "invoice": invoice.model_dump(by_alias=True),
        "formatted": formatted,
        "errors": validate_invoice_form(form),
    }


def _action_error(exc: InvoiceError, session: NotificationSession) -> JSONResponse:
    # Notifications may already have been attempted; hand the session back
    logger.info(f"Invoice action failed ({exc.status_code}): {exc.message}")
    content: dict[str, Any] = {**exc.to_dict(), "session": session.model_dump(mode="json")}
    return JSONResponse(status_code=exc.status_code, content=content)


@app.post("/api/invoices/download", tags=["Invoices"])
async def download_invoice(body: InvoiceActionRequest) -> Response:
    """Render the invoice PDF for download.

    The updated notification session is returned in the
    ``X-Notification-Session`` header.
    """
    try:
        document = await pipeline.download(body.form, body.session)
    except InvoiceError as e:
        return _action_error(e, body.session)
    return Response(
        content=document.content,
        media_type=document.media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{document.filename}"',
            "X-Notification-Session": body.session.model_dump_json(),
        },
    )


@app.post("/api/invoices/email", tags=["Invoices"], response_model=None)
async def email_invoice(
    body: InvoiceActionRequest, request: Request
) -> dict[str, Any] | JSONResponse:
    """Render the invoice and email it (to the sender unless recipientEmail is given)."""
    try:
        outcome = await pipeline.email(
            body.form,
            body.session,
            client_key(request.headers, "email"),
            recipient_email=body.recipient_email,
        )
    except InvoiceError as e:
        metrics.emails_sent_total.labels(status="failed").inc()
        return _action_error(e, body.session)
    metrics.emails_sent_total.labels(status="success").inc()
    return {
        "sent": True,
        "data": outcome.data,
        "session": outcome.session.model_dump(mode="json"),
        "confirmationSeconds": settings.email_confirmation_seconds,
    }
