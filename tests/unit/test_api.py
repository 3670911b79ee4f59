"""Unit tests for the invoice generator API.

Tests cover:
- Health, readiness and Prometheus metrics endpoints
- Security and CORS headers, preflight handling
- AI extraction endpoint
- Logo file validation
- Invoice preview, download and email actions
- Email, chat and CRM relay endpoints
"""

import base64
import io
import itertools
import json
from collections.abc import Iterator
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import status
from fastapi.testclient import TestClient
from PIL import Image

from services.api.main import app
from services.extraction.base import ExtractionResult
from services.shared.errors import UpstreamError

_addresses = itertools.count(1)


@pytest.fixture
def client() -> TestClient:
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def caller() -> dict[str, str]:
    """Fresh caller address so rate limit buckets do not leak between tests."""
    return {"X-Forwarded-For": f"10.0.0.{next(_addresses)}"}


@pytest.fixture
def quiet_notifications() -> Iterator[tuple[AsyncMock, AsyncMock]]:
    """Replace the chat and CRM calls with mocks."""
    with (
        patch("services.api.main.slack_notifier.notify", new_callable=AsyncMock) as chat,
        patch("services.api.main.hubspot_client.upsert_contact", new_callable=AsyncMock) as crm,
    ):
        yield chat, crm


def _png_bytes() -> bytes:
    img = Image.new("RGB", (120, 60), color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def _form(**overrides: Any) -> dict[str, Any]:
    form: dict[str, Any] = {
        "invoiceNumber": "INV-2024-001",
        "invoiceName": "Consulting March",
        "sender": {"name": "Acme Corp", "email": "billing@acme.com"},
        "recipient": {"name": "Globex", "email": "ap@globex.com"},
        "items": [{"description": "Consulting", "quantity": 10, "rate": 100}],
        "taxRate": 8,
        "shipping": 25,
        "currency": "USD",
    }
    form.update(overrides)
    return form


def test_health_check(client: TestClient) -> None:
    """Test health check endpoint."""
    response = client.get("/health")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "invoice-generator"
    assert "version" in data


def test_readiness_check(client: TestClient) -> None:
    """Test readiness check endpoint."""
    response = client.get("/ready")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["ready"] is True


def test_metrics_endpoint(client: TestClient) -> None:
    """Test Prometheus metrics endpoint."""
    client.get("/health")
    response = client.get("/metrics")

    assert response.status_code == status.HTTP_200_OK
    assert "text/plain" in response.headers["content-type"]
    assert "http_requests_total" in response.text
    assert "pdf_render_duration_seconds" in response.text


class TestSecurityHeaders:
    """Test headers applied by the security middleware."""

    def test_security_headers_everywhere(self, client: TestClient) -> None:
        """Every response carries the fixed security header set."""
        response = client.get("/health")

        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert "frame-ancestors 'none'" in response.headers["Content-Security-Policy"]
        assert "Strict-Transport-Security" in response.headers

    def test_cors_only_on_api_paths(self, client: TestClient) -> None:
        assert "Access-Control-Allow-Origin" not in client.get("/health").headers

        response = client.post("/api/invoices/preview", json=_form())
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        assert "POST" in response.headers["Access-Control-Allow-Methods"]

    def test_preflight(self, client: TestClient) -> None:
        """OPTIONS is answered with 204 and a one-day max age."""
        response = client.options("/api/extract-invoice")

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert response.headers["Access-Control-Max-Age"] == "86400"
        assert response.headers["X-Frame-Options"] == "DENY"


class TestExtractInvoice:
    """Test the AI extraction endpoint."""

    def test_extracts_fields(self, client: TestClient, caller: dict[str, str]) -> None:
        """Fields found are returned camelCased; missing ones are null."""
        result = ExtractionResult(
            data={
                "invoiceNumber": "INV-7",
                "recipient": {"name": "Globex", "zipCode": "54321"},
                "items": [{"description": "Design work", "quantity": "3", "rate": 80}],
            },
            success=True,
            provider="openai",
        )
        with patch(
            "services.api.main.extraction_service.provider.extract_invoice_fields",
            return_value=result,
        ):
            response = client.post(
                "/api/extract-invoice",
                json={"text": "Invoice INV-7 to Globex for 3 hours of design at $80"},
                headers=caller,
            )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["invoiceNumber"] == "INV-7"
        assert data["recipient"]["postalCode"] == "54321"
        assert data["items"][0]["quantity"] == 3
        assert data["dueDate"] is None
        assert data["lowConfidence"] is False
        assert data["invoiceName"]

    def test_low_confidence(self, client: TestClient, caller: dict[str, str]) -> None:
        """Text without invoice data yields a warning, not an error."""
        result = ExtractionResult(data={"notes": "asdf"}, success=True, provider="openai")
        with patch(
            "services.api.main.extraction_service.provider.extract_invoice_fields",
            return_value=result,
        ):
            response = client.post("/api/extract-invoice", json={"text": "asdf"}, headers=caller)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["lowConfidence"] is True
        assert data["warning"]
        assert data["notes"] is None

    @pytest.mark.parametrize("body", [{}, {"text": ""}, {"text": "   "}, {"text": 42}])
    def test_missing_text(
        self, client: TestClient, caller: dict[str, str], body: dict[str, Any]
    ) -> None:
        response = client.post("/api/extract-invoice", json=body, headers=caller)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {"error": "Text content is required", "field": "text"}

    def test_text_too_long(self, client: TestClient, caller: dict[str, str]) -> None:
        response = client.post(
            "/api/extract-invoice", json={"text": "a" * 10_001}, headers=caller
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_provider_failure(self, client: TestClient, caller: dict[str, str]) -> None:
        """A failed model call is a 500 with a retry message."""
        result = ExtractionResult(data=None, success=False, error="boom", provider="openai")
        with patch(
            "services.api.main.extraction_service.provider.extract_invoice_fields",
            return_value=result,
        ):
            response = client.post("/api/extract-invoice", json={"text": "bill"}, headers=caller)

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert "try again" in response.json()["error"]

    def test_provider_timeout(self, client: TestClient, caller: dict[str, str]) -> None:
        result = ExtractionResult(
            data=None, success=False, error="timeout", timed_out=True, provider="openai"
        )
        with patch(
            "services.api.main.extraction_service.provider.extract_invoice_fields",
            return_value=result,
        ):
            response = client.post("/api/extract-invoice", json={"text": "bill"}, headers=caller)

        assert response.status_code == status.HTTP_408_REQUEST_TIMEOUT

    def test_malformed_body(self, client: TestClient) -> None:
        """Non-JSON bodies are reported in the service error shape."""
        response = client.post(
            "/api/extract-invoice",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"] == "Invalid request body"


class TestValidateLogoFile:
    """Test logo upload validation."""

    def test_valid_png(self, client: TestClient) -> None:
        content = _png_bytes()
        files = {"file": ("logo.png", content, "image/png")}

        response = client.post("/api/validate-logo-file", files=files)

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"valid": True, "type": "image/png", "size": len(content)}

    def test_declared_type_mismatch(self, client: TestClient) -> None:
        """A PNG declared as JPEG is refused."""
        files = {"file": ("logo.jpg", _png_bytes(), "image/jpeg")}

        response = client.post("/api/validate-logo-file", files=files)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        data = response.json()
        assert data["valid"] is False
        assert data["error"]

    def test_not_an_image(self, client: TestClient) -> None:
        files = {"file": ("logo.png", b"GIF89a....", "image/png")}
        response = client.post("/api/validate-logo-file", files=files)
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_no_file(self, client: TestClient) -> None:
        response = client.post("/api/validate-logo-file")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {"valid": False, "error": "No file provided"}


class TestPreview:
    """Test the live preview endpoint."""

    def test_totals_and_formatting(self, client: TestClient) -> None:
        response = client.post("/api/invoices/preview", json=_form())

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["invoice"]["subtotal"] == 1000
        assert data["invoice"]["taxAmount"] == 80
        assert data["invoice"]["total"] == 1105
        assert data["formatted"]["items"] == ["$1,000.00"]
        assert data["formatted"]["total"] == "$1,105.00"

    def test_field_errors(self, client: TestClient) -> None:
        """Form problems are reported without failing the preview."""
        form = _form(sender={"name": "Acme", "email": "not-an-email"})

        data = client.post("/api/invoices/preview", json=form).json()

        assert data["errors"]["sender.email"] == "Invalid email address"
        assert data["invoice"]["total"] == 1105

    def test_lenient_numbers(self, client: TestClient) -> None:
        """Unparseable quantities count as zero."""
        form = _form(items=[{"description": "x", "quantity": "abc", "rate": 100}])
        data = client.post("/api/invoices/preview", json=form).json()
        assert data["invoice"]["subtotal"] == 0

    def test_overflowing_line_never_shows_nan(self, client: TestClient) -> None:
        form = _form(
            items=[{"description": "x", "quantity": "1e200", "rate": "1e200"}], taxRate=0
        )
        data = client.post("/api/invoices/preview", json=form).json()

        assert data["invoice"]["total"] == 25
        assert data["formatted"]["subtotal"] == "$0.00"
        assert data["formatted"]["taxAmount"] == "$0.00"
        assert data["formatted"]["total"] == "$25.00"


class TestDownload:
    """Test the PDF download action."""

    def test_download_pdf(
        self, client: TestClient, quiet_notifications: tuple[AsyncMock, AsyncMock]
    ) -> None:
        chat, crm = quiet_notifications

        response = client.post("/api/invoices/download", json={"form": _form()})

        assert response.status_code == status.HTTP_200_OK
        assert response.headers["content-type"] == "application/pdf"
        assert response.content.startswith(b"%PDF")
        assert 'filename="invoice-INV-2024-001.pdf"' in response.headers["content-disposition"]
        session = json.loads(response.headers["X-Notification-Session"])
        assert sorted(session["download"]) == ["chat", "crm"]
        chat.assert_awaited_once()
        crm.assert_awaited_once()

    def test_session_suppresses_repeat_notifications(
        self, client: TestClient, quiet_notifications: tuple[AsyncMock, AsyncMock]
    ) -> None:
        chat, crm = quiet_notifications
        session = {"download": ["chat", "crm"], "email": []}

        response = client.post("/api/invoices/download", json={"form": _form(), "session": session})

        assert response.status_code == status.HTTP_200_OK
        chat.assert_not_awaited()
        crm.assert_not_awaited()

    def test_notification_failure_does_not_block(
        self, client: TestClient, quiet_notifications: tuple[AsyncMock, AsyncMock]
    ) -> None:
        chat, _ = quiet_notifications
        chat.side_effect = UpstreamError("Slack webhook URL not configured")

        response = client.post("/api/invoices/download", json={"form": _form()})

        assert response.status_code == status.HTTP_200_OK

    def test_no_items(
        self, client: TestClient, quiet_notifications: tuple[AsyncMock, AsyncMock]
    ) -> None:
        """Errors carry the field and the session back to the client."""
        response = client.post("/api/invoices/download", json={"form": _form(items=[])})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        data = response.json()
        assert data["field"] == "items"
        assert data["session"] == {"download": [], "email": []}


class TestEmailAction:
    """Test the render-and-email action."""

    def test_sends_to_sender(
        self,
        client: TestClient,
        caller: dict[str, str],
        quiet_notifications: tuple[AsyncMock, AsyncMock],
    ) -> None:
        with patch(
            "services.api.main.email_service.send_invoice",
            new_callable=AsyncMock,
            return_value={"id": "email_1"},
        ) as send:
            response = client.post(
                "/api/invoices/email", json={"form": _form()}, headers=caller
            )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["sent"] is True
        assert data["data"] == {"id": "email_1"}
        assert data["confirmationSeconds"] == 3.0
        assert sorted(data["session"]["email"]) == ["chat", "crm"]
        args = send.await_args.args
        assert args[1] == "billing@acme.com"
        assert args[2].startswith(b"%PDF")

    def test_invalid_recipient(
        self,
        client: TestClient,
        caller: dict[str, str],
        quiet_notifications: tuple[AsyncMock, AsyncMock],
    ) -> None:
        """Bad addresses fail locally with no notifications."""
        chat, _ = quiet_notifications

        response = client.post(
            "/api/invoices/email",
            json={"form": _form(), "recipientEmail": "not-an-email"},
            headers=caller,
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        data = response.json()
        assert data == {
            "error": "Invalid email address",
            "field": "recipientEmail",
            "session": {"download": [], "email": []},
        }
        chat.assert_not_awaited()

    def test_provider_failure_returns_session(
        self,
        client: TestClient,
        caller: dict[str, str],
        quiet_notifications: tuple[AsyncMock, AsyncMock],
    ) -> None:
        with patch(
            "services.api.main.email_service.send_invoice",
            new_callable=AsyncMock,
            side_effect=UpstreamError("Failed to send email"),
        ):
            response = client.post(
                "/api/invoices/email", json={"form": _form()}, headers=caller
            )

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert sorted(response.json()["session"]["email"]) == ["chat", "crm"]


class TestSendInvoiceEmail:
    """Test the pre-rendered email endpoint."""

    def _invoice(self, client: TestClient) -> dict[str, Any]:
        return client.post("/api/invoices/preview", json=_form()).json()["invoice"]

    def test_sends(self, client: TestClient, caller: dict[str, str]) -> None:
        body = {
            "invoice": self._invoice(client),
            "recipientEmail": "client@globex.com",
            "pdfBase64": base64.b64encode(b"%PDF-1.4 test").decode(),
        }
        with patch(
            "services.api.main.email_service.send_invoice",
            new_callable=AsyncMock,
            return_value={"id": "email_2"},
        ) as send:
            response = client.post("/api/send-invoice-email", json=body, headers=caller)

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"data": {"id": "email_2"}}
        assert send.await_args.args[2] == b"%PDF-1.4 test"
        assert send.await_args.args[3].startswith("email:")

    def test_missing_fields(self, client: TestClient, caller: dict[str, str]) -> None:
        response = client.post("/api/send-invoice-email", json={}, headers=caller)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"] == "Invoice data and recipient email are required"

    def test_invalid_address_never_rate_limited(
        self, client: TestClient, caller: dict[str, str]
    ) -> None:
        """Mistyped addresses are rejected locally, however often they are sent."""
        body = {
            "invoice": self._invoice(client),
            "recipientEmail": "not-an-email",
            "pdfBase64": base64.b64encode(b"%PDF-1.4 test").decode(),
        }

        codes = [
            client.post("/api/send-invoice-email", json=body, headers=caller).status_code
            for _ in range(6)
        ]

        assert codes == [status.HTTP_400_BAD_REQUEST] * 6

    def test_bad_base64(self, client: TestClient, caller: dict[str, str]) -> None:
        body = {
            "invoice": self._invoice(client),
            "recipientEmail": "client@globex.com",
            "pdfBase64": "***",
        }
        response = client.post("/api/send-invoice-email", json=body, headers=caller)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["field"] == "pdf"


class TestRelays:
    """Test the chat and CRM relay endpoints."""

    def test_notify_chat(self, client: TestClient) -> None:
        blocks = [{"type": "section", "text": {"type": "mrkdwn", "text": "hi"}}]
        with patch(
            "services.api.main.slack_notifier.post_blocks", new_callable=AsyncMock
        ) as post:
            response = client.post("/api/notify-chat", json={"blocks": blocks})

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"success": True}
        post.assert_awaited_once_with(blocks)

    def test_notify_chat_requires_blocks(self, client: TestClient) -> None:
        response = client.post("/api/notify-chat", json={"blocks": []})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["field"] == "blocks"

    def test_notify_chat_unconfigured(self, client: TestClient) -> None:
        with patch(
            "services.api.main.slack_notifier.post_blocks",
            new_callable=AsyncMock,
            side_effect=UpstreamError("Slack webhook URL not configured"),
        ):
            response = client.post("/api/notify-chat", json={"blocks": [{"type": "divider"}]})

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json()["error"] == "Slack webhook URL not configured"

    def test_notify_crm(self, client: TestClient) -> None:
        body = {"email": "billing@acme.com", "company": "Acme", "context": {"pageUri": "/"}}
        with patch(
            "services.api.main.hubspot_client.submit_contact",
            new_callable=AsyncMock,
            return_value={},
        ) as submit:
            response = client.post("/api/notify-crm", json=body)

        assert response.status_code == status.HTTP_200_OK
        submit.assert_awaited_once_with(
            {"email": "billing@acme.com", "company": "Acme"}, {"pageUri": "/"}
        )
