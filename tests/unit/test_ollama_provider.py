"""Unit tests for OllamaExtractionProvider.

Tests the Ollama-based extraction provider with mocked HTTP calls.
"""

import json
from unittest.mock import MagicMock, patch

import httpx
import pytest

from services.extraction.ollama_provider import OllamaExtractionProvider
from services.shared.config import Settings


@pytest.fixture
def settings() -> Settings:
    """Create test settings with Ollama provider."""
    return Settings(
        _env_file=None,
        extraction_provider="ollama",
        ollama_base_url="http://localhost:11434",
        ollama_model="qwen2.5:7b",
    )


@pytest.fixture
def provider(settings: Settings) -> OllamaExtractionProvider:
    """Create Ollama provider instance."""
    return OllamaExtractionProvider(settings)


def _generate_response(text: str) -> MagicMock:
    mock_response = MagicMock()
    mock_response.status_code = 200
    mock_response.raise_for_status = MagicMock()
    mock_response.json.return_value = {"response": text}
    return mock_response


class TestOllamaExtractionProviderProperties:
    """Test provider properties and availability."""

    def test_provider_name(self, provider: OllamaExtractionProvider) -> None:
        """Provider name should be 'ollama'."""
        assert provider.provider_name == "ollama"

    def test_is_available_when_server_running(self, provider: OllamaExtractionProvider) -> None:
        """Should return True when Ollama server responds with model."""
        mock_response = MagicMock()
        mock_response.status_code = 200
        mock_response.json.return_value = {"models": [{"name": "qwen2.5:7b"}]}

        with patch.object(provider._client, "get", return_value=mock_response):
            assert provider.is_available() is True

    def test_is_available_when_server_down(self, provider: OllamaExtractionProvider) -> None:
        """Should return False when Ollama server is unreachable."""
        with patch.object(
            provider._client, "get", side_effect=httpx.ConnectError("Connection refused")
        ):
            assert provider.is_available() is False

    def test_is_available_when_model_not_found(self, provider: OllamaExtractionProvider) -> None:
        """Should return False when configured model is not available."""
        mock_response = MagicMock()
        mock_response.status_code = 200
        mock_response.json.return_value = {"models": [{"name": "llama3.1:8b"}]}

        with patch.object(provider._client, "get", return_value=mock_response):
            assert provider.is_available() is False


class TestOllamaExtraction:
    """Test invoice extraction functionality."""

    def test_extract_successful_response(self, provider: OllamaExtractionProvider) -> None:
        """Should return the model's JSON object untouched."""
        payload = {
            "invoiceNumber": "12345",
            "date": "2024-01-15",
            "sender": {"name": "Acme Corp"},
            "items": [{"description": "Consulting", "quantity": 10, "rate": 100}],
        }

        with patch.object(
            provider._client, "post", return_value=_generate_response(json.dumps(payload))
        ) as mock_post:
            result = provider.extract_invoice_fields("Invoice #12345 from Acme Corp")

        assert result.success is True
        assert result.provider == "ollama"
        assert result.data == payload
        body = mock_post.call_args.kwargs["json"]
        assert body["format"] == "json"
        assert body["stream"] is False
        assert body["model"] == "qwen2.5:7b"

    def test_extract_json_in_markdown_block(self, provider: OllamaExtractionProvider) -> None:
        """Should parse JSON wrapped in markdown code block."""
        payload = {"invoiceNumber": "67890", "date": "2024-02-20"}
        text = f"```json\n{json.dumps(payload)}\n```"

        with patch.object(provider._client, "post", return_value=_generate_response(text)):
            result = provider.extract_invoice_fields("Invoice text...")

        assert result.success is True
        assert result.data is not None
        assert result.data["invoiceNumber"] == "67890"

    def test_extract_invalid_json_returns_error(self, provider: OllamaExtractionProvider) -> None:
        """Should return error when Ollama returns invalid JSON."""
        with patch.object(
            provider._client, "post", return_value=_generate_response("This is not valid JSON")
        ):
            result = provider.extract_invoice_fields("Invoice text...")

        assert result.success is False
        assert "JSON parsing failed" in str(result.error)

    def test_extract_timeout_is_flagged(self, provider: OllamaExtractionProvider) -> None:
        """Timeouts are reported separately from other failures."""
        with patch.object(
            provider._client, "post", side_effect=httpx.ReadTimeout("timed out")
        ):
            result = provider.extract_invoice_fields("Invoice text...")

        assert result.success is False
        assert result.timed_out is True

    def test_extract_http_error_returns_error(self, provider: OllamaExtractionProvider) -> None:
        """Should return error when HTTP request fails."""
        with patch.object(
            provider._client,
            "post",
            side_effect=httpx.HTTPStatusError(
                "Server error", request=MagicMock(), response=MagicMock()
            ),
        ):
            result = provider.extract_invoice_fields("Invoice text...")

        assert result.success is False
        assert result.timed_out is False
        assert "Extraction failed" in str(result.error)


class TestJsonParsing:
    """Test JSON parsing helper method."""

    def test_parse_plain_json(self, provider: OllamaExtractionProvider) -> None:
        """Should parse plain JSON object."""
        result = provider._parse_json_response('{"invoiceNumber": "123"}')
        assert result == {"invoiceNumber": "123"}

    def test_parse_json_in_markdown(self, provider: OllamaExtractionProvider) -> None:
        """Should extract JSON from markdown code block."""
        result = provider._parse_json_response('```json\n{"invoiceNumber": "456"}\n```')
        assert result == {"invoiceNumber": "456"}

    def test_parse_json_with_surrounding_text(self, provider: OllamaExtractionProvider) -> None:
        """Should extract JSON even with surrounding text."""
        result = provider._parse_json_response('Here is the result: {"invoiceNumber": "789"} Done.')
        assert result == {"invoiceNumber": "789"}

    def test_parse_invalid_json_raises(self, provider: OllamaExtractionProvider) -> None:
        """Should raise JSONDecodeError for invalid JSON."""
        with pytest.raises(json.JSONDecodeError):
            provider._parse_json_response("not json at all")

    def test_parse_array_raises(self, provider: OllamaExtractionProvider) -> None:
        """A top-level array is not an invoice object."""
        with pytest.raises(json.JSONDecodeError):
            provider._parse_json_response("[1, 2, 3]")


class TestPromptBuilding:
    """Test prompt construction."""

    def test_prompt_contains_text(self, provider: OllamaExtractionProvider) -> None:
        """Prompt should include the user's text."""
        text = "Invoice #12345 from Test Company"
        prompt = provider._build_prompt(text)
        assert text in prompt

    def test_prompt_contains_schema(self, provider: OllamaExtractionProvider) -> None:
        """Prompt should list the fixed key set."""
        prompt = provider._build_prompt("test")
        assert "invoiceNumber" in prompt
        assert "paymentInstructions" in prompt
        assert "set it to null" in prompt
