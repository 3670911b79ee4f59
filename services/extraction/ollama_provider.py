"""Ollama-based extraction provider for self-hosted LLM inference.

Uses a local Ollama server for invoice field extraction so free text never
leaves the deployment.

Requires Ollama server running on localhost:11434.
See: https://ollama.ai/
"""

import json
import logging
import re
from typing import Any

import httpx

from services.extraction.base import INVOICE_PARSE_PROMPT, ExtractionProvider, ExtractionResult
from services.shared.config import Settings

logger = logging.getLogger(__name__)


class OllamaExtractionProvider(ExtractionProvider):
    """Ollama-based extraction provider for self-hosted LLM inference.

    Supports models like Qwen2.5, Llama3, Mistral.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize Ollama extraction provider.

        Args:
            settings: Application settings
        """
        super().__init__(settings)
        self._base_url = settings.ollama_base_url
        self._model = settings.ollama_model
        self._client = httpx.Client(timeout=settings.extraction_timeout_seconds)

    @property
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier 'ollama'
        """
        return "ollama"

    def is_available(self) -> bool:
        """Check if Ollama server is running and model is available.

        Returns:
            True if Ollama server responds and model is loaded
        """
        try:
            response = self._client.get(f"{self._base_url}/api/tags")
            if response.status_code != 200:
                return False
            models = response.json().get("models", [])
            model_names = [m.get("name", "").split(":")[0] for m in models]
            return self._model.split(":")[0] in model_names
        except Exception:
            return False

    def extract_invoice_fields(self, text: str) -> ExtractionResult:
        """Extract structured invoice fields using Ollama.

        Args:
            text: Sanitized user text

        Returns:
            ExtractionResult with the model's JSON object or error
        """
        try:
            response_text = self._call_ollama(self._build_prompt(text))
            data = self._parse_json_response(response_text)

            return ExtractionResult(data=data, success=True, provider=self.provider_name)

        except httpx.TimeoutException as e:
            logger.warning(f"Ollama extraction timed out: {e}")
            return ExtractionResult(
                data=None,
                success=False,
                error="Request timed out",
                timed_out=True,
                provider=self.provider_name,
            )
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse JSON from Ollama response: {e}")
            return ExtractionResult(
                data=None,
                success=False,
                error=f"JSON parsing failed: {str(e)}",
                provider=self.provider_name,
            )
        except Exception as e:
            logger.error(f"Ollama extraction failed: {e}")
            return ExtractionResult(
                data=None,
                success=False,
                error=f"Extraction failed: {str(e)}",
                provider=self.provider_name,
            )

    def _call_ollama(self, prompt: str) -> str:
        """Call the Ollama generate API.

        Args:
            prompt: Full prompt including the user text

        Returns:
            Raw response text from Ollama

        Raises:
            httpx.HTTPError: If the request fails
        """
        response = self._client.post(
            f"{self._base_url}/api/generate",
            json={
                "model": self._model,
                "prompt": prompt,
                "format": "json",
                "stream": False,
                "options": {
                    "temperature": 0.2,
                    "num_predict": 2000,
                },
            },
        )
        response.raise_for_status()
        result: str = response.json().get("response", "")
        return result

    def _parse_json_response(self, response_text: str) -> dict[str, Any]:
        """Extract and parse the JSON object from an LLM response.

        Handles common LLM quirks like markdown code blocks.

        Args:
            response_text: Raw LLM response

        Returns:
            Parsed JSON dict

        Raises:
            json.JSONDecodeError: If no valid JSON object found
        """
        json_match = re.search(r"```(?:json)?\s*([\s\S]*?)```", response_text)
        if json_match:
            candidate = json_match.group(1).strip()
        else:
            object_match = re.search(r"\{[\s\S]*\}", response_text)
            candidate = object_match.group(0) if object_match else response_text.strip()

        result = json.loads(candidate)
        if not isinstance(result, dict):
            raise json.JSONDecodeError("Expected a JSON object", candidate, 0)
        return result

    def _build_prompt(self, text: str) -> str:
        """Combine the schema prompt with the user's text.

        Args:
            text: Sanitized user text

        Returns:
            Prompt string
        """
        return f"""{INVOICE_PARSE_PROMPT}

TEXT:
{text}

JSON:"""
