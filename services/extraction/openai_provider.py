"""OpenAI-based extraction provider for invoice field extraction.

Uses the OpenAI chat completions API in JSON-object mode with a fixed
schema prompt. No retries: a failed call is surfaced and the user decides
whether to try again.
"""

import json
import logging
import os
from typing import Any

from openai import APITimeoutError, OpenAI

from services.extraction.base import INVOICE_PARSE_PROMPT, ExtractionProvider, ExtractionResult
from services.shared.config import Settings

logger = logging.getLogger(__name__)


class OpenAIExtractionProvider(ExtractionProvider):
    """OpenAI-based extraction provider.

    Requires OPENAI_API_KEY environment variable.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize OpenAI extraction provider.

        Args:
            settings: Application settings
        """
        super().__init__(settings)
        self._client: OpenAI | None = None

    @property
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier 'openai'
        """
        return "openai"

    def is_available(self) -> bool:
        """Check if OpenAI API key is configured.

        Returns:
            True if OPENAI_API_KEY environment variable is set
        """
        return os.getenv("OPENAI_API_KEY") is not None

    def extract_invoice_fields(self, text: str) -> ExtractionResult:
        """Extract structured invoice fields using OpenAI.

        Args:
            text: Sanitized user text

        Returns:
            ExtractionResult with the model's JSON object or error, provider='openai'
        """
        if not self.is_available():
            return ExtractionResult(
                data=None,
                success=False,
                error="OPENAI_API_KEY environment variable not set",
                provider=self.provider_name,
            )

        try:
            api_key = os.getenv("OPENAI_API_KEY")
            if self._client is None or self._client.api_key != api_key:
                self._client = OpenAI(
                    api_key=api_key,
                    timeout=self.settings.extraction_timeout_seconds,
                    max_retries=0,
                )

            response = self._call_openai(text)

            content = response.choices[0].message.content if response.choices else None
            if not content:
                return ExtractionResult(
                    data=None,
                    success=False,
                    error="Unable to generate content",
                    provider=self.provider_name,
                )

            data = json.loads(content)
            if not isinstance(data, dict):
                return ExtractionResult(
                    data=None,
                    success=False,
                    error="Model response is not a JSON object",
                    provider=self.provider_name,
                )

            return ExtractionResult(data=data, success=True, provider=self.provider_name)

        except APITimeoutError as e:
            logger.warning(f"OpenAI extraction timed out: {e}")
            return ExtractionResult(
                data=None,
                success=False,
                error="Request timed out",
                timed_out=True,
                provider=self.provider_name,
            )
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse JSON from OpenAI response: {e}")
            return ExtractionResult(
                data=None,
                success=False,
                error=f"JSON parsing failed: {str(e)}",
                provider=self.provider_name,
            )
        except Exception as e:
            logger.error(f"OpenAI extraction failed: {e}")
            return ExtractionResult(
                data=None,
                success=False,
                error=f"Extraction failed: {str(e)}",
                provider=self.provider_name,
            )

    def _call_openai(self, text: str) -> Any:
        """Call the chat completions API.

        Args:
            text: Sanitized user text

        Returns:
            OpenAI API response
        """
        if self._client is None:
            raise RuntimeError("OpenAI client not initialized")

        return self._client.chat.completions.create(
            model=self.settings.openai_model,
            messages=[
                {"role": "system", "content": INVOICE_PARSE_PROMPT},
                {"role": "user", "content": text},
            ],
            response_format={"type": "json_object"},
            max_tokens=2000,
            temperature=0.2,
        )
