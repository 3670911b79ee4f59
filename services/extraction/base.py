"""Abstract base class for extraction providers.

Enables switching between different language model backends (OpenAI, Ollama)
while maintaining a consistent interface.

Based on Strategy Pattern:
https://refactoring.guru/design-patterns/strategy/python
"""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel

from services.shared.config import Settings

# Fixed schema prompt shared by all providers. The user's text is sent
# separately as the user turn.
INVOICE_PARSE_PROMPT = """You are an AI assistant that helps parse invoice information from text.
Return a JSON object with these exact keys:
- invoiceNumber (string)
- invoiceName (string, a short 3-5 word description of the invoice)
- date (string)
- dueDate (string)
- sender (object: { name, address, city, state, zipCode, country, email, phone })
- recipient (object: { name, address, city, state, zipCode, country, email, phone })
- items (array of objects: { description, quantity, rate })
- taxRate (number)
- currency (string)
- notes (string, optional)
- paymentInstructions (string, optional)
- shipping (number, optional)

If any field is not mentioned in the text, set it to null. Do not invent values. \
Do not use any other keys or change the key names. Only return the JSON object."""


class ExtractionResult(BaseModel):
    """Result of a provider call.

    Attributes:
        data: Raw JSON object returned by the model, or None on failure
        success: Whether the call succeeded
        error: Error message if the call failed
        timed_out: True if the failure was an upstream timeout
        provider: Name of provider that performed extraction (e.g., 'openai')
    """

    data: dict[str, Any] | None
    success: bool
    error: str | None = None
    timed_out: bool = False
    provider: str


class ExtractionProvider(ABC):
    """Abstract base class for invoice extraction providers.

    Providers receive text that has already been validated and sanitized
    and report failures through ExtractionResult instead of raising.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize provider with settings.

        Args:
            settings: Application settings
        """
        self.settings = settings

    @abstractmethod
    def extract_invoice_fields(self, text: str) -> ExtractionResult:
        """Extract structured invoice fields from free text.

        Args:
            text: Sanitized user text

        Returns:
            ExtractionResult with the model's JSON object or error
        """

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the provider is configured and reachable."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get provider name for logging/metrics."""
