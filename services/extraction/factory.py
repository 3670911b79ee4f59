"""Selection of the language model backend for invoice form filling.

``APP_EXTRACTION_PROVIDER`` names one of :data:`EXTRACTION_PROVIDERS`.
Settings validation already restricts the name, so an unknown value here
means the mapping and the ``Settings`` literal have drifted apart.
"""

import logging

from services.extraction.base import ExtractionProvider
from services.extraction.ollama_provider import OllamaExtractionProvider
from services.extraction.openai_provider import OpenAIExtractionProvider
from services.shared.config import Settings

logger = logging.getLogger(__name__)

EXTRACTION_PROVIDERS: dict[str, type[ExtractionProvider]] = {
    "openai": OpenAIExtractionProvider,
    "ollama": OllamaExtractionProvider,
}


def get_provider_class(name: str) -> type[ExtractionProvider]:
    """Look up a provider class by name.

    Raises:
        ValueError: If no provider is registered under ``name``
    """
    try:
        return EXTRACTION_PROVIDERS[name]
    except KeyError:
        available = ", ".join(sorted(EXTRACTION_PROVIDERS))
        raise ValueError(
            f"Unknown extraction provider: '{name}'. Available providers: {available}"
        ) from None


def _model_name(settings: Settings) -> str:
    if settings.extraction_provider == "ollama":
        return settings.ollama_model
    return settings.openai_model


def create_extraction_provider(settings: Settings) -> ExtractionProvider:
    """Create the provider used by the AI form-filling endpoint.

    An unavailable provider (no API key, Ollama not reachable) is still
    returned; its calls fail and surface as upstream errors per request.

    Args:
        settings: Application settings

    Returns:
        Configured extraction provider instance
    """
    provider_name = settings.extraction_provider
    provider = get_provider_class(provider_name)(settings)

    if not provider.is_available():
        logger.warning(
            f"Extraction provider '{provider_name}' is not fully available; "
            f"invoice parsing requests will fail until it is configured"
        )

    logger.info(f"Created extraction provider: {provider_name} ({_model_name(settings)})")
    return provider
