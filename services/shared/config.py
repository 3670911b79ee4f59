"""Shared configuration management for the invoice service.

Based on Pydantic Settings v2 best practices:
https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with the prefix 'APP_'.
    Example: APP_LOG_LEVEL=debug
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Service configuration
    service_name: str = Field(
        default="invoice-generator",
        description="Service identifier for metrics and logs",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Service version",
    )
    allowed_origin: str = Field(
        default="*",
        description="Origin allowed by CORS headers on /api routes",
    )

    # Extraction provider configuration
    extraction_provider: Literal["openai", "ollama"] = Field(
        default="openai",
        description="Extraction provider: openai (cloud API), ollama (self-hosted LLM)",
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI chat model used for invoice text parsing",
    )
    ollama_base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama server base URL",
    )
    ollama_model: str = Field(
        default="qwen2.5:7b",
        description="Ollama model to use for extraction (e.g., qwen2.5:7b, llama3.1:8b)",
    )
    extraction_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Hard ceiling for a single extraction call",
    )
    extraction_max_text_length: int = Field(
        default=10_000,
        gt=0,
        description="Maximum accepted free-text length in characters",
    )
    extraction_rate_limit: int = Field(
        default=1000,
        ge=0,
        description="Extraction requests allowed per caller per window",
    )
    extraction_rate_window_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="Extraction rate limit window",
    )

    # Email delivery (Resend)
    resend_api_key: str = Field(
        default="",
        description="Resend API key (use env var APP_RESEND_API_KEY)",
    )
    resend_base_url: str = Field(
        default="https://api.resend.com",
        description="Resend API base URL",
    )
    email_from: str = Field(
        default="Invoice Generator <invoices@example.com>",
        description="From header used for invoice emails",
    )
    email_rate_limit: int = Field(
        default=5,
        ge=0,
        description="Emails allowed per caller per window",
    )
    email_rate_window_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="Email rate limit window",
    )
    email_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Hard ceiling for the email send step",
    )
    email_confirmation_seconds: float = Field(
        default=3.0,
        ge=0,
        description="How long the 'sent' confirmation stays visible",
    )

    # PDF generation
    pdf_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Hard ceiling for PDF rendering",
    )
    pdf_max_bytes: int = Field(
        default=10 * 1024 * 1024,
        gt=0,
        description="Largest PDF accepted for email delivery",
    )

    # Logo uploads
    logo_max_bytes: int = Field(
        default=2 * 1024 * 1024,
        gt=0,
        description="Largest logo image accepted",
    )

    # Rate limiter table
    rate_limit_max_keys: int = Field(
        default=10_000,
        gt=0,
        description="Maximum tracked callers per limiter before LRU eviction",
    )

    # Best-effort notifications
    slack_webhook_url: str = Field(
        default="",
        description="Slack incoming webhook URL (use env var APP_SLACK_WEBHOOK_URL)",
    )
    hubspot_portal_id: str = Field(
        default="",
        description="HubSpot portal id for contact form submissions",
    )
    hubspot_form_id: str = Field(
        default="",
        description="HubSpot form id for contact form submissions",
    )
    hubspot_access_token: str = Field(
        default="",
        description="Optional HubSpot private app token (use env var APP_HUBSPOT_ACCESS_TOKEN)",
    )
    notification_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for each best-effort chat/CRM call",
    )


def get_settings() -> Settings:
    """Factory function to get settings instance.

    Returns:
        Configured Settings instance
    """
    return Settings()
