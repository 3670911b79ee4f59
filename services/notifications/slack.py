"""Slack incoming-webhook notifier for invoice events."""

import logging
from typing import Any, Literal

import httpx

from services.invoice.schema import Company
from services.shared.config import Settings
from services.shared.errors import UpstreamError

logger = logging.getLogger(__name__)

Action = Literal["download", "email"]

NOT_PROVIDED = "Not provided"

_ACTION_LABELS = {"download": "Downloaded", "email": "Emailed"}


def _section(text: str) -> dict[str, Any]:
    return {"type": "section", "text": {"type": "mrkdwn", "text": text}}


def _party_summary(title: str, company: Company) -> str:
    return (
        f"*{title}:*\n"
        f"• Name: {company.name.strip() or NOT_PROVIDED}\n"
        f"• Email: {company.email.strip() or NOT_PROVIDED}\n"
        f"• Phone: {company.phone.strip() or NOT_PROVIDED}"
    )


class SlackNotifier:
    """Posts Block Kit messages to a configured webhook."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self.settings = settings
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.notification_timeout_seconds)
        return self._client

    def is_configured(self) -> bool:
        return bool(self.settings.slack_webhook_url)

    @staticmethod
    def build_blocks(sender: Company, recipient: Company, action: Action) -> list[dict[str, Any]]:
        """Build the message blocks announcing a generated invoice.

        Args:
            sender: Sender party
            recipient: Recipient party
            action: Which user action produced the invoice

        Returns:
            Slack Block Kit block list
        """
        return [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": "🎉 New Invoice Generated!",
                    "emoji": True,
                },
            },
            _section(f"*Action:* {_ACTION_LABELS[action]}"),
            _section(_party_summary("Sender Company Information", sender)),
            _section(_party_summary("Recipient Company Information", recipient)),
        ]

    async def post_blocks(self, blocks: list[dict[str, Any]]) -> None:
        """Post blocks to the webhook.

        Raises:
            UpstreamError: Webhook not configured, unreachable or rejected the message
        """
        if not self.is_configured():
            raise UpstreamError("Slack webhook URL not configured")

        try:
            response = await self._get_client().post(
                self.settings.slack_webhook_url, json={"blocks": blocks}
            )
        except httpx.HTTPError as e:
            raise UpstreamError(f"Failed to send Slack notification: {e}") from e

        if response.status_code >= 400:
            raise UpstreamError(
                f"Failed to send Slack notification: {response.status_code} {response.text}"
            )
        logger.debug("Slack notification delivered")

    async def notify(self, sender: Company, recipient: Company, action: Action) -> None:
        await self.post_blocks(self.build_blocks(sender, recipient, action))

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
