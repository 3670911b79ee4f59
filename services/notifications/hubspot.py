"""HubSpot contact capture via the Forms submission API.

Submitting the same email twice updates the existing contact, which gives
the upsert behaviour the notification pipeline relies on.
"""

import logging
from typing import Any

import httpx

from services.invoice.schema import Company
from services.shared.config import Settings
from services.shared.errors import UpstreamError

logger = logging.getLogger(__name__)

HUBSPOT_FORMS_URL = "https://api.hsforms.com/submissions/v3/integration/submit"

DEFAULT_CONTEXT = {"pageUri": "", "pageName": "Invoice Generator"}


def build_contact_fields(sender: Company, recipient: Company) -> dict[str, str]:
    """Flatten both parties into the contact property names the form expects."""
    return {
        "company": sender.name,
        "email": sender.email,
        "address": sender.address,
        "address2": sender.address2 or "",
        "city": sender.city,
        "postalCode": sender.postal_code,
        "phone": sender.phone,
        "recipient_company": recipient.name,
        "recipient_email": recipient.email,
        "recipient_address_1": recipient.address,
        "recipient_address_2": recipient.address2 or "",
        "recipient_city": recipient.city,
        "recipient_postal_code": recipient.postal_code,
        "recipient_phone": recipient.phone,
    }


class HubSpotClient:
    """Submits invoice contacts to a HubSpot form."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self.settings = settings
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.notification_timeout_seconds)
        return self._client

    def is_configured(self) -> bool:
        return bool(self.settings.hubspot_portal_id and self.settings.hubspot_form_id)

    @property
    def submit_url(self) -> str:
        portal, form = self.settings.hubspot_portal_id, self.settings.hubspot_form_id
        return f"{HUBSPOT_FORMS_URL}/{portal}/{form}"

    async def submit_contact(
        self, fields: dict[str, Any], context: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Submit contact fields.

        Args:
            fields: Flat property map, as produced by build_contact_fields
            context: Page context (pageUri, pageName)

        Returns:
            HubSpot response body

        Raises:
            UpstreamError: HubSpot not configured, unreachable or rejected the data
        """
        if not self.is_configured():
            raise UpstreamError("HubSpot portal or form id not configured")

        body = {
            "fields": [
                {"name": name, "value": "" if value is None else str(value)}
                for name, value in fields.items()
            ],
            "context": context or DEFAULT_CONTEXT,
        }
        headers = {}
        if self.settings.hubspot_access_token:
            headers["Authorization"] = f"Bearer {self.settings.hubspot_access_token}"

        try:
            response = await self._get_client().post(self.submit_url, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Failed to send data to HubSpot: {e}") from e

        if response.status_code >= 400:
            raise UpstreamError(
                f"Failed to send data to HubSpot: {response.status_code} {response.text}"
            )

        logger.debug("HubSpot contact submitted")
        if not response.content:
            return {}
        result: dict[str, Any] = response.json()
        return result

    async def upsert_contact(self, sender: Company, recipient: Company) -> dict[str, Any]:
        return await self.submit_contact(build_contact_fields(sender, recipient))

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
