"""
Pipedrive REST client for reading person records.
"""

import logging

import httpx

from ..exceptions import UpstreamUnavailable

logger = logging.getLogger(__name__)


class PipedriveClient:
    """Reads persons from the account's API domain with a delegated token."""

    def __init__(self, http: httpx.AsyncClient):
        self.http = http

    async def get_person_emails(self, api_domain: str, access_token: str, person_id: str) -> list[str]:
        """
        Return the non-empty email addresses of a person, deduplicated in order.

        Raises:
            UpstreamUnavailable: If the person cannot be read
        """
        url = f"{api_domain.rstrip('/')}/api/v2/persons/{person_id}"
        try:
            response = await self.http.get(url, headers={"Authorization": f"Bearer {access_token}"})
            response.raise_for_status()
            data = response.json().get("data") or {}
        except httpx.HTTPError as e:
            logger.error(f"Pipedrive person {person_id} lookup failed: {e}")
            raise UpstreamUnavailable(f"Pipedrive person {person_id} lookup failed") from e
        except ValueError as e:
            logger.error(f"Pipedrive person {person_id} returned invalid JSON: {e}")
            raise UpstreamUnavailable(f"Pipedrive person {person_id} lookup failed") from e

        emails = [entry.get("value") for entry in data.get("emails") or []]
        return list(dict.fromkeys(email for email in emails if email))
