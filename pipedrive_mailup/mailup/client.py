"""
MailUp REST client.

Handles:
- Recipient lookup by email address
- Per-recipient view and click statistics, newest message first
- Single message detail (subject and HTML content)
"""

import asyncio
import logging
from typing import Any

import httpx

from ..exceptions import UpstreamUnavailable
from ..models import MessageStat
from ..stats import merge_stats
from ..text import truncate_text
from .auth import MailUpCredential

logger = logging.getLogger(__name__)

STATS_PAGE_SIZE = 10


class MailUpError(UpstreamUnavailable):
    """MailUp API error."""
    pass


class MailUpClient:
    """Read-only access to the MailUp console and statistics services."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        credential: MailUpCredential,
        base_url: str = "https://services.mailup.com/API/v1.1/Rest",
        list_id: int = 1,
        max_field_length: int = 40,
    ):
        self.http = http
        self.credential = credential
        self.base_url = base_url.rstrip("/")
        self.list_id = list_id
        self.max_field_length = max_field_length

    async def find_recipient(self, email: str) -> int | None:
        """Return the MailUp recipient id for an email address, if any."""
        data = await self._get(
            "/ConsoleService.svc/Console/Recipients",
            params={"email": f'"{email}"'},
        )
        items = data.get("Items") or []
        if not items:
            return None
        return items[0]["idRecipient"]

    async def list_views(self, recipient_id: int, page_size: int = STATS_PAGE_SIZE) -> list[dict[str, Any]]:
        return await self._recipient_stats(recipient_id, "Views", page_size)

    async def list_clicks(self, recipient_id: int, page_size: int = STATS_PAGE_SIZE) -> list[dict[str, Any]]:
        return await self._recipient_stats(recipient_id, "Clicks", page_size)

    async def get_email_stats(self, email: str) -> list[MessageStat]:
        """
        Collect view and click counters for the most recent messages sent to
        ``email``. Unknown recipients yield no stats.
        """
        recipient_id = await self.find_recipient(email)
        if recipient_id is None:
            logger.info(f"No MailUp recipient found for {email}")
            return []

        views, clicks = await asyncio.gather(
            self.list_views(recipient_id),
            self.list_clicks(recipient_id),
        )

        stats = [
            MessageStat(
                id=int(item["IdMessage"]),
                header=truncate_text(item.get("Subject"), self.max_field_length),
                views=int(item.get("Count", 0)),
            )
            for item in views
        ]
        stats.extend(
            MessageStat(
                id=int(item["IdMessage"]),
                header=truncate_text(item.get("Subject"), self.max_field_length),
                clicks=int(item.get("Count", 0)),
            )
            for item in clicks
        )
        merged = merge_stats(stats)

        logger.info(
            f"Stats for {email}: {len(merged)} messages, "
            f"{sum(s.views for s in merged)} views, {sum(s.clicks for s in merged)} clicks"
        )
        return merged

    async def get_message(self, message_id: int) -> dict[str, Any]:
        """Fetch the raw message (``Subject`` and HTML ``Content``)."""
        return await self._get(f"/ConsoleService.svc/Console/List/{self.list_id}/Email/{message_id}")

    async def _recipient_stats(self, recipient_id: int, kind: str, page_size: int) -> list[dict[str, Any]]:
        data = await self._get(
            f"/MailStatisticsService.svc/Recipient/{recipient_id}/List/{kind}",
            params={"orderby": '"IdMessage desc"', "PageSize": page_size},
        )
        return data.get("Items") or []

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        token = await self.credential.access_token()
        try:
            response = await self.http.get(
                f"{self.base_url}{path}",
                params=params,
                headers={"Authorization": f"Bearer {token}"},
            )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            logger.error(f"MailUp request {path} failed: {e}")
            raise MailUpError(f"MailUp request {path} failed") from e
        except ValueError as e:
            logger.error(f"MailUp request {path} returned invalid JSON: {e}")
            raise MailUpError(f"MailUp request {path} failed") from e
