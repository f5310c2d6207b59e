"""
Message detail cache.

Sent MailUp messages never change, so details are memoized for the life of
the process: no TTL and no eviction. Concurrent misses for the same id may
both fetch; the last insert wins, which is harmless for immutable content.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from .models import MessageDetail
from .text import clean_html_content, truncate_text

logger = logging.getLogger(__name__)

Loader = Callable[[int], Awaitable[MessageDetail]]


class MessageDetailCache:
    """Unbounded in-memory cache of MessageDetail keyed by message id."""

    def __init__(self, loader: Loader):
        self._loader = loader
        self._entries: dict[int, MessageDetail] = {}

    async def get_or_fetch(self, message_id: int) -> MessageDetail:
        """Return the cached detail, loading it on a miss."""
        if (detail := self._entries.get(message_id)) is not None:
            logger.debug(f"Cache hit for message {message_id}")
            return detail

        detail = await self._loader(message_id)
        self._entries[message_id] = detail
        return detail

    def __contains__(self, message_id: int) -> bool:
        return message_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def mailup_detail_loader(mailup, max_field_length: int, request_delay: float = 0.0) -> Loader:
    """
    Build a loader fetching one message from MailUp and cleaning it for display.

    ``request_delay`` spaces out live fetches to stay clear of MailUp throttling.
    """
    async def load(message_id: int) -> MessageDetail:
        if request_delay > 0:
            await asyncio.sleep(request_delay)

        raw = await mailup.get_message(message_id)
        detail = MessageDetail(
            id=message_id,
            header=truncate_text(raw.get("Subject"), max_field_length),
            content=clean_html_content(raw.get("Content"), max_field_length),
        )
        logger.info(f"Message details retrieved for {message_id}")
        return detail

    return load
