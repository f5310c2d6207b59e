"""
Engagement stats aggregation for the Pipedrive person panel.

Pipeline: Pipedrive person -> email addresses -> MailUp views/clicks per
address -> merge by message id -> newest first, top N -> message details
(cached) -> colour tag.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Iterable

from .models import AccountKey, MessageStat, StatItem

if TYPE_CHECKING:
    from .mailup import MailUpClient
    from .message_cache import MessageDetailCache
    from .pipedrive import PipedriveClient
    from .tokens import TokenManager

logger = logging.getLogger(__name__)

TOP_MESSAGES = 10


def merge_stats(stats: Iterable[MessageStat]) -> list[MessageStat]:
    """
    Combine stats sharing a message id by summing their counters.

    Order of the input does not matter: views and clicks for the same id
    end up in one entry whichever was seen first.
    """
    merged: dict[int, MessageStat] = {}
    for stat in stats:
        existing = merged.get(stat.id)
        if existing is None:
            merged[stat.id] = stat
            continue
        merged[stat.id] = MessageStat(
            id=stat.id,
            header=existing.header or stat.header,
            views=existing.views + stat.views,
            clicks=existing.clicks + stat.clicks,
        )
    return list(merged.values())


def rank_stats(stats: Iterable[MessageStat], limit: int = TOP_MESSAGES) -> list[MessageStat]:
    """Newest messages first (MailUp ids increase over time), at most ``limit``."""
    return sorted(stats, key=lambda s: s.id, reverse=True)[:limit]


def tag_color(views: int, clicks: int) -> str:
    """red: untouched, yellow: opened only, blue: anything else."""
    if views == 0 and clicks == 0:
        return "red"
    if views > 0 and clicks == 0:
        return "yellow"
    return "blue"


def tag_label(views: int, clicks: int) -> str:
    return f"V{views}C{clicks}"


class StatsPipeline:
    """Builds the panel rows for one Pipedrive person."""

    def __init__(
        self,
        tokens: "TokenManager",
        pipedrive: "PipedriveClient",
        mailup: "MailUpClient",
        cache: "MessageDetailCache",
        limit: int = TOP_MESSAGES,
    ):
        self.tokens = tokens
        self.pipedrive = pipedrive
        self.mailup = mailup
        self.cache = cache
        self.limit = limit

    async def person_stats(self, person_id: str, account: AccountKey) -> list[StatItem]:
        """
        Aggregate MailUp engagement for every email address of a person.

        Any failure (token, Pipedrive, MailUp) propagates; there are no
        partial results.
        """
        token = await self.tokens.issue(account.user_id, account.company_id)
        emails = await self.pipedrive.get_person_emails(token.api_domain, token.access_token, person_id)
        logger.info(f"Found {len(emails)} emails for person {person_id}")
        if not emails:
            return []

        per_email = await asyncio.gather(*(self.mailup.get_email_stats(email) for email in emails))
        merged = merge_stats(stat for stats in per_email for stat in stats)
        ranked = rank_stats(merged, self.limit)

        details = await asyncio.gather(*(self.cache.get_or_fetch(stat.id) for stat in ranked))

        return [
            StatItem(
                id=stat.id,
                header=detail.header,
                views=stat.views,
                clicks=stat.clicks,
                tag_color=tag_color(stat.views, stat.clicks),
                tag_label=tag_label(stat.views, stat.clicks),
                content=detail.content,
            )
            for stat, detail in zip(ranked, details)
        ]
