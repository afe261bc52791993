"""Live Gmail reads of a contact's messages."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any

import structlog

from contact_timeline.config import Settings
from contact_timeline.exceptions import EmailFetchError, GmailAPIError
from contact_timeline.gmail.client import GmailClient
from contact_timeline.gmail.parsing import contact_query, message_to_raw_email
from contact_timeline.models import RawEmailMessage
from contact_timeline.sync import EmailPage

logger = structlog.get_logger()


class GmailEmailFetcher:
    """Pages a contact's messages straight from the Gmail API.

    Gmail page tokens are used as cursors. Reads are always live, so
    ``sync_history`` only makes sure the client is authenticated.
    """

    def __init__(self, client: GmailClient | None = None, settings: Settings | None = None) -> None:
        from contact_timeline.config import get_settings

        self.settings = settings or get_settings()
        self.client = client or GmailClient(self.settings)

    async def fetch_page(self, contact_email: str, cursor: str | None, limit: int) -> EmailPage:
        await self.client.authenticate()
        try:
            page = await self.client.list_message_page(
                query=contact_query(contact_email),
                page_token=cursor,
                max_results=limit,
            )
            emails = await self._load_messages(page.messages)
        except GmailAPIError as exc:
            raise EmailFetchError(f"Failed to fetch emails for {contact_email}: {exc}") from exc

        logger.info(
            "gmail_page_fetched",
            contact_email=contact_email,
            count=len(emails),
            has_more=page.next_page_token is not None,
        )
        return EmailPage(
            emails=emails,
            next_cursor=page.next_page_token,
            total_count=page.result_size_estimate,
        )

    async def sync_history(self, contact_email: str, user_id: str) -> None:
        logger.info("gmail_live_sync_requested", contact_email=contact_email, user_id=user_id)
        await self.client.authenticate()

    async def iter_history(self, contact_email: str, batch_size: int | None = None) -> AsyncIterator[list[RawEmailMessage]]:
        """Yield every message of the contact in newest-first batches."""

        cursor: str | None = None
        size = batch_size or self.settings.gmail_max_results
        while True:
            page = await self.fetch_page(contact_email, cursor, size)
            if page.emails:
                yield page.emails
            cursor = page.next_cursor
            if cursor is None:
                break

    async def _load_messages(self, stubs: list[dict[str, Any]]) -> list[RawEmailMessage]:
        ids = [s.get("id") for s in stubs if isinstance(s.get("id"), str) and s.get("id")]
        messages = await asyncio.gather(*(self.client.get_message(message_id) for message_id in ids))
        return [message_to_raw_email(m) for m in messages if m.get("id")]
