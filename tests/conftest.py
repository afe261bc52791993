"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from contact_timeline.config import Settings
from contact_timeline.exceptions import EmailFetchError
from contact_timeline.models import EmailActivity, EmailAddress, RawEmailMessage
from contact_timeline.sources import ActivityQueryResult
from contact_timeline.sync import EmailPage


class FakeMailFetcher:
    """In-memory mail fetcher with offset cursors and controllable failures."""

    def __init__(self) -> None:
        self.mailboxes: dict[str, list[RawEmailMessage]] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.fetch_calls: list[tuple[str, str | None, int]] = []
        self.sync_calls: list[tuple[str, str]] = []
        self.fetch_error: Exception | None = None
        self.fetch_errors: dict[str, Exception] = {}
        self.sync_failures = 0
        self.synced_emails: dict[str, list[RawEmailMessage]] = {}

    async def fetch_page(self, contact_email: str, cursor: str | None, limit: int) -> EmailPage:
        self.fetch_calls.append((contact_email, cursor, limit))
        gate = self.gates.get(contact_email)
        if gate is not None:
            await gate.wait()
        error = self.fetch_errors.get(contact_email, self.fetch_error)
        if error is not None:
            raise error

        emails = self.mailboxes.get(contact_email, [])
        offset = int(cursor) if cursor else 0
        page = emails[offset : offset + limit]
        end = offset + len(page)
        return EmailPage(
            emails=page,
            next_cursor=str(end) if end < len(emails) else None,
            total_count=len(emails),
        )

    async def sync_history(self, contact_email: str, user_id: str) -> None:
        self.sync_calls.append((contact_email, user_id))
        if self.sync_failures > 0:
            self.sync_failures -= 1
            raise EmailFetchError("provider unavailable")
        new = self.synced_emails.pop(contact_email, [])
        self.mailboxes[contact_email] = new + self.mailboxes.get(contact_email, [])


class FakeActivityStore:
    """Activity store returning canned records per contact."""

    def __init__(self, records: dict[str, list[Any]] | None = None) -> None:
        self.records = records or {}
        self.error: Exception | None = None
        self.is_loading = False

    def get_activities(self, contact_id: str) -> ActivityQueryResult:
        if self.error is not None:
            raise self.error
        return ActivityQueryResult(
            activities=list(self.records.get(contact_id, [])),
            is_loading=self.is_loading,
        )


@pytest.fixture
def settings() -> Settings:
    """Provide deterministic settings for testing."""
    return Settings(
        sync_status_reset_seconds=None,
        sync_reload_delay_seconds=None,
        thread_cache_sweep_probability=0.0,
        retry_delay_seconds=0.0,
        log_level="DEBUG",
        debug=True,
    )


@pytest.fixture
def fetcher() -> FakeMailFetcher:
    return FakeMailFetcher()


@pytest.fixture
def activity_store() -> FakeActivityStore:
    return FakeActivityStore()


@pytest.fixture
def make_email() -> Callable[..., RawEmailMessage]:
    """Factory for raw provider messages."""

    def _make(
        email_id: str,
        *,
        date: str = "2024-01-01T10:00:00Z",
        thread_id: str | None = None,
        subject: str = "Hello",
        sender: str = "jane@example.com",
        to: tuple[str, ...] = ("me@example.com",),
        is_read: bool = False,
    ) -> RawEmailMessage:
        return RawEmailMessage(
            id=email_id,
            thread_id=thread_id,
            subject=subject,
            snippet=f"Snippet of {email_id}",
            sender=EmailAddress(email=sender),
            to=[EmailAddress(email=addr) for addr in to],
            is_read=is_read,
            date=date,
        )

    return _make


@pytest.fixture
def make_email_activity() -> Callable[..., EmailActivity]:
    """Factory for already-transformed email activities."""

    def _make(
        email_id: str,
        *,
        timestamp: str = "2024-01-01T10:00:00Z",
        thread_id: str | None = None,
        subject: str = "Hello",
        is_pinned: bool = False,
        is_read: bool = False,
    ) -> EmailActivity:
        return EmailActivity(
            id=email_id,
            timestamp=timestamp,
            thread_id=thread_id,
            subject=subject,
            is_pinned=is_pinned,
            is_read=is_read,
        )

    return _make


@pytest.fixture
def sample_gmail_message() -> dict:
    """Provide a Gmail API message in ``format=full``."""
    return {
        "id": "msg123456",
        "threadId": "thread789",
        "labelIds": ["INBOX", "UNREAD", "IMPORTANT"],
        "snippet": "Quarterly numbers attached",
        "internalDate": "1700000000000",
        "payload": {
            "mimeType": "multipart/mixed",
            "headers": [
                {"name": "Subject", "value": "Q3 report"},
                {"name": "From", "value": "Jane Doe <jane@example.com>"},
                {"name": "To", "value": "me@example.com, Bob <bob@example.com>"},
                {"name": "Cc", "value": "team@example.com"},
                {"name": "Date", "value": "Tue, 14 Nov 2023 22:13:20 +0000"},
            ],
            "parts": [
                {
                    "mimeType": "multipart/alternative",
                    "parts": [
                        # "Hello team" / "<p>Hello team</p>"
                        {"mimeType": "text/plain", "body": {"data": "SGVsbG8gdGVhbQ"}},
                        {"mimeType": "text/html", "body": {"data": "PHA-SGVsbG8gdGVhbTwvcD4"}},
                    ],
                },
                {
                    "mimeType": "application/pdf",
                    "filename": "report.pdf",
                    "headers": [
                        {"name": "Content-Disposition", "value": "attachment; filename=report.pdf"},
                    ],
                    "body": {"attachmentId": "att-1", "size": 2048},
                },
            ],
        },
    }
