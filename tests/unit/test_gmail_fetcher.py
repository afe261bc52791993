"""Unit tests for the live Gmail page fetcher."""

from typing import Any

import pytest

from contact_timeline.exceptions import EmailFetchError, GmailAPIError
from contact_timeline.gmail import GmailEmailFetcher, MessageListPage


class FakeGmailClient:
    """Serves canned message pages keyed by page token."""

    def __init__(self, pages: dict[str | None, MessageListPage], messages: dict[str, dict[str, Any]]):
        self.pages = pages
        self.messages = messages
        self.authenticated = False
        self.queries: list[str | None] = []
        self.fail = False

    async def authenticate(self) -> None:
        self.authenticated = True

    async def list_message_page(self, query=None, page_token=None, max_results=None) -> MessageListPage:
        self.queries.append(query)
        if self.fail:
            raise GmailAPIError("quota exceeded")
        return self.pages[page_token]

    async def get_message(self, message_id: str, **_: Any) -> dict[str, Any]:
        return self.messages[message_id]


def _message(message_id: str, subject: str) -> dict[str, Any]:
    return {
        "id": message_id,
        "threadId": "t1",
        "labelIds": ["INBOX"],
        "internalDate": "1700000000000",
        "payload": {"headers": [{"name": "Subject", "value": subject}]},
    }


@pytest.fixture
def client() -> FakeGmailClient:
    return FakeGmailClient(
        pages={
            None: MessageListPage(
                messages=[{"id": "m1"}, {"id": "m2"}], next_page_token="p2", result_size_estimate=3
            ),
            "p2": MessageListPage(messages=[{"id": "m3"}], result_size_estimate=3),
        },
        messages={
            "m1": _message("m1", "First"),
            "m2": _message("m2", "Second"),
            "m3": _message("m3", "Third"),
        },
    )


class TestGmailEmailFetcher:
    """Test suite for GmailEmailFetcher."""

    @pytest.mark.asyncio
    async def test_fetch_first_page(self, client, settings) -> None:
        fetcher = GmailEmailFetcher(client, settings)

        page = await fetcher.fetch_page("jane@example.com", None, 20)

        assert client.authenticated is True
        assert "from:jane@example.com" in client.queries[0]
        assert [e.subject for e in page.emails] == ["First", "Second"]
        assert page.next_cursor == "p2"
        assert page.has_more is True
        assert page.total_count == 3

    @pytest.mark.asyncio
    async def test_last_page_has_no_cursor(self, client, settings) -> None:
        page = await GmailEmailFetcher(client, settings).fetch_page("jane@example.com", "p2", 20)

        assert [e.id for e in page.emails] == ["m3"]
        assert page.has_more is False

    @pytest.mark.asyncio
    async def test_api_errors_become_fetch_errors(self, client, settings) -> None:
        client.fail = True

        with pytest.raises(EmailFetchError):
            await GmailEmailFetcher(client, settings).fetch_page("jane@example.com", None, 20)

    @pytest.mark.asyncio
    async def test_iter_history_walks_every_page(self, client, settings) -> None:
        fetcher = GmailEmailFetcher(client, settings)

        batches = [batch async for batch in fetcher.iter_history("jane@example.com", 2)]

        assert [[e.id for e in batch] for batch in batches] == [["m1", "m2"], ["m3"]]

    @pytest.mark.asyncio
    async def test_sync_history_authenticates(self, client, settings) -> None:
        await GmailEmailFetcher(client, settings).sync_history("jane@example.com", "u1")

        assert client.authenticated is True
