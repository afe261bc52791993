"""Gmail API access: client, message parsing and the live page fetcher."""

from .client import GmailClient, MessageListPage
from .fetcher import GmailEmailFetcher
from .parsing import contact_query, message_to_raw_email

__all__ = ["GmailClient", "GmailEmailFetcher", "MessageListPage", "contact_query", "message_to_raw_email"]
