"""Local SQLite store of synced contact emails."""

from .fetcher import HistorySource, StoredEmailFetcher
from .repository import EmailStoreRepository, StoredPage

__all__ = ["EmailStoreRepository", "HistorySource", "StoredEmailFetcher", "StoredPage"]
