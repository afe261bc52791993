"""Email paging, history sync and sync-complete notifications."""

from .coordinator import ContactEmailState, EmailSyncCoordinator
from .events import SyncCompleteEvent, SyncEventChannel
from .fetcher import EmailPage, MailFetcher

__all__ = [
    "ContactEmailState",
    "EmailPage",
    "EmailSyncCoordinator",
    "MailFetcher",
    "SyncCompleteEvent",
    "SyncEventChannel",
]
