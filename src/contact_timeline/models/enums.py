"""Enumerations shared by records, activities and the sync coordinator."""

from enum import Enum


class ActivityType(str, Enum):
    """Discriminator of a timeline activity."""

    NOTE = "note"
    EMAIL = "email"
    CALL = "call"
    MEETING = "meeting"
    TASK = "task"
    SYSTEM = "system"
    EMAIL_SENT = "email_sent"
    EMAIL_THREAD = "email_thread"


class ActivitySource(str, Enum):
    """Where a timeline activity came from."""

    INTERNAL = "internal"
    GMAIL = "gmail"


class SyncStatus(str, Enum):
    """Outcome of the most recent email fetch for a contact."""

    IDLE = "idle"
    SYNCING = "syncing"
    COMPLETED = "completed"
    FAILED = "failed"
