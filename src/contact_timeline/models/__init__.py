"""Data models for the contact timeline engine.

This module re-exports the raw collaborator records and the unified
``TimelineActivity`` variants.
"""

from contact_timeline.models.activity import (
    BaseActivity,
    EmailActivity,
    EmailFields,
    EmailSentActivity,
    EmailThreadActivity,
    InternalActivity,
    TimelineActivity,
    thread_activity_id,
)
from contact_timeline.models.enums import ActivitySource, ActivityType, SyncStatus
from contact_timeline.models.records import (
    EmailAddress,
    EmailAttachment,
    EmailEnvelope,
    RawEmailMessage,
    RawInternalActivity,
)

__all__ = [
    "ActivitySource",
    "ActivityType",
    "BaseActivity",
    "EmailActivity",
    "EmailAddress",
    "EmailAttachment",
    "EmailEnvelope",
    "EmailFields",
    "EmailSentActivity",
    "EmailThreadActivity",
    "InternalActivity",
    "RawEmailMessage",
    "RawInternalActivity",
    "SyncStatus",
    "TimelineActivity",
    "thread_activity_id",
]
