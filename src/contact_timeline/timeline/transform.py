"""Conversion of raw records into timeline activities.

These functions never raise on incomplete records: every optional field of
the raw models already carries a safe default.
"""

from __future__ import annotations

from contact_timeline.models import (
    ActivitySource,
    ActivityType,
    EmailActivity,
    EmailSentActivity,
    InternalActivity,
    RawEmailMessage,
    RawInternalActivity,
)

InternalTimelineActivity = InternalActivity | EmailActivity | EmailSentActivity


def internal_to_activity(raw: RawInternalActivity) -> InternalTimelineActivity:
    """Convert a locally authored activity.

    ``email_sent`` activities have their embedded envelope lifted to top-level
    subject, body and participant fields so they render like any other email.
    """

    if raw.type == ActivityType.EMAIL_SENT:
        envelope = raw.details
        if envelope is None:
            return EmailSentActivity(
                id=raw.id,
                timestamp=raw.timestamp,
                is_pinned=raw.is_pinned,
                content=raw.content,
            )
        return EmailSentActivity(
            id=raw.id,
            timestamp=raw.timestamp,
            is_pinned=raw.is_pinned,
            content=raw.content,
            subject=envelope.subject,
            thread_id=envelope.thread_id,
            sender=envelope.sender,
            to=envelope.to,
            cc=envelope.cc,
            bcc=envelope.bcc,
            snippet=_snippet(envelope.body_text or raw.content),
            is_read=True,
            body_text=envelope.body_text,
            body_html=envelope.body_html,
        )

    if raw.type == ActivityType.EMAIL:
        return EmailActivity(
            id=raw.id,
            timestamp=raw.timestamp,
            source=ActivitySource.INTERNAL,
            is_pinned=raw.is_pinned,
            content=raw.content,
            snippet=_snippet(raw.content),
            is_read=True,
        )

    return InternalActivity(
        id=raw.id,
        type=raw.type.value,
        timestamp=raw.timestamp,
        is_pinned=raw.is_pinned,
        content=raw.content,
    )


def email_to_activity(raw: RawEmailMessage, is_pinned: bool) -> EmailActivity:
    """Convert a provider message into an ``email`` activity."""

    return EmailActivity(
        id=raw.id,
        timestamp=raw.date,
        is_pinned=is_pinned,
        content=raw.snippet or None,
        subject=raw.subject,
        thread_id=raw.thread_id,
        sender=raw.sender,
        to=raw.to,
        cc=raw.cc,
        bcc=raw.bcc,
        snippet=raw.snippet,
        is_read=raw.is_read,
        is_important=raw.is_important,
        body_text=raw.body_text,
        body_html=raw.body_html,
        labels=raw.labels,
        attachments=raw.attachments,
    )


def _snippet(text: str | None, limit: int = 200) -> str:
    if not text:
        return ""
    collapsed = " ".join(text.split())
    return collapsed[:limit]
