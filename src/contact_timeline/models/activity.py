"""Unified timeline activity models.

``TimelineActivity`` is a tagged union over the ``type`` field. Activities are
frozen: whenever a source record changes a new activity is built instead of
mutating the old one, which is what lets the caches hand out shared instances.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from contact_timeline.models.enums import ActivitySource
from contact_timeline.models.records import EmailAddress, EmailAttachment


class BaseActivity(BaseModel):
    """Fields common to every timeline activity."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, description="Unique id within the merged timeline")
    timestamp: str = Field(default="", description="ISO-8601 timestamp")
    source: ActivitySource
    is_pinned: bool = False
    content: str | None = None


class InternalActivity(BaseActivity):
    """A note, logged call, meeting, task or system event."""

    type: Literal["note", "call", "meeting", "task", "system"]
    source: ActivitySource = ActivitySource.INTERNAL


class EmailFields(BaseActivity):
    """Display fields shared by every email-shaped activity."""

    subject: str = ""
    thread_id: str | None = None
    sender: EmailAddress | None = None
    to: list[EmailAddress] = Field(default_factory=list)
    cc: list[EmailAddress] = Field(default_factory=list)
    bcc: list[EmailAddress] = Field(default_factory=list)
    snippet: str = ""
    is_read: bool = False
    is_important: bool = False
    body_text: str | None = None
    body_html: str | None = None
    labels: list[str] = Field(default_factory=list)
    attachments: list[EmailAttachment] = Field(default_factory=list)


class EmailActivity(EmailFields):
    """A single email message."""

    type: Literal["email"] = "email"
    source: ActivitySource = ActivitySource.GMAIL


class EmailSentActivity(EmailFields):
    """An email sent from the CRM, recorded as an internal activity."""

    type: Literal["email_sent"] = "email_sent"
    source: ActivitySource = ActivitySource.INTERNAL


class EmailThreadActivity(EmailFields):
    """A collapsed conversation of two or more emails sharing a thread id.

    Display fields mirror ``latest_email``; ``emails_in_thread`` is ordered
    oldest first.
    """

    type: Literal["email_thread"] = "email_thread"
    source: ActivitySource = ActivitySource.GMAIL
    emails_in_thread: list[EmailActivity]
    thread_email_count: int
    latest_email: EmailActivity
    is_thread_expanded: bool = False

    @model_validator(mode="after")
    def _check_members(self) -> "EmailThreadActivity":
        if len(self.emails_in_thread) < 2:
            raise ValueError("an email thread needs at least two emails")
        if self.thread_email_count != len(self.emails_in_thread):
            raise ValueError("thread_email_count must match emails_in_thread")
        if self.latest_email != self.emails_in_thread[-1]:
            raise ValueError("latest_email must be the last email in the thread")
        return self


TimelineActivity = Annotated[
    Union[InternalActivity, EmailActivity, EmailSentActivity, EmailThreadActivity],
    Field(discriminator="type"),
]


def thread_activity_id(thread_id: str) -> str:
    """Deterministic id of the synthesized activity for ``thread_id``."""
    return f"thread-{thread_id}"
