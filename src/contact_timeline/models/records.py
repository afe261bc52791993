"""Raw records read from the external collaborators.

Both record types accept the provider's camelCase keys (``threadId``,
``isRead``, ``bodyText``) as well as the snake_case field names. Missing or
null optional values fall back to empty defaults so a single incomplete record
never breaks the timeline.
"""

from __future__ import annotations

from email.utils import getaddresses
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from contact_timeline.models.enums import ActivityType

_RECORD_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    extra="ignore",
    frozen=True,
)


def _as_address_list(value: Any) -> list[Any]:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return [v for v in value if v]
    return [value]


class EmailAddress(BaseModel):
    """A name + email pair."""

    model_config = _RECORD_CONFIG

    name: str | None = Field(default=None, description="Display name")
    email: str = Field(default="", description="Email address")

    @model_validator(mode="before")
    @classmethod
    def _parse_header_string(cls, value: Any) -> Any:
        # "Jane Doe <jane@example.com>" as found in raw headers
        if isinstance(value, str):
            parsed = getaddresses([value])
            name, addr = parsed[0] if parsed else ("", value)
            return {"name": name or None, "email": addr or value}
        return value


class EmailAttachment(BaseModel):
    """Attachment metadata; content is never loaded by the engine."""

    model_config = _RECORD_CONFIG

    id: str = ""
    filename: str = ""
    mime_type: str | None = None
    size: int = 0
    inline: bool = False
    content_id: str | None = None


class RawEmailMessage(BaseModel):
    """A message as returned by the mail provider, prior to unification."""

    model_config = _RECORD_CONFIG

    id: str = Field(min_length=1, description="Provider message ID")
    thread_id: str | None = Field(default=None, description="Provider thread ID")
    subject: str = Field(default="", description="Subject header")
    snippet: str = Field(default="", description="Short preview text")
    sender: EmailAddress | None = Field(default=None, alias="from")
    to: list[EmailAddress] = Field(default_factory=list)
    cc: list[EmailAddress] = Field(default_factory=list)
    bcc: list[EmailAddress] = Field(default_factory=list)
    is_read: bool = False
    is_important: bool = False
    body_text: str | None = None
    body_html: str | None = None
    labels: list[str] = Field(default_factory=list)
    attachments: list[EmailAttachment] = Field(default_factory=list)
    date: str = Field(default="", description="ISO-8601 date string")

    @field_validator("subject", "snippet", "date", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("thread_id", mode="before")
    @classmethod
    def _blank_thread_id(cls, value: Any) -> Any:
        return value or None

    @field_validator("to", "cc", "bcc", mode="before")
    @classmethod
    def _address_list(cls, value: Any) -> list[Any]:
        return _as_address_list(value)

    @field_validator("sender", mode="before")
    @classmethod
    def _single_sender(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return value[0] if value else None
        return value or None

    @field_validator("labels", "attachments", mode="before")
    @classmethod
    def _none_to_list(cls, value: Any) -> Any:
        return [] if value is None else value


class EmailEnvelope(BaseModel):
    """Email payload embedded in an ``email_sent`` activity's details."""

    model_config = _RECORD_CONFIG

    subject: str = ""
    body_text: str | None = None
    body_html: str | None = None
    sender: EmailAddress | None = Field(default=None, alias="from")
    to: list[EmailAddress] = Field(default_factory=list)
    cc: list[EmailAddress] = Field(default_factory=list)
    bcc: list[EmailAddress] = Field(default_factory=list)
    thread_id: str | None = None
    message_id: str | None = None

    @field_validator("subject", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("to", "cc", "bcc", mode="before")
    @classmethod
    def _address_list(cls, value: Any) -> list[Any]:
        return _as_address_list(value)


class RawInternalActivity(BaseModel):
    """A locally authored activity owned by the activity store."""

    model_config = _RECORD_CONFIG

    id: str = Field(min_length=1)
    type: ActivityType
    content: str | None = None
    timestamp: str = ""
    is_pinned: bool = False
    details: EmailEnvelope | None = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("type")
    @classmethod
    def _not_synthetic(cls, value: ActivityType) -> ActivityType:
        if value == ActivityType.EMAIL_THREAD:
            raise ValueError("email_thread activities are derived, never stored")
        return value

    @field_validator("is_pinned", mode="before")
    @classmethod
    def _none_to_false(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator("details", mode="before")
    @classmethod
    def _unwrap_envelope(cls, value: Any) -> Any:
        # Stored either as {"email": {...}} or as the envelope itself.
        if isinstance(value, dict) and isinstance(value.get("email"), dict):
            return value["email"]
        return value or None
