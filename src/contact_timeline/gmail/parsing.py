"""Helpers for parsing Gmail API messages into raw email records."""

from __future__ import annotations

import base64
import binascii
from datetime import datetime, timezone
from email.utils import getaddresses, parsedate_to_datetime
from typing import Any, Iterator

from contact_timeline.models import EmailAddress, EmailAttachment, RawEmailMessage


def _header_map(message: dict[str, Any]) -> dict[str, str]:
    payload = message.get("payload") or {}
    headers = payload.get("headers") or []
    result: dict[str, str] = {}
    for h in headers:
        name = h.get("name")
        value = h.get("value")
        if isinstance(name, str) and isinstance(value, str):
            # Gmail can include duplicates; keep the first for now.
            result.setdefault(name.lower(), value)
    return result


def _parse_address_list(value: str | None) -> list[EmailAddress]:
    if not value:
        return []
    # getaddresses returns list[(name, addr)]
    return [EmailAddress(name=name or None, email=addr) for name, addr in getaddresses([value]) if addr]


def _iso_date(message: dict[str, Any], header_date: str | None) -> str:
    internal_date_raw = message.get("internalDate")
    try:
        if internal_date_raw is not None:
            ms = int(internal_date_raw)
            return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat()
    except (TypeError, ValueError, OverflowError):
        pass

    if header_date:
        try:
            return parsedate_to_datetime(header_date).isoformat()
        except (TypeError, ValueError, OverflowError):
            return ""
    return ""


def _walk_parts(part: dict[str, Any]) -> Iterator[dict[str, Any]]:
    yield part
    for child in part.get("parts") or []:
        yield from _walk_parts(child)


def _decode_body(data: str | None) -> str | None:
    if not data:
        return None
    try:
        padded = data + "=" * (-len(data) % 4)
        return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError):
        return None


def _bodies_and_attachments(
    payload: dict[str, Any],
) -> tuple[str | None, str | None, list[EmailAttachment]]:
    body_text: str | None = None
    body_html: str | None = None
    attachments: list[EmailAttachment] = []

    for part in _walk_parts(payload):
        body = part.get("body") or {}
        mime_type = part.get("mimeType") or ""
        filename = part.get("filename") or ""

        if filename and body.get("attachmentId"):
            headers = {h.get("name", "").lower(): h.get("value", "") for h in part.get("headers") or []}
            content_id = headers.get("content-id", "").strip("<>") or None
            attachments.append(
                EmailAttachment(
                    id=body["attachmentId"],
                    filename=filename,
                    mime_type=mime_type or None,
                    size=int(body.get("size") or 0),
                    inline=headers.get("content-disposition", "").lower().startswith("inline"),
                    content_id=content_id,
                )
            )
            continue

        if mime_type == "text/plain" and body_text is None:
            body_text = _decode_body(body.get("data"))
        elif mime_type == "text/html" and body_html is None:
            body_html = _decode_body(body.get("data"))

    return body_text, body_html, attachments


def message_to_raw_email(message: dict[str, Any]) -> RawEmailMessage:
    """Convert a Gmail API message (format=full) to a RawEmailMessage.

    Args:
        message: Gmail API message dict.

    Returns:
        RawEmailMessage: Parsed message with bodies, participants and labels.
    """

    hm = _header_map(message)

    label_ids = message.get("labelIds") or []
    if not isinstance(label_ids, list):
        label_ids = []
    labels = [str(x) for x in label_ids if isinstance(x, str)]

    from_addrs = _parse_address_list(hm.get("from"))
    body_text, body_html, attachments = _bodies_and_attachments(message.get("payload") or {})

    return RawEmailMessage(
        id=str(message.get("id") or ""),
        thread_id=str(message.get("threadId") or "") or None,
        subject=hm.get("subject") or "",
        snippet=message.get("snippet") or "",
        sender=from_addrs[0] if from_addrs else None,
        to=_parse_address_list(hm.get("to")),
        cc=_parse_address_list(hm.get("cc")),
        bcc=_parse_address_list(hm.get("bcc")),
        is_read="UNREAD" not in labels,
        is_important="IMPORTANT" in labels,
        body_text=body_text,
        body_html=body_html,
        labels=labels,
        attachments=attachments,
        date=_iso_date(message, hm.get("date")),
    )


def contact_query(contact_email: str) -> str:
    """Gmail search query matching every message to or from ``contact_email``."""
    return f"from:{contact_email} OR to:{contact_email} OR cc:{contact_email} OR bcc:{contact_email}"
