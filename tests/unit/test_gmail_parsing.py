"""Unit tests for Gmail message parsing helpers."""

from contact_timeline.gmail.parsing import contact_query, message_to_raw_email


def test_message_to_raw_email_parses_basic_fields(sample_gmail_message) -> None:
    email = message_to_raw_email(sample_gmail_message)

    assert email.id == "msg123456"
    assert email.thread_id == "thread789"
    assert email.subject == "Q3 report"
    assert email.snippet == "Quarterly numbers attached"
    assert email.sender is not None
    assert email.sender.name == "Jane Doe"
    assert email.sender.email == "jane@example.com"
    assert [a.email for a in email.to] == ["me@example.com", "bob@example.com"]
    assert [a.email for a in email.cc] == ["team@example.com"]
    assert email.is_read is False
    assert email.is_important is True
    assert email.date == "2023-11-14T22:13:20+00:00"


def test_message_to_raw_email_decodes_bodies_and_attachments(sample_gmail_message) -> None:
    email = message_to_raw_email(sample_gmail_message)

    assert email.body_text == "Hello team"
    assert email.body_html == "<p>Hello team</p>"
    assert len(email.attachments) == 1
    assert email.attachments[0].id == "att-1"
    assert email.attachments[0].filename == "report.pdf"
    assert email.attachments[0].size == 2048
    assert email.attachments[0].inline is False


def test_date_header_is_used_without_internal_date(sample_gmail_message) -> None:
    del sample_gmail_message["internalDate"]

    email = message_to_raw_email(sample_gmail_message)

    assert email.date == "2023-11-14T22:13:20+00:00"


def test_read_message_without_thread(sample_gmail_message) -> None:
    sample_gmail_message["labelIds"] = ["INBOX"]
    sample_gmail_message["threadId"] = ""

    email = message_to_raw_email(sample_gmail_message)

    assert email.is_read is True
    assert email.is_important is False
    assert email.thread_id is None


def test_contact_query_matches_every_participant_field() -> None:
    query = contact_query("jane@example.com")

    for field in ("from", "to", "cc", "bcc"):
        assert f"{field}:jane@example.com" in query
