"""Thread grouping for contact emails.

Emails are grouped strictly by the provider's thread id. Subject text is never
a grouping signal: two emails with the same subject but no shared real thread
id stay standalone.
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

import structlog

from contact_timeline.cache import TimestampCache
from contact_timeline.config import Settings
from contact_timeline.models import EmailActivity, EmailThreadActivity, thread_activity_id

logger = structlog.get_logger()

GroupedEmail = EmailActivity | EmailThreadActivity

# Thread ids minted locally before the provider assigned a real one.
PLACEHOLDER_THREAD_PREFIXES: tuple[str, ...] = ("optimistic-", "subject-", "new-conversation-")
PLACEHOLDER_THREAD_IDS: frozenset[str] = frozenset({"reply-thread"})

_KEY_ID_LIMIT = 200


def is_real_thread_id(thread_id: str | None) -> bool:
    """Whether ``thread_id`` was assigned by the provider and may group emails."""

    if not thread_id or not thread_id.strip():
        return False
    if thread_id in PLACEHOLDER_THREAD_IDS:
        return False
    return not thread_id.startswith(PLACEHOLDER_THREAD_PREFIXES)


def grouping_cache_key(emails: Sequence[EmailActivity]) -> str:
    ids = ",".join(sorted(email.id for email in emails))
    return f"{len(emails)}-{ids[:_KEY_ID_LIMIT]}"


@dataclass
class _CachedGrouping:
    members: dict[str, EmailActivity]
    result: list[GroupedEmail]
    created_at: float


class ThreadGroupingEngine:
    """Collapses multi-message conversations into ``email_thread`` activities.

    Results are cached per input set. The key is a truncated id list, so every
    hit is validated against the exact stored members before it is returned.
    """

    def __init__(
        self,
        timestamps: TimestampCache | None = None,
        settings: Settings | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ) -> None:
        from contact_timeline.config import get_settings

        self.settings = settings or get_settings()
        self._timestamps = timestamps or TimestampCache(settings=self.settings)
        self._ttl = self.settings.thread_cache_ttl_seconds
        self._max_entries = self.settings.thread_cache_max_entries
        self._sweep_probability = self.settings.thread_cache_sweep_probability
        self._clock = clock
        self._rng = rng or random.Random()
        self._cache: dict[str, _CachedGrouping] = {}

    def group(self, emails: Sequence[EmailActivity]) -> list[GroupedEmail]:
        """Group ``emails`` by real thread id.

        Args:
            emails: Email activities of one contact.

        Returns:
            Standalone emails and synthesized threads, in no significant order.
        """

        key = grouping_cache_key(emails)
        members = {email.id: email for email in emails}

        cached = self._cache.get(key)
        if cached is not None and cached.members == members:
            return list(cached.result)

        result = self._group_uncached(emails)
        self._cache[key] = _CachedGrouping(members=members, result=result, created_at=self._clock())

        if self._rng.random() < self._sweep_probability:
            self.sweep()

        return list(result)

    def sweep(self) -> None:
        """Drop expired entries, then the oldest half if still over capacity."""

        now = self._clock()
        expired = [k for k, entry in self._cache.items() if now - entry.created_at > self._ttl]
        for k in expired:
            del self._cache[k]

        if len(self._cache) > self._max_entries:
            by_age = sorted(self._cache.items(), key=lambda item: item[1].created_at)
            for k, _ in by_age[: len(by_age) // 2]:
                del self._cache[k]

        logger.debug("thread_cache_swept", expired=len(expired), size=len(self._cache))

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)

    def _group_uncached(self, emails: Sequence[EmailActivity]) -> list[GroupedEmail]:
        by_thread: dict[str, list[EmailActivity]] = {}
        result: list[GroupedEmail] = []

        for email in emails:
            if is_real_thread_id(email.thread_id):
                by_thread.setdefault(email.thread_id, []).append(email)  # type: ignore[arg-type]
            else:
                result.append(email)

        threads = 0
        for thread_id, members in by_thread.items():
            if len(members) == 1:
                result.append(members[0])
                continue
            result.append(self._build_thread(thread_id, members))
            threads += 1

        logger.debug("emails_grouped", emails=len(emails), threads=threads, activities=len(result))
        return result

    def _build_thread(self, thread_id: str, members: list[EmailActivity]) -> EmailThreadActivity:
        ordered = sorted(members, key=lambda email: self._timestamps.timestamp(email.timestamp))
        latest = ordered[-1]

        return EmailThreadActivity(
            id=thread_activity_id(thread_id),
            timestamp=latest.timestamp,
            is_pinned=any(email.is_pinned for email in ordered),
            content=latest.content,
            subject=latest.subject,
            thread_id=thread_id,
            sender=latest.sender,
            to=latest.to,
            cc=latest.cc,
            bcc=latest.bcc,
            snippet=latest.snippet,
            is_read=latest.is_read,
            is_important=latest.is_important,
            body_text=latest.body_text,
            body_html=latest.body_html,
            labels=latest.labels,
            attachments=latest.attachments,
            emails_in_thread=ordered,
            thread_email_count=len(ordered),
            latest_email=latest,
        )
