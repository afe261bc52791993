"""Merging internal activities and threaded emails into one ordered timeline."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

import structlog

from contact_timeline.cache import ActivityTransformCache, TimestampCache, transform_key
from contact_timeline.config import Settings
from contact_timeline.models import EmailActivity, RawEmailMessage, RawInternalActivity
from contact_timeline.threads import ThreadGroupingEngine
from contact_timeline.threads.grouping import GroupedEmail
from contact_timeline.timeline.transform import (
    InternalTimelineActivity,
    email_to_activity,
    internal_to_activity,
)

logger = structlog.get_logger()

MergedActivity = InternalTimelineActivity | GroupedEmail


@dataclass
class TimelineCaches:
    """The process-wide caches, built once and shared by every controller."""

    timestamps: TimestampCache
    transforms: ActivityTransformCache
    threads: ThreadGroupingEngine

    @classmethod
    def create(cls, settings: Settings | None = None) -> "TimelineCaches":
        timestamps = TimestampCache(settings=settings)
        return cls(
            timestamps=timestamps,
            transforms=ActivityTransformCache(settings=settings),
            threads=ThreadGroupingEngine(timestamps, settings=settings),
        )

    def clear(self) -> None:
        self.timestamps.clear()
        self.transforms.clear()
        self.threads.clear()


class TimelineMerger:
    """Transforms, threads and orders a contact's activities.

    Every method is synchronous and side-effect free apart from cache writes.
    """

    def __init__(self, caches: TimelineCaches | None = None, settings: Settings | None = None) -> None:
        self.caches = caches or TimelineCaches.create(settings)

    def transform_internal(
        self, activities: Iterable[RawInternalActivity]
    ) -> list[InternalTimelineActivity]:
        transforms = self.caches.transforms
        return [
            transforms.get_or_transform(
                transform_key("internal", raw.id, raw.timestamp, raw.is_pinned),
                raw,
                internal_to_activity,
            )
            for raw in activities
        ]

    def transform_emails(
        self,
        emails: Iterable[RawEmailMessage],
        is_pinned: Callable[[str], bool],
    ) -> list[EmailActivity]:
        transforms = self.caches.transforms
        result: list[EmailActivity] = []
        for raw in emails:
            pinned = is_pinned(raw.id)
            result.append(
                transforms.get_or_transform(
                    transform_key("email", raw.id, raw.date, pinned),
                    raw,
                    lambda r, p=pinned: email_to_activity(r, p),
                )
            )
        return result

    def group_emails(self, emails: Sequence[EmailActivity]) -> list[GroupedEmail]:
        if not emails:
            return []
        return self.caches.threads.group(emails)

    def merge(
        self,
        internal: Sequence[InternalTimelineActivity],
        emails: Sequence[GroupedEmail],
    ) -> list[MergedActivity]:
        """Concatenate both sources, drop repeated ids and sort."""

        seen: set[str] = set()
        combined: list[MergedActivity] = []
        for activity in [*internal, *emails]:
            if activity.id in seen:
                logger.debug("duplicate_activity_dropped", activity_id=activity.id)
                continue
            seen.add(activity.id)
            combined.append(activity)
        return self.sort(combined)

    def sort(self, activities: Iterable[MergedActivity]) -> list[MergedActivity]:
        """Pinned first, then most recent first; ties keep insertion order."""

        timestamp = self.caches.timestamps.timestamp
        return sorted(activities, key=lambda a: (not a.is_pinned, -timestamp(a.timestamp)))


def oldest_email_date(emails: Sequence[RawEmailMessage]) -> str | None:
    """Date of the last email in the loaded page (pages are newest first)."""

    if not emails:
        return None
    return emails[-1].date or None
