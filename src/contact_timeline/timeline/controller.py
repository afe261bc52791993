"""Per-contact timeline controller.

This is the entry point UI code talks to. It wires the activity source, the
email sync coordinator and the merger together for one active contact,
auto-initializes email loading, and turns sync-complete notifications into
throttled refreshes.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

import structlog

from contact_timeline.config import Settings
from contact_timeline.models import SyncStatus
from contact_timeline.sources import ActivitySourceAdapter, ActivityStore, PinnedItems
from contact_timeline.sync import EmailSyncCoordinator, SyncCompleteEvent
from contact_timeline.timeline.merger import MergedActivity, TimelineMerger, oldest_email_date
from contact_timeline.utils import Throttle

logger = structlog.get_logger()

ACTIVITIES_ERROR = "Failed to load activities"


@dataclass(frozen=True)
class TimelineSnapshot:
    """The merged timeline of one contact plus its loading and sync metadata."""

    activities: list[MergedActivity] = field(default_factory=list)
    loading: bool = False
    loading_more: bool = False
    error: str | None = None
    emails_count: int = 0
    internal_count: int = 0
    has_more_emails: bool = False
    sync_status: SyncStatus = SyncStatus.IDLE
    oldest_email_date: str | None = None


SnapshotListener = Callable[[TimelineSnapshot], None]


class TimelineController:
    """Combined, de-duplicated and sorted timeline for the active contact.

    Usage::

        controller = TimelineController(
            coordinator, activity_store, pinned, user_id="u1",
            contact_id="c1", contact_email="jane@example.com",
        )
        await controller.start()
        snapshot = controller.snapshot()
        await controller.load_more_emails()
    """

    def __init__(
        self,
        coordinator: EmailSyncCoordinator,
        activity_store: ActivityStore,
        pinned: PinnedItems | None = None,
        *,
        user_id: str | None = None,
        contact_id: str | None = None,
        contact_email: str | None = None,
        include_emails: bool = True,
        auto_initialize: bool = True,
        merger: TimelineMerger | None = None,
        settings: Settings | None = None,
    ) -> None:
        from contact_timeline.config import get_settings

        self.settings = settings or get_settings()
        self.coordinator = coordinator
        self.merger = merger or TimelineMerger(settings=self.settings)
        self.user_id = user_id
        self.contact_id = contact_id
        self.contact_email = contact_email
        self.include_emails = include_emails
        self.auto_initialize = auto_initialize

        self._activities = ActivitySourceAdapter(activity_store)
        self._pinned = pinned
        self._initialized_keys: set[str] = set()
        self._listeners: list[SnapshotListener] = []
        self._unsubscribe: Callable[[], None] | None = None
        self._unsubscribe_reloads: Callable[[], None] | None = None
        self._throttle = Throttle(self._refresh_after_sync, self.settings.throttle_window_ms)

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Subscribe to sync notifications and auto-initialize the contact."""
        if self._unsubscribe is None:
            self._unsubscribe = self.coordinator.subscribe(self._on_sync_complete)
            self._unsubscribe_reloads = self.coordinator.subscribe_reloads(self._notify_if_current)
        await self._auto_initialize()

    async def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._unsubscribe_reloads is not None:
            self._unsubscribe_reloads()
            self._unsubscribe_reloads = None
        self._throttle.cancel()

    async def __aenter__(self) -> "TimelineController":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def set_contact(self, contact_id: str | None, contact_email: str | None) -> None:
        """Switch the active contact; results for the previous one are ignored."""
        self.contact_id = contact_id
        self.contact_email = contact_email
        logger.info("timeline_contact_changed", contact_id=contact_id, contact_email=contact_email)
        await self._auto_initialize()
        self._notify()

    def add_listener(self, listener: SnapshotListener) -> Callable[[], None]:
        """Call ``listener`` with a fresh snapshot whenever the timeline changes."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # ── Read ──────────────────────────────────────────────────────────────────

    def snapshot(self) -> TimelineSnapshot:
        """Recompute the merged timeline from the current state of every source."""

        internal_read = self._activities.read(self.contact_id)
        internal = self.merger.transform_internal(internal_read.activities)

        contact_email = self.contact_email
        raw_emails = (
            self.coordinator.get_emails_for_contact(contact_email)
            if contact_email and self.include_emails
            else []
        )
        email_activities = self.merger.transform_emails(raw_emails, self._pin_lookup(contact_email))
        grouped = self.merger.group_emails(email_activities)
        activities = self.merger.merge(internal, grouped)

        if contact_email:
            emails_loading = self.coordinator.get_loading_state(contact_email)
            loading_more = self.coordinator.get_loading_more_state(contact_email)
            has_more = self.coordinator.has_more_emails(contact_email)
            sync_status = self.coordinator.get_sync_state(contact_email)
        else:
            emails_loading = loading_more = has_more = False
            sync_status = SyncStatus.IDLE

        return TimelineSnapshot(
            activities=activities,
            loading=internal_read.is_loading or emails_loading,
            loading_more=loading_more,
            error=ACTIVITIES_ERROR if internal_read.is_error else None,
            emails_count=len(raw_emails),
            internal_count=len(internal),
            has_more_emails=has_more,
            sync_status=sync_status,
            oldest_email_date=oldest_email_date(raw_emails),
        )

    # ── Actions ───────────────────────────────────────────────────────────────

    async def load_more_emails(self) -> None:
        contact_email = self.contact_email
        if not contact_email:
            return
        await self.coordinator.load_more_emails(contact_email)
        self._notify_if_current(contact_email)

    async def sync_email_history(self, *, after_email_send: bool = False) -> None:
        contact_email = self.contact_email
        if not contact_email or not self.user_id:
            return
        await self.coordinator.sync_contact_history(
            contact_email, self.user_id, after_email_send=after_email_send
        )
        self._notify_if_current(contact_email)

    async def refresh_emails(self) -> None:
        contact_email = self.contact_email
        if not contact_email or not self.user_id:
            return
        await self.coordinator.refresh_contact_emails(contact_email, self.user_id)
        self._notify_if_current(contact_email)

    async def flush(self) -> None:
        """Run a deferred throttled refresh now and wait for it."""
        await self._throttle.flush()

    # ── Internal ──────────────────────────────────────────────────────────────

    async def _auto_initialize(self) -> None:
        contact_email = self.contact_email
        if not self.auto_initialize or not self.include_emails or not contact_email or not self.user_id:
            return

        init_key = f"{contact_email}-{self.user_id}"
        if init_key in self._initialized_keys:
            return
        if self.coordinator.get_emails_for_contact(contact_email) or self.coordinator.get_loading_state(
            contact_email
        ):
            return

        logger.info("timeline_emails_initializing", contact_email=contact_email)
        self._initialized_keys.add(init_key)
        await self.coordinator.initialize_contact_emails(contact_email, self.user_id)
        self._notify_if_current(contact_email)

    def _on_sync_complete(self, event: SyncCompleteEvent) -> None:
        if event.contact_email != self.contact_email:
            return
        if self.user_id and event.user_id != self.user_id:
            return
        self._throttle(event.contact_email)

    async def _refresh_after_sync(self, contact_email: str) -> None:
        if contact_email != self.contact_email or not self.user_id:
            logger.info("stale_sync_refresh_skipped", contact_email=contact_email)
            return
        await self.coordinator.refresh_contact_emails(contact_email, self.user_id)
        self._notify_if_current(contact_email)

    def _pin_lookup(self, contact_email: str | None) -> Callable[[str], bool]:
        pinned = self._pinned
        if pinned is None or not contact_email:
            return lambda _message_id: False

        def is_pinned(message_id: str) -> bool:
            try:
                return pinned.is_email_pinned(contact_email, message_id)
            except Exception as exc:  # noqa: BLE001
                logger.warning("pinned_lookup_failed", message_id=message_id, error=str(exc))
                return False

        return is_pinned

    def _notify_if_current(self, contact_email: str) -> None:
        if contact_email != self.contact_email:
            logger.info("stale_timeline_update_discarded", contact_email=contact_email)
            return
        self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as exc:  # noqa: BLE001
                logger.exception(
                    "timeline_listener_failed", contact_email=self.contact_email, error=str(exc)
                )
