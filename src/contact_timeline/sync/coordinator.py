"""Per-contact email paging and sync state.

The coordinator owns the loaded email page of every contact along with its
loading flags and sync status (idle -> syncing -> completed | failed). Fetch
errors are caught here and turned into state; nothing above this layer sees
an exception from the mail fetcher.
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog

from contact_timeline.cache import parse_timestamp_ms
from contact_timeline.config import Settings
from contact_timeline.models import RawEmailMessage, SyncStatus
from contact_timeline.sync.events import SyncCompleteEvent, SyncEventChannel, SyncListener
from contact_timeline.sync.fetcher import EmailPage, MailFetcher
from contact_timeline.utils import retry_on_failure

logger = structlog.get_logger()

OPTIMISTIC_ID_MARKER = "optimistic-"
# An optimistic email matches its synced copy if both are this close in time.
_DUPLICATE_WINDOW_MS = 60_000


@dataclass
class ContactEmailState:
    """Everything the coordinator knows about one contact's emails."""

    generation: int
    emails: list[RawEmailMessage] = field(default_factory=list)
    cursor: str | None = None
    has_more: bool = False
    total_count: int = 0
    loading: bool = False
    loading_more: bool = False
    syncing: bool = False
    sync_status: SyncStatus = SyncStatus.IDLE
    status_version: int = 0
    fetch_error: str | None = None
    sync_error: str | None = None
    last_sync_at: datetime | None = None
    optimistic_ids: set[str] = field(default_factory=set)
    initialized: bool = False


class EmailSyncCoordinator:
    """Loads, pages and syncs contact emails through a :class:`MailFetcher`.

    Calls for the same contact and operation that overlap are joined: the
    second caller awaits the request already in flight instead of issuing a
    duplicate. Results that resolve after the contact was refreshed or
    cleared are discarded.
    """

    def __init__(
        self,
        fetcher: MailFetcher,
        settings: Settings | None = None,
        *,
        events: SyncEventChannel | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        from contact_timeline.config import get_settings

        self.settings = settings or get_settings()
        self.events = events or SyncEventChannel()
        self._fetcher = fetcher
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._states: dict[str, ContactEmailState] = {}
        self._in_flight: dict[tuple[str, str], asyncio.Future[None]] = {}
        self._reset_handles: dict[str, asyncio.TimerHandle] = {}
        self._reload_tasks: dict[str, asyncio.Future[None]] = {}
        self._reload_listeners: list[Callable[[str], None]] = []
        self._generations = itertools.count(1)
        self.current_user_id: str | None = None
        logger.info("email_sync_coordinator_initialized", emails_per_page=self.settings.emails_per_page)

    # ── Getters ───────────────────────────────────────────────────────────────

    def get_emails_for_contact(self, contact_email: str) -> list[RawEmailMessage]:
        state = self._states.get(contact_email)
        return list(state.emails) if state else []

    def get_loading_state(self, contact_email: str) -> bool:
        state = self._states.get(contact_email)
        return bool(state and state.loading)

    def get_loading_more_state(self, contact_email: str) -> bool:
        state = self._states.get(contact_email)
        return bool(state and state.loading_more)

    def has_more_emails(self, contact_email: str) -> bool:
        state = self._states.get(contact_email)
        return bool(state and state.has_more)

    def get_sync_state(self, contact_email: str) -> SyncStatus:
        state = self._states.get(contact_email)
        return state.sync_status if state else SyncStatus.IDLE

    def get_email_count(self, contact_email: str) -> int:
        state = self._states.get(contact_email)
        return len(state.emails) if state else 0

    def get_fetch_error(self, contact_email: str) -> str | None:
        state = self._states.get(contact_email)
        return state.fetch_error if state else None

    def get_sync_error(self, contact_email: str) -> str | None:
        state = self._states.get(contact_email)
        return state.sync_error if state else None

    def get_errors(self, contact_email: str) -> dict[str, str | None]:
        return {
            "fetch": self.get_fetch_error(contact_email),
            "sync": self.get_sync_error(contact_email),
        }

    def get_last_sync_at(self, contact_email: str) -> datetime | None:
        state = self._states.get(contact_email)
        return state.last_sync_at if state else None

    def subscribe(self, listener: SyncListener) -> Callable[[], None]:
        """Subscribe to sync-complete notifications."""
        return self.events.subscribe(listener)

    def subscribe_reloads(self, listener: Callable[[str], None]) -> Callable[[], None]:
        """Call ``listener(contact_email)`` after a post-sync reload replaced a page."""
        self._reload_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._reload_listeners:
                self._reload_listeners.remove(listener)

        return unsubscribe

    # ── Main actions ──────────────────────────────────────────────────────────

    async def initialize_contact_emails(self, contact_email: str, user_id: str) -> None:
        """Load the first page of emails for a contact."""
        self.current_user_id = user_id
        await self._run_once("initialize", contact_email, lambda: self._load_first_page(contact_email))

    async def refresh_contact_emails(self, contact_email: str, user_id: str) -> None:
        """Re-fetch the first page, replacing the loaded page only on success."""
        self.current_user_id = user_id
        running = self._in_flight.get(("refresh", contact_email))
        if running is not None and not running.done():
            logger.debug("duplicate_request_joined", operation="refresh", contact_email=contact_email)
            await asyncio.shield(running)
            return

        state = self._state(contact_email)
        # Anything still in flight for the old page is now stale.
        state.generation = next(self._generations)
        state.loading_more = False
        self._in_flight.pop(("load_more", contact_email), None)
        await self._run_once("refresh", contact_email, lambda: self._load_first_page(contact_email))

    async def load_more_emails(self, contact_email: str) -> None:
        """Fetch the next page if there is one and none is already loading."""
        state = self._states.get(contact_email)
        if state is None or state.loading_more or not state.has_more:
            return
        await self._run_once("load_more", contact_email, lambda: self._load_next_page(contact_email))

    async def sync_contact_history(
        self, contact_email: str, user_id: str, *, after_email_send: bool = False
    ) -> None:
        """Backfill the contact's full history, then publish a sync-complete event.

        A successful sync also schedules a reload of the contact's first page
        after ``sync_reload_delay_seconds``. With ``after_email_send`` the
        reload waits ``sync_reload_after_send_delay_seconds`` instead, and
        optimistic emails older than a minute are dropped right away.
        """
        self.current_user_id = user_id
        await self._run_once(
            "sync_history",
            contact_email,
            lambda: self._sync_history(contact_email, user_id, after_email_send),
        )

    async def preload_frequent_contacts(self) -> None:
        """Load a short first page for the most recently synced contacts.

        Contacts that already have emails loaded are skipped. Failures are
        logged and otherwise ignored.
        """
        if self.current_user_id is None:
            return

        synced = [(contact, state) for contact, state in self._states.items() if state.last_sync_at]
        synced.sort(key=lambda item: item[1].last_sync_at, reverse=True)
        targets = [
            contact
            for contact, state in synced[: self.settings.preload_contact_limit]
            if not state.emails
        ]
        if not targets:
            return

        logger.info("frequent_contacts_preloading", contacts=len(targets))
        await asyncio.gather(*(self._preload(contact) for contact in targets))

    # ── Optimistic emails ─────────────────────────────────────────────────────

    def add_optimistic_email(self, contact_email: str, email: RawEmailMessage) -> None:
        """Show a just-sent email before the provider has it."""
        state = self._state(contact_email)
        state.emails.insert(0, email)
        state.optimistic_ids.add(email.id)
        logger.info(
            "optimistic_email_added",
            contact_email=contact_email,
            email_id=email.id,
            subject=email.subject,
        )
        self.deduplicate_emails(contact_email)

    def remove_optimistic_email(self, contact_email: str, email_id: str) -> None:
        state = self._states.get(contact_email)
        if state is None:
            return
        state.emails = [e for e in state.emails if e.id != email_id]
        state.optimistic_ids.discard(email_id)
        logger.info("optimistic_email_removed", contact_email=contact_email, email_id=email_id)

    def cleanup_stale_optimistic_emails(
        self, contact_email: str, max_age_minutes: float | None = None
    ) -> int:
        """Drop optimistic emails older than ``max_age_minutes``.

        Returns:
            Number of emails removed.
        """
        state = self._states.get(contact_email)
        if state is None or not state.optimistic_ids or not state.emails:
            return 0

        if max_age_minutes is None:
            max_age_minutes = self.settings.optimistic_email_max_age_minutes
        cutoff_ms = self._now().timestamp() * 1000 - max_age_minutes * 60_000

        stale = {
            e.id
            for e in state.emails
            if e.id in state.optimistic_ids
            and OPTIMISTIC_ID_MARKER in e.id
            # Unparseable dates parse to 0 and count as stale.
            and parse_timestamp_ms(e.date) < cutoff_ms
        }
        if stale:
            state.emails = [e for e in state.emails if e.id not in stale]
            state.optimistic_ids -= stale
            logger.info(
                "stale_optimistic_emails_removed",
                contact_email=contact_email,
                removed_ids=sorted(stale),
                max_age_minutes=max_age_minutes,
            )
        return len(stale)

    def deduplicate_emails(self, contact_email: str) -> int:
        """Remove optimistic emails whose synced copy has arrived.

        Returns:
            Number of optimistic emails removed.
        """
        state = self._states.get(contact_email)
        if state is None or not state.optimistic_ids:
            return 0

        optimistic = [e for e in state.emails if e.id in state.optimistic_ids]
        real = [e for e in state.emails if e.id not in state.optimistic_ids]
        duplicates = {o.id for o in optimistic if any(_is_same_message(o, r) for r in real)}

        if duplicates:
            state.emails = [e for e in state.emails if e.id not in duplicates]
            state.optimistic_ids -= duplicates
            logger.info(
                "duplicate_optimistic_emails_removed",
                contact_email=contact_email,
                duplicate_ids=sorted(duplicates),
            )
        return len(duplicates)

    # ── Cache management ──────────────────────────────────────────────────────

    def perform_global_cleanup(self) -> None:
        """Bound memory: evict old contacts, trim long pages, drop stale optimistic emails."""
        max_contacts = self.settings.max_contacts_in_cache
        if len(self._states) > max_contacts:
            epoch = datetime.min.replace(tzinfo=timezone.utc)
            by_last_sync = sorted(
                self._states.items(),
                key=lambda item: item[1].last_sync_at or epoch,
            )
            evicted = [contact for contact, _ in by_last_sync[: len(self._states) - max_contacts]]
            for contact in evicted:
                self.clear_contact_emails(contact)
            logger.info("contacts_evicted_from_cache", count=len(evicted))

        max_emails = self.settings.max_emails_per_contact
        for contact, state in self._states.items():
            if len(state.emails) > max_emails:
                trimmed = len(state.emails) - max_emails
                state.emails = sorted(
                    state.emails, key=lambda e: parse_timestamp_ms(e.date), reverse=True
                )[:max_emails]
                logger.info("contact_emails_trimmed", contact_email=contact, trimmed=trimmed)

        for contact in list(self._states):
            self.cleanup_stale_optimistic_emails(contact)

    def clear_contact_emails(self, contact_email: str) -> None:
        self._states.pop(contact_email, None)
        self._cancel_status_reset(contact_email)
        self._cancel_reload(contact_email)

    def clear_errors(self, contact_email: str) -> None:
        state = self._states.get(contact_email)
        if state is not None:
            state.fetch_error = None
            state.sync_error = None

    def reset(self) -> None:
        for contact in list(self._reset_handles):
            self._cancel_status_reset(contact)
        for contact in list(self._reload_tasks):
            self._cancel_reload(contact)
        self._states.clear()
        self.current_user_id = None

    # ── Internal ──────────────────────────────────────────────────────────────

    def _state(self, contact_email: str) -> ContactEmailState:
        state = self._states.get(contact_email)
        if state is None:
            state = ContactEmailState(generation=next(self._generations))
            self._states[contact_email] = state
        return state

    def _is_live(self, contact_email: str, state: ContactEmailState) -> bool:
        return self._states.get(contact_email) is state

    def _is_current(self, contact_email: str, state: ContactEmailState, generation: int) -> bool:
        return self._is_live(contact_email, state) and state.generation == generation

    async def _run_once(
        self, operation: str, contact_email: str, factory: Callable[[], Awaitable[None]]
    ) -> None:
        key = (operation, contact_email)
        running = self._in_flight.get(key)
        if running is not None and not running.done():
            logger.debug("duplicate_request_joined", operation=operation, contact_email=contact_email)
            await asyncio.shield(running)
            return

        task = asyncio.ensure_future(factory())
        self._in_flight[key] = task

        def release(done: asyncio.Future[None]) -> None:
            # A refresh may already have replaced this entry.
            if self._in_flight.get(key) is done:
                del self._in_flight[key]

        task.add_done_callback(release)
        await asyncio.shield(task)

    def _begin(self, state: ContactEmailState) -> None:
        state.sync_status = SyncStatus.SYNCING
        state.status_version += 1

    def _finish(self, contact_email: str, state: ContactEmailState, status: SyncStatus) -> None:
        state.sync_status = status
        state.status_version += 1
        self._schedule_status_reset(contact_email, state)

    async def _load_first_page(self, contact_email: str) -> None:
        state = self._state(contact_email)
        generation = state.generation
        state.loading = True
        state.fetch_error = None
        self._begin(state)

        try:
            page = await self._fetcher.fetch_page(contact_email, None, self.settings.emails_per_page)
        except Exception as exc:  # noqa: BLE001
            if self._is_current(contact_email, state, generation):
                state.fetch_error = str(exc) or "Failed to load emails"
                state.loading = False
                self._finish(contact_email, state, SyncStatus.FAILED)
            logger.exception("email_page_load_failed", contact_email=contact_email, error=str(exc))
            return

        if not self._is_current(contact_email, state, generation):
            logger.info("stale_email_page_discarded", contact_email=contact_email)
            return

        optimistic = [e for e in state.emails if e.id in state.optimistic_ids]
        state.emails = _merge_unique(optimistic, page.emails)
        self._apply_pagination(state, page)
        state.initialized = True
        state.loading = False
        self.deduplicate_emails(contact_email)
        self.cleanup_stale_optimistic_emails(contact_email, 1)
        self._finish(contact_email, state, SyncStatus.COMPLETED)
        logger.info(
            "email_page_loaded",
            contact_email=contact_email,
            count=len(page.emails),
            has_more=state.has_more,
        )

    async def _load_next_page(self, contact_email: str) -> None:
        state = self._state(contact_email)
        generation = state.generation
        state.loading_more = True
        self._begin(state)

        try:
            page = await self._fetcher.fetch_page(
                contact_email, state.cursor, self.settings.emails_per_page
            )
        except Exception as exc:  # noqa: BLE001
            if self._is_current(contact_email, state, generation):
                state.fetch_error = str(exc) or "Failed to load more emails"
                state.loading_more = False
                self._finish(contact_email, state, SyncStatus.FAILED)
            logger.exception("email_next_page_failed", contact_email=contact_email, error=str(exc))
            return

        if not self._is_current(contact_email, state, generation):
            logger.info("stale_email_page_discarded", contact_email=contact_email)
            return

        state.emails = _merge_unique(state.emails, page.emails)
        self._apply_pagination(state, page)
        state.loading_more = False
        self.deduplicate_emails(contact_email)
        self._finish(contact_email, state, SyncStatus.COMPLETED)
        logger.info(
            "email_next_page_loaded",
            contact_email=contact_email,
            count=len(page.emails),
            total_loaded=len(state.emails),
            has_more=state.has_more,
        )

    async def _sync_history(self, contact_email: str, user_id: str, after_email_send: bool) -> None:
        state = self._state(contact_email)
        state.syncing = True
        state.sync_error = None
        self._begin(state)

        sync = retry_on_failure(
            max_retries=self.settings.max_retries,
            delay=self.settings.retry_delay_seconds,
        )(self._fetcher.sync_history)

        try:
            await sync(contact_email, user_id)
        except Exception as exc:  # noqa: BLE001
            logger.exception("email_history_sync_failed", contact_email=contact_email, error=str(exc))
            if self._is_live(contact_email, state):
                state.sync_error = str(exc) or "Failed to sync emails"
                state.syncing = False
                self._finish(contact_email, state, SyncStatus.FAILED)
            return

        if not self._is_live(contact_email, state):
            logger.info("stale_history_sync_discarded", contact_email=contact_email)
            return

        state.syncing = False
        state.last_sync_at = self._now()
        if after_email_send:
            self.cleanup_stale_optimistic_emails(contact_email, 1)
        self._finish(contact_email, state, SyncStatus.COMPLETED)
        logger.info("email_history_synced", contact_email=contact_email, after_email_send=after_email_send)
        self._schedule_reload(contact_email, user_id, state, after_email_send)
        self.events.publish(SyncCompleteEvent(contact_email=contact_email, user_id=user_id))

    async def _preload(self, contact_email: str) -> None:
        state = self._state(contact_email)
        generation = state.generation
        try:
            page = await self._fetcher.fetch_page(contact_email, None, self.settings.preload_page_size)
        except Exception as exc:  # noqa: BLE001
            logger.warning("contact_preload_failed", contact_email=contact_email, error=str(exc))
            return

        if not self._is_current(contact_email, state, generation) or state.emails:
            return
        state.emails = list(page.emails)
        self._apply_pagination(state, page)
        state.initialized = True
        logger.debug("contact_preloaded", contact_email=contact_email, count=len(page.emails))

    def _schedule_reload(
        self, contact_email: str, user_id: str, state: ContactEmailState, after_email_send: bool
    ) -> None:
        delay = self.settings.sync_reload_delay_seconds
        if delay is None:
            return
        if after_email_send:
            delay = self.settings.sync_reload_after_send_delay_seconds

        self._cancel_reload(contact_email)
        task = asyncio.ensure_future(
            self._reload_after_sync(contact_email, user_id, state, delay, after_email_send)
        )
        self._reload_tasks[contact_email] = task

        def release(done: asyncio.Future[None]) -> None:
            if self._reload_tasks.get(contact_email) is done:
                del self._reload_tasks[contact_email]

        task.add_done_callback(release)

    async def _reload_after_sync(
        self,
        contact_email: str,
        user_id: str,
        state: ContactEmailState,
        delay: float,
        after_email_send: bool,
    ) -> None:
        await asyncio.sleep(delay)
        if not self._is_live(contact_email, state):
            return

        # Synced copies replace whatever was shown optimistically.
        if state.optimistic_ids:
            state.emails = [e for e in state.emails if e.id not in state.optimistic_ids]
            state.optimistic_ids.clear()

        await self.refresh_contact_emails(contact_email, user_id)
        if not self._is_live(contact_email, state):
            return
        self.deduplicate_emails(contact_email)
        logger.info(
            "emails_reloaded_after_sync",
            contact_email=contact_email,
            count=len(state.emails),
            silent=after_email_send,
        )
        for listener in list(self._reload_listeners):
            try:
                listener(contact_email)
            except Exception as exc:  # noqa: BLE001
                logger.exception(
                    "email_reload_listener_failed", contact_email=contact_email, error=str(exc)
                )

    def _cancel_reload(self, contact_email: str) -> None:
        task = self._reload_tasks.pop(contact_email, None)
        if task is not None:
            task.cancel()

    @staticmethod
    def _apply_pagination(state: ContactEmailState, page: EmailPage) -> None:
        state.cursor = page.next_cursor
        state.has_more = page.has_more
        state.total_count = page.total_count if page.total_count is not None else len(state.emails)

    def _schedule_status_reset(self, contact_email: str, state: ContactEmailState) -> None:
        delay = self.settings.sync_status_reset_seconds
        if delay is None:
            return
        self._cancel_status_reset(contact_email)
        version = state.status_version

        def reset_to_idle() -> None:
            self._reset_handles.pop(contact_email, None)
            if self._states.get(contact_email) is state and state.status_version == version:
                state.sync_status = SyncStatus.IDLE

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._reset_handles[contact_email] = loop.call_later(delay, reset_to_idle)

    def _cancel_status_reset(self, contact_email: str) -> None:
        handle = self._reset_handles.pop(contact_email, None)
        if handle is not None:
            handle.cancel()


def _merge_unique(
    existing: list[RawEmailMessage], incoming: list[RawEmailMessage]
) -> list[RawEmailMessage]:
    seen = {e.id for e in existing}
    merged = list(existing)
    for email in incoming:
        if email.id not in seen:
            seen.add(email.id)
            merged.append(email)
    return merged


def _is_same_message(optimistic: RawEmailMessage, real: RawEmailMessage) -> bool:
    if optimistic.subject != real.subject:
        return False
    close_in_time = (
        abs(parse_timestamp_ms(optimistic.date) - parse_timestamp_ms(real.date)) < _DUPLICATE_WINDOW_MS
    )
    same_sender = (optimistic.sender.email if optimistic.sender else None) == (
        real.sender.email if real.sender else None
    )
    return close_in_time or (same_sender and optimistic.to == real.to)
