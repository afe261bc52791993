"""Unit tests for the per-contact timeline controller."""

import asyncio

import pytest

from contact_timeline.models import EmailThreadActivity, SyncStatus
from contact_timeline.sources import InMemoryPinnedItems
from contact_timeline.sync import EmailSyncCoordinator, SyncCompleteEvent
from contact_timeline.timeline import ACTIVITIES_ERROR, TimelineController, TimelineSnapshot

JANE = "jane@example.com"
BOB = "bob@example.com"


@pytest.fixture
def coordinator(fetcher, settings) -> EmailSyncCoordinator:
    return EmailSyncCoordinator(fetcher, settings)


@pytest.fixture
def pinned() -> InMemoryPinnedItems:
    return InMemoryPinnedItems()


@pytest.fixture
def controller(coordinator, activity_store, pinned, settings) -> TimelineController:
    return TimelineController(
        coordinator,
        activity_store,
        pinned,
        user_id="u1",
        contact_id="c-jane",
        contact_email=JANE,
        settings=settings,
    )


class TestAutoInitialize:
    """Test suite for automatic email loading."""

    @pytest.mark.asyncio
    async def test_initializes_once_per_contact_and_user(self, controller, fetcher) -> None:
        await controller.start()
        await controller.start()
        await controller.set_contact("c-bob", BOB)
        await controller.set_contact("c-jane", JANE)

        assert [call[0] for call in fetcher.fetch_calls] == [JANE, BOB]

    @pytest.mark.asyncio
    async def test_skips_contact_with_loaded_emails(
        self, coordinator, activity_store, fetcher, make_email, settings
    ) -> None:
        fetcher.mailboxes[JANE] = [make_email("m1")]
        await coordinator.initialize_contact_emails(JANE, "u1")

        controller = TimelineController(
            coordinator, activity_store, user_id="u1", contact_id="c-jane", contact_email=JANE, settings=settings
        )
        await controller.start()

        assert len(fetcher.fetch_calls) == 1

    @pytest.mark.asyncio
    async def test_disabled_emails_never_fetch(self, coordinator, activity_store, fetcher, settings) -> None:
        controller = TimelineController(
            coordinator,
            activity_store,
            user_id="u1",
            contact_id="c-jane",
            contact_email=JANE,
            include_emails=False,
            settings=settings,
        )
        await controller.start()

        assert fetcher.fetch_calls == []
        assert controller.snapshot().emails_count == 0


class TestSnapshot:
    """Test suite for the merged snapshot."""

    @pytest.mark.asyncio
    async def test_merges_activities_and_threads(
        self, controller, activity_store, fetcher, pinned, make_email
    ) -> None:
        activity_store.records["c-jane"] = [
            {"id": "n1", "type": "note", "content": "Met at expo", "timestamp": "2024-01-01T00:00:00Z"},
        ]
        fetcher.mailboxes[JANE] = [
            make_email("m3", date="2024-01-04T00:00:00Z"),
            make_email("m2", thread_id="t1", date="2024-01-03T00:00:00Z"),
            make_email("m1", thread_id="t1", date="2024-01-02T00:00:00Z"),
        ]
        pinned.pin(JANE, ["m1"])

        await controller.start()
        snapshot = controller.snapshot()

        assert [a.id for a in snapshot.activities] == ["thread-t1", "m3", "n1"]
        assert isinstance(snapshot.activities[0], EmailThreadActivity)
        assert snapshot.activities[0].is_pinned is True
        assert snapshot.emails_count == 3
        assert snapshot.internal_count == 1
        assert snapshot.oldest_email_date == "2024-01-02T00:00:00Z"
        assert snapshot.sync_status == SyncStatus.COMPLETED
        assert snapshot.error is None

    @pytest.mark.asyncio
    async def test_activity_failure_degrades_to_emails(
        self, controller, activity_store, fetcher, make_email
    ) -> None:
        activity_store.error = RuntimeError("database locked")
        fetcher.mailboxes[JANE] = [make_email("m1")]

        await controller.start()
        snapshot = controller.snapshot()

        assert snapshot.error == ACTIVITIES_ERROR
        assert [a.id for a in snapshot.activities] == ["m1"]

    @pytest.mark.asyncio
    async def test_failing_pin_lookup_means_unpinned(self, controller, fetcher, make_email) -> None:
        class BrokenPins:
            def is_email_pinned(self, contact_email: str, message_id: str) -> bool:
                raise RuntimeError("pins unavailable")

        controller._pinned = BrokenPins()
        fetcher.mailboxes[JANE] = [make_email("m1")]

        await controller.start()

        assert controller.snapshot().activities[0].is_pinned is False

    def test_no_contact_is_empty(self, coordinator, activity_store, settings) -> None:
        controller = TimelineController(coordinator, activity_store, settings=settings)

        snapshot = controller.snapshot()

        assert snapshot == TimelineSnapshot()

    @pytest.mark.asyncio
    async def test_load_more_notifies_listeners(self, controller, fetcher, make_email) -> None:
        fetcher.mailboxes[JANE] = [make_email(f"m{i:02d}", date=f"2024-01-{28 - i:02d}") for i in range(25)]
        snapshots: list[TimelineSnapshot] = []
        controller.add_listener(snapshots.append)

        await controller.start()
        await controller.load_more_emails()

        assert [s.emails_count for s in snapshots] == [20, 25]
        assert snapshots[-1].has_more_emails is False

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_block_others(self, controller, fetcher, make_email) -> None:
        fetcher.mailboxes[JANE] = [make_email(f"m{i:02d}", date=f"2024-01-{28 - i:02d}") for i in range(25)]
        snapshots: list[TimelineSnapshot] = []

        def broken(snapshot: TimelineSnapshot) -> None:
            raise RuntimeError("render failed")

        controller.add_listener(broken)
        controller.add_listener(snapshots.append)

        await controller.start()
        await controller.load_more_emails()

        assert [s.emails_count for s in snapshots] == [20, 25]


class TestSyncRefresh:
    """Test suite for sync-complete driven refreshes."""

    @pytest.mark.asyncio
    async def test_sync_refreshes_timeline(self, controller, fetcher, make_email) -> None:
        fetcher.mailboxes[JANE] = [make_email("m1", date="2024-01-01T00:00:00Z")]
        fetcher.synced_emails[JANE] = [make_email("m2", date="2024-01-05T00:00:00Z")]

        await controller.start()
        await controller.sync_email_history()
        await controller.flush()

        assert [a.id for a in controller.snapshot().activities] == ["m2", "m1"]

    @pytest.mark.asyncio
    async def test_post_sync_reload_notifies_listeners(
        self, fetcher, activity_store, settings, make_email
    ) -> None:
        coordinator = EmailSyncCoordinator(
            fetcher,
            settings.model_copy(
                update={"sync_reload_delay_seconds": 0.0, "sync_reload_after_send_delay_seconds": 0.0}
            ),
        )
        controller = TimelineController(
            coordinator, activity_store, user_id="u1", contact_id="c-jane", contact_email=JANE, settings=settings
        )
        fetcher.mailboxes[JANE] = [make_email("m1", date="2024-01-01T00:00:00Z")]
        reloaded = asyncio.Event()
        coordinator.subscribe_reloads(lambda contact_email: reloaded.set())
        snapshots: list[TimelineSnapshot] = []
        controller.add_listener(snapshots.append)

        async with controller:
            fetcher.synced_emails[JANE] = [make_email("m2", date="2024-01-05T00:00:00Z")]
            await controller.sync_email_history(after_email_send=True)
            await asyncio.wait_for(reloaded.wait(), timeout=1)
            await controller.flush()

        assert snapshots[-1].emails_count == 2
        assert [a.id for a in controller.snapshot().activities] == ["m2", "m1"]

    @pytest.mark.asyncio
    async def test_burst_of_events_is_throttled(self, controller, coordinator) -> None:
        refreshed: list[str] = []

        async def record_refresh(contact_email: str, user_id: str) -> None:
            refreshed.append(contact_email)

        coordinator.refresh_contact_emails = record_refresh
        await controller.start()

        for _ in range(3):
            coordinator.events.publish(SyncCompleteEvent(contact_email=JANE, user_id="u1"))
        await controller.flush()

        assert refreshed == [JANE, JANE]

    @pytest.mark.asyncio
    async def test_events_for_other_contacts_are_ignored(self, controller, coordinator) -> None:
        refreshed: list[str] = []

        async def record_refresh(contact_email: str, user_id: str) -> None:
            refreshed.append(contact_email)

        coordinator.refresh_contact_emails = record_refresh
        await controller.start()

        coordinator.events.publish(SyncCompleteEvent(contact_email=BOB, user_id="u1"))
        coordinator.events.publish(SyncCompleteEvent(contact_email=JANE, user_id="someone-else"))
        await controller.flush()

        assert refreshed == []

    @pytest.mark.asyncio
    async def test_close_unsubscribes(self, controller, coordinator) -> None:
        await controller.start()
        assert len(coordinator.events) == 1

        await controller.close()

        assert len(coordinator.events) == 0


class TestContactSwitch:
    """Test suite for switching the active contact mid-flight."""

    @pytest.mark.asyncio
    async def test_late_result_for_previous_contact_is_not_published(
        self, controller, fetcher, make_email
    ) -> None:
        fetcher.mailboxes[JANE] = [make_email("jane-1")]
        fetcher.mailboxes[BOB] = [make_email("bob-1")]
        gate = fetcher.gates[JANE] = asyncio.Event()
        snapshots: list[TimelineSnapshot] = []
        controller.add_listener(snapshots.append)

        start = asyncio.create_task(controller.start())
        while not fetcher.fetch_calls:
            await asyncio.sleep(0)

        await controller.set_contact("c-bob", BOB)
        gate.set()
        await start

        assert snapshots
        for snapshot in snapshots:
            assert {a.id for a in snapshot.activities} <= {"bob-1"}
        assert [a.id for a in controller.snapshot().activities] == ["bob-1"]
        assert controller.coordinator.get_email_count(JANE) == 1
