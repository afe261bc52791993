"""Unit tests for email thread grouping."""

import pytest

from contact_timeline.models import EmailActivity, EmailThreadActivity
from contact_timeline.threads import ThreadGroupingEngine, is_real_thread_id


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def engine(settings) -> ThreadGroupingEngine:
    return ThreadGroupingEngine(settings=settings)


class TestIsRealThreadId:
    """Test suite for is_real_thread_id."""

    @pytest.mark.parametrize(
        "thread_id",
        [None, "", "   ", "optimistic-abc", "subject-demo", "new-conversation-1", "reply-thread"],
    )
    def test_placeholders(self, thread_id) -> None:
        assert is_real_thread_id(thread_id) is False

    def test_provider_id(self) -> None:
        assert is_real_thread_id("18c2f0a9b1") is True


class TestThreadGrouping:
    """Test suite for ThreadGroupingEngine.group."""

    def test_single_member_stays_plain_email(self, engine, make_email_activity) -> None:
        email = make_email_activity("m1", thread_id="t1")

        result = engine.group([email])

        assert result == [email]
        assert isinstance(result[0], EmailActivity)

    def test_two_members_become_thread(self, engine, make_email_activity) -> None:
        a = make_email_activity("m1", thread_id="t1", timestamp="2024-01-01T00:00:00Z")
        b = make_email_activity("m2", thread_id="t1", timestamp="2024-01-02T00:00:00Z")
        c = make_email_activity("m3", thread_id="t2")

        result = engine.group([a, b, c])

        threads = [r for r in result if isinstance(r, EmailThreadActivity)]
        assert len(result) == 2
        assert len(threads) == 1
        assert threads[0].id == "thread-t1"
        assert threads[0].thread_email_count == 2
        assert threads[0].type == "email_thread"

    def test_same_subject_without_real_thread_never_groups(self, engine, make_email_activity) -> None:
        a = make_email_activity("m1", thread_id="optimistic-abc", subject="Re: Demo")
        b = make_email_activity("m2", thread_id=None, subject="Re: Demo")

        result = engine.group([a, b])

        assert {r.id for r in result} == {"m1", "m2"}
        assert all(isinstance(r, EmailActivity) for r in result)

    def test_members_are_chronological(self, engine, make_email_activity) -> None:
        emails = [
            make_email_activity("jan3", thread_id="t1", timestamp="2024-01-03T00:00:00Z"),
            make_email_activity("jan1", thread_id="t1", timestamp="2024-01-01T00:00:00Z"),
            make_email_activity("jan2", thread_id="t1", timestamp="2024-01-02T00:00:00Z"),
        ]

        (thread,) = engine.group(emails)

        assert [e.id for e in thread.emails_in_thread] == ["jan1", "jan2", "jan3"]
        assert thread.latest_email.id == "jan3"
        assert thread.timestamp == "2024-01-03T00:00:00Z"

    def test_display_fields_mirror_latest(self, engine, make_email_activity) -> None:
        old = make_email_activity("m1", thread_id="t1", timestamp="2024-01-01T00:00:00Z", subject="Demo")
        new = make_email_activity(
            "m2", thread_id="t1", timestamp="2024-01-02T00:00:00Z", subject="Re: Demo", is_read=True
        )

        (thread,) = engine.group([new, old])

        assert thread.subject == "Re: Demo"
        assert thread.is_read is True

    def test_pin_propagates_from_any_member(self, engine, make_email_activity) -> None:
        emails = [
            make_email_activity("m1", thread_id="t1", timestamp="2024-01-01T00:00:00Z", is_pinned=True),
            make_email_activity("m2", thread_id="t1", timestamp="2024-01-02T00:00:00Z"),
        ]

        (thread,) = engine.group(emails)

        assert thread.is_pinned is True

    def test_new_member_invalidates_grouping(self, engine, make_email_activity) -> None:
        a, b, c, d = (
            make_email_activity(f"m{i}", thread_id="t1", timestamp=f"2024-01-0{i}T00:00:00Z")
            for i in range(1, 5)
        )

        (first,) = engine.group([a, b, c])
        (second,) = engine.group([a, b, c, d])

        assert first.thread_email_count == 3
        assert second.thread_email_count == 4
        assert second.latest_email.id == "m4"

    def test_changed_member_with_same_ids_is_regrouped(self, engine, make_email_activity) -> None:
        a = make_email_activity("m1", thread_id="t1", timestamp="2024-01-01T00:00:00Z")
        b = make_email_activity("m2", thread_id="t1", timestamp="2024-01-02T00:00:00Z")
        b_read = make_email_activity("m2", thread_id="t1", timestamp="2024-01-02T00:00:00Z", is_read=True)

        (before,) = engine.group([a, b])
        (after,) = engine.group([a, b_read])

        assert before.is_read is False
        assert after.is_read is True

    def test_identical_input_hits_cache(self, engine, make_email_activity) -> None:
        emails = [
            make_email_activity("m1", thread_id="t1", timestamp="2024-01-01T00:00:00Z"),
            make_email_activity("m2", thread_id="t1", timestamp="2024-01-02T00:00:00Z"),
        ]

        (first,) = engine.group(emails)
        (second,) = engine.group(list(reversed(emails)))

        assert first is second
        assert len(engine) == 1


class TestThreadCacheSweep:
    """Test suite for the grouping cache's expiry and size bound."""

    def test_sweep_drops_expired(self, settings, make_email_activity) -> None:
        clock = FakeClock()
        engine = ThreadGroupingEngine(settings=settings, clock=clock)
        engine.group([make_email_activity("m1")])

        clock.now = settings.thread_cache_ttl_seconds + 1
        engine.sweep()

        assert len(engine) == 0

    def test_sweep_drops_oldest_half_over_capacity(self, settings, make_email_activity) -> None:
        clock = FakeClock()
        engine = ThreadGroupingEngine(
            settings=settings.model_copy(update={"thread_cache_max_entries": 4}),
            clock=clock,
        )
        for i in range(6):
            clock.now = float(i)
            engine.group([make_email_activity(f"m{i}")])

        engine.sweep()

        assert len(engine) == 3

    def test_grouping_sweeps_with_configured_probability(self, settings, make_email_activity) -> None:
        clock = FakeClock()
        engine = ThreadGroupingEngine(
            settings=settings.model_copy(update={"thread_cache_sweep_probability": 1.0}),
            clock=clock,
        )
        engine.group([make_email_activity("m1")])

        clock.now = settings.thread_cache_ttl_seconds + 100
        engine.group([make_email_activity("m2")])

        assert len(engine) == 1
