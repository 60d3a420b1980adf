from streambot.services.debounce_service import DebounceGuard, ProcessedMessageCache

from .conftest import FakeClock

PHONE = "5511988887777"


class TestDebounceGuard:
    def test_first_message_passes(self):
        guard = DebounceGuard(clock=FakeClock())
        assert guard.should_drop(PHONE) is False

    def test_second_message_within_window_dropped(self):
        clock = FakeClock()
        guard = DebounceGuard(window_ms=500, clock=clock)
        guard.should_drop(PHONE)
        clock.advance(milliseconds=200)
        assert guard.should_drop(PHONE) is True

    def test_message_after_window_passes(self):
        clock = FakeClock()
        guard = DebounceGuard(window_ms=500, clock=clock)
        guard.should_drop(PHONE)
        clock.advance(milliseconds=600)
        assert guard.should_drop(PHONE) is False

    def test_phones_are_independent(self):
        guard = DebounceGuard(clock=FakeClock())
        guard.should_drop(PHONE)
        assert guard.should_drop("5521977776666") is False

    def test_sweep(self):
        clock = FakeClock()
        guard = DebounceGuard(max_age_seconds=60, clock=clock)
        guard.should_drop(PHONE)
        clock.advance(seconds=61)
        assert guard.sweep() == 1
        assert len(guard) == 0


class TestProcessedMessageCache:
    def test_seen(self):
        cache = ProcessedMessageCache()
        cache.add("ABC")
        assert cache.seen("ABC") is True
        assert cache.seen("XYZ") is False

    def test_missing_id_never_seen(self):
        cache = ProcessedMessageCache()
        cache.add(None)
        assert cache.seen(None) is False
        assert len(cache) == 0

    def test_prunes_oldest_when_full(self):
        cache = ProcessedMessageCache(max_size=10, keep=5)
        for i in range(11):
            cache.add(f"id-{i}")

        assert len(cache) == 5
        assert cache.seen("id-0") is False
        assert cache.seen("id-10") is True
