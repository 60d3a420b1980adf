from streambot.services.history_service import HistoryCache, idle_ttl_cache

from .conftest import FakeClock

PHONE = "5511988887777"


class TestHistoryCache:
    def test_append_and_get(self):
        cache = HistoryCache(clock=FakeClock())
        cache.append(PHONE, "user", "oi")
        cache.append(PHONE, "assistant", "Olá!")

        assert cache.get(PHONE) == [
            {"role": "user", "content": "oi"},
            {"role": "assistant", "content": "Olá!"},
        ]
        assert cache.size(PHONE) == 2
        assert cache.is_first_message(PHONE) is False

    def test_window_keeps_last_entries(self):
        cache = HistoryCache(max_messages=10, clock=FakeClock())
        for i in range(15):
            cache.append(PHONE, "user", f"msg {i}")

        history = cache.get(PHONE)
        assert len(history) == 10
        assert history[0]["content"] == "msg 5"
        assert history[-1]["content"] == "msg 14"

    def test_get_returns_copies(self):
        cache = HistoryCache(clock=FakeClock())
        cache.append(PHONE, "user", "oi")
        cache.get(PHONE)[0]["content"] = "changed"
        assert cache.get(PHONE)[0]["content"] == "oi"

    def test_invalid_entries_ignored(self):
        cache = HistoryCache(clock=FakeClock())
        cache.append(PHONE, "system", "nope")
        cache.append(PHONE, "user", "")
        cache.append("", "user", "oi")
        assert cache.is_first_message(PHONE) is True

    def test_expires_after_idle_ttl(self):
        clock = FakeClock()
        cache = HistoryCache(ttl_seconds=3600, clock=clock)
        cache.append(PHONE, "user", "oi")
        clock.advance(seconds=3601)
        assert cache.get(PHONE) == []

    def test_write_refreshes_ttl(self):
        clock = FakeClock()
        cache = HistoryCache(ttl_seconds=3600, clock=clock)
        cache.append(PHONE, "user", "oi")
        clock.advance(minutes=50)
        cache.append(PHONE, "user", "ainda aqui")
        clock.advance(minutes=50)
        assert cache.size(PHONE) == 2

    def test_clear(self):
        cache = HistoryCache(clock=FakeClock())
        cache.append(PHONE, "user", "oi")
        assert cache.clear(PHONE) is True
        assert cache.clear(PHONE) is False

    def test_sweep_and_active_phones(self):
        clock = FakeClock()
        cache = HistoryCache(ttl_seconds=60, clock=clock)
        cache.append(PHONE, "user", "oi")
        clock.advance(seconds=30)
        cache.append("5521977776666", "user", "oi")
        clock.advance(seconds=40)

        assert cache.active_phones() == ["5521977776666"]
        assert cache.sweep_expired() == 1


class TestIdleTtlCache:
    def test_follows_injected_clock(self):
        clock = FakeClock()
        entries = idle_ttl_cache(10, 100, clock)
        entries["a"] = 1
        clock.advance(seconds=9)
        assert "a" in entries
        clock.advance(seconds=2)
        assert "a" not in entries
        assert entries.get("a") is None

    def test_conversation_count_is_bounded(self):
        cache = HistoryCache(max_conversations=2, clock=FakeClock())
        for phone in ("5511911111111", "5511922222222", "5511933333333"):
            cache.append(phone, "user", "oi")

        assert cache.active_phones() == ["5511922222222", "5511933333333"]
        assert cache.get("5511911111111") == []
