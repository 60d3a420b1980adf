from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Callable

from streambot.logging_config import get_logger

logger = get_logger("debounce_service")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DebounceGuard:
    """Drops a message when the same phone sent another one within ``window_ms``.

    Only guards against duplicate deliveries from the gateway; it carries no
    business meaning and is never persisted.
    """

    def __init__(
        self,
        *,
        window_ms: int = 500,
        max_age_seconds: int = 60,
        clock: Callable[[], datetime] | None = None,
    ):
        self.window = timedelta(milliseconds=window_ms)
        self.max_age = timedelta(seconds=max_age_seconds)
        self._clock = clock or _utcnow
        self._last_seen: dict[str, datetime] = {}

    def should_drop(self, phone: str) -> bool:
        now = self._clock()
        last = self._last_seen.get(phone)
        if last is not None and now - last < self.window:
            return True
        self._last_seen[phone] = now
        return False

    def sweep(self) -> int:
        now = self._clock()
        stale = [phone for phone, seen in self._last_seen.items() if now - seen > self.max_age]
        for phone in stale:
            del self._last_seen[phone]
        return len(stale)

    def __len__(self) -> int:
        return len(self._last_seen)


class ProcessedMessageCache:
    """Remembers gateway message ids so redeliveries are processed once."""

    def __init__(self, *, max_size: int = 1000, keep: int = 500):
        self.max_size = max_size
        self.keep = keep
        self._ids: OrderedDict[str, None] = OrderedDict()

    def seen(self, message_id: str | None) -> bool:
        return bool(message_id) and message_id in self._ids

    def add(self, message_id: str | None) -> None:
        if not message_id:
            return
        self._ids[message_id] = None
        self._ids.move_to_end(message_id)
        if len(self._ids) > self.max_size:
            self.prune()

    def prune(self) -> int:
        removed = 0
        while len(self._ids) > self.keep:
            self._ids.popitem(last=False)
            removed += 1
        if removed:
            logger.info(f"Processed message cache pruned: {removed}")
        return removed

    def __len__(self) -> int:
        return len(self._ids)
