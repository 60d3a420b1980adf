from collections import deque
from datetime import datetime, timezone
from typing import Callable, Literal, TypedDict

from cachetools import TTLCache

from streambot.logging_config import get_logger

logger = get_logger("history_service")

DEFAULT_MAX_MESSAGES = 10
DEFAULT_TTL_SECONDS = 3600
DEFAULT_MAX_CONVERSATIONS = 10000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def idle_ttl_cache(ttl_seconds: int, maxsize: int, clock: Callable[[], datetime] | None = None) -> TTLCache:
    """TTLCache driven by ``clock``; every write restarts the key's TTL."""
    clock = clock or _utcnow
    return TTLCache(maxsize=maxsize, ttl=ttl_seconds, timer=lambda: clock().timestamp())


class HistoryEntry(TypedDict):
    role: Literal["user", "assistant"]
    content: str


class HistoryCache:
    """Bounded per-phone window of recent turns used to build LLM prompts.

    Not a transcript: the window keeps the last ``max_messages`` entries and the
    whole key disappears after ``ttl_seconds`` without a write.
    """

    def __init__(
        self,
        *,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_conversations: int = DEFAULT_MAX_CONVERSATIONS,
        clock: Callable[[], datetime] | None = None,
    ):
        self.max_messages = max_messages
        self._entries = idle_ttl_cache(ttl_seconds, max_conversations, clock)

    def append(self, phone: str, role: str, content: str) -> None:
        if not phone or role not in ("user", "assistant") or not content:
            logger.warning("Ignoring invalid history entry", extra={"context": {"phone": phone, "role": role}})
            return
        window = self._entries.get(phone)
        if window is None:
            window = deque(maxlen=self.max_messages)
        window.append(HistoryEntry(role=role, content=content))
        # Re-setting refreshes the idle TTL
        self._entries[phone] = window

    def get(self, phone: str) -> list[HistoryEntry]:
        window = self._entries.get(phone)
        return [dict(entry) for entry in window] if window else []

    def is_first_message(self, phone: str) -> bool:
        return len(self.get(phone)) == 0

    def clear(self, phone: str) -> bool:
        cleared = self._entries.pop(phone, None) is not None
        if cleared:
            logger.info("Conversation history cleared", extra={"context": {"phone": phone}})
        return cleared

    def size(self, phone: str) -> int:
        return len(self.get(phone))

    def active_phones(self) -> list[str]:
        # Iteration skips expired keys without evicting them
        return list(self._entries)

    def sweep_expired(self) -> int:
        return len(self._entries.expire())
