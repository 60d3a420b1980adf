"""Manual attendance: which conversations the operator has taken over.

A phone key exists in the store iff the bot must stay quiet for that user.
Blocks expire after a fixed duration, either lazily when checked through
``check_and_expire`` or proactively through ``sweep_expired``.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from streambot.logging_config import get_logger
from streambot.services.user_store import UserStore

logger = get_logger("attendance_service")

DEFAULT_BLOCK_DURATION_MINUTES = 60
DEFAULT_OWNER_BLOCK_THRESHOLD = 2


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AttendanceBlock:
    phone: str
    blocked_at: datetime
    blocked_by: str


class AttendanceStore:
    def __init__(
        self,
        users: UserStore,
        *,
        block_duration_minutes: int = DEFAULT_BLOCK_DURATION_MINUTES,
        owner_block_threshold: int = DEFAULT_OWNER_BLOCK_THRESHOLD,
        clock: Callable[[], datetime] | None = None,
    ):
        self._users = users
        self._blocks: dict[str, AttendanceBlock] = {}
        self.block_duration = timedelta(minutes=block_duration_minutes)
        self.owner_block_threshold = owner_block_threshold
        self._clock = clock or _utcnow

    def _is_expired(self, block: AttendanceBlock, now: datetime) -> bool:
        return now - block.blocked_at > self.block_duration

    def _delete(self, phone: str) -> AttendanceBlock | None:
        block = self._blocks.pop(phone, None)
        self._users.reset_owner_message_count(phone)
        if self._users.exists(phone):
            self._users.update(phone, blocked_at=None)
        return block

    def peek(self, phone: str) -> AttendanceBlock | None:
        """Return the stored block without expiring it."""
        return self._blocks.get(phone)

    def check_and_expire(self, phone: str) -> bool:
        """Return True while the bot is blocked for ``phone``.

        Mutates: an expired block is deleted (and the owner counter reset) before
        answering False.
        """
        block = self._blocks.get(phone)
        if block is None:
            return False
        if self._is_expired(block, self._clock()):
            self._delete(phone)
            logger.info("Manual attendance expired", extra={"context": {"phone": phone}})
            return False
        return True

    def block(self, phone: str, blocked_by: str, force: bool = False) -> bool:
        """Block the bot for ``phone``.

        Without ``force`` the block needs at least ``owner_block_threshold`` operator
        messages, so one stray message never silences the bot for an hour.
        """
        if not force:
            count = self._users.owner_message_count(phone)
            if count < self.owner_block_threshold:
                logger.debug(
                    "Auto-block skipped below owner message threshold",
                    extra={"context": {"phone": phone, "owner_messages": count}},
                )
                return False

        refreshed = phone in self._blocks
        now = self._clock()
        self._blocks[phone] = AttendanceBlock(phone=phone, blocked_at=now, blocked_by=blocked_by)
        if self._users.exists(phone):
            self._users.update(phone, blocked_at=now)
        logger.warning(
            "Bot blocked for user (manual attendance)",
            extra={"context": {"phone": phone, "blocked_by": blocked_by, "force": force, "refreshed": refreshed}},
        )
        return True

    def unblock(self, phone: str) -> bool:
        """Hand the conversation back to the bot. Returns False if it was not blocked."""
        was_blocked = phone in self._blocks
        self._delete(phone)
        if was_blocked:
            logger.info("Bot released for user", extra={"context": {"phone": phone}})
        return was_blocked

    def sweep_expired(self) -> int:
        now = self._clock()
        expired = [phone for phone, block in list(self._blocks.items()) if self._is_expired(block, now)]
        for phone in expired:
            self._delete(phone)
        if expired:
            logger.info(f"Expired blocks removed: {len(expired)}", extra={"context": {"phones": expired}})
        return len(expired)

    def blocked_users(self) -> list[AttendanceBlock]:
        return list(self._blocks.values())

    def elapsed_minutes(self, block: AttendanceBlock) -> int:
        return int((self._clock() - block.blocked_at).total_seconds() // 60)

    def remaining_minutes(self, block: AttendanceBlock) -> int:
        remaining = self.block_duration - (self._clock() - block.blocked_at)
        return max(int(remaining.total_seconds() // 60), 0)

    def is_expired(self, block: AttendanceBlock) -> bool:
        return self._is_expired(block, self._clock())

    def remove(self, phone: str) -> bool:
        return self._delete(phone) is not None

    def clear(self) -> None:
        self._blocks.clear()
