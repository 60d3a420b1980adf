from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from streambot.logging_config import get_logger

logger = get_logger("user_store")

DEFAULT_USER_NAME = "Cliente"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class UserRecord:
    phone: str
    name: str = DEFAULT_USER_NAME
    first_interaction_at: Optional[datetime] = None
    last_interaction_at: Optional[datetime] = None
    is_new_lead: bool = False
    message_count: int = 0
    owner_message_count: int = 0
    # Projection of the attendance store, refreshed on read
    blocked_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        for key in ("first_interaction_at", "last_interaction_at", "blocked_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


class UserStore:
    """In-memory registry of everyone who has talked to the bot, keyed by phone."""

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self._clock = clock or _utcnow
        self._users: dict[str, UserRecord] = {}

    def get(self, phone: str) -> UserRecord | None:
        return self._users.get(phone)

    def exists(self, phone: str) -> bool:
        return phone in self._users

    def record_inbound(self, phone: str, name: str | None = None) -> UserRecord:
        """Create or touch the record for an inbound message and bump its counter."""
        now = self._clock()
        user = self._users.get(phone)
        if user is None:
            user = UserRecord(phone=phone, first_interaction_at=now)
            self._users[phone] = user
            logger.info("New user recorded", extra={"context": {"phone": phone}})
        if name:
            user.name = name
        user.last_interaction_at = now
        user.message_count += 1
        return user

    def update(self, phone: str, **changes) -> UserRecord | None:
        """Patch fields without counting a message. Unknown users are a no-op."""
        user = self._users.get(phone)
        if user is None:
            logger.warning(f"Attempt to update unknown user: {phone}")
            return None
        for key, value in changes.items():
            if not hasattr(user, key):
                logger.warning(f"Ignoring unknown user field: {key}")
                continue
            setattr(user, key, value)
        return user

    def mark_as_lead(self, phone: str) -> bool:
        user = self.update(phone, is_new_lead=True)
        if user is not None:
            logger.info(f"New lead identified: {user.name}", extra={"context": {"phone": phone}})
        return user is not None

    def is_lead(self, phone: str) -> bool:
        user = self._users.get(phone)
        return bool(user and user.is_new_lead)

    def has_ongoing_conversation(self, user: UserRecord | None, timeout_days: int) -> bool:
        if user is None or user.last_interaction_at is None:
            return False
        return self._clock() - user.last_interaction_at <= timedelta(days=timeout_days)

    def increment_owner_message_count(self, phone: str) -> int:
        user = self._users.get(phone)
        if user is None:
            return 0
        user.owner_message_count += 1
        return user.owner_message_count

    def owner_message_count(self, phone: str) -> int:
        user = self._users.get(phone)
        return user.owner_message_count if user else 0

    def reset_owner_message_count(self, phone: str) -> None:
        user = self._users.get(phone)
        if user is not None:
            user.owner_message_count = 0

    def all(self) -> list[UserRecord]:
        return list(self._users.values())

    def remove(self, phone: str) -> bool:
        return self._users.pop(phone, None) is not None

    def clear(self) -> None:
        self._users.clear()
