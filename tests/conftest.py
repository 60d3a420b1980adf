from datetime import datetime, timedelta, timezone
from typing import List, Optional
from unittest.mock import Mock
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import streambot.models  # noqa: F401
from streambot.database import Base
from streambot.runtime import build_runtime
from streambot.services.dispatch_service import Dispatcher, InboundEvent
from streambot.services.llm.base import LLMProvider, LLMResponse
from streambot.services.normalizer import is_group_or_broadcast

OWNER_PHONE = "5513996069536"
CLIENT_PHONE = "5511988887777"


class FakeClock:
    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeGateway:
    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self.typing: list[str] = []
        self.fail = False

    async def send_text(self, jid: str, text: str) -> bool:
        self.sent.append((jid, text))
        return not self.fail

    async def set_presence(self, jid: str, presence: str) -> bool:
        return True

    async def simulate_typing(self, jid: str, text: str) -> None:
        self.typing.append(jid)

    def texts_to(self, phone: str) -> list[str]:
        return [text for jid, text in self.sent if jid.startswith(phone)]


class FakeLLM(LLMProvider):
    def __init__(self, reply: str = "Resposta da IA", error: Optional[Exception] = None):
        self.reply = reply
        self.error = error
        self.calls: List[list] = []

    async def generate(self, messages, model=None, temperature=0.7, max_tokens=1000) -> LLMResponse:
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        return LLMResponse(content=self.reply, model="fake")


def make_event(
    phone: str = CLIENT_PHONE,
    text: str = "oi",
    *,
    from_me: bool = False,
    push_name: Optional[str] = "Maria",
    message_id: Optional[str] = None,
    timestamp: Optional[datetime] = None,
    suffix: str = "@s.whatsapp.net",
) -> InboundEvent:
    jid = phone if "@" in phone else f"{phone}{suffix}"
    return InboundEvent(
        sender_id=jid,
        is_from_self=from_me,
        is_group_or_broadcast=is_group_or_broadcast(jid),
        text=text,
        push_name=push_name,
        message_id=message_id or uuid4().hex,
        timestamp=timestamp,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def runtime(clock, gateway, llm):
    return build_runtime(clock=clock, gateway=gateway, llm=llm)


@pytest.fixture
def dispatcher(runtime):
    return Dispatcher(
        runtime,
        owner_phone=OWNER_PHONE,
        owner_name="Roberto",
        conversation_timeout_days=7,
        knowledge_lookup=lambda text, intent: "",
    )


@pytest.fixture
def db_session():
    """Mock database session."""
    return Mock()


@pytest.fixture
def sqlite_db():
    """In-memory database with every table created."""
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()
