from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from streambot.config import Settings, settings
from streambot.services.attendance_service import AttendanceStore
from streambot.services.debounce_service import DebounceGuard, ProcessedMessageCache
from streambot.services.history_service import HistoryCache
from streambot.services.llm import GroqProvider, LLMProvider
from streambot.services.sales_service import SalesContextStore
from streambot.services.user_store import UserStore
from streambot.services.whatsapp_service import WhatsAppGateway


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ConnectionStatus:
    state: str = "unknown"
    status_reason: Optional[int] = None
    qr_pending: bool = False
    updated_at: Optional[datetime] = None


@dataclass
class BotRuntime:
    """Process-wide state shared by the webhook, the admin API and the sweep loops."""

    users: UserStore
    attendance: AttendanceStore
    history: HistoryCache
    sales: SalesContextStore
    debounce: DebounceGuard
    processed: ProcessedMessageCache
    gateway: WhatsAppGateway
    llm: LLMProvider
    clock: Callable[[], datetime] = _utcnow
    started_at: datetime = field(default_factory=_utcnow)
    connection: ConnectionStatus = field(default_factory=ConnectionStatus)


def build_runtime(
    config: Settings = settings,
    *,
    clock: Callable[[], datetime] | None = None,
    gateway: WhatsAppGateway | None = None,
    llm: LLMProvider | None = None,
    sleep_func: Callable[[float], Awaitable[None]] | None = None,
) -> BotRuntime:
    clock = clock or _utcnow
    sleep_kwargs = {"sleep_func": sleep_func} if sleep_func is not None else {}
    users = UserStore(clock=clock)
    return BotRuntime(
        users=users,
        attendance=AttendanceStore(
            users,
            block_duration_minutes=config.block_duration_minutes,
            owner_block_threshold=config.owner_block_threshold,
            clock=clock,
        ),
        history=HistoryCache(
            max_messages=config.history_max_messages,
            ttl_seconds=config.history_ttl_seconds,
            max_conversations=config.conversation_cache_max,
            clock=clock,
        ),
        sales=SalesContextStore(
            ttl_seconds=config.history_ttl_seconds,
            max_conversations=config.conversation_cache_max,
            clock=clock,
        ),
        debounce=DebounceGuard(
            window_ms=config.debounce_window_ms,
            max_age_seconds=config.debounce_max_age_seconds,
            clock=clock,
        ),
        processed=ProcessedMessageCache(max_size=config.processed_cache_max, keep=config.processed_cache_keep),
        gateway=gateway
        or WhatsAppGateway(
            config.whatsapp_api_url,
            config.whatsapp_api_token,
            config.whatsapp_instance_id,
            **sleep_kwargs,
        ),
        llm=llm
        or GroqProvider(
            config.groq_api_key,
            config.groq_model,
            base_url=config.groq_api_url,
            timeout_seconds=config.llm_timeout_seconds,
            max_retries=config.llm_max_retries,
            **sleep_kwargs,
        ),
        clock=clock,
        started_at=clock(),
    )
