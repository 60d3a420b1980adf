import asyncio
from typing import Awaitable, Callable, Optional

import httpx

from streambot.logging_config import get_logger
from streambot.services.normalizer import to_jid

logger = get_logger("whatsapp_service")

# Gateway disconnects surface with these words; they recover on their own
TRANSIENT_ERROR_MARKERS = ("Connection", "Stream")

TYPING_MS_PER_CHAR = 50
TYPING_MIN_MS = 500
TYPING_MAX_MS = 3000
PRESENCE_COMPOSING = "composing"
PRESENCE_PAUSED = "paused"


def is_transient_error(exc: BaseException) -> bool:
    message = str(exc)
    return any(marker in message for marker in TRANSIENT_ERROR_MARKERS)


def typing_duration_ms(text: str) -> int:
    return max(TYPING_MIN_MS, min(TYPING_MAX_MS, TYPING_MS_PER_CHAR * len(text or "")))


class WhatsAppGateway:
    """Outbound side of the WhatsApp HTTP gateway."""

    def __init__(
        self,
        base_url: str,
        token: str = "",
        instance_id: str = "",
        *,
        timeout_seconds: float = 30.0,
        sleep_func: Callable[[float], Awaitable[None]] = asyncio.sleep,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.instance_id = instance_id
        self.timeout_seconds = timeout_seconds
        self._sleep = sleep_func
        self._transport = transport

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _post(self, path: str, payload: dict) -> bool:
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            response = await client.post(f"{self.base_url}{path}", headers=self._headers(), json=payload)
        if response.status_code >= 300:
            logger.warning(
                f"Gateway rejected {path}: status={response.status_code}",
                extra={"context": {"body": response.text[:200]}},
            )
            return False
        return True

    async def send_text(self, jid: str, text: str) -> bool:
        if not jid or not text:
            logger.warning(f"send_text: missing jid={jid} or text")
            return False
        payload = {"instance": self.instance_id, "jid": to_jid(jid), "text": text}
        try:
            sent = await self._post("/send-text", payload)
        except httpx.HTTPError as e:
            if is_transient_error(e):
                logger.debug(f"Transient gateway error sending message: {e}")
            else:
                logger.error(f"Error sending WhatsApp message: {e}", extra={"context": {"jid": jid}})
            return False
        if sent:
            logger.info(f"Message sent: jid={jid}, chars={len(text)}")
        return sent

    async def set_presence(self, jid: str, presence: str) -> bool:
        payload = {"instance": self.instance_id, "jid": to_jid(jid), "presence": presence}
        try:
            return await self._post("/send-presence", payload)
        except httpx.HTTPError as e:
            logger.debug(f"Presence update failed: {e}")
            return False

    async def simulate_typing(self, jid: str, text: str) -> None:
        """Cosmetic pacing before a reply. Never raises."""
        try:
            await self.set_presence(jid, PRESENCE_COMPOSING)
            await self._sleep(typing_duration_ms(text) / 1000)
            await self.set_presence(jid, PRESENCE_PAUSED)
        except Exception as e:
            logger.debug(f"Typing simulation failed: {e}")
