import asyncio
import random
from dataclasses import asdict, dataclass
from typing import Awaitable, Callable, List, Optional

import httpx

from streambot.logging_config import get_logger
from streambot.services.llm.base import LLMError, LLMProvider, LLMResponse

logger = get_logger("llm.groq")

GROQ_CHAT_URL = "https://api.groq.com/openai/v1/chat/completions"
DEFAULT_MODEL = "llama-3.3-70b-versatile"
BASE_DELAY_SECONDS = 1.0
MAX_DELAY_SECONDS = 10.0
JITTER_RATIO = 0.3
TOP_P = 0.9


@dataclass
class LLMStats:
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    retries: int = 0
    last_error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def backoff_delay(attempt: int, rand: Callable[[], float] = random.random) -> float:
    """Exponential delay for ``attempt`` (0-based) plus up to 30% jitter."""
    delay = min(BASE_DELAY_SECONDS * (2**attempt), MAX_DELAY_SECONDS)
    return delay + rand() * JITTER_RATIO * delay


def classify_http_error(status_code: int, body: str) -> LLMError:
    lowered = (body or "").lower()
    if status_code in (401, 403) or "invalid_api_key" in lowered:
        return LLMError(f"Groq authentication failed: {status_code}", kind="auth", status_code=status_code)
    if status_code == 404 and "model_not_found" in lowered:
        # Misconfigured model name; retrying cannot help
        return LLMError("Groq model not found", kind="auth", status_code=status_code)
    if status_code == 429 or "rate_limit" in lowered:
        return LLMError("Groq rate limit reached", kind="rate_limit", status_code=status_code)
    if status_code >= 500:
        return LLMError(f"Groq server error: {status_code}", kind="server_error", status_code=status_code)
    return LLMError(f"Groq API error: {status_code} - {body[:200]}", kind="unknown", status_code=status_code)


class GroqProvider(LLMProvider):
    """Groq chat completions (OpenAI-compatible) with retries."""

    def __init__(
        self,
        api_key: str,
        default_model: str = DEFAULT_MODEL,
        *,
        base_url: str = GROQ_CHAT_URL,
        timeout_seconds: float = 30.0,
        max_retries: int = 3,
        sleep_func: Callable[[float], Awaitable[None]] = asyncio.sleep,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self.max_retries = max(1, max_retries)
        self._sleep = sleep_func
        self._transport = transport
        self.stats = LLMStats()

    async def _request(self, payload: dict) -> LLMResponse:
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.post(
                    self.base_url,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
        except httpx.TimeoutException as e:
            raise LLMError(f"Groq request timed out: {e}", kind="timeout") from e
        except httpx.HTTPError as e:
            raise LLMError(f"Groq request failed: {e}", kind="server_error") from e

        logger.debug(f"Groq response status: {response.status_code}")
        if response.status_code != 200:
            raise classify_http_error(response.status_code, response.text)

        data = response.json()
        content = ""
        if data.get("choices"):
            content = (data["choices"][0].get("message") or {}).get("content") or ""
        if not content.strip():
            raise LLMError("Groq returned an empty completion", kind="unknown", status_code=200)

        return LLMResponse(content=content.strip(), model=data.get("model", payload["model"]), usage=data.get("usage"))

    async def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> LLMResponse:
        if not self.api_key:
            self.stats.total_calls += 1
            self.stats.failed_calls += 1
            self.stats.last_error = "GROQ_API_KEY not configured"
            raise LLMError("GROQ_API_KEY not configured", kind="auth")

        payload = {
            "model": model or self.default_model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "top_p": TOP_P,
            "stream": False,
        }
        self.stats.total_calls += 1
        logger.debug(f"Groq request: model={payload['model']}, messages_count={len(messages)}")

        last_error: LLMError | None = None
        for attempt in range(self.max_retries):
            try:
                result = await self._request(payload)
                self.stats.successful_calls += 1
                return result
            except LLMError as e:
                last_error = e
                logger.warning(
                    f"Groq call failed (attempt {attempt + 1}/{self.max_retries}): {e}",
                    extra={"context": {"kind": e.kind, "status_code": e.status_code}},
                )
                if not e.retryable or attempt == self.max_retries - 1:
                    break
                self.stats.retries += 1
                await self._sleep(backoff_delay(attempt))

        self.stats.failed_calls += 1
        self.stats.last_error = str(last_error)
        logger.error(f"All Groq attempts failed: {last_error}", extra={"context": {"kind": last_error.kind}})
        raise last_error
