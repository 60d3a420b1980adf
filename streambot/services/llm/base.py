from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

ERROR_KINDS = ("rate_limit", "auth", "timeout", "server_error", "unknown")


@dataclass
class LLMResponse:
    content: str
    model: str
    usage: Optional[dict] = None


class LLMError(Exception):
    """Completion failed after retries. ``kind`` picks the user-facing fallback."""

    def __init__(self, message: str, kind: str = "unknown", status_code: Optional[int] = None):
        super().__init__(message)
        self.kind = kind if kind in ERROR_KINDS else "unknown"
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.kind != "auth"


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    async def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> LLMResponse:
        """Generate response from LLM."""
        pass
