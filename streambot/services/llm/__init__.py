from streambot.services.llm.base import LLMError, LLMProvider, LLMResponse
from streambot.services.llm.groq_provider import GroqProvider

__all__ = ["LLMError", "LLMProvider", "LLMResponse", "GroqProvider"]
