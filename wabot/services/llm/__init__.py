from wabot.services.llm.base import LLMProvider, LLMProviderError, LLMResponse
from wabot.services.llm.gemini_provider import GeminiProvider
from wabot.services.llm.openai_provider import OpenAIProvider

__all__ = ["LLMProvider", "LLMProviderError", "LLMResponse", "OpenAIProvider", "GeminiProvider"]
