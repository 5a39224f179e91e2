from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class LLMResponse:
    content: str
    model: str
    usage: Optional[dict] = None

    @property
    def total_tokens(self) -> Optional[int]:
        if not self.usage:
            return None
        total = self.usage.get("total_tokens")
        return int(total) if total else None


class LLMProviderError(Exception):
    """A single provider call failed (network, quota, HTTP status, or malformed body)."""

    def __init__(
        self,
        provider: str,
        reason: str,
        *,
        status_code: Optional[int] = None,
        quota: bool = False,
    ):
        self.provider = provider
        self.reason = reason
        self.status_code = status_code
        self.quota = quota
        super().__init__(f"{provider}: {reason}")

    @property
    def code(self) -> str:
        if self.quota:
            return "quota"
        if self.status_code is None:
            return "network"
        return "provider_error"


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    name: str = "llm"

    @abstractmethod
    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 500,
    ) -> LLMResponse:
        """Generate a completion for chat-style messages. Raises LLMProviderError."""
        pass
