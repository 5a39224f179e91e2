from typing import List, Optional

import httpx

from wabot.logging_config import get_logger
from wabot.services.llm.base import LLMProvider, LLMProviderError, LLMResponse

logger = get_logger("llm.gemini")


def to_gemini_payload(messages: List[dict], temperature: float, max_tokens: int) -> dict:
    """Convert chat-style messages to a generateContent request body.

    System messages become ``systemInstruction``; assistant turns use the
    ``model`` role.
    """
    system_parts = [m["content"] for m in messages if m.get("role") == "system"]
    contents = []
    for message in messages:
        role = message.get("role")
        if role == "system":
            continue
        contents.append(
            {
                "role": "model" if role == "assistant" else "user",
                "parts": [{"text": message.get("content", "")}],
            }
        )

    payload = {
        "contents": contents,
        "generationConfig": {"temperature": temperature, "maxOutputTokens": max_tokens},
    }
    if system_parts:
        payload["systemInstruction"] = {"parts": [{"text": "\n\n".join(system_parts)}]}
    return payload


class GeminiProvider(LLMProvider):
    """Google Gemini generateContent provider."""

    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str],
        default_model: str = "gemini-1.5-flash",
        timeout_seconds: float = 30.0,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta/models",
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.timeout_seconds = timeout_seconds
        self.base_url = base_url

    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 500,
    ) -> LLMResponse:
        if not self.api_key:
            raise LLMProviderError(self.name, "GEMINI_API_KEY not configured")

        model = model or self.default_model
        url = f"{self.base_url}/{model}:generateContent"
        payload = to_gemini_payload(messages, temperature, max_tokens)
        logger.debug(f"Gemini request: model={model}, contents_count={len(payload['contents'])}")

        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.post(
                    url,
                    params={"key": self.api_key},
                    headers={"Content-Type": "application/json"},
                    json=payload,
                )
        except httpx.HTTPError as e:
            raise LLMProviderError(self.name, f"request failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"Gemini error: {response.status_code} - {response.text[:300]}")
            raise LLMProviderError(
                self.name,
                f"API error {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
                quota=response.status_code == 429 or "RESOURCE_EXHAUSTED" in response.text,
            )

        try:
            data = response.json()
            parts = data["candidates"][0]["content"]["parts"]
            content = "".join(part.get("text", "") for part in parts).strip()
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LLMProviderError(self.name, f"malformed response: {e}", status_code=response.status_code) from e

        if not content:
            raise LLMProviderError(self.name, "empty completion", status_code=response.status_code)

        usage = None
        metadata = data.get("usageMetadata") or {}
        if metadata.get("totalTokenCount"):
            usage = {
                "prompt_tokens": metadata.get("promptTokenCount"),
                "completion_tokens": metadata.get("candidatesTokenCount"),
                "total_tokens": metadata.get("totalTokenCount"),
            }

        return LLMResponse(content=content, model=model, usage=usage)
