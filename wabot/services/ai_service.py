import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from wabot.config import settings
from wabot.logging_config import get_logger
from wabot.models import Chatbot
from wabot.services.business_hours_service import describe_business_hours, parse_business_hours
from wabot.services.knowledge_service import KnowledgeMatch, format_knowledge_context
from wabot.services.llm import GeminiProvider, LLMProvider, LLMProviderError, OpenAIProvider
from wabot.services.result import Result

logger = get_logger("ai_service")

# IDR per 1000 tokens
COST_PER_1K_TOKENS = {
    "openai": 2.0,
    "gemini": 1.0,
    "knowledge_base": 0.0,
}
DEFAULT_COST_PER_1K_TOKENS = 2.0

KNOWLEDGE_PROVIDER = "knowledge_base"
TONES = ("formal", "casual", "friendly")
DEFAULT_TONE = "friendly"

BASE_SYSTEM_PROMPT = (
    "Anda adalah asisten AI untuk layanan pelanggan WhatsApp yang membantu UMKM Indonesia. "
    "Anda harus merespons dalam Bahasa Indonesia yang sopan dan membantu."
)

TONE_INSTRUCTIONS = {
    "formal": "Gunakan bahasa formal dan profesional.",
    "casual": "Gunakan bahasa yang santai namun tetap sopan.",
    "friendly": "Gunakan bahasa yang ramah dan hangat, seperti berbicara dengan teman.",
}

RESPONSE_GUIDELINES = """Selalu berikan respons yang:
- Membantu dan informatif
- Sesuai dengan konteks bisnis Indonesia
- Mendorong pelanggan untuk bertindak (jika relevan)
- Maksimal 200 kata kecuali diminta lebih detail"""


class AIProviderError(Exception):
    """Every configured provider failed for one generation request."""

    def __init__(self, failures: List[Result]):
        self.failures = failures
        summary = "; ".join(f"{f.source}: {f.error}" for f in failures) or "no providers configured"
        super().__init__(f"AI service unavailable: {summary}")

    @property
    def providers(self) -> List[str]:
        return [f.source for f in self.failures]

    @property
    def is_quota_error(self) -> bool:
        return any(f.error_code == "quota" for f in self.failures)


@dataclass
class AIOptions:
    tone: str = DEFAULT_TONE
    max_tokens: int = 500
    temperature: float = 0.7
    use_knowledge_base: bool = False
    knowledge: Sequence[KnowledgeMatch] = field(default_factory=list)


@dataclass
class AIResponse:
    content: str
    provider_used: str
    model: Optional[str] = None
    tokens_used: int = 0
    cost: float = 0.0
    knowledge_used: bool = False
    knowledge_source: Optional[str] = None


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text or "") / 4)


def calculate_cost(provider: str, tokens: int) -> float:
    rate = COST_PER_1K_TOKENS.get(provider, DEFAULT_COST_PER_1K_TOKENS)
    return tokens / 1000 * rate


def normalize_tone(tone: Optional[str]) -> str:
    tone = (tone or "").strip().lower()
    return tone if tone in TONES else DEFAULT_TONE


def get_system_prompt(tone: str, context: str = "") -> str:
    tone = normalize_tone(tone)
    prompt = f"{BASE_SYSTEM_PROMPT} {TONE_INSTRUCTIONS[tone]}\n\n{RESPONSE_GUIDELINES}"
    if context and context.strip():
        prompt += f"\n\nKonteks bisnis:\n{context.strip()}"
    return prompt


def resolve_tone(chatbot: Chatbot) -> str:
    """Explicit tone wins; otherwise infer it from the personality text."""
    if chatbot.response_tone and chatbot.response_tone.strip().lower() in TONES:
        return chatbot.response_tone.strip().lower()
    personality = (chatbot.ai_personality or "").lower()
    if "formal" in personality:
        return "formal"
    if "casual" in personality or "santai" in personality:
        return "casual"
    return DEFAULT_TONE


def build_business_context(chatbot: Chatbot, customer_name: Optional[str] = None) -> str:
    lines = [
        f"Bisnis: {chatbot.business_description or 'Tidak ada deskripsi'}",
        f"Kepribadian: {chatbot.ai_personality or 'Ramah dan membantu'}",
    ]
    if customer_name:
        lines.append(f"Nama pelanggan: {customer_name}")
    lines.append(f"Jam operasional: {describe_business_hours(parse_business_hours(chatbot.business_hours))}")
    return "\n".join(lines)


def format_rupiah(amount: float) -> str:
    """Rp with dot thousands separators, e.g. ``Rp 85.000``."""
    return "Rp " + f"{int(round(amount)):,}".replace(",", ".")


def build_product_recommendation_prompt(customer_query: str, products: Sequence[dict]) -> str:
    catalog = "\n".join(
        f"- {p['name']}: {p.get('description', '')} ({format_rupiah(p.get('price', 0))})" for p in products
    )
    return (
        f'Pelanggan bertanya: "{customer_query}"\n\n'
        f"Produk yang tersedia:\n{catalog}\n\n"
        "Berikan rekomendasi produk yang paling sesuai dengan pertanyaan pelanggan. "
        "Jelaskan mengapa produk tersebut cocok dan sertakan harga."
    )


class AIResponder:
    """Primary provider with a single fallback to the secondary provider."""

    def __init__(
        self,
        primary: LLMProvider,
        secondary: Optional[LLMProvider] = None,
        direct_answer_threshold: float = 0.7,
    ):
        self.primary = primary
        self.secondary = secondary
        self.direct_answer_threshold = direct_answer_threshold

    def _attempt(self, provider: LLMProvider, messages: List[dict], options: AIOptions) -> Result[AIResponse]:
        try:
            response = provider.generate(
                messages,
                temperature=options.temperature,
                max_tokens=options.max_tokens,
            )
        except LLMProviderError as e:
            return Result.failure(e.reason, e.code, source=provider.name)
        except Exception as e:
            return Result.failure(str(e), "unexpected", source=provider.name)

        tokens = response.total_tokens or estimate_tokens(response.content)
        return Result.success(
            AIResponse(
                content=response.content.strip(),
                provider_used=provider.name,
                model=response.model,
                tokens_used=tokens,
                cost=calculate_cost(provider.name, tokens),
            ),
            source=provider.name,
        )

    def _direct_answer(self, options: AIOptions) -> Optional[AIResponse]:
        if not options.use_knowledge_base or not options.knowledge:
            return None
        best = options.knowledge[0]
        if best.score <= self.direct_answer_threshold:
            return None
        return AIResponse(
            content=best.item.answer,
            provider_used=KNOWLEDGE_PROVIDER,
            tokens_used=0,
            cost=0.0,
            knowledge_used=True,
            knowledge_source=best.item.question,
        )

    def _run_chain(self, prompt: str, context: str, options: AIOptions) -> tuple[Optional[AIResponse], List[Result]]:
        direct = self._direct_answer(options)
        if direct is not None:
            logger.info("Answered from knowledge base", extra={"context": {"source": direct.knowledge_source}})
            return direct, []

        knowledge_context = ""
        if options.use_knowledge_base and options.knowledge:
            knowledge_context = format_knowledge_context(options.knowledge)
        full_context = "\n\n".join(part for part in ((context or "").strip(), knowledge_context) if part)

        messages = [
            {"role": "system", "content": get_system_prompt(options.tone, full_context)},
            {"role": "user", "content": prompt},
        ]

        failures: List[Result] = []
        for provider in (self.primary, self.secondary):
            if provider is None:
                continue
            result = self._attempt(provider, messages, options)
            if not result.ok:
                logger.warning(
                    f"AI provider {provider.name} failed: {result.error}",
                    extra={"context": {"provider": provider.name, "code": result.error_code}},
                )
                failures.append(result)
                continue

            response = result.value
            if knowledge_context:
                response.knowledge_used = True
                response.knowledge_source = options.knowledge[0].item.question
            if failures:
                logger.info(
                    "AI fallback provider succeeded",
                    extra={"context": {"provider": provider.name, "failed": [f.source for f in failures]}},
                )
            return response, failures

        return None, failures

    def try_generate(self, prompt: str, context: str = "", options: Optional[AIOptions] = None) -> Result[AIResponse]:
        response, failures = self._run_chain(prompt, context, options or AIOptions())
        if response is not None:
            return Result.success(response, source=response.provider_used)
        error = AIProviderError(failures)
        return Result.failure(str(error), "quota" if error.is_quota_error else "ai_error", source="ai_responder")

    def generate(self, prompt: str, context: str = "", options: Optional[AIOptions] = None) -> AIResponse:
        """Generate a reply or raise AIProviderError listing each provider failure."""
        response, failures = self._run_chain(prompt, context, options or AIOptions())
        if response is None:
            raise AIProviderError(failures)
        return response

    def generate_product_recommendation(
        self,
        customer_query: str,
        products: Sequence[dict],
        options: Optional[AIOptions] = None,
    ) -> AIResponse:
        prompt = build_product_recommendation_prompt(customer_query, products)
        return self.generate(prompt, "", options)


PROVIDER_FACTORIES = {
    "openai": lambda: OpenAIProvider(
        api_key=settings.openai_api_key,
        default_model=settings.openai_model,
        timeout_seconds=settings.llm_timeout_seconds,
    ),
    "gemini": lambda: GeminiProvider(
        api_key=settings.gemini_api_key,
        default_model=settings.gemini_model,
        timeout_seconds=settings.llm_timeout_seconds,
    ),
}


def build_provider(name: Optional[str]) -> Optional[LLMProvider]:
    factory = PROVIDER_FACTORIES.get((name or "").strip().lower())
    if factory is None:
        if name:
            logger.warning(f"Unknown AI provider {name!r}")
        return None
    return factory()


def build_ai_responder() -> AIResponder:
    """Construct a responder from settings; one per request, never cached globally."""
    primary = build_provider(settings.ai_primary_provider) or build_provider("openai")
    secondary = build_provider(settings.ai_secondary_provider)
    if secondary is not None and secondary.name == primary.name:
        secondary = None
    return AIResponder(
        primary=primary,
        secondary=secondary,
        direct_answer_threshold=settings.knowledge_direct_answer_threshold,
    )
