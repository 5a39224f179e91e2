from typing import Any, List, Optional, Sequence

HANDOVER_MESSAGE = (
    "Terima kasih, permintaan Anda sedang kami teruskan ke tim customer service kami. "
    "Mohon tunggu sebentar."
)


def parse_handover_keywords(raw: Any) -> List[str]:
    """Keep non-empty string phrases from the stored JSON list."""
    if not isinstance(raw, (list, tuple)):
        return []
    return [phrase.strip() for phrase in raw if isinstance(phrase, str) and phrase.strip()]


def needs_handover(message: Optional[str], trigger_phrases: Optional[Sequence[str]]) -> bool:
    """Case-insensitive substring match of any trigger phrase."""
    if not message or not trigger_phrases:
        return False
    lower_message = message.lower()
    return any(phrase.lower() in lower_message for phrase in trigger_phrases if phrase)
