"""Operational alerts delivered to a Telegram chat."""

from typing import List, Optional

import httpx

from wabot.config import settings
from wabot.logging_config import get_logger

logger = get_logger("alert_service")

LEVEL_EMOJI = {"INFO": "ℹ️", "WARNING": "⚠️", "ERROR": "❌", "CRITICAL": "🔥"}
MAX_ERROR_LENGTH = 200


def format_alert(level: str, message: str, context: Optional[dict] = None) -> str:
    lines = [f"{LEVEL_EMOJI.get(level, '📢')} *{level}*", "", message]
    if context:
        details = "\n".join(f"  {key}: {value}" for key, value in context.items() if value is not None)
        if details:
            lines += ["", "```", details, "```"]
    return "\n".join(lines)


def send_alert(level: str, message: str, context: Optional[dict] = None) -> bool:
    """Post a Markdown alert to the ops chat.

    Returns False when the bot is not configured or Telegram does not accept
    the message; alerting never raises into the caller.
    """
    if not settings.alert_bot_token or not settings.alert_chat_id:
        logger.warning(f"Alert not configured: {level} - {message}", extra={"context": context or {}})
        return False

    payload = {
        "chat_id": settings.alert_chat_id,
        "text": format_alert(level, message, context),
        "parse_mode": "Markdown",
    }
    try:
        with httpx.Client(timeout=10) as client:
            response = client.post(f"https://api.telegram.org/bot{settings.alert_bot_token}/sendMessage", json=payload)
    except httpx.HTTPError as e:
        logger.error(f"Failed to send alert: {e}")
        return False

    if response.status_code != 200:
        logger.error(f"Telegram rejected alert: HTTP {response.status_code}")
        return False
    return True


def alert_ai_unavailable(error: str, providers: List[str], context: Optional[dict] = None) -> bool:
    """Every AI provider failed while answering a customer."""
    details = {**(context or {}), "providers": ", ".join(providers) or "-", "error": error[:MAX_ERROR_LENGTH]}
    return send_alert("ERROR", "AI providers unavailable", details)


def alert_send_failed(transport: str, error: str, context: Optional[dict] = None) -> bool:
    """A reply was generated but could not be delivered over WhatsApp."""
    details = {**(context or {}), "transport": transport, "error": error[:MAX_ERROR_LENGTH]}
    return send_alert("CRITICAL", "WhatsApp send failed", details)
