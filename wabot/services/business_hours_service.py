from datetime import datetime, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import ValidationError

from wabot.logging_config import get_logger
from wabot.schemas.chatbot_config import WEEKDAYS, BusinessHours

logger = get_logger("business_hours")

DEFAULT_OUT_OF_HOURS_MESSAGE = (
    "Terima kasih atas pesan Anda. Kami sedang tidak dalam jam operasional. "
    "Kami akan membalas pesan Anda sesegera mungkin."
)


def parse_business_hours(raw: Any) -> Optional[BusinessHours]:
    """Validate the stored JSON blob. Malformed schedules mean "no schedule"."""
    if raw is None or raw == {}:
        return None
    if isinstance(raw, BusinessHours):
        return raw
    if not isinstance(raw, dict):
        logger.warning(f"Ignoring business_hours of type {type(raw).__name__}")
        return None
    try:
        return BusinessHours.model_validate(raw)
    except ValidationError as e:
        logger.warning(
            "Ignoring malformed business_hours",
            extra={"context": {"errors": e.errors(include_url=False, include_input=False)}},
        )
        return None


def is_open(schedule: Optional[BusinessHours], now: datetime) -> bool:
    """Whether ``now`` (already in the chatbot's local time) is inside the schedule.

    No schedule or ``enabled=False`` never gates. Bounds are inclusive at
    minute granularity. An end earlier than the start (``20:00``-``02:00``)
    is an overnight window, not an empty one, so such a day is open from
    the start until midnight and again from midnight until the end.
    """
    if schedule is None or not schedule.enabled:
        return True

    day = schedule.for_weekday(now.weekday())
    if day is None or not day.open:
        return False

    current = now.hour * 60 + now.minute
    start = day.start_minutes
    end = day.end_minutes
    if start <= end:
        return start <= current <= end
    return current >= start or current <= end


def out_of_hours_message(schedule: Optional[BusinessHours]) -> str:
    if schedule and schedule.out_of_hours_message and schedule.out_of_hours_message.strip():
        return schedule.out_of_hours_message.strip()
    return DEFAULT_OUT_OF_HOURS_MESSAGE


def resolve_timezone(name: Optional[str], default: str = "Asia/Jakarta") -> ZoneInfo:
    for candidate in (name, default):
        if not candidate:
            continue
        try:
            return ZoneInfo(candidate)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown timezone {candidate!r}")
    return ZoneInfo("UTC")


def local_now(now_utc: datetime, tz_name: Optional[str], default: str = "Asia/Jakarta") -> datetime:
    if now_utc.tzinfo is None:
        now_utc = now_utc.replace(tzinfo=timezone.utc)
    return now_utc.astimezone(resolve_timezone(tz_name, default))


def describe_business_hours(schedule: Optional[BusinessHours]) -> str:
    """Human-readable schedule for the AI prompt."""
    if schedule is None or not schedule.enabled:
        return "Tidak ditentukan"

    parts = []
    for index, name in enumerate(WEEKDAYS):
        day = schedule.for_weekday(index)
        if day is None or not day.open:
            parts.append(f"{name}: tutup")
        else:
            parts.append(f"{name}: {day.start}-{day.end}")
    return "; ".join(parts)
