import re
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_TIME_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def time_to_minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


class DaySchedule(BaseModel):
    model_config = ConfigDict(extra="ignore")

    open: bool = False
    start: str = "09:00"
    end: str = "17:00"

    @field_validator("start", "end")
    @classmethod
    def _validate_time(cls, value: str) -> str:
        value = (value or "").strip()
        if not _TIME_PATTERN.match(value):
            raise ValueError(f"expected HH:MM, got {value!r}")
        hours, minutes = value.split(":")
        return f"{int(hours):02d}:{minutes}"

    @property
    def start_minutes(self) -> int:
        return time_to_minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return time_to_minutes(self.end)


class BusinessHours(BaseModel):
    """Per-weekday opening schedule stored on a chatbot."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    enabled: bool = False
    monday: Optional[DaySchedule] = None
    tuesday: Optional[DaySchedule] = None
    wednesday: Optional[DaySchedule] = None
    thursday: Optional[DaySchedule] = None
    friday: Optional[DaySchedule] = None
    saturday: Optional[DaySchedule] = None
    sunday: Optional[DaySchedule] = None
    out_of_hours_message: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("out_of_hours_message", "outOfHoursMessage"),
    )

    def for_weekday(self, weekday: int) -> Optional[DaySchedule]:
        """Schedule for ``datetime.weekday()`` (0 = Monday)."""
        return getattr(self, WEEKDAYS[weekday])
