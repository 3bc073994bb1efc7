import logging
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, ValidationError, field_validator


class SettingsSchema(BaseModel):
    db_path: str = "workout.db"
    timezone: str = "UTC"
    week_start: Literal["sunday", "monday"] = "sunday"
    weight_unit: Literal["kg", "lb"] = "kg"
    default_weeks: int = Field(default=8, ge=1)
    top_exercises_limit: int = Field(default=10, ge=1)
    streak_session_limit: int = Field(default=500, ge=1)
    bulk_fetch_threshold: int = Field(default=50, ge=0)
    log_level: str = "WARNING"

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"unknown timezone: {value}")
        return value

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level: {value}")
        return level


def validate_settings(data: dict) -> SettingsSchema:
    try:
        return SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
