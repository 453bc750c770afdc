import re
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

_TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class TrackerSettingsUpdate(BaseModel):
    daily_goal_ml: Optional[int] = Field(None, ge=500, le=10000)
    glass_size_ml: Optional[int] = Field(None, ge=50, le=1000)
    reminder_enabled: Optional[bool] = None
    reminder_times: Optional[List[str]] = Field(None, max_length=24)

    @field_validator("reminder_times")
    @classmethod
    def _times(cls, v):
        if v is None:
            return v
        for t in v:
            if not re.match(_TIME_PATTERN, t):
                raise ValueError(f"Invalid time: {t}. Use HH:MM")
        return sorted(set(v))


class TrackerSettingsOut(BaseModel):
    daily_goal_ml: int
    glass_size_ml: int
    reminder_enabled: bool
    reminder_times: List[str]

    class Config:
        from_attributes = True


class IntakeCreate(BaseModel):
    amount_ml: int = Field(ge=1, le=5000)
    type: Literal["water", "tea", "juice", "other"] = "water"
    time: Optional[str] = Field(None, pattern=_TIME_PATTERN)


class IntakeEntry(BaseModel):
    amount: int
    type: str
    time: str


class TrackerLogOut(BaseModel):
    intake_ml: int
    goal_ml: int
    goal_met: bool
    entries: List[IntakeEntry]

    class Config:
        from_attributes = True
