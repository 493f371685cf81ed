from datetime import date, datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

Mood = Literal["great", "good", "okay", "tired", "struggling"]


class CheckinStepWrite(BaseModel):
    """Fields from one step of the check-in flow; omitted fields are left as they are."""

    model_config = ConfigDict(extra="forbid")

    mood: Optional[Mood] = None
    energy_level: Optional[int] = Field(default=None, ge=1, le=5)
    workout_completed: Optional[bool] = None
    breathing_practice: Optional[bool] = None
    water_glasses: Optional[int] = Field(default=None, ge=0)
    cardio_minutes: Optional[int] = Field(default=None, ge=0)
    gratitude: Optional[str] = None
    struggles: Optional[str] = None
    goals: Optional[list[str]] = None


class ProfileFill(BaseModel):
    country: Optional[str] = None
    delivery_date: Optional[date] = None
    instagram_handle: Optional[str] = None


class CheckinFinalize(CheckinStepWrite):
    profile: Optional[ProfileFill] = None


class CheckinOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    day: date
    mood: Optional[str] = None
    energy_level: Optional[int] = None
    workout_completed: bool = False
    breathing_practice: bool = False
    water_glasses: int = 0
    cardio_minutes: int = 0
    gratitude: Optional[str] = None
    struggles: Optional[str] = None
    goals: Optional[list[str]] = None
    is_partial: bool
    postpartum_weeks_at_checkin: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TodayCheckinOut(BaseModel):
    checkin: Optional[CheckinOut] = None
    needs_profile: bool
    steps: list[str]
