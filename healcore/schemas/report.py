from datetime import date, datetime
from typing import Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class StreakOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    current_streak: int = 0
    best_streak: int = 0


class MilestoneOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    emoji: str
    message: str
    is_milestone: bool


class WeeklyStatsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_checkins: int = 0
    workout_days: int = 0
    breathing_days: int = 0
    avg_water_glasses: float = 0.0
    avg_cardio_minutes: int = 0


class DayState(BaseModel):
    """One cell of the weekly calendar strip."""

    day: date
    has_checkin: bool = False
    is_active: bool = False
    is_partial: bool = False
    mood: Optional[str] = None
    workout_completed: bool = False
    breathing_practice: bool = False
    water_glasses: int = 0
    cardio_minutes: int = 0


class WeeklySummary(BaseModel):
    week_start: date
    week_end: date
    program_week: int
    days: list[DayState]
    streak: StreakOut
    stats: WeeklyStatsOut
    milestone: MilestoneOut
    share_message: str
    share_url: str


class MeasurementDelta(BaseModel):
    metric: str
    label: str
    start: Optional[Union[int, str]] = None
    end: Optional[Union[int, str]] = None
    # signed end - start for numeric scales; None for free-form values
    change: Optional[int] = None
    changed: bool = False
    improved: Optional[bool] = None


class MonthlyReport(BaseModel):
    month: str  # YYYY-MM
    days_in_month: int
    total_checkins: int = 0
    total_workouts: int = 0
    total_breathing_sessions: int = 0
    total_cardio_minutes: int = 0
    avg_water: float = 0.0
    avg_energy: float = 0.0
    mood_breakdown: dict[str, int] = Field(default_factory=dict)
    streak: StreakOut = Field(default_factory=StreakOut)
    active_days: int = 0
    consistency_score: int = 0
    measurement_deltas: list[MeasurementDelta] = Field(default_factory=list)
    motivational_message: str = ""

    @property
    def changed_deltas(self) -> list[MeasurementDelta]:
        return [d for d in self.measurement_deltas if d.changed]


class MatrixRow(BaseModel):
    user_id: UUID
    name: str
    email: str
    enrolled_at: datetime
    weeks: dict[int, int]
    total: int
    completion_pct: int
    has_start_photo: bool = False
    has_finish_photo: bool = False
    last_activity: Optional[datetime] = None
    status: str  # fully_completed | in_progress | not_started


class MatrixSummary(BaseModel):
    enrolled: int = 0
    fully_completed: int = 0
    in_progress: int = 0
    not_started: int = 0
    with_start_photo: int = 0
    with_finish_photo: int = 0


class ProgramMatrix(BaseModel):
    program_id: str
    program_weeks: int
    quota: int
    generated_at: datetime
    rows: list[MatrixRow] = Field(default_factory=list)
    summary: MatrixSummary = Field(default_factory=MatrixSummary)
