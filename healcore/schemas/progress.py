from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class MeasurementIn(BaseModel):
    week: int = Field(ge=1)
    dr_gap_measurement: Optional[str] = None
    core_connection_score: Optional[int] = Field(default=None, ge=1, le=10)
    pelvic_floor_symptoms: Optional[str] = None
    posture_back_discomfort: Optional[int] = Field(default=None, ge=1, le=10)
    energy_level: Optional[int] = Field(default=None, ge=1, le=10)
    notes: Optional[str] = None


class MeasurementOut(MeasurementIn):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    program_id: str
    recorded_at: datetime


class CompletionIn(BaseModel):
    week_number: int = Field(ge=1)
    day_number: int = Field(ge=1)
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    notes: Optional[str] = None


class CompletionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    program_id: str
    week_number: int
    day_number: int
    completed_at: datetime
    rating: Optional[int] = None
    notes: Optional[str] = None
    created: bool = True
