from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import JSON, DateTime, Enum, ForeignKey, String, UniqueConstraint, Uuid, func
import uuid
from datetime import date, datetime
from typing import Optional

mood_enum = Enum(
    "great", "good", "okay", "tired", "struggling",
    name="checkin_mood",
)

photo_kind_enum = Enum("start", "finish", name="progress_photo_kind")

MOODS = ("great", "good", "okay", "tired", "struggling")


class Base(DeclarativeBase):
    # Timestamps are stored as UTC instants
    type_annotation_map = {datetime: DateTime(timezone=True)}


class User(Base):
    __tablename__ = "users"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True)
    first_name: Mapped[str] = mapped_column(String, default="")
    last_name: Mapped[str] = mapped_column(String, default="")
    country: Mapped[Optional[str]]
    delivery_date: Mapped[Optional[date]]
    instagram_handle: Mapped[Optional[str]]
    last_checkin_prompt_at: Mapped[Optional[datetime]]
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())


class DailyCheckin(Base):
    __tablename__ = "daily_checkins"
    __table_args__ = (UniqueConstraint("user_id", "day", name="uq_daily_checkins_user_day"),)
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    day: Mapped[date]
    mood: Mapped[Optional[str]] = mapped_column(mood_enum)
    energy_level: Mapped[Optional[int]]
    workout_completed: Mapped[bool] = mapped_column(default=False)
    breathing_practice: Mapped[bool] = mapped_column(default=False)
    water_glasses: Mapped[int] = mapped_column(default=0)
    cardio_minutes: Mapped[int] = mapped_column(default=0)
    gratitude: Mapped[Optional[str]]
    struggles: Mapped[Optional[str]]
    goals: Mapped[Optional[list]] = mapped_column(JSON)
    is_partial: Mapped[bool] = mapped_column(default=True)
    postpartum_weeks_at_checkin: Mapped[Optional[int]]
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now(), onupdate=func.now())


class WorkoutCompletion(Base):
    __tablename__ = "workout_completions"
    __table_args__ = (
        UniqueConstraint("user_id", "program_id", "week_number", "day_number", name="uq_workout_completion_identity"),
    )
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    program_id: Mapped[str]
    week_number: Mapped[int]
    day_number: Mapped[int]
    completed_at: Mapped[datetime] = mapped_column(server_default=func.now())
    rating: Mapped[Optional[int]]
    notes: Mapped[Optional[str]]


class ProgressMeasurement(Base):
    __tablename__ = "progress_measurements"
    __table_args__ = (UniqueConstraint("user_id", "program_id", "week", name="uq_progress_measurement_week"),)
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    program_id: Mapped[str]
    week: Mapped[int]
    dr_gap_measurement: Mapped[Optional[str]]
    core_connection_score: Mapped[Optional[int]]
    pelvic_floor_symptoms: Mapped[Optional[str]]
    posture_back_discomfort: Mapped[Optional[int]]
    energy_level: Mapped[Optional[int]]
    notes: Mapped[Optional[str]]
    recorded_at: Mapped[datetime] = mapped_column(server_default=func.now())


class ProgramEnrollment(Base):
    __tablename__ = "program_enrollments"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    program_id: Mapped[str]
    enrolled_at: Mapped[datetime] = mapped_column(server_default=func.now())
    is_active: Mapped[bool] = mapped_column(default=True)


class ProgressPhoto(Base):
    __tablename__ = "progress_photos"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    program_id: Mapped[str]
    kind: Mapped[str] = mapped_column(photo_kind_enum)
    uploaded_at: Mapped[datetime] = mapped_column(server_default=func.now())
