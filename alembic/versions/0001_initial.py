"""initial progress tracking schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19
"""
import sqlalchemy as sa
from alembic import op

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

MOODS = ("great", "good", "okay", "tired", "struggling")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("first_name", sa.String(), nullable=False, server_default=""),
        sa.Column("last_name", sa.String(), nullable=False, server_default=""),
        sa.Column("country", sa.String(), nullable=True),
        sa.Column("delivery_date", sa.Date(), nullable=True),
        sa.Column("instagram_handle", sa.String(), nullable=True),
        sa.Column("last_checkin_prompt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_table(
        "daily_checkins",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("mood", sa.Enum(*MOODS, name="checkin_mood"), nullable=True),
        sa.Column("energy_level", sa.Integer(), nullable=True),
        sa.Column("workout_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("breathing_practice", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("water_glasses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cardio_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("gratitude", sa.String(), nullable=True),
        sa.Column("struggles", sa.String(), nullable=True),
        sa.Column("goals", sa.JSON(), nullable=True),
        sa.Column("is_partial", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("postpartum_weeks_at_checkin", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("user_id", "day", name="uq_daily_checkins_user_day"),
    )
    op.create_index("ix_daily_checkins_user_id", "daily_checkins", ["user_id"])
    op.create_table(
        "workout_completions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("program_id", sa.String(), nullable=False),
        sa.Column("week_number", sa.Integer(), nullable=False),
        sa.Column("day_number", sa.Integer(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=True),
        sa.Column("notes", sa.String(), nullable=True),
        sa.UniqueConstraint(
            "user_id", "program_id", "week_number", "day_number", name="uq_workout_completion_identity"
        ),
    )
    op.create_index("ix_workout_completions_user_id", "workout_completions", ["user_id"])
    op.create_table(
        "progress_measurements",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("program_id", sa.String(), nullable=False),
        sa.Column("week", sa.Integer(), nullable=False),
        sa.Column("dr_gap_measurement", sa.String(), nullable=True),
        sa.Column("core_connection_score", sa.Integer(), nullable=True),
        sa.Column("pelvic_floor_symptoms", sa.String(), nullable=True),
        sa.Column("posture_back_discomfort", sa.Integer(), nullable=True),
        sa.Column("energy_level", sa.Integer(), nullable=True),
        sa.Column("notes", sa.String(), nullable=True),
        sa.Column("recorded_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("user_id", "program_id", "week", name="uq_progress_measurement_week"),
    )
    op.create_index("ix_progress_measurements_user_id", "progress_measurements", ["user_id"])
    op.create_table(
        "program_enrollments",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("program_id", sa.String(), nullable=False),
        sa.Column("enrolled_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_program_enrollments_user_id", "program_enrollments", ["user_id"])
    op.create_table(
        "progress_photos",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("program_id", sa.String(), nullable=False),
        sa.Column("kind", sa.Enum("start", "finish", name="progress_photo_kind"), nullable=False),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_progress_photos_user_id", "progress_photos", ["user_id"])


def downgrade() -> None:
    op.drop_table("progress_photos")
    op.drop_table("program_enrollments")
    op.drop_table("progress_measurements")
    op.drop_table("workout_completions")
    op.drop_table("daily_checkins")
    op.drop_table("users")
    sa.Enum(name="progress_photo_kind").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="checkin_mood").drop(op.get_bind(), checkfirst=True)
