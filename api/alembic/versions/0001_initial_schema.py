"""habits, tags and habit_tags

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19
"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "habits",
        sa.Column("id", sa.String(500), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column(
            "type",
            sa.Enum(
                "none",
                "binary",
                "measurable",
                name="habit_type",
                native_enum=False,
            ),
            nullable=False,
        ),
        sa.Column(
            "frequency_type",
            sa.Enum(
                "none",
                "daily",
                "weekly",
                "monthly",
                name="frequency_type",
                native_enum=False,
            ),
            nullable=False,
        ),
        sa.Column("frequency_times_per_period", sa.Integer(), nullable=False),
        sa.Column("target_value", sa.Integer(), nullable=False),
        sa.Column("target_unit", sa.String(100), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "none",
                "ongoing",
                "completed",
                name="habit_status",
                native_enum=False,
            ),
            nullable=False,
        ),
        sa.Column("is_archived", sa.Boolean(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("milestone_target", sa.Integer(), nullable=True),
        sa.Column("milestone_current", sa.Integer(), nullable=True),
        sa.Column("created_at_utc", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at_utc", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_completed_at_utc", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_habits_created_at_utc", "habits", ["created_at_utc"], unique=False
    )

    op.create_table(
        "tags",
        sa.Column("id", sa.String(500), nullable=False),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("created_at_utc", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at_utc", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", name="uq_tags_name"),
    )

    op.create_table(
        "habit_tags",
        sa.Column("habit_id", sa.String(500), nullable=False),
        sa.Column("tag_id", sa.String(500), nullable=False),
        sa.Column("created_at_utc", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["habit_id"], ["habits.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["tag_id"], ["tags.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("habit_id", "tag_id"),
    )
    op.create_index("ix_habit_tags_tag_id", "habit_tags", ["tag_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_habit_tags_tag_id", table_name="habit_tags")
    op.drop_table("habit_tags")
    op.drop_table("tags")
    op.drop_index("ix_habits_created_at_utc", table_name="habits")
    op.drop_table("habits")
