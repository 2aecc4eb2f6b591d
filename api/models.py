"""SQLAlchemy models for DevHabit habit and tag tracking."""

import uuid
from datetime import UTC, date, datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


def utcnow() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


def new_habit_id() -> str:
    return f"h_{uuid.uuid4()}"


def new_tag_id() -> str:
    return f"t_{uuid.uuid4()}"


class HabitType(str, PyEnum):
    NONE = "none"
    BINARY = "binary"
    MEASURABLE = "measurable"


class HabitStatus(str, PyEnum):
    NONE = "none"
    ONGOING = "ongoing"
    COMPLETED = "completed"


class FrequencyType(str, PyEnum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


def _enum_column(enum_cls: type[PyEnum], name: str) -> Enum:
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        values_callable=lambda x: [e.value for e in x],
    )


class Habit(Base):
    """A habit the user is building.

    Frequency, target and milestone are stored as flat column groups.
    """

    __tablename__ = "habits"

    id: Mapped[str] = mapped_column(String(500), primary_key=True, default=new_habit_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    type: Mapped[HabitType] = mapped_column(
        _enum_column(HabitType, "habit_type"), nullable=False
    )

    frequency_type: Mapped[FrequencyType] = mapped_column(
        _enum_column(FrequencyType, "frequency_type"), nullable=False
    )
    frequency_times_per_period: Mapped[int] = mapped_column(Integer, nullable=False)

    target_value: Mapped[int] = mapped_column(Integer, nullable=False)
    target_unit: Mapped[str] = mapped_column(String(100), nullable=False)

    status: Mapped[HabitStatus] = mapped_column(
        _enum_column(HabitStatus, "habit_status"),
        nullable=False,
        default=HabitStatus.ONGOING,
    )
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    milestone_target: Mapped[int | None] = mapped_column(Integer, nullable=True)
    milestone_current: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at_utc: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )
    updated_at_utc: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_completed_at_utc: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    habit_tags: Mapped[list["HabitTag"]] = relationship(
        back_populates="habit",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Tag(Base):
    __tablename__ = "tags"
    __table_args__ = (UniqueConstraint("name", name="uq_tags_name"),)

    id: Mapped[str] = mapped_column(String(500), primary_key=True, default=new_tag_id)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at_utc: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at_utc: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    habit_tags: Mapped[list["HabitTag"]] = relationship(
        back_populates="tag",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class HabitTag(Base):
    """Association between a habit and a tag."""

    __tablename__ = "habit_tags"

    habit_id: Mapped[str] = mapped_column(
        String(500),
        ForeignKey("habits.id", ondelete="CASCADE"),
        primary_key=True,
    )
    tag_id: Mapped[str] = mapped_column(
        String(500),
        ForeignKey("tags.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )
    created_at_utc: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    habit: Mapped[Habit] = relationship(back_populates="habit_tags")
    tag: Mapped[Tag] = relationship(back_populates="habit_tags")
