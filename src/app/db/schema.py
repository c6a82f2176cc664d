"""SQLAlchemy Base, enums, and declarative models."""

import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional

from sqlalchemy import JSON, Date, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

DEFAULT_SCHEDULED_TIME = "18:30"


class Base(DeclarativeBase):
    type_annotation_map = {date: Date()}

    id = mapped_column(
        UUID(as_uuid=True), primary_key=True, index=True, default=uuid.uuid4
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )


# Enums

class TaskStatus(str, Enum):
    TODO = "todo"
    ACTIVE = "active"
    BLOCKED = "blocked"
    COMPLETED = "completed"


class TaskPriority(str, Enum):
    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# MODELS
# project/task/routine_task are written by the dashboard; this service reads them.

class Project(Base):
    __tablename__ = "project"

    organization_id: Mapped[str] = mapped_column(index=True)
    name: Mapped[str]
    color: Mapped[str] = mapped_column(default="#6366f1")
    progress: Mapped[int] = mapped_column(default=0)
    status: Mapped[str] = mapped_column(default="active")

    # Relationships
    tasks: Mapped[List["Task"]] = relationship(back_populates="project")


class Task(Base):
    __tablename__ = "task"

    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("project.id", ondelete="CASCADE"),
        index=True,
        nullable=True,
    )
    name: Mapped[str]
    assignee: Mapped[Optional[str]] = mapped_column(index=True)
    status: Mapped[TaskStatus] = mapped_column(
        SAEnum(TaskStatus, name="task_status"),
        default=TaskStatus.TODO,
    )
    priority: Mapped[TaskPriority] = mapped_column(
        SAEnum(TaskPriority, name="task_priority"),
        default=TaskPriority.MEDIUM,
    )
    progress: Mapped[int] = mapped_column(default=0)
    due_date: Mapped[Optional[date]]
    completed_date: Mapped[Optional[date]]
    sort_order: Mapped[int] = mapped_column(default=0)

    project: Mapped[Optional["Project"]] = relationship(back_populates="tasks")


class RoutineTask(Base):
    """One routine occurrence for one day."""

    __tablename__ = "routine_task"

    organization_id: Mapped[str] = mapped_column(index=True)
    scheduled_date: Mapped[date] = mapped_column(index=True)
    name: Mapped[str]
    assignee: Mapped[Optional[str]]
    category: Mapped[str] = mapped_column(default="work")
    time: Mapped[Optional[str]]
    duration: Mapped[int] = mapped_column(default=0)
    completed: Mapped[bool] = mapped_column(default=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    skip_reason: Mapped[Optional[str]]


class NotificationSettings(Base):
    """LINE daily report settings, one row per organization."""

    __tablename__ = "notification_settings"

    organization_id: Mapped[str] = mapped_column(unique=True, index=True)
    enabled: Mapped[bool] = mapped_column(default=False)
    scheduled_time: Mapped[str] = mapped_column(default=DEFAULT_SCHEDULED_TIME)
    recipients: Mapped[list] = mapped_column(JSON, default=list)
    credential: Mapped[str] = mapped_column(default="")
    destination: Mapped[str] = mapped_column(default="")
    last_sent_date: Mapped[Optional[date]]
    last_sent_datetime: Mapped[Optional[str]]
