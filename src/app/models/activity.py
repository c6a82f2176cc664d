"""Read-only task and routine snapshots fed to the daily report."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.db.schema import Task, TaskPriority, TaskStatus


class TaskSnapshot(BaseModel):
    """A task together with the project it belongs to."""

    model_config = ConfigDict(from_attributes=True)

    name: str
    assignee: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    progress: int = Field(default=0, ge=0, le=100)
    due_date: Optional[date] = None
    completed_date: Optional[date] = None
    project_name: Optional[str] = None
    project_color: Optional[str] = None
    project_progress: Optional[int] = None

    @classmethod
    def from_task(cls, task: Task) -> TaskSnapshot:
        project = task.project
        return cls(
            name=task.name,
            assignee=task.assignee,
            status=task.status,
            priority=task.priority,
            progress=task.progress,
            due_date=task.due_date,
            completed_date=task.completed_date,
            project_name=project.name if project else None,
            project_color=project.color if project else None,
            project_progress=project.progress if project else None,
        )


class RoutineSnapshot(BaseModel):
    """One routine occurrence on one calendar day."""

    model_config = ConfigDict(from_attributes=True)

    name: str
    assignee: Optional[str] = None
    scheduled_date: date
    category: str = "work"
    time: Optional[str] = None
    duration: int = 0
    completed: bool = False
    completed_at: Optional[datetime] = None
    skip_reason: Optional[str] = None
