"""Read tasks and routine instances of one organization for reporting."""

from datetime import date

from sqlalchemy.orm import joinedload

from app.db.schema import Project, RoutineTask, Task
from app.models.activity import RoutineSnapshot, TaskSnapshot
from app.services.base import BaseService


class ActivityService(BaseService):
    def get_task_snapshots(self) -> list[TaskSnapshot]:
        """All tasks of the organization's projects, with project details."""
        tasks = (
            self.session.query(Task)
            .join(Task.project)
            .filter(Project.organization_id == self.organization_id)
            .options(joinedload(Task.project))
            .order_by(Project.created_at.asc(), Task.sort_order.asc(), Task.created_at.asc())
            .all()
        )
        return [TaskSnapshot.from_task(task) for task in tasks]

    def get_routine_snapshots(self, day: date) -> list[RoutineSnapshot]:
        routines = (
            self.session.query(RoutineTask)
            .filter(
                RoutineTask.organization_id == self.organization_id,
                RoutineTask.scheduled_date == day,
            )
            .order_by(RoutineTask.time.asc(), RoutineTask.created_at.asc())
            .all()
        )
        return [RoutineSnapshot.model_validate(routine) for routine in routines]
