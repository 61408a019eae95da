"""
Data access for tasks, dependency edges and workspace membership.

Services never query the session directly; they are handed these
repositories at construction time.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

import models
from time_utils import utc_now

logger = logging.getLogger(__name__)


class TaskRepository:
    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, task_id: int) -> Optional[models.Task]:
        """Return a non-deleted task, or None."""
        return self.db.query(models.Task)\
            .filter(models.Task.id == task_id, models.Task.is_deleted == False)\
            .first()

    def list_by_space(self, space_id: int) -> List[models.Task]:
        """Non-deleted tasks of a space, ordered by start date (undated last)."""
        return self.db.query(models.Task)\
            .filter(models.Task.space_id == space_id, models.Task.is_deleted == False)\
            .order_by(models.Task.start_date.is_(None), models.Task.start_date, models.Task.id)\
            .all()

    def save(self, task: models.Task) -> models.Task:
        self.db.add(task)
        self.db.commit()
        self.db.refresh(task)
        logger.debug(f"Saved task {task.id} (start={task.start_date}, due={task.due_date})")
        return task


class DependencyRepository:
    def __init__(self, db: Session):
        self.db = db

    def _active(self):
        return self.db.query(models.TaskDependency)\
            .filter(models.TaskDependency.is_deleted == False)

    def find_by_id(self, dependency_id: int) -> Optional[models.TaskDependency]:
        return self._active()\
            .filter(models.TaskDependency.id == dependency_id)\
            .first()

    def find_active_by_task(self, task_id: int) -> List[models.TaskDependency]:
        """Active edges where task_id is the successor (its predecessors)."""
        return self._active()\
            .filter(models.TaskDependency.task_id == task_id)\
            .order_by(models.TaskDependency.created_at, models.TaskDependency.id)\
            .all()

    def find_active_by_depends_on(self, task_id: int) -> List[models.TaskDependency]:
        """Active edges where task_id is the predecessor (its dependents)."""
        return self._active()\
            .filter(models.TaskDependency.depends_on_id == task_id)\
            .order_by(models.TaskDependency.id)\
            .all()

    def find_active_for_tasks(self, task_ids: List[int]) -> List[models.TaskDependency]:
        if not task_ids:
            return []
        return self._active()\
            .filter(models.TaskDependency.task_id.in_(task_ids))\
            .order_by(models.TaskDependency.id)\
            .all()

    def find_one(self, task_id: int, depends_on_id: int) -> Optional[models.TaskDependency]:
        """Active edge for the exact (task, depends_on) pair, if any."""
        return self._active()\
            .filter(
                models.TaskDependency.task_id == task_id,
                models.TaskDependency.depends_on_id == depends_on_id
            )\
            .first()

    def create(self, dependency: models.TaskDependency) -> models.TaskDependency:
        self.db.add(dependency)
        self.db.commit()
        self.db.refresh(dependency)
        return dependency

    def soft_delete(self, dependency: models.TaskDependency) -> models.TaskDependency:
        dependency.is_deleted = True
        dependency.deleted_at = utc_now()
        self.db.commit()
        self.db.refresh(dependency)
        return dependency


class WorkspaceRepository:
    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, workspace_id: int) -> Optional[models.Workspace]:
        return self.db.query(models.Workspace)\
            .filter(models.Workspace.id == workspace_id, models.Workspace.is_deleted == False)\
            .first()

    def find_space(self, space_id: int) -> Optional[models.Space]:
        return self.db.query(models.Space)\
            .filter(models.Space.id == space_id, models.Space.is_deleted == False)\
            .first()

    def is_member(self, workspace_id: int, user_id: int) -> bool:
        membership = self.db.query(models.WorkspaceMember)\
            .filter(
                models.WorkspaceMember.workspace_id == workspace_id,
                models.WorkspaceMember.user_id == user_id
            )\
            .first()
        return membership is not None
