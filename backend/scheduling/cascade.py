"""
Timeline cascade scheduling.

When a task's dates move by some delta, every task that depends on it
(directly or transitively) is moved by the same delta. The walk keeps a
visited set seeded with the edited task, so each task is shifted at most
once per cascade, even in diamond-shaped graphs or if a cycle slipped
into the stored data.

The cascade is best-effort, not transactional: each shifted task is
persisted on its own, and a failure part way through leaves the tasks
already shifted in place.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Set

import models
from scheduling.dependency_types import SHIFTED_FIELDS, status_value
from scheduling.errors import NotFoundError, PermissionDeniedError
from scheduling.notifications import Notifier
from scheduling.repositories import DependencyRepository, TaskRepository, WorkspaceRepository
from time_utils import calculate_date_delta, duration_days, shift

logger = logging.getLogger(__name__)

PROGRESS_BY_STATUS = {
    models.TaskStatus.done: 100,
    models.TaskStatus.in_progress: 50,
}


@dataclass
class CascadeEntry:
    task_id: int
    title: str
    old_start_date: Optional[datetime]
    old_due_date: Optional[datetime]
    new_start_date: Optional[datetime]
    new_due_date: Optional[datetime]


@dataclass
class CascadeResult:
    updated_count: int = 0
    tasks: List[CascadeEntry] = field(default_factory=list)


@dataclass
class RescheduleResult:
    task_id: int
    date_delta: int
    cascade_result: CascadeResult


@dataclass
class GanttTask:
    id: int
    title: str
    start_date: Optional[datetime]
    due_date: Optional[datetime]
    duration: int
    status: models.TaskStatus
    is_milestone: bool
    progress: int
    dependencies: List[Dict] = field(default_factory=list)


def apply_delta(task: models.Task, date_delta: int) -> bool:
    """
    Shift a dependent task's dates by date_delta milliseconds.

    Both start_date and due_date (when present) move by the same delta,
    whatever the dependency type. Milestones are pinned back to start_date == due_date
    afterwards.

    Returns:
        True if the task had at least one date to move
    """
    updated = False

    for field_name in SHIFTED_FIELDS:
        value = getattr(task, field_name)
        if value is not None:
            setattr(task, field_name, shift(value, date_delta))
            updated = True

    if updated and task.is_milestone and task.due_date is not None:
        task.start_date = task.due_date

    return updated


def delta_for_changes(task: models.Task, changes: dict) -> int:
    """
    Delta implied by a date edit: measured on start_date when both the old
    and the new start are known, otherwise on due_date.
    """
    new_start = changes.get("start_date")
    new_due = changes.get("due_date")

    if new_start is not None and task.start_date is not None:
        return calculate_date_delta(task.start_date, new_start)
    if new_due is not None and task.due_date is not None:
        return calculate_date_delta(task.due_date, new_due)
    return 0


def progress_for(status: models.TaskStatus) -> int:
    return PROGRESS_BY_STATUS.get(status, 0)


class TimelineScheduler:
    def __init__(
        self,
        tasks: TaskRepository,
        dependencies: DependencyRepository,
        workspaces: WorkspaceRepository,
        notifier: Notifier
    ):
        self.tasks = tasks
        self.dependencies = dependencies
        self.workspaces = workspaces
        self.notifier = notifier

    def _require_member(self, workspace_id: int, actor_id: Optional[int]) -> None:
        if actor_id is None or not self.workspaces.is_member(workspace_id, actor_id):
            logger.info(f"User {actor_id} is not a member of workspace {workspace_id}")
            raise PermissionDeniedError("You do not have access to this workspace")

    def update_task_timeline(
        self,
        task_id: int,
        date_delta: int,
        actor_id: Optional[int] = None,
        visited: Optional[Set[int]] = None
    ) -> CascadeResult:
        """
        Cascade a date shift from task_id to all of its transitive dependents.

        Args:
            task_id: Task whose dates already moved
            date_delta: Signed shift in milliseconds (new - old)
            actor_id: User credited with the change in events and activity
            visited: Tasks to leave untouched; task_id is added on entry

        Returns:
            CascadeResult with the number of shifted tasks and their old/new dates

        Raises:
            NotFoundError: task_id does not exist or is deleted
        """
        if visited is None:
            visited = set()
        result = CascadeResult()

        if task_id in visited:
            logger.debug(f"Skipping already visited task: {task_id}")
            return result
        visited.add(task_id)

        task = self.tasks.find_by_id(task_id)
        if task is None:
            logger.info(f"Task {task_id} not found")
            raise NotFoundError("Task not found")

        if date_delta == 0:
            logger.debug(f"Zero delta for task {task_id}, nothing to cascade")
            return result

        # Depth-first with an explicit stack of (task, remaining dependent edges)
        stack = [(task_id, iter(self.dependencies.find_active_by_depends_on(task_id)))]

        while stack:
            source_id, edges = stack[-1]
            dependency = next(edges, None)
            if dependency is None:
                stack.pop()
                continue

            dependent = dependency.task
            if dependent is None or dependent.is_deleted:
                continue
            if dependent.id in visited:
                logger.debug(f"Skipping visited dependent {dependent.id} of task {source_id}")
                continue

            entry = self._shift_dependent(dependent, dependency, date_delta, source_id, actor_id)
            if entry is None:
                continue

            result.updated_count += 1
            result.tasks.append(entry)

            visited.add(dependent.id)
            stack.append((dependent.id, iter(self.dependencies.find_active_by_depends_on(dependent.id))))

        logger.info(f"Cascade from task {task_id} (delta {date_delta}ms) updated {result.updated_count} task(s)")
        return result

    def _shift_dependent(
        self,
        dependent: models.Task,
        dependency: models.TaskDependency,
        date_delta: int,
        source_id: int,
        actor_id: Optional[int]
    ) -> Optional[CascadeEntry]:
        old_start, old_due = dependent.start_date, dependent.due_date

        if not apply_delta(dependent, date_delta):
            logger.debug(f"Task {dependent.id} has no dates, cascade stops here")
            return None

        self.tasks.save(dependent)
        logger.debug(f"Shifted task {dependent.id} by {date_delta}ms via {status_value(dependency.type)} dependency on {source_id}")

        self.notifier.log_activity(
            actor_id, dependent.workspace_id, models.ActivityAction.UPDATE, "Task", dependent.id,
            {
                "reason": "gantt_auto_schedule",
                "source_task_id": source_id,
                "dependency_type": status_value(dependency.type),
                "date_delta": date_delta,
            }
        )
        self.notifier.emit(dependent.id, models.TaskEventType.timeline_updated, {
            "task": {
                "id": dependent.id,
                "title": dependent.title,
                "start_date": dependent.start_date,
                "due_date": dependent.due_date,
            },
            "reason": "dependency_cascade",
            "source_task_id": source_id,
        }, actor_id)

        return CascadeEntry(
            task_id=dependent.id,
            title=dependent.title,
            old_start_date=old_start,
            old_due_date=old_due,
            new_start_date=dependent.start_date,
            new_due_date=dependent.due_date
        )

    def reschedule_task(self, task_id: int, changes: dict, actor_id: Optional[int] = None) -> RescheduleResult:
        """
        Set a task's own dates, then cascade the implied delta to its dependents.

        Args:
            task_id: Task being edited
            changes: Subset of {"start_date", "due_date"}; keys present are applied, even when None
            actor_id: Acting user, must be a member of the task's workspace
        """
        task = self.tasks.find_by_id(task_id)
        if task is None:
            raise NotFoundError("Task not found")
        self._require_member(task.workspace_id, actor_id)

        date_delta = delta_for_changes(task, changes)

        for key in ("start_date", "due_date"):
            if key in changes:
                setattr(task, key, changes[key])
        if task.is_milestone and task.due_date is not None:
            task.start_date = task.due_date
        self.tasks.save(task)

        cascade_result = self.update_task_timeline(task_id, date_delta, actor_id)
        return RescheduleResult(task_id=task_id, date_delta=date_delta, cascade_result=cascade_result)

    def toggle_milestone(self, task_id: int, actor_id: Optional[int] = None) -> models.Task:
        task = self.tasks.find_by_id(task_id)
        if task is None:
            raise NotFoundError("Task not found")
        self._require_member(task.workspace_id, actor_id)

        task.is_milestone = not task.is_milestone
        if task.is_milestone and task.due_date is not None:
            task.start_date = task.due_date
        self.tasks.save(task)

        self.notifier.log_activity(
            actor_id, task.workspace_id, models.ActivityAction.UPDATE, "Task", task.id,
            {"is_milestone": task.is_milestone}
        )
        logger.info(f"Task {task_id} {'marked as' if task.is_milestone else 'unmarked from'} milestone")
        return task

    def get_gantt_data(self, space_id: int, actor_id: Optional[int] = None) -> List[GanttTask]:
        space = self.workspaces.find_space(space_id)
        if space is None:
            raise NotFoundError("Space not found")
        self._require_member(space.workspace_id, actor_id)

        tasks = self.tasks.list_by_space(space_id)
        edges = self.dependencies.find_active_for_tasks([t.id for t in tasks])

        edges_by_task: Dict[int, List[Dict]] = {}
        for edge in edges:
            edges_by_task.setdefault(edge.task_id, []).append({
                "depends_on": edge.depends_on_id,
                "type": status_value(edge.type),
            })

        logger.debug(f"Gantt data for space {space_id}: {len(tasks)} tasks, {len(edges)} dependencies")
        return [
            GanttTask(
                id=task.id,
                title=task.title,
                start_date=task.start_date,
                due_date=task.due_date,
                duration=duration_days(task.start_date, task.due_date),
                status=task.status,
                is_milestone=task.is_milestone,
                progress=progress_for(task.status),
                dependencies=edges_by_task.get(task.id, [])
            )
            for task in tasks
        ]
