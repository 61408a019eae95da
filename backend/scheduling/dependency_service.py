"""
Dependency graph engine.

Validates and mutates dependency edges between tasks. An edge
(task -> depends_on, type) says that `task` is the successor and
`depends_on` the predecessor. The set of active edges is kept acyclic:
every insertion is preceded by a depth-first search for an existing path
from the predecessor back to the successor.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import models
from scheduling.dependency_types import parse_dependency_type, rule_for, blocking_reason, status_value
from scheduling.errors import ConflictError, InvalidArgumentError, NotFoundError, PermissionDeniedError
from scheduling.notifications import Notifier
from scheduling.repositories import DependencyRepository, TaskRepository, WorkspaceRepository

logger = logging.getLogger(__name__)


@dataclass
class BlockingEntry:
    dependency: models.TaskDependency
    task: models.Task
    is_blocking: bool
    reason: Optional[str] = None


def task_projection(task: models.Task) -> dict:
    return {"id": task.id, "title": task.title, "status": status_value(task.status)}


class DependencyService:
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

    def require_member(self, workspace_id: int, actor_id: int, action: str) -> None:
        workspace = self.workspaces.find_by_id(workspace_id)
        if workspace is None:
            logger.info(f"Workspace {workspace_id} not found")
            raise NotFoundError("Workspace not found")
        if not self.workspaces.is_member(workspace_id, actor_id):
            logger.info(f"User {actor_id} is not a member of workspace {workspace_id}")
            raise PermissionDeniedError(f"You must be a workspace member to {action}")

    def would_create_cycle(self, task_id: int, depends_on_id: int) -> bool:
        """
        Check whether adding task_id -> depends_on_id would close a loop.

        Walks "depends on" edges from depends_on_id with an explicit stack;
        reaching task_id means a path depends_on ⇒ ... ⇒ task already
        exists. The visited set bounds the walk to O(V+E).
        """
        logger.debug(f"Checking circular dependency: task_id={task_id}, depends_on_id={depends_on_id}")

        if task_id == depends_on_id:
            return True

        visited = set()
        stack = [depends_on_id]

        while stack:
            current_id = stack.pop()
            if current_id == task_id:
                logger.info(f"Circular dependency detected: task {depends_on_id} already depends on task {task_id}")
                return True
            if current_id in visited:
                continue
            visited.add(current_id)

            edges = self.dependencies.find_active_by_task(current_id)
            logger.debug(f"Task {current_id} depends on {len(edges)} task(s)")
            stack.extend(edge.depends_on_id for edge in edges if edge.depends_on_id not in visited)

        logger.debug(f"No circular dependency detected for task_id={task_id}, depends_on_id={depends_on_id}")
        return False

    def create_dependency(
        self,
        task_id: int,
        depends_on_id: int,
        dependency_type=models.DependencyType.FS,
        actor_id: Optional[int] = None
    ) -> models.TaskDependency:
        """
        Create the edge "task_id depends on depends_on_id".

        Raises:
            NotFoundError: either task is missing or deleted, or the workspace is gone
            InvalidArgumentError: self-dependency, different workspace or space, bad type
            PermissionDeniedError: actor is not a member of the shared workspace
            ConflictError: the active edge exists already, or it would close a cycle
        """
        logger.debug(f"Adding dependency: task_id={task_id}, depends_on_id={depends_on_id}, type={dependency_type}")
        dependency_type = parse_dependency_type(dependency_type)

        task = self.tasks.find_by_id(task_id)
        if task is None:
            logger.info(f"Task {task_id} not found")
            raise NotFoundError("Task not found")

        depends_on = self.tasks.find_by_id(depends_on_id)
        if depends_on is None:
            logger.info(f"Dependency task {depends_on_id} not found")
            raise NotFoundError("Dependency task not found")

        if task.id == depends_on.id:
            logger.info(f"Self-dependency rejected for task {task_id}")
            raise InvalidArgumentError("A task cannot depend on itself")

        if task.workspace_id != depends_on.workspace_id:
            logger.info(f"Tasks in different workspaces: {task.workspace_id} vs {depends_on.workspace_id}")
            raise InvalidArgumentError("Tasks must belong to the same workspace")

        if task.space_id != depends_on.space_id:
            logger.info(f"Tasks in different spaces: {task.space_id} vs {depends_on.space_id}")
            raise InvalidArgumentError("Tasks must belong to the same project")

        self.require_member(task.workspace_id, actor_id, "create dependencies")

        if self.dependencies.find_one(task_id, depends_on_id) is not None:
            logger.info(f"Dependency already exists: {task_id} -> {depends_on_id}")
            raise ConflictError("This dependency already exists")

        if self.would_create_cycle(task_id, depends_on_id):
            raise ConflictError("Cannot create dependency: This would create a circular dependency")

        dependency = self.dependencies.create(models.TaskDependency(
            task_id=task_id,
            depends_on_id=depends_on_id,
            type=dependency_type,
            workspace_id=task.workspace_id,
            space_id=task.space_id,
            created_by=actor_id
        ))

        self.notifier.log_activity(
            actor_id, task.workspace_id, models.ActivityAction.CREATE, "TaskDependency", dependency.id,
            {
                "task_id": task_id,
                "task_title": task.title,
                "depends_on_id": depends_on_id,
                "depends_on_title": depends_on.title,
                "type": dependency_type.value,
            }
        )
        self.notifier.emit(task_id, models.TaskEventType.dependency_added, {
            "dependency": {
                "id": dependency.id,
                "type": dependency_type.value,
                "depends_on": task_projection(depends_on),
            }
        }, actor_id)
        self.notifier.emit(depends_on_id, models.TaskEventType.dependent_added, {
            "dependency": {
                "id": dependency.id,
                "type": dependency_type.value,
                "task": task_projection(task),
            }
        }, actor_id)

        logger.info(f"Created dependency {dependency.id}: task {task_id} depends on task {depends_on_id} ({dependency_type.value})")
        return dependency

    def delete_dependency(self, dependency_id: int, actor_id: Optional[int] = None) -> dict:
        """Soft-delete an edge. Removing an edge cannot create a cycle, so no graph check is needed."""
        logger.debug(f"Removing dependency {dependency_id}")

        dependency = self.dependencies.find_by_id(dependency_id)
        if dependency is None:
            logger.info(f"Dependency {dependency_id} not found")
            raise NotFoundError("Dependency not found")

        self.require_member(dependency.workspace_id, actor_id, "delete dependencies")

        self.dependencies.soft_delete(dependency)

        dependency_type = status_value(dependency.type)
        self.notifier.log_activity(
            actor_id, dependency.workspace_id, models.ActivityAction.DELETE, "TaskDependency", dependency.id,
            {
                "task_id": dependency.task_id,
                "depends_on_id": dependency.depends_on_id,
                "type": dependency_type,
            }
        )
        self.notifier.emit(dependency.task_id, models.TaskEventType.dependency_removed, {
            "dependency_id": dependency.id,
            "depends_on_id": dependency.depends_on_id,
        }, actor_id)
        self.notifier.emit(dependency.depends_on_id, models.TaskEventType.dependent_removed, {
            "dependency_id": dependency.id,
            "task_id": dependency.task_id,
        }, actor_id)

        logger.info(f"Removed dependency {dependency_id}: task {dependency.task_id} no longer depends on task {dependency.depends_on_id}")
        return {"message": "Dependency deleted successfully"}

    def get_task_dependencies(self, task_id: int, actor_id: Optional[int] = None) -> List[models.TaskDependency]:
        """Active predecessor edges of a task, oldest first."""
        task = self.tasks.find_by_id(task_id)
        if task is None:
            raise NotFoundError("Task not found")
        if actor_id is not None:
            self.require_member(task.workspace_id, actor_id, "view this task")

        dependencies = self.dependencies.find_active_by_task(task_id)
        logger.debug(f"Task {task_id} has {len(dependencies)} active dependencies")
        return dependencies

    def get_blocking_tasks(self, task_id: int, actor_id: Optional[int] = None) -> List[BlockingEntry]:
        """
        Annotate every active predecessor edge of a task with whether it
        currently blocks, judged from the predecessor's status alone.
        """
        task = self.tasks.find_by_id(task_id)
        if task is None:
            raise NotFoundError("Task not found")
        if actor_id is not None:
            self.require_member(task.workspace_id, actor_id, "view this task")

        entries = []
        for dependency in self.dependencies.find_active_by_task(task_id):
            predecessor = dependency.depends_on
            if predecessor is None or predecessor.is_deleted:
                continue

            is_blocking = rule_for(dependency.type).is_blocking(predecessor.status)
            entries.append(BlockingEntry(
                dependency=dependency,
                task=predecessor,
                is_blocking=is_blocking,
                reason=blocking_reason(dependency.type, predecessor.status) if is_blocking else None
            ))

        logger.debug(f"Task {task_id}: {sum(1 for e in entries if e.is_blocking)} of {len(entries)} dependencies blocking")
        return entries
