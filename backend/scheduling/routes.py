"""
Dependency and Gantt API endpoints.

This module provides REST API endpoints for:
- Creating, deleting and listing task dependencies
- Blocking and status-transition checks
- Timeline updates with dependency cascade, Gantt data, timeline validation
- Milestone toggling

Handlers only translate between HTTP and the scheduling services. Service
errors are mapped to status codes by the exception handler in main.
"""

import logging
import os
from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from database import get_db
import models
import schemas
from auth.dependencies import get_current_user
from scheduling.cascade import TimelineScheduler
from scheduling.dependency_service import DependencyService
from scheduling.notifications import ActivityLogger, LoggingEventSink, Notifier, TaskEventSink
from scheduling.repositories import DependencyRepository, TaskRepository, WorkspaceRepository
from scheduling.status_validator import StatusTransitionValidator
from scheduling.timeline_validator import TimelineValidator

logger = logging.getLogger(__name__)

# "database" stores TaskEvent rows, "log" only logs them
TASK_EVENT_SINK = os.environ.get("TASK_EVENT_SINK", "database").lower()
if TASK_EVENT_SINK not in ("database", "log"):
    logger.warning(f"Unknown TASK_EVENT_SINK={TASK_EVENT_SINK}. Using database.")
    TASK_EVENT_SINK = "database"


# ============== Service providers ==============

def get_notifier(db: Session = Depends(get_db)) -> Notifier:
    events = LoggingEventSink() if TASK_EVENT_SINK == "log" else TaskEventSink(db)
    return Notifier(db, events, ActivityLogger(db))


def get_dependency_service(
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier)
) -> DependencyService:
    return DependencyService(TaskRepository(db), DependencyRepository(db), WorkspaceRepository(db), notifier)


def get_status_validator(db: Session = Depends(get_db)) -> StatusTransitionValidator:
    return StatusTransitionValidator(DependencyRepository(db))


def get_timeline_scheduler(
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier)
) -> TimelineScheduler:
    return TimelineScheduler(TaskRepository(db), DependencyRepository(db), WorkspaceRepository(db), notifier)


def get_timeline_validator(db: Session = Depends(get_db)) -> TimelineValidator:
    return TimelineValidator(TaskRepository(db), DependencyRepository(db))


# ============== Task dependencies ==============

dependency_router = APIRouter(prefix="/api/task-dependencies", tags=["task-dependencies"])


@dependency_router.post("", response_model=schemas.TaskDependency, status_code=status.HTTP_201_CREATED)
def create_dependency(
    dependency: schemas.TaskDependencyCreate,
    current_user: models.User = Depends(get_current_user),
    service: DependencyService = Depends(get_dependency_service)
):
    """Create "task depends on depends_on" (requires workspace membership)."""
    logger.debug(f"User {current_user.id} adding dependency {dependency.task_id} -> {dependency.depends_on_id}")
    return service.create_dependency(
        dependency.task_id,
        dependency.depends_on_id,
        dependency.type,
        current_user.id
    )


@dependency_router.delete("/{dependency_id}", response_model=schemas.MessageResponse)
def delete_dependency(
    dependency_id: int,
    current_user: models.User = Depends(get_current_user),
    service: DependencyService = Depends(get_dependency_service)
):
    """Soft-delete a dependency (requires workspace membership)."""
    logger.debug(f"User {current_user.id} removing dependency {dependency_id}")
    return service.delete_dependency(dependency_id, current_user.id)


@dependency_router.get("/task/{task_id}", response_model=List[schemas.TaskDependency])
def get_task_dependencies(
    task_id: int,
    current_user: models.User = Depends(get_current_user),
    service: DependencyService = Depends(get_dependency_service)
):
    """Active predecessors of a task."""
    return service.get_task_dependencies(task_id, current_user.id)


@dependency_router.get("/task/{task_id}/blocking", response_model=List[schemas.BlockingTask])
def get_blocking_tasks(
    task_id: int,
    current_user: models.User = Depends(get_current_user),
    service: DependencyService = Depends(get_dependency_service)
):
    """Predecessors of a task, each flagged with whether it currently blocks."""
    entries = service.get_blocking_tasks(task_id, current_user.id)
    # Entries hold ORM rows; read them by attribute
    return [schemas.BlockingTask.model_validate(entry, from_attributes=True) for entry in entries]


@dependency_router.get("/task/{task_id}/can-transition", response_model=schemas.TransitionCheck)
def can_transition(
    task_id: int,
    target_status: models.TaskStatus = Query(..., alias="status"),
    current_user: models.User = Depends(get_current_user),
    service: DependencyService = Depends(get_dependency_service),
    validator: StatusTransitionValidator = Depends(get_status_validator)
):
    """Check whether a task may move to the given status."""
    # Existence and membership checks
    service.get_task_dependencies(task_id, current_user.id)
    check = validator.can_transition_to_status(task_id, target_status)
    return schemas.TransitionCheck.model_validate(check, from_attributes=True)


# ============== Gantt ==============

gantt_router = APIRouter(prefix="/api/gantt", tags=["gantt"])


@gantt_router.post("/tasks/{task_id}/update-timeline", response_model=schemas.RescheduleResult)
def update_task_timeline(
    task_id: int,
    timeline: schemas.TimelineUpdate,
    current_user: models.User = Depends(get_current_user),
    scheduler: TimelineScheduler = Depends(get_timeline_scheduler)
):
    """Update a task's dates and cascade the shift to its dependents."""
    changes = timeline.model_dump(exclude_unset=True)
    logger.debug(f"User {current_user.id} updating timeline of task {task_id}: {changes}")
    return scheduler.reschedule_task(task_id, changes, current_user.id)


@gantt_router.get("/spaces/{space_id}", response_model=List[schemas.GanttTask])
def get_gantt_data(
    space_id: int,
    current_user: models.User = Depends(get_current_user),
    scheduler: TimelineScheduler = Depends(get_timeline_scheduler)
):
    """Gantt chart rows for every task of a space."""
    return scheduler.get_gantt_data(space_id, current_user.id)


@gantt_router.get("/tasks/{task_id}/validate", response_model=schemas.TimelineValidation)
def validate_timeline(
    task_id: int,
    current_user: models.User = Depends(get_current_user),
    validator: TimelineValidator = Depends(get_timeline_validator)
):
    """List every date inconsistency of a task."""
    return validator.validate_timeline(task_id)


@gantt_router.post("/tasks/{task_id}/toggle-milestone", response_model=schemas.Task)
def toggle_milestone(
    task_id: int,
    current_user: models.User = Depends(get_current_user),
    scheduler: TimelineScheduler = Depends(get_timeline_scheduler)
):
    """Flip the milestone flag; a new milestone is pinned to its due date."""
    return scheduler.toggle_milestone(task_id, current_user.id)
