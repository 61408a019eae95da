from fastapi import FastAPI, HTTPException, Depends, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
import logging
import os

from database import get_db
import models
import schemas
from time_utils import as_utc, utc_now
from auth.dependencies import get_current_user
from auth.permissions import require_workspace_member
from scheduling.cascade import TimelineScheduler, delta_for_changes
from scheduling.errors import SchedulingError
from scheduling.routes import (
    dependency_router,
    gantt_router,
    get_status_validator,
    get_timeline_scheduler,
)
from scheduling.status_validator import StatusTransitionValidator

# Configure logging
logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Planner Scheduling API",
    description="Task dependencies, status gating and Gantt timeline scheduling",
    version="1.0.0"
)

# CORS middleware for frontend
CORS_ORIGINS = [
    origin.strip()
    for origin in os.environ.get("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if origin.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(dependency_router)
app.include_router(gantt_router)


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    """Translate scheduling error kinds to HTTP status codes."""
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.get("/health")
def health_check():
    return {"status": "healthy"}


# ============== Tasks ==============

NON_NULLABLE_TASK_FIELDS = ("title", "status", "is_milestone")


def get_task_or_404(db: Session, task_id: int) -> models.Task:
    task = db.query(models.Task)\
        .filter(models.Task.id == task_id, models.Task.is_deleted == False)\
        .first()
    if not task:
        logger.info(f"Task {task_id} not found")
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@app.post("/api/tasks", response_model=schemas.Task, status_code=status.HTTP_201_CREATED)
def create_task(
    task: schemas.TaskCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create a task in a space (requires workspace membership)."""
    logger.debug(f"User {current_user.id} creating task in space {task.space_id}")

    space = db.query(models.Space)\
        .filter(models.Space.id == task.space_id, models.Space.is_deleted == False)\
        .first()
    if not space:
        logger.info(f"Space {task.space_id} not found")
        raise HTTPException(status_code=404, detail="Space not found")

    require_workspace_member(current_user, space.workspace_id, db)

    if task.start_date and task.due_date and as_utc(task.start_date) > as_utc(task.due_date) and not task.is_milestone:
        raise HTTPException(status_code=400, detail="Start date cannot be after due date")

    db_task = models.Task(
        **task.model_dump(),
        workspace_id=space.workspace_id,
        created_by=current_user.id
    )
    if db_task.is_milestone and db_task.due_date is not None:
        db_task.start_date = db_task.due_date
    if db_task.status == models.TaskStatus.done:
        db_task.completed_at = utc_now()

    db.add(db_task)
    db.commit()
    db.refresh(db_task)

    logger.info(f"Task created: {db_task.title} (ID: {db_task.id}) by user {current_user.id}")
    return db_task


@app.get("/api/tasks/{task_id}", response_model=schemas.Task)
def get_task(
    task_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    task = get_task_or_404(db, task_id)
    require_workspace_member(current_user, task.workspace_id, db)
    return task


@app.put("/api/tasks/{task_id}", response_model=schemas.Task)
def update_task(
    task_id: int,
    task_update: schemas.TaskUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    validator: StatusTransitionValidator = Depends(get_status_validator),
    scheduler: TimelineScheduler = Depends(get_timeline_scheduler)
):
    """
    Update a task (requires workspace membership).

    Status changes are checked against predecessor constraints before
    anything is written. Date changes are cascaded to dependent tasks after
    the task itself is saved; a failed cascade is logged and does not fail
    the update.
    """
    logger.info(f"User {current_user.id} updating task {task_id}")

    task = get_task_or_404(db, task_id)
    require_workspace_member(current_user, task.workspace_id, db)

    update_data = task_update.model_dump(exclude_unset=True)

    # Reject null updates of non-nullable columns
    null_fields = [key for key in NON_NULLABLE_TASK_FIELDS if key in update_data and update_data[key] is None]
    if null_fields:
        logger.info(f"Task {task_id} update rejected, null values for: {', '.join(null_fields)}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{', '.join(null_fields)} cannot be null"
        )

    new_status = update_data.get("status")
    if new_status is not None and new_status != task.status:
        check = validator.can_transition_to_status(task_id, new_status)
        if not check.allowed:
            logger.info(f"Task {task_id} cannot move to {new_status.value}: {check.reason}")
            raise HTTPException(status_code=400, detail=check.reason or "Task is blocked by dependencies")

        if new_status == models.TaskStatus.done:
            task.completed_at = utc_now()
        elif task.status == models.TaskStatus.done:
            task.completed_at = None

    dates_changed = any(
        key in update_data and update_data[key] != getattr(task, key)
        for key in ("start_date", "due_date")
    )
    date_delta = delta_for_changes(task, update_data) if dates_changed else 0

    for key, value in update_data.items():
        setattr(task, key, value)

    # Milestones have zero duration
    if task.is_milestone and task.due_date is not None:
        task.start_date = task.due_date

    db.commit()
    db.refresh(task)

    if date_delta != 0:
        try:
            cascade = scheduler.update_task_timeline(task_id, date_delta, current_user.id)
            logger.info(f"Cascaded timeline changes for task {task_id}, delta: {date_delta}ms, updated {cascade.updated_count}")
        except Exception:
            logger.exception(f"Failed to cascade timeline changes for task {task_id}")
            db.rollback()
        db.refresh(task)

    logger.info(f"Task {task_id} updated successfully")
    return task
