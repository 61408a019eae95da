from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List

from models import TaskStatus, DependencyType


# User schemas
class User(BaseModel):
    id: int
    name: str
    email: str

    class Config:
        from_attributes = True


# Task schemas
class TaskBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.todo
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    is_milestone: bool = False


class TaskCreate(TaskBase):
    space_id: int


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    is_milestone: Optional[bool] = None


class Task(TaskBase):
    id: int
    workspace_id: int
    space_id: int
    created_by: Optional[int] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TaskSummary(BaseModel):
    id: int
    title: str
    status: TaskStatus
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None

    class Config:
        from_attributes = True


# Task Dependency schemas
class TaskDependencyCreate(BaseModel):
    task_id: int = Field(..., description="The dependent (successor) task")
    depends_on_id: int = Field(..., description="The predecessor task")
    type: DependencyType = DependencyType.FS


class TaskDependency(BaseModel):
    id: int
    task_id: int
    depends_on_id: int
    type: DependencyType
    workspace_id: int
    space_id: int
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    depends_on: Optional[TaskSummary] = None

    class Config:
        from_attributes = True


class BlockingTask(BaseModel):
    dependency: TaskDependency
    task: TaskSummary
    is_blocking: bool
    reason: Optional[str] = None

    class Config:
        from_attributes = True


class TransitionBlocker(BaseModel):
    dependency: TaskDependency
    task: TaskSummary
    reason: str

    class Config:
        from_attributes = True


class TransitionCheck(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    blocking_tasks: List[TransitionBlocker] = []

    class Config:
        from_attributes = True


# Gantt / timeline schemas
class TimelineUpdate(BaseModel):
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None


class CascadeEntry(BaseModel):
    task_id: int
    title: str
    old_start_date: Optional[datetime] = None
    old_due_date: Optional[datetime] = None
    new_start_date: Optional[datetime] = None
    new_due_date: Optional[datetime] = None

    class Config:
        from_attributes = True


class CascadeResult(BaseModel):
    updated_count: int
    tasks: List[CascadeEntry] = []

    class Config:
        from_attributes = True


class RescheduleResult(BaseModel):
    task_id: int
    date_delta: int  # milliseconds
    cascade_result: CascadeResult

    class Config:
        from_attributes = True


class GanttDependency(BaseModel):
    depends_on: int
    type: DependencyType


class GanttTask(BaseModel):
    id: int
    title: str
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    duration: int  # days
    status: TaskStatus
    is_milestone: bool
    progress: int  # percent
    dependencies: List[GanttDependency] = []

    class Config:
        from_attributes = True


class TimelineValidation(BaseModel):
    valid: bool
    errors: List[str] = []

    class Config:
        from_attributes = True


class MessageResponse(BaseModel):
    message: str
