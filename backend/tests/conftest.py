"""
Test configuration and fixtures for scheduling tests.

Provides:
- Test database with SQLite in-memory for speed
- FastAPI test client with database dependency override
- Authentication helpers (JWT token generation)
- Common fixtures for users, workspaces, spaces and tasks
- Scheduling services wired to the test session
"""

import os
import sys
import logging
from datetime import datetime, timedelta
from typing import Generator, Dict

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, JSON
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.dialects.postgresql import JSONB

# Add backend directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import Base, get_db
from main import app
import models
from auth.security import create_access_token
from scheduling.cascade import TimelineScheduler
from scheduling.dependency_service import DependencyService
from scheduling.notifications import ActivityLogger, Notifier, RecordingEventSink
from scheduling.repositories import DependencyRepository, TaskRepository, WorkspaceRepository
from scheduling.status_validator import StatusTransitionValidator
from scheduling.timeline_validator import TimelineValidator

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

# SQLite in-memory database for fast testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

# Naive datetimes: SQLite hands back naive values, so tests compare against naive ones
DAY0 = datetime(2026, 3, 2, 9, 0)
ONE_DAY = timedelta(days=1)
ONE_DAY_MS = 24 * 60 * 60 * 1000


def day(n: int) -> datetime:
    return DAY0 + n * ONE_DAY


@pytest.fixture(scope="function")
def test_db() -> Generator[Session, None, None]:
    """
    Create a fresh in-memory SQLite database for each test.

    This ensures test isolation and fast execution.
    """
    engine = create_engine(
        SQLALCHEMY_TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Replace PostgreSQL-specific types with SQLite-compatible types
    for table in Base.metadata.tables.values():
        for column in table.columns:
            if isinstance(column.type, JSONB):
                column.type = JSON()

    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()

    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        logger.debug("Test database cleaned up")


@pytest.fixture(scope="function")
def client(test_db: Session) -> TestClient:
    """
    Create FastAPI test client with database dependency override.
    """
    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def make_user(db: Session, name: str, email: str, is_active: bool = True) -> models.User:
    user = models.User(name=name, email=email, is_active=is_active)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def add_member(db: Session, workspace: models.Workspace, user: models.User, role: str = "member") -> None:
    db.add(models.WorkspaceMember(workspace_id=workspace.id, user_id=user.id, role=role))
    db.commit()


def make_task(db: Session, space: models.Space, title: str, **kwargs) -> models.Task:
    """Create a task in a space; kwargs override status, dates, is_milestone."""
    task = models.Task(
        title=title,
        workspace_id=space.workspace_id,
        space_id=space.id,
        status=kwargs.pop("status", models.TaskStatus.todo),
        **kwargs
    )
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


def link(db: Session, task: models.Task, depends_on: models.Task,
         dependency_type: models.DependencyType = models.DependencyType.FS) -> models.TaskDependency:
    """Store an edge directly, bypassing creation-time validation."""
    edge = models.TaskDependency(
        task_id=task.id,
        depends_on_id=depends_on.id,
        type=dependency_type,
        workspace_id=task.workspace_id,
        space_id=task.space_id
    )
    db.add(edge)
    db.commit()
    db.refresh(edge)
    return edge


class FailingEventSink:
    def emit(self, task_id, event_type, payload, actor_id):
        raise RuntimeError("event store unavailable")


class FailingActivityLogger(ActivityLogger):
    def log(self, user_id, workspace_id, action, resource_type, resource_id, metadata=None):
        raise RuntimeError("activity log unavailable")


def create_auth_token(user: models.User, expires_delta: timedelta = None) -> str:
    """
    Helper to create JWT access token for a user.

    Args:
        user: User to create token for
        expires_delta: Optional expiration time override

    Returns:
        JWT access token string
    """
    return create_access_token({"sub": str(user.id), "email": user.email}, expires_delta)


@pytest.fixture(scope="function")
def member_user(test_db: Session) -> models.User:
    return make_user(test_db, "Member User", "member@test.com")


@pytest.fixture(scope="function")
def outsider_user(test_db: Session) -> models.User:
    return make_user(test_db, "Outsider User", "outsider@test.com")


@pytest.fixture(scope="function")
def workspace(test_db: Session, member_user: models.User) -> models.Workspace:
    ws = models.Workspace(name="Test Workspace", owner_id=member_user.id)
    test_db.add(ws)
    test_db.commit()
    test_db.refresh(ws)
    add_member(test_db, ws, member_user, role="owner")
    logger.info(f"Created workspace with ID: {ws.id}")
    return ws


@pytest.fixture(scope="function")
def other_workspace(test_db: Session, member_user: models.User) -> models.Workspace:
    ws = models.Workspace(name="Other Workspace", owner_id=member_user.id)
    test_db.add(ws)
    test_db.commit()
    test_db.refresh(ws)
    add_member(test_db, ws, member_user, role="owner")
    return ws


@pytest.fixture(scope="function")
def space(test_db: Session, workspace: models.Workspace) -> models.Space:
    sp = models.Space(name="Roadmap", workspace_id=workspace.id)
    test_db.add(sp)
    test_db.commit()
    test_db.refresh(sp)
    return sp


@pytest.fixture(scope="function")
def other_space(test_db: Session, workspace: models.Workspace) -> models.Space:
    sp = models.Space(name="Operations", workspace_id=workspace.id)
    test_db.add(sp)
    test_db.commit()
    test_db.refresh(sp)
    return sp


@pytest.fixture(scope="function")
def auth_headers(member_user: models.User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_auth_token(member_user)}"}


@pytest.fixture(scope="function")
def outsider_headers(outsider_user: models.User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_auth_token(outsider_user)}"}


# ============== Services ==============


@pytest.fixture(scope="function")
def events() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture(scope="function")
def notifier(test_db: Session, events: RecordingEventSink) -> Notifier:
    return Notifier(test_db, events, ActivityLogger(test_db))


@pytest.fixture(scope="function")
def dependency_service(test_db: Session, notifier: Notifier) -> DependencyService:
    return DependencyService(
        TaskRepository(test_db), DependencyRepository(test_db), WorkspaceRepository(test_db), notifier
    )


@pytest.fixture(scope="function")
def status_validator(test_db: Session) -> StatusTransitionValidator:
    return StatusTransitionValidator(DependencyRepository(test_db))


@pytest.fixture(scope="function")
def scheduler(test_db: Session, notifier: Notifier) -> TimelineScheduler:
    return TimelineScheduler(
        TaskRepository(test_db), DependencyRepository(test_db), WorkspaceRepository(test_db), notifier
    )


@pytest.fixture(scope="function")
def timeline_validator(test_db: Session) -> TimelineValidator:
    return TimelineValidator(TaskRepository(test_db), DependencyRepository(test_db))
