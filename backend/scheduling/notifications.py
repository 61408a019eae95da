"""
Secondary side effects of scheduling operations: task events and the
activity log.

Both are best-effort. The primary mutation is committed before any of
these run, and a failure here is logged and rolled back on its own without
reaching the caller.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol

from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

import models

logger = logging.getLogger(__name__)


class EventSink(Protocol):
    def emit(self, task_id: int, event_type: str, payload: Dict[str, Any], actor_id: Optional[int]) -> None:
        ...


class TaskEventSink:
    """Persists each event as a TaskEvent row on the task it targets."""

    def __init__(self, db: Session):
        self.db = db

    def emit(self, task_id: int, event_type: str, payload: Dict[str, Any], actor_id: Optional[int]) -> None:
        logger.debug(f"Creating event: type={event_type}, task_id={task_id}, actor_id={actor_id}")
        event = models.TaskEvent(
            task_id=task_id,
            event_type=event_type,
            actor_id=actor_id,
            event_metadata=jsonable_encoder(payload)
        )
        self.db.add(event)
        self.db.commit()
        logger.debug(f"Event created: id={event.id}, type={event_type}")


class LoggingEventSink:
    """Writes events to the log only. Useful where no event table exists."""

    def emit(self, task_id: int, event_type: str, payload: Dict[str, Any], actor_id: Optional[int]) -> None:
        logger.info(f"Event {event_type} on task {task_id} by user {actor_id}: {jsonable_encoder(payload)}")


class RecordingEventSink:
    """Keeps emitted events in memory, in emission order."""

    def __init__(self):
        self.events: List[Dict[str, Any]] = []

    def emit(self, task_id: int, event_type: str, payload: Dict[str, Any], actor_id: Optional[int]) -> None:
        self.events.append({
            "task_id": task_id,
            "event_type": event_type,
            "payload": payload,
            "actor_id": actor_id,
        })

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [e for e in self.events if e["event_type"] == event_type]


class ActivityLogger:
    def __init__(self, db: Session):
        self.db = db

    def log(
        self,
        user_id: Optional[int],
        workspace_id: Optional[int],
        action: models.ActivityAction,
        resource_type: str,
        resource_id: int,
        metadata: Optional[dict] = None
    ) -> None:
        record = models.ActivityLog(
            user_id=user_id,
            workspace_id=workspace_id,
            action=action.value,
            resource_type=resource_type,
            resource_id=resource_id,
            activity_metadata=jsonable_encoder(metadata or {})
        )
        self.db.add(record)
        self.db.commit()


class Notifier:
    """
    Front for the event sink and the activity logger.

    Methods return True when the side effect went through and False when
    it failed; they never raise.
    """

    def __init__(self, db: Optional[Session], events: EventSink, activity: Optional[ActivityLogger] = None):
        self.db = db
        self.events = events
        self.activity = activity

    def emit(self, task_id: int, event_type: models.TaskEventType, payload: Dict[str, Any],
             actor_id: Optional[int]) -> bool:
        try:
            self.events.emit(task_id, event_type.value, payload, actor_id)
            return True
        except Exception as e:
            logger.warning(f"Failed to emit {event_type.value} event for task {task_id} (non-critical): {e}")
            self._discard()
            return False

    def log_activity(self, user_id: Optional[int], workspace_id: Optional[int], action: models.ActivityAction,
                     resource_type: str, resource_id: int, metadata: Optional[dict] = None) -> bool:
        if self.activity is None:
            return False
        try:
            self.activity.log(user_id, workspace_id, action, resource_type, resource_id, metadata)
            return True
        except Exception as e:
            logger.warning(f"Activity logging failed for {resource_type} {resource_id} (non-critical): {e}")
            self._discard()
            return False

    def _discard(self) -> None:
        if self.db is None:
            return
        try:
            self.db.rollback()
        except Exception as e:
            logger.error(f"Rollback after failed side effect also failed: {e}")
