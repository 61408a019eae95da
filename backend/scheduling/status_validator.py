"""
Status transition validation against predecessor constraints.

Only two target statuses are gated: in-progress (the task is starting)
and done (the task is finishing). The check is advisory and read-only;
callers run it before persisting a status change.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import models
from scheduling.dependency_types import rule_for, transition_reason
from scheduling.errors import InvalidArgumentError
from scheduling.repositories import DependencyRepository

logger = logging.getLogger(__name__)

GATED_STATUSES = frozenset({models.TaskStatus.in_progress, models.TaskStatus.done})


@dataclass
class TransitionBlocker:
    dependency: models.TaskDependency
    task: models.Task
    reason: str


@dataclass
class TransitionCheck:
    allowed: bool
    reason: Optional[str] = None
    blocking_tasks: List[TransitionBlocker] = field(default_factory=list)


def parse_status(value) -> models.TaskStatus:
    if isinstance(value, models.TaskStatus):
        return value
    try:
        return models.TaskStatus(value)
    except ValueError:
        raise InvalidArgumentError(f"Invalid status: {value}", details={"status": value})


class StatusTransitionValidator:
    def __init__(self, dependencies: DependencyRepository):
        self.dependencies = dependencies

    def can_transition_to_status(self, task_id: int, new_status) -> TransitionCheck:
        new_status = parse_status(new_status)
        if new_status not in GATED_STATUSES:
            return TransitionCheck(allowed=True)

        blockers = []
        for dependency in self.dependencies.find_active_by_task(task_id):
            predecessor = dependency.depends_on
            if predecessor is None or predecessor.is_deleted:
                continue

            rule = rule_for(dependency.type)
            if new_status in rule.gates and rule.is_blocking(predecessor.status):
                blockers.append(TransitionBlocker(
                    dependency=dependency,
                    task=predecessor,
                    reason=transition_reason(dependency.type, predecessor.title)
                ))

        if blockers:
            noun = "dependency" if len(blockers) == 1 else "dependencies"
            logger.info(f"Task {task_id} cannot move to {new_status.value}: {len(blockers)} blocking {noun}")
            return TransitionCheck(
                allowed=False,
                reason=f"Task is blocked by {len(blockers)} unfinished {noun}",
                blocking_tasks=blockers
            )

        return TransitionCheck(allowed=True)
