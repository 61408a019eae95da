"""Read-only consistency checks for a task's dates."""

import logging
from dataclasses import dataclass, field
from typing import List

from scheduling.dependency_types import rule_for
from scheduling.repositories import DependencyRepository, TaskRepository
from time_utils import as_utc

logger = logging.getLogger(__name__)


@dataclass
class TimelineValidation:
    valid: bool
    errors: List[str] = field(default_factory=list)


class TimelineValidator:
    def __init__(self, tasks: TaskRepository, dependencies: DependencyRepository):
        self.tasks = tasks
        self.dependencies = dependencies

    def validate_timeline(self, task_id: int) -> TimelineValidation:
        """
        Collect every date violation of a task: milestone duration, date
        order, and each active predecessor edge. Does not stop at the
        first violation.
        """
        task = self.tasks.find_by_id(task_id)
        if task is None:
            return TimelineValidation(valid=False, errors=["Task not found"])

        errors = []
        start, due = as_utc(task.start_date), as_utc(task.due_date)

        if task.is_milestone and start is not None and due is not None and start != due:
            errors.append("Milestone must have startDate equal to dueDate (duration = 0)")

        if start is not None and due is not None and start > due:
            errors.append("Start date cannot be after due date")

        for dependency in self.dependencies.find_active_by_task(task_id):
            predecessor = dependency.depends_on
            if predecessor is None or predecessor.is_deleted:
                continue

            rule = rule_for(dependency.type)
            bound = as_utc(getattr(predecessor, rule.predecessor_field))
            own = as_utc(getattr(task, rule.successor_field))
            if bound is not None and own is not None and own < bound:
                errors.append(rule.timeline_error.format(title=predecessor.title))

        if errors:
            logger.debug(f"Task {task_id} timeline has {len(errors)} violation(s)")
        return TimelineValidation(valid=not errors, errors=errors)
