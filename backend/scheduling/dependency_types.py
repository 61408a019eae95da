"""
Per-type behavior of dependency edges.

Every rule that depends on the edge type (FS, SS, FF, SF) is declared in
the RULES table below, so the four behaviors can be read side by side:

- which predecessor statuses keep the successor blocked
- whether the edge gates starting (in-progress) or finishing (done)
- which predecessor/successor dates the timeline check compares
- the human-readable wording used in blocking reasons and timeline errors
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional

from models import DependencyType, TaskStatus
from scheduling.errors import InvalidArgumentError

START = "start_date"
FINISH = "due_date"

# Every type shifts both dates of a dependent by the same delta
SHIFTED_FIELDS = (START, FINISH)


def _not_done(status: TaskStatus) -> bool:
    return status != TaskStatus.done


def _not_started(status: TaskStatus) -> bool:
    return status == TaskStatus.todo


@dataclass(frozen=True)
class DependencyRule:
    type: DependencyType
    # Predicate on the predecessor's status: True while the edge blocks
    is_blocking: Callable[[TaskStatus], bool]
    # Target statuses of the successor this edge gates
    gates: frozenset
    # "completed" or "started": what the predecessor still has to do
    requirement: str
    # Predecessor date the successor date must not precede
    predecessor_field: str
    successor_field: str
    blocking_reason: str
    timeline_error: str


RULES: Dict[DependencyType, DependencyRule] = {
    DependencyType.FS: DependencyRule(
        type=DependencyType.FS,
        is_blocking=_not_done,
        # FS gates finishing only; starting work is not held back by an unfinished predecessor
        gates=frozenset({TaskStatus.done}),
        requirement="completed",
        predecessor_field=FINISH,
        successor_field=START,
        blocking_reason="Waiting for task to be completed (current: {status})",
        timeline_error='Task cannot start before predecessor "{title}" finishes (FS dependency)',
    ),
    DependencyType.SS: DependencyRule(
        type=DependencyType.SS,
        is_blocking=_not_started,
        gates=frozenset({TaskStatus.in_progress}),
        requirement="started",
        predecessor_field=START,
        successor_field=START,
        blocking_reason="Waiting for task to be started (current: {status})",
        timeline_error='Task cannot start before predecessor "{title}" starts (SS dependency)',
    ),
    DependencyType.FF: DependencyRule(
        type=DependencyType.FF,
        is_blocking=_not_done,
        gates=frozenset({TaskStatus.done}),
        requirement="completed",
        predecessor_field=FINISH,
        successor_field=FINISH,
        blocking_reason="Cannot finish until task is completed (current: {status})",
        timeline_error='Task cannot finish before predecessor "{title}" finishes (FF dependency)',
    ),
    DependencyType.SF: DependencyRule(
        type=DependencyType.SF,
        is_blocking=_not_started,
        gates=frozenset({TaskStatus.done}),
        requirement="started",
        predecessor_field=START,
        successor_field=FINISH,
        blocking_reason="Cannot finish until task is started (current: {status})",
        timeline_error='Task cannot finish before predecessor "{title}" starts (SF dependency)',
    ),
}


def parse_dependency_type(value) -> DependencyType:
    """Coerce a string or enum member to DependencyType."""
    if isinstance(value, DependencyType):
        return value
    try:
        return DependencyType(value)
    except ValueError:
        raise InvalidArgumentError(
            f"Invalid dependency type: {value}. Expected one of FS, SS, FF, SF",
            details={"type": value},
        )


def rule_for(dependency_type) -> DependencyRule:
    return RULES[parse_dependency_type(dependency_type)]


def status_value(status: Optional[TaskStatus]) -> Optional[str]:
    if status is None:
        return None
    return status.value if hasattr(status, "value") else str(status)


def blocking_reason(dependency_type, predecessor_status: TaskStatus) -> str:
    rule = rule_for(dependency_type)
    return rule.blocking_reason.format(status=status_value(predecessor_status))


def transition_reason(dependency_type, predecessor_title: str) -> str:
    rule = rule_for(dependency_type)
    return f'Task "{predecessor_title}" must be {rule.requirement} first ({rule.type.value} dependency)'
