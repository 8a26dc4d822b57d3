"""
Progress Aggregator for the Lifecycle Workflow Engine.

Derives an instance's completion percentage and status from its steps.
Nothing else in the engine is allowed to set either value.
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, Optional

from ..models import (
    InstanceStatus,
    StepStatus,
    WorkflowException,
    WorkflowInstance,
    WorkflowStep,
    utctoday,
)

ACTIVE_STEP_STATUSES = frozenset({StepStatus.IN_PROGRESS, StepStatus.BLOCKED, StepStatus.FAILED})


@dataclass(frozen=True)
class Progress:
    percentage: int
    status: InstanceStatus


def completion_percentage(completed: int, total: int) -> int:
    """round(100 * completed / total), halves rounded up; 0 for no steps."""
    if total <= 0:
        return 0
    return (200 * completed + total) // (2 * total)


def aggregate(steps: Iterable[WorkflowStep]) -> Progress:
    """
    Compute completion percentage and derived status for a set of steps.

    Args:
        steps: All steps belonging to one instance

    Returns:
        Progress with a 0-100 percentage and not_started/in_progress/completed
    """
    steps = list(steps)
    total = len(steps)
    completed = sum(1 for s in steps if s.status == StepStatus.COMPLETED)
    active = any(s.status in ACTIVE_STEP_STATUSES for s in steps)

    if total > 0 and completed == total:
        status = InstanceStatus.COMPLETED
    elif completed > 0 or active:
        status = InstanceStatus.IN_PROGRESS
    else:
        status = InstanceStatus.NOT_STARTED

    return Progress(completion_percentage(completed, total), status)


def current_stage(steps: Iterable[WorkflowStep]) -> str:
    """Category of the first outstanding step, or 'completed' when none remain."""
    for step in sorted(steps, key=lambda s: s.order):
        if step.status not in (StepStatus.COMPLETED, StepStatus.SKIPPED):
            return step.category
    return "completed"


def summarize(
    instance: WorkflowInstance,
    steps: Iterable[WorkflowStep],
    exceptions: Iterable[WorkflowException] = (),
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Build a progress report for an instance.

    Counts steps by status and open exceptions, and compares elapsed time
    against the expected completion date to flag whether the instance is
    on track.
    """
    steps = list(steps)
    today = today or utctoday()
    progress = aggregate(steps)

    counts = {status.value: 0 for status in StepStatus}
    for step in steps:
        counts[step.status.value] += 1

    days_elapsed = max((today - instance.start_date).days, 0)
    expected_days = None
    on_track = True
    if instance.expected_completion:
        expected_days = (instance.expected_completion - instance.start_date).days
        if expected_days > 0:
            expected_percentage = min(100, days_elapsed * 100 // expected_days)
            on_track = progress.percentage >= expected_percentage

    overdue_steps = [
        s.id for s in steps
        if s.due_date and s.due_date < today and not s.is_terminal
    ]

    return {
        "instance_id": instance.id,
        "status": instance.status.value,
        "current_stage": current_stage(steps),
        "completion_percentage": progress.percentage,
        "total_steps": len(steps),
        "steps_by_status": counts,
        "overdue_steps": overdue_steps,
        "open_exceptions": sum(1 for e in exceptions if e.is_open),
        "days_elapsed": days_elapsed,
        "expected_days": expected_days,
        "is_on_track": on_track,
    }
