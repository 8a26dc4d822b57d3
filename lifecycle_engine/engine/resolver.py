"""
Dependency Resolver for the Lifecycle Workflow Engine.

Answers whether a step may start given the current status of its
prerequisites, and validates dependency adjacency lists when templates and
step sets are written.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Sequence

from ..errors import InvalidWorkflowDefinition
from ..models import StepStatus, WorkflowStep

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Eligibility:
    """Outcome of a dependency check for a single step."""
    step_id: str
    eligible: bool
    unmet: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)

    @property
    def has_validation_error(self) -> bool:
        """True when a prerequisite points at a step that does not exist."""
        return bool(self.missing)

    def __bool__(self):
        return self.eligible


def check_eligibility(step: WorkflowStep, all_steps: Iterable[WorkflowStep]) -> Eligibility:
    """
    Check whether a step's prerequisites are all completed.

    Args:
        step: The step to check
        all_steps: Every step of the step's instance (a snapshot)

    Returns:
        Eligibility with the incomplete and unknown prerequisite ids
    """
    if not step.prerequisites:
        return Eligibility(step.id, True)

    by_id: Dict[str, WorkflowStep] = {s.id: s for s in all_steps if s.instance_id == step.instance_id}

    unmet = []
    missing = []
    for prerequisite_id in step.prerequisites:
        prerequisite = by_id.get(prerequisite_id)
        if prerequisite is None:
            missing.append(prerequisite_id)
        elif prerequisite.status != StepStatus.COMPLETED:
            unmet.append(prerequisite_id)

    if missing:
        logger.warning(f"Step {step.id} references unknown prerequisites: {missing}")

    return Eligibility(step.id, not unmet and not missing, unmet, missing)


def is_eligible(step: WorkflowStep, all_steps: Iterable[WorkflowStep]) -> bool:
    """Return True if the step is eligible to start."""
    return check_eligibility(step, all_steps).eligible


def validate_dependencies(graph: Mapping[str, Sequence[str]]) -> None:
    """
    Validate a dependency adjacency list.

    Args:
        graph: node id -> prerequisite node ids

    Raises:
        InvalidWorkflowDefinition: on unknown ids, self-dependencies or cycles
    """
    problems = []

    for node, prerequisites in graph.items():
        for prerequisite in prerequisites:
            if prerequisite == node:
                problems.append(f"'{node}' depends on itself")
            elif prerequisite not in graph:
                problems.append(f"'{node}' depends on unknown step '{prerequisite}'")

    if problems:
        raise InvalidWorkflowDefinition("Invalid step dependencies", problems)

    cycle = _find_cycle(graph)
    if cycle:
        raise InvalidWorkflowDefinition(
            "Step dependencies contain a cycle", [" -> ".join(cycle)]
        )


def _find_cycle(graph: Mapping[str, Sequence[str]]) -> List[str]:
    """Depth-first search returning one cycle as a node path, or []."""
    visiting, done = set(), set()
    path: List[str] = []

    def visit(node: str) -> List[str]:
        visiting.add(node)
        path.append(node)
        for prerequisite in graph.get(node, ()):
            if prerequisite in visiting:
                return path[path.index(prerequisite):] + [prerequisite]
            if prerequisite not in done:
                found = visit(prerequisite)
                if found:
                    return found
        visiting.discard(node)
        done.add(node)
        path.pop()
        return []

    for node in graph:
        if node not in done:
            cycle = visit(node)
            if cycle:
                return cycle
    return []
