"""
Error types raised by the Lifecycle Workflow Engine.

Precondition violations are caller errors: the operation that raised them
performed no mutation. Each error carries structured fields so the API and
CLI can render an actionable message.
"""

from typing import Any, Dict, Iterable, List, Optional


class WorkflowEngineError(Exception):
    """Base class for all engine errors."""

    code = "workflow_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message}


class NotFoundError(WorkflowEngineError):
    code = "not_found"


class PreconditionViolation(WorkflowEngineError):
    """The requested operation is not allowed in the current state."""
    code = "precondition_violation"


class InstanceNotFound(NotFoundError):
    code = "instance_not_found"

    def __init__(self, instance_id: str):
        super().__init__(f"Workflow instance {instance_id} not found")
        self.instance_id = instance_id


class StepNotFound(NotFoundError):
    code = "step_not_found"

    def __init__(self, instance_id: str, step_id: str):
        super().__init__(f"Step {step_id} not found in workflow instance {instance_id}")
        self.instance_id = instance_id
        self.step_id = step_id


class ExceptionNotFound(NotFoundError):
    code = "exception_not_found"

    def __init__(self, exception_id: str):
        super().__init__(f"Workflow exception {exception_id} not found")
        self.exception_id = exception_id


class TemplateNotFound(NotFoundError, PreconditionViolation):
    code = "template_not_found"

    def __init__(self, template_id: str):
        super().__init__(f"Workflow template {template_id} not found")
        self.template_id = template_id


class TemplateNotPublished(PreconditionViolation):
    code = "template_not_published"

    def __init__(self, template_id: str, status: str):
        super().__init__(f"Workflow template {template_id} is {status}, only published templates can be instantiated")
        self.template_id = template_id
        self.status = status


class TemplateLocked(PreconditionViolation):
    code = "template_locked"

    def __init__(self, template_id: str, status: str):
        super().__init__(f"Workflow template {template_id} is {status} and can no longer be edited")
        self.template_id = template_id
        self.status = status


class DependencyNotMet(PreconditionViolation):
    """A step was moved forward before all of its prerequisites completed."""
    code = "dependency_not_met"

    def __init__(self, step_id: str, unmet: Iterable[str], missing: Optional[Iterable[str]] = None):
        self.step_id = step_id
        self.unmet: List[str] = list(unmet)
        self.missing: List[str] = list(missing or [])
        parts = []
        if self.unmet:
            parts.append(f"incomplete prerequisites: {', '.join(self.unmet)}")
        if self.missing:
            parts.append(f"unknown prerequisites: {', '.join(self.missing)}")
        super().__init__(f"Step {step_id} is not eligible to start ({'; '.join(parts)})")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"step_id": self.step_id, "unmet": self.unmet, "missing": self.missing})
        return data


class IllegalTransition(PreconditionViolation):
    code = "illegal_transition"

    def __init__(self, entity: str, entity_id: str, current: str, requested: str):
        super().__init__(f"Cannot move {entity} {entity_id} from '{current}' to '{requested}'")
        self.entity = entity
        self.entity_id = entity_id
        self.current = current
        self.requested = requested

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "entity": self.entity,
            "entity_id": self.entity_id,
            "current": self.current,
            "requested": self.requested,
        })
        return data


class InstanceClosed(PreconditionViolation):
    code = "instance_closed"

    def __init__(self, instance_id: str, status: str):
        super().__init__(f"Workflow instance {instance_id} is {status}")
        self.instance_id = instance_id
        self.status = status


class AlreadyResolved(PreconditionViolation):
    code = "already_resolved"

    def __init__(self, exception_id: str, status: str):
        super().__init__(f"Workflow exception {exception_id} is already {status}")
        self.exception_id = exception_id
        self.status = status


class InvalidWorkflowDefinition(WorkflowEngineError):
    """A template or step set failed write-time validation."""
    code = "invalid_definition"

    def __init__(self, message: str, problems: Optional[List[str]] = None):
        super().__init__(message)
        self.problems = problems or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["problems"] = self.problems
        return data


class TransactionConflict(WorkflowEngineError):
    """Concurrent mutation of the same instance; safe to retry."""
    code = "transaction_conflict"

    def __init__(self, instance_id: str):
        super().__init__(f"Workflow instance {instance_id} is being modified concurrently, retry later")
        self.instance_id = instance_id
