"""
Core data models for the Lifecycle Workflow Engine.

This module defines the Pydantic models used throughout the engine for
workflow templates, running workflow instances, their steps, external
integration attempts, workflow exceptions and audit records.
"""

import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


SYSTEM_ACTOR = "system"


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def utctoday() -> date:
    """Current date in UTC; every deadline comparison uses this calendar."""
    return utcnow().date()


def new_id() -> str:
    return str(uuid.uuid4())


class LifecycleType(str, Enum):
    """Employee lifecycle events a workflow can be attached to."""
    ONBOARDING = "onboarding"
    OFFBOARDING = "offboarding"
    PERFORMANCE = "performance"
    LEAVE = "leave"
    VENDOR = "vendor"
    OTHER = "other"


class TemplateStatus(str, Enum):
    """Publication state of a workflow template."""
    DRAFT = "draft"
    PUBLISHED = "published"
    RETIRED = "retired"


class InstanceStatus(str, Enum):
    """Status of a running workflow instance."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class StepType(str, Enum):
    """How a workflow step gets actioned."""
    MANUAL = "manual"
    INTEGRATION = "integration"
    APPROVAL = "approval"
    DOCUMENT = "document"


class StepStatus(str, Enum):
    """Status of a single workflow step."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"
    FAILED = "failed"
    SKIPPED = "skipped"


class IntegrationKind(str, Enum):
    """External providers an integration step can call."""
    ESIGNATURE = "esignature"
    BACKGROUND_CHECK = "background_check"
    DOCUMENT_SEARCH = "document_search"


class AttemptStatus(str, Enum):
    """Status of an integration attempt."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class ExceptionKind(str, Enum):
    """Categories of workflow exceptions requiring human attention."""
    INTEGRATION_FAILURE = "integration_failure"
    TIMEOUT = "timeout"
    VALIDATION_ERROR = "validation_error"
    MANUAL_INTERVENTION = "manual_intervention"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ResolutionStatus(str, Enum):
    """Resolution state of a workflow exception."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


TERMINAL_STEP_STATUSES = frozenset({StepStatus.COMPLETED, StepStatus.FAILED, StepStatus.SKIPPED})
CLOSED_INSTANCE_STATUSES = frozenset({InstanceStatus.COMPLETED, InstanceStatus.CANCELLED})
OPEN_RESOLUTION_STATUSES = frozenset({ResolutionStatus.OPEN, ResolutionStatus.IN_PROGRESS})


class StepBlueprint(BaseModel):
    """Reusable step definition cloned into workflow instances."""
    id: str = Field(default_factory=new_id, description="Blueprint-local step key")
    title: str = Field(..., description="Human-readable step title")
    description: Optional[str] = Field(None, description="What needs to happen in this step")
    category: str = Field("general", description="Stage label (pre-boarding, day-1, ...)")
    step_type: StepType = Field(StepType.MANUAL, description="How the step is actioned")
    default_assignee_role: Optional[str] = Field(None, description="Role responsible (hr, manager, it, ...)")
    due_day_offset: int = Field(0, description="Days from instance start the step is due")
    mandatory: bool = Field(True, description="Whether the step must be completed")
    prerequisites: List[str] = Field(default_factory=list, description="Blueprint ids that must complete first")
    integration_kind: Optional[IntegrationKind] = Field(None, description="Provider for integration steps")
    integration_config: Dict[str, Any] = Field(default_factory=dict, description="Provider request settings")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Step title is required")
        return v.strip()

    @model_validator(mode="after")
    def check_integration_kind(self) -> "StepBlueprint":
        if self.step_type == StepType.INTEGRATION and self.integration_kind is None:
            raise ValueError(f"Integration step '{self.title}' requires an integration_kind")
        if self.step_type != StepType.INTEGRATION and self.integration_kind is not None:
            raise ValueError(f"Step '{self.title}' is not an integration step but names an integration_kind")
        return self


class WorkflowTemplate(BaseModel):
    """Versioned workflow blueprint, immutable once published."""
    id: str = Field(default_factory=new_id)
    name: str = Field(..., description="Template name")
    description: Optional[str] = None
    lifecycle_type: LifecycleType
    department: Optional[str] = Field(None, description="Department this template is scoped to")
    role: Optional[str] = Field(None, description="Job role this template is scoped to")
    version: int = Field(1, ge=1)
    status: TemplateStatus = TemplateStatus.DRAFT
    steps: List[StepBlueprint] = Field(default_factory=list)
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    published_at: Optional[datetime] = None
    retired_at: Optional[datetime] = None

    def get_blueprint(self, blueprint_id: str) -> Optional[StepBlueprint]:
        for blueprint in self.steps:
            if blueprint.id == blueprint_id:
                return blueprint
        return None


class WorkflowInstance(BaseModel):
    """One concrete workflow run for one employee."""
    id: str = Field(default_factory=new_id)
    employee_id: str = Field(..., description="Subject employee identifier")
    template_id: Optional[str] = Field(None, description="Source template, None for freeform instances")
    template_version: Optional[int] = None
    lifecycle_type: LifecycleType
    name: Optional[str] = None
    current_stage: str = "not_started"
    status: InstanceStatus = InstanceStatus.NOT_STARTED
    completion_percentage: int = Field(0, ge=0, le=100)
    start_date: date
    expected_completion: Optional[date] = None
    actual_completion: Optional[date] = None
    assigned_roles: Dict[str, str] = Field(default_factory=dict, description="Role -> person (buddy, manager)")
    created_by: Optional[str] = None
    cancelled_by: Optional[str] = None
    cancel_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_closed(self) -> bool:
        return self.status in CLOSED_INSTANCE_STATUSES


class WorkflowStep(BaseModel):
    """A concrete step belonging to exactly one workflow instance."""
    id: str = Field(default_factory=new_id)
    instance_id: str
    order: int = Field(..., ge=0)
    title: str
    description: Optional[str] = None
    category: str = "general"
    step_type: StepType = StepType.MANUAL
    status: StepStatus = StepStatus.PENDING
    prerequisites: List[str] = Field(default_factory=list, description="Step ids within the same instance")
    mandatory: bool = True
    assignee: Optional[str] = None
    assignee_role: Optional[str] = None
    due_date: Optional[date] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    completed_by: Optional[str] = None
    integration_kind: Optional[IntegrationKind] = None
    integration_config: Dict[str, Any] = Field(default_factory=dict)
    blueprint_id: Optional[str] = None
    notes: Optional[str] = None
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STEP_STATUSES


class IntegrationAttempt(BaseModel):
    """Tracks calls made to an external provider on behalf of one step."""
    id: str = Field(default_factory=new_id)
    step_id: str
    instance_id: str
    kind: IntegrationKind
    external_id: Optional[str] = Field(None, description="Provider correlation id")
    status: AttemptStatus = AttemptStatus.PENDING
    attempt_count: int = Field(0, ge=0)
    max_attempts: int = Field(3, ge=1)
    last_attempt_at: Optional[datetime] = None
    next_attempt_at: Optional[datetime] = Field(None, description="When a retry becomes due")
    request_payload: Dict[str, Any] = Field(default_factory=dict)
    response_payload: Dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None
    exception_id: Optional[str] = Field(None, description="Exception opened on exhaustion")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def check_attempt_bound(self) -> "IntegrationAttempt":
        if self.attempt_count > self.max_attempts:
            raise ValueError(
                f"attempt_count {self.attempt_count} exceeds max_attempts {self.max_attempts}"
            )
        return self

    @property
    def is_exhausted(self) -> bool:
        return self.attempt_count >= self.max_attempts and self.status == AttemptStatus.FAILED


class WorkflowException(BaseModel):
    """A recorded anomaly that requires human resolution."""
    id: str = Field(default_factory=new_id)
    instance_id: str
    step_id: Optional[str] = None
    kind: ExceptionKind
    severity: Severity
    title: str
    description: Optional[str] = None
    resolution_status: ResolutionStatus = ResolutionStatus.OPEN
    assignee: Optional[str] = None
    opened_by: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolution_notes: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_open(self) -> bool:
        return self.resolution_status in OPEN_RESOLUTION_STATUSES


class InstanceRecord(BaseModel):
    """
    Aggregate persisted as a single unit: an instance with everything it owns.

    Steps, integration attempts and exceptions never outlive their instance.
    """
    instance: WorkflowInstance
    steps: List[WorkflowStep] = Field(default_factory=list)
    attempts: List[IntegrationAttempt] = Field(default_factory=list)
    exceptions: List[WorkflowException] = Field(default_factory=list)
    version: int = 0

    def ordered_steps(self) -> List[WorkflowStep]:
        return sorted(self.steps, key=lambda s: s.order)

    def get_step(self, step_id: str) -> Optional[WorkflowStep]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def get_exception(self, exception_id: str) -> Optional[WorkflowException]:
        for exception in self.exceptions:
            if exception.id == exception_id:
                return exception
        return None

    def attempts_for_step(self, step_id: str) -> List[IntegrationAttempt]:
        return [a for a in self.attempts if a.step_id == step_id]

    def latest_attempt(self, step_id: str) -> Optional[IntegrationAttempt]:
        attempts = self.attempts_for_step(step_id)
        return attempts[-1] if attempts else None


class AuditRecord(BaseModel):
    """Audit record of a mutation performed by an actor."""
    id: str = Field(default_factory=new_id)
    timestamp: datetime = Field(default_factory=utcnow)
    actor: str = Field(..., description="Opaque user or system identifier")
    action: str = Field(..., description="Mutation performed (step.transition, instance.cancel, ...)")
    instance_id: Optional[str] = None
    step_id: Optional[str] = None
    exception_id: Optional[str] = None
    employee_id: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


# Type aliases for convenience
WorkflowSteps = List[WorkflowStep]
WorkflowExceptions = List[WorkflowException]
