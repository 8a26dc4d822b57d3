"""
Workflow Instance Manager for the Lifecycle Workflow Engine.

Owns the lifecycle of concrete workflow runs: instantiation from templates
or explicit step lists, step-status transitions, cancellation and deadline
checks. Every mutation re-runs the Progress Aggregator inside the same
transaction, so an instance's percentage and status always reflect its
steps.
"""

import logging
import time
from datetime import date, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from ..audit import AuditLogger
from ..config import EngineSettings
from ..errors import (
    DependencyNotMet,
    IllegalTransition,
    InstanceClosed,
    InvalidWorkflowDefinition,
    PreconditionViolation,
    StepNotFound,
    TemplateNotPublished,
    TransactionConflict,
)
from ..events import (
    INSTANCE_CANCELLED,
    INSTANCE_COMPLETED,
    INSTANCE_OVERDUE,
    STEP_COMPLETED,
    STEP_STATUS_CHANGED,
    EventBus,
    WorkflowEvent,
)
from ..models import (
    SYSTEM_ACTOR,
    AttemptStatus,
    ExceptionKind,
    InstanceRecord,
    InstanceStatus,
    IntegrationAttempt,
    LifecycleType,
    ResolutionStatus,
    Severity,
    StepBlueprint,
    StepStatus,
    StepType,
    TemplateStatus,
    WorkflowException,
    WorkflowInstance,
    WorkflowStep,
    new_id,
    utcnow,
    utctoday,
)
from .exception_tracker import ExceptionTracker
from .progress import aggregate, current_stage, summarize
from .repository import WorkflowRepository
from .resolver import check_eligibility, validate_dependencies
from .template_store import TemplateStore, validate_blueprints

logger = logging.getLogger(__name__)

# Legal step transitions; skipped is reachable from every non-terminal status.
STEP_TRANSITIONS: Dict[StepStatus, Tuple[StepStatus, ...]] = {
    StepStatus.PENDING: (StepStatus.IN_PROGRESS, StepStatus.SKIPPED),
    StepStatus.IN_PROGRESS: (StepStatus.COMPLETED, StepStatus.BLOCKED, StepStatus.FAILED, StepStatus.SKIPPED),
    StepStatus.BLOCKED: (StepStatus.IN_PROGRESS, StepStatus.SKIPPED),
    StepStatus.COMPLETED: (),
    StepStatus.FAILED: (),
    StepStatus.SKIPPED: (),
}

REQUIRES_ELIGIBILITY = frozenset({StepStatus.IN_PROGRESS, StepStatus.COMPLETED})

BlueprintLike = Union[StepBlueprint, Dict[str, Any]]


class WorkflowInstanceManager:
    """
    Drives workflow instances through their lifecycle.

    All state changes happen inside a repository transaction; audit records
    and events are emitted only after the transaction commits, and external
    integrations are dispatched outside of it.
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        template_store: TemplateStore,
        exception_tracker: Optional[ExceptionTracker] = None,
        audit_logger: Optional[AuditLogger] = None,
        event_bus: Optional[EventBus] = None,
        settings: Optional[EngineSettings] = None,
        dispatcher: Any = None,
    ):
        """
        Initialize the instance manager.

        Args:
            repository: Transactional store of instance records
            template_store: Source of workflow templates
            exception_tracker: Tracker used for validation and deadline exceptions
            audit_logger: Receives one audit record per mutation
            event_bus: Receives events after each commit
            settings: Engine settings
            dispatcher: IntegrationDispatcher invoked when integration steps start
        """
        self.repository = repository
        self.template_store = template_store
        self.settings = settings or EngineSettings()
        self.audit_logger = audit_logger or AuditLogger()
        self.event_bus = event_bus or EventBus()
        self.exception_tracker = exception_tracker or ExceptionTracker(
            repository, self.audit_logger, self.event_bus
        )
        self.dispatcher = None
        if dispatcher is not None:
            self.attach_dispatcher(dispatcher)

    def attach_dispatcher(self, dispatcher: Any) -> None:
        """Use a dispatcher for integration steps and bind it back to this manager."""
        self.dispatcher = dispatcher
        dispatcher.attach(self)

    # ------------------------------------------------------------------
    # Instantiation
    # ------------------------------------------------------------------

    def instantiate(
        self,
        employee_id: str,
        start_date: date,
        template_id: Optional[str] = None,
        steps: Optional[Iterable[BlueprintLike]] = None,
        actor: str = SYSTEM_ACTOR,
        lifecycle_type: Optional[LifecycleType] = None,
        expected_completion: Optional[date] = None,
        assigned_roles: Optional[Dict[str, str]] = None,
        name: Optional[str] = None,
    ) -> InstanceRecord:
        """
        Create a workflow instance for an employee.

        Exactly one of template_id or steps must be given. Step due dates
        are the start date plus each blueprint's day offset; the expected
        completion defaults to the latest step due date.

        Raises:
            TemplateNotFound: if the template does not exist
            TemplateNotPublished: if the template is a draft or retired
            InvalidWorkflowDefinition: if explicit steps fail validation
        """
        if not employee_id or not str(employee_id).strip():
            raise InvalidWorkflowDefinition("Employee ID is required")
        if (template_id is None) == (steps is None):
            raise InvalidWorkflowDefinition("Provide either a template_id or an explicit list of steps")

        template_version = None
        if template_id is not None:
            template = self.template_store.get(template_id)
            if template.status != TemplateStatus.PUBLISHED:
                raise TemplateNotPublished(template_id, template.status.value)
            blueprints = template.steps
            lifecycle_type = template.lifecycle_type
            template_version = template.version
            name = name or template.name
        else:
            blueprints = [_as_blueprint(b) for b in steps]
            validate_blueprints(blueprints, name or "freeform workflow")
            lifecycle_type = lifecycle_type or LifecycleType.OTHER

        assigned_roles = dict(assigned_roles or {})
        instance = WorkflowInstance(
            employee_id=str(employee_id),
            template_id=template_id,
            template_version=template_version,
            lifecycle_type=lifecycle_type,
            name=name,
            start_date=start_date,
            expected_completion=expected_completion,
            assigned_roles=assigned_roles,
            created_by=actor,
        )

        id_map = {blueprint.id: new_id() for blueprint in blueprints}
        record = InstanceRecord(instance=instance)
        for order, blueprint in enumerate(blueprints):
            record.steps.append(self._step_from_blueprint(
                blueprint, instance, order, id_map[blueprint.id], [id_map[p] for p in blueprint.prerequisites]
            ))

        if instance.expected_completion is None and record.steps:
            due_dates = [s.due_date for s in record.steps if s.due_date]
            instance.expected_completion = max(due_dates + [start_date])

        self._recompute(record, [])
        stored = self.repository.add(record)

        self.audit_logger.record(
            actor=actor,
            action="instance.create",
            instance_id=instance.id,
            employee_id=instance.employee_id,
            details={"template_id": template_id, "steps": len(record.steps), "lifecycle_type": lifecycle_type.value},
        )
        logger.info(
            f"Instantiated {lifecycle_type.value} workflow {instance.id} for employee {employee_id} "
            f"with {len(record.steps)} steps"
        )
        return stored

    def instantiate_for_event(
        self,
        employee_id: str,
        lifecycle_type: LifecycleType,
        start_date: date,
        actor: str = SYSTEM_ACTOR,
        department: Optional[str] = None,
        role: Optional[str] = None,
        **kwargs,
    ) -> InstanceRecord:
        """Instantiate the most specific published template for a lifecycle event."""
        template = self.template_store.find_template(lifecycle_type, department, role)
        return self.instantiate(employee_id, start_date, template_id=template.id, actor=actor, **kwargs)

    def add_step(self, instance_id: str, blueprint: BlueprintLike, actor: str) -> WorkflowStep:
        """
        Append a step to a freeform instance.

        Prerequisites may name existing step ids or the blueprint ids the
        instance's steps were created from.
        """
        blueprint = _as_blueprint(blueprint)
        events: List[WorkflowEvent] = []

        with self.repository.transaction(instance_id) as record:
            instance = record.instance
            self._require_open(instance)
            if instance.template_id is not None:
                raise PreconditionViolation(
                    f"Workflow instance {instance_id} was created from template {instance.template_id}; "
                    f"steps can only be added to freeform instances"
                )

            by_blueprint = {s.blueprint_id: s.id for s in record.steps if s.blueprint_id}
            known = {s.id for s in record.steps}
            prerequisites = []
            problems = []
            for prerequisite in blueprint.prerequisites:
                step_id = prerequisite if prerequisite in known else by_blueprint.get(prerequisite)
                if step_id is None:
                    problems.append(f"'{blueprint.title}' depends on unknown step '{prerequisite}'")
                else:
                    prerequisites.append(step_id)
            if problems:
                raise InvalidWorkflowDefinition("Invalid step dependencies", problems)

            order = max((s.order for s in record.steps), default=-1) + 1
            step = self._step_from_blueprint(blueprint, instance, order, new_id(), prerequisites)
            record.steps.append(step)
            validate_dependencies({s.id: s.prerequisites for s in record.steps})
            self._recompute(record, events)

        self.audit_logger.record(
            actor=actor,
            action="step.add",
            instance_id=instance_id,
            step_id=step.id,
            employee_id=record.instance.employee_id,
            details={"title": step.title},
        )
        self.event_bus.publish_all(events)
        return step.model_copy()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def transition_step(
        self,
        instance_id: str,
        step_id: str,
        new_status: StepStatus,
        actor: str,
        notes: Optional[str] = None,
    ) -> WorkflowStep:
        """
        Move a step to a new status.

        The transition, the recomputed instance progress and, for
        integration steps being started, the pending integration attempt
        commit together. Nothing is changed when a precondition fails.

        Raises:
            IllegalTransition: if the status change is not allowed
            DependencyNotMet: if prerequisites are not all completed
            InstanceClosed: if the instance is completed or cancelled
        """
        new_status = StepStatus(new_status)
        events: List[WorkflowEvent] = []

        try:
            with self.repository.transaction(instance_id) as record:
                previous = self._require_step(record, step_id).status
                step = self.apply_transition(record, step_id, new_status, actor, notes, events)
                attempt = None
                if step.step_type == StepType.INTEGRATION and new_status == StepStatus.IN_PROGRESS:
                    attempt = self._open_attempt(record, step)
        except DependencyNotMet as e:
            if e.missing:
                self._report_missing_prerequisites(instance_id, step_id, e.missing)
            raise

        self.audit_logger.record(
            actor=actor,
            action="step.transition",
            instance_id=instance_id,
            step_id=step_id,
            employee_id=record.instance.employee_id,
            details={"from": previous.value, "to": new_status.value, "notes": notes},
        )
        self.event_bus.publish_all(events)

        if attempt is not None and self.dispatcher is not None and self.settings.auto_dispatch:
            self._dispatch_after_commit(instance_id, step_id)
            return self.get_step(instance_id, step_id)

        return step.model_copy()

    def apply_transition(
        self,
        record: InstanceRecord,
        step_id: str,
        new_status: StepStatus,
        actor: str,
        notes: Optional[str] = None,
        events: Optional[List[WorkflowEvent]] = None,
    ) -> WorkflowStep:
        """
        Apply a step transition to a record inside an open transaction.

        All checks run before anything is modified.
        """
        events = events if events is not None else []
        instance = record.instance
        self._require_open(instance)
        step = self._require_step(record, step_id)

        if new_status not in STEP_TRANSITIONS[step.status]:
            raise IllegalTransition("step", step_id, step.status.value, new_status.value)

        if new_status in REQUIRES_ELIGIBILITY:
            eligibility = check_eligibility(step, record.steps)
            if not eligibility:
                raise DependencyNotMet(step_id, eligibility.unmet, eligibility.missing)

        previous = step.status
        now = utcnow()
        step.status = new_status
        step.updated_at = now
        if notes:
            step.notes = notes
        if new_status == StepStatus.IN_PROGRESS and step.started_at is None:
            step.started_at = now
        if new_status == StepStatus.COMPLETED:
            step.completed_at = now
            step.completed_by = actor
        if step.is_terminal:
            self._close_pending_attempts(record, step)

        events.append(WorkflowEvent(STEP_STATUS_CHANGED, instance.id, {
            "step_id": step_id,
            "title": step.title,
            "from": previous.value,
            "to": new_status.value,
            "actor": actor,
        }))
        if new_status == StepStatus.COMPLETED:
            events.append(WorkflowEvent(STEP_COMPLETED, instance.id, {
                "step_id": step_id,
                "title": step.title,
                "completed_by": actor,
            }))

        self._recompute(record, events)
        logger.info(f"Step {step_id} of instance {instance.id}: {previous.value} -> {new_status.value} by {actor}")
        return step

    def retry_step(self, instance_id: str, step_id: str, actor: str) -> WorkflowStep:
        """
        Manually retry a failed integration step with a fresh attempt.

        Exceptions opened for the earlier failure stay open until a person
        resolves them.
        """
        with self.repository.transaction(instance_id) as record:
            self._require_open(record.instance)
            step = self._require_step(record, step_id)
            if step.step_type != StepType.INTEGRATION or step.status != StepStatus.FAILED:
                raise IllegalTransition("step", step_id, step.status.value, "retry")

            step.status = StepStatus.IN_PROGRESS
            step.updated_at = utcnow()
            events = [WorkflowEvent(STEP_STATUS_CHANGED, instance_id, {
                "step_id": step_id,
                "title": step.title,
                "from": StepStatus.FAILED.value,
                "to": StepStatus.IN_PROGRESS.value,
                "actor": actor,
            })]
            self._recompute(record, events)
            self._open_attempt(record, step, force_new=True)

        self.audit_logger.record(
            actor=actor,
            action="step.retry",
            instance_id=instance_id,
            step_id=step_id,
            employee_id=record.instance.employee_id,
        )
        self.event_bus.publish_all(events)

        if self.dispatcher is not None and self.settings.auto_dispatch:
            self._dispatch_after_commit(instance_id, step_id)
        return self.get_step(instance_id, step_id)

    def cancel(self, instance_id: str, actor: str, reason: Optional[str] = None) -> WorkflowInstance:
        """
        Cancel an instance. Cancelling an already cancelled instance is a no-op.

        Raises:
            InstanceClosed: if the instance already completed
        """
        with self.repository.transaction(instance_id) as record:
            instance = record.instance
            already_cancelled = instance.status == InstanceStatus.CANCELLED
            if not already_cancelled:
                if instance.status == InstanceStatus.COMPLETED:
                    raise InstanceClosed(instance_id, instance.status.value)
                instance.status = InstanceStatus.CANCELLED
                instance.cancelled_by = actor
                instance.cancel_reason = reason
                instance.updated_at = utcnow()

        if already_cancelled:
            logger.info(f"Instance {instance_id} already cancelled")
            return instance.model_copy()

        self.audit_logger.record(
            actor=actor,
            action="instance.cancel",
            instance_id=instance_id,
            employee_id=instance.employee_id,
            details={"reason": reason},
        )
        self.event_bus.publish(WorkflowEvent(INSTANCE_CANCELLED, instance_id, {"actor": actor, "reason": reason}))
        logger.info(f"Cancelled instance {instance_id} by {actor}: {reason}")
        return instance.model_copy()

    # ------------------------------------------------------------------
    # Deadlines
    # ------------------------------------------------------------------

    def refresh_overdue(self, instance_id: str, today: Optional[date] = None) -> WorkflowInstance:
        """Re-derive an instance's status, applying or clearing overdue."""
        events: List[WorkflowEvent] = []
        with self.repository.transaction(instance_id) as record:
            if not record.instance.is_closed:
                self._recompute(record, events, today)
        self.event_bus.publish_all(events)
        return record.instance.model_copy()

    def check_deadlines(self, instance_id: str, today: Optional[date] = None) -> List[WorkflowException]:
        """
        Refresh overdue status and open a timeout exception for each step
        past its due date. A step gets at most one timeout exception.
        """
        today = today or utctoday()
        events: List[WorkflowEvent] = []
        opened: List[WorkflowException] = []

        with self.repository.transaction(instance_id) as record:
            if record.instance.is_closed:
                return []
            self._recompute(record, events, today)

            flagged = {e.step_id for e in record.exceptions if e.kind == ExceptionKind.TIMEOUT}
            for step in record.ordered_steps():
                if step.is_terminal or not step.due_date or step.due_date >= today or step.id in flagged:
                    continue
                opened.append(self.exception_tracker.open_in(
                    record,
                    ExceptionKind.TIMEOUT,
                    Severity.HIGH if step.mandatory else Severity.LOW,
                    f"Step '{step.title}' is past due",
                    f"Due {step.due_date.isoformat()}, currently {step.status.value}",
                    step_id=step.id,
                    assignee=step.assignee,
                    events=events,
                ))

        for exception in opened:
            self.audit_logger.record(
                actor=SYSTEM_ACTOR,
                action="exception.open",
                instance_id=instance_id,
                step_id=exception.step_id,
                exception_id=exception.id,
                employee_id=record.instance.employee_id,
                details={"kind": exception.kind.value},
            )
        self.event_bus.publish_all(events)
        return [e.model_copy() for e in opened]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_record(self, instance_id: str) -> InstanceRecord:
        """Snapshot of an instance with its steps, attempts and exceptions."""
        return self.repository.get(instance_id)

    def get_instance(self, instance_id: str) -> WorkflowInstance:
        """Get an instance by ID."""
        return self.repository.get(instance_id).instance

    def get_step(self, instance_id: str, step_id: str) -> WorkflowStep:
        """
        Get one step of an instance.

        Raises:
            InstanceNotFound: if the instance does not exist
            StepNotFound: if the step is not part of the instance
        """
        return self._require_step(self.repository.get(instance_id), step_id)

    def list_instances(
        self,
        employee_id: Optional[str] = None,
        status: Optional[InstanceStatus] = None,
        lifecycle_type: Optional[LifecycleType] = None,
    ) -> List[WorkflowInstance]:
        """List instances with optional filtering, newest first."""
        instances = [record.instance for record in self.repository.list()]
        if employee_id:
            instances = [i for i in instances if i.employee_id == employee_id]
        if status:
            instances = [i for i in instances if i.status == status]
        if lifecycle_type:
            instances = [i for i in instances if i.lifecycle_type == lifecycle_type]
        return sorted(instances, key=lambda i: i.created_at, reverse=True)

    def get_progress(self, instance_id: str, today: Optional[date] = None) -> Dict[str, Any]:
        """Progress report for an instance, see progress.summarize."""
        record = self.repository.get(instance_id)
        return summarize(record.instance, record.steps, record.exceptions, today)

    def with_conflict_retry(self, operation: Callable, *args, attempts: Optional[int] = None, **kwargs):
        """
        Call an operation, retrying on TransactionConflict.

        Semantic errors are never retried.
        """
        retries = self.settings.conflict_retries if attempts is None else attempts
        for attempt in range(retries + 1):
            try:
                return operation(*args, **kwargs)
            except TransactionConflict:
                if attempt >= retries:
                    raise
                logger.warning(f"Transaction conflict on attempt {attempt + 1}, retrying")
                time.sleep(0.05 * (attempt + 1))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _recompute(self, record: InstanceRecord, events: List[WorkflowEvent], today: Optional[date] = None):
        """Re-derive percentage, status and stage from the record's steps."""
        instance = record.instance
        progress = aggregate(record.steps)
        previous = instance.status

        instance.completion_percentage = progress.percentage
        instance.current_stage = current_stage(record.steps) if record.steps else instance.current_stage
        instance.updated_at = utcnow()

        if previous == InstanceStatus.CANCELLED:
            return

        today = today or utctoday()
        status = progress.status
        if (
            status != InstanceStatus.COMPLETED
            and instance.expected_completion is not None
            and today > instance.expected_completion
        ):
            status = InstanceStatus.OVERDUE
        instance.status = status

        if status == InstanceStatus.COMPLETED and previous != InstanceStatus.COMPLETED:
            instance.actual_completion = today
            events.append(WorkflowEvent(INSTANCE_COMPLETED, instance.id, {"employee_id": instance.employee_id}))
        elif status != InstanceStatus.COMPLETED:
            instance.actual_completion = None

        if status == InstanceStatus.OVERDUE and previous != InstanceStatus.OVERDUE:
            events.append(WorkflowEvent(INSTANCE_OVERDUE, instance.id, {
                "expected_completion": instance.expected_completion.isoformat(),
                "completion_percentage": instance.completion_percentage,
            }))

    def _dispatch_after_commit(self, instance_id: str, step_id: str) -> None:
        """First provider call for a committed transition; a conflict leaves the attempt to the sweeper."""
        try:
            self.dispatcher.dispatch(instance_id, step_id)
        except TransactionConflict as e:
            logger.warning(f"Dispatch for step {step_id} deferred to the sweeper: {e}")

    def _close_pending_attempts(self, record: InstanceRecord, step: WorkflowStep) -> None:
        """Fail queued attempts of a step that reached a terminal status."""
        now = utcnow()
        for attempt in record.attempts:
            if attempt.step_id == step.id and attempt.status == AttemptStatus.PENDING:
                attempt.status = AttemptStatus.FAILED
                attempt.error_message = f"Step {step.status.value} before the integration finished"
                attempt.next_attempt_at = None
                attempt.updated_at = now
                logger.info(f"Closed attempt {attempt.id}: step {step.id} is {step.status.value}")

    def _open_attempt(self, record: InstanceRecord, step: WorkflowStep, force_new: bool = False) -> IntegrationAttempt:
        """Create the pending integration attempt for a started step, reusing an active one."""
        latest = record.latest_attempt(step.id)
        if (
            not force_new
            and latest is not None
            and latest.status in (AttemptStatus.PENDING, AttemptStatus.IN_PROGRESS)
        ):
            return latest

        attempt = IntegrationAttempt(
            step_id=step.id,
            instance_id=record.instance.id,
            kind=step.integration_kind,
            max_attempts=self.settings.integrations.max_attempts,
            next_attempt_at=utcnow(),
            request_payload=build_request_payload(record.instance, step),
        )
        record.attempts.append(attempt)
        logger.info(f"Queued {step.integration_kind.value} attempt {attempt.id} for step {step.id}")
        return attempt

    def _report_missing_prerequisites(self, instance_id: str, step_id: str, missing: List[str]):
        """Open one validation_error exception per step with unknown prerequisites."""
        record = self.repository.get(instance_id)
        already_reported = any(
            e.kind == ExceptionKind.VALIDATION_ERROR
            and e.step_id == step_id
            and e.resolution_status in (ResolutionStatus.OPEN, ResolutionStatus.IN_PROGRESS)
            for e in record.exceptions
        )
        if already_reported:
            return
        self.exception_tracker.open(
            instance_id,
            ExceptionKind.VALIDATION_ERROR,
            Severity.HIGH,
            "Step references unknown prerequisites",
            f"Prerequisites {', '.join(missing)} do not exist in this workflow",
            step_id=step_id,
        )

    def _step_from_blueprint(self, blueprint: StepBlueprint, instance: WorkflowInstance,
                             order: int, step_id: str, prerequisites: List[str]) -> WorkflowStep:
        role = blueprint.default_assignee_role
        return WorkflowStep(
            id=step_id,
            instance_id=instance.id,
            order=order,
            title=blueprint.title,
            description=blueprint.description,
            category=blueprint.category,
            step_type=blueprint.step_type,
            prerequisites=prerequisites,
            mandatory=blueprint.mandatory,
            assignee=instance.assigned_roles.get(role) if role else None,
            assignee_role=role,
            due_date=instance.start_date + timedelta(days=blueprint.due_day_offset),
            integration_kind=blueprint.integration_kind,
            integration_config=dict(blueprint.integration_config),
            blueprint_id=blueprint.id,
        )

    @staticmethod
    def _require_open(instance: WorkflowInstance):
        if instance.is_closed:
            raise InstanceClosed(instance.id, instance.status.value)

    @staticmethod
    def _require_step(record: InstanceRecord, step_id: str) -> WorkflowStep:
        step = record.get_step(step_id)
        if step is None:
            raise StepNotFound(record.instance.id, step_id)
        return step


def build_request_payload(instance: WorkflowInstance, step: WorkflowStep) -> Dict[str, Any]:
    """Provider request: the step's integration config plus workflow context."""
    payload = dict(step.integration_config)
    payload.update({
        "employee_id": instance.employee_id,
        "instance_id": instance.id,
        "step_id": step.id,
        "step_title": step.title,
    })
    return payload


def _as_blueprint(blueprint: BlueprintLike) -> StepBlueprint:
    if isinstance(blueprint, StepBlueprint):
        return blueprint
    return StepBlueprint.model_validate(blueprint)
