"""
Exception Tracker for the Lifecycle Workflow Engine.

Records failures and anomalies that need a human (exhausted integrations,
missed due dates, validation errors) and tracks their resolution.
Exceptions never close on their own; only a resolve or dismiss by a person
closes one, even after the underlying step recovers.
"""

import logging
from typing import List, Optional

from ..audit import AuditLogger
from ..errors import AlreadyResolved, ExceptionNotFound, StepNotFound
from ..events import EXCEPTION_DISMISSED, EXCEPTION_OPENED, EXCEPTION_RESOLVED, EventBus, WorkflowEvent
from ..models import (
    SYSTEM_ACTOR,
    ExceptionKind,
    InstanceRecord,
    ResolutionStatus,
    Severity,
    WorkflowException,
    utcnow,
)
from .repository import WorkflowRepository

logger = logging.getLogger(__name__)


class ExceptionTracker:
    """Opens, assigns and resolves workflow exceptions."""

    def __init__(
        self,
        repository: WorkflowRepository,
        audit_logger: Optional[AuditLogger] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.repository = repository
        self.audit_logger = audit_logger or AuditLogger()
        self.event_bus = event_bus or EventBus()

    def open(
        self,
        instance_id: str,
        kind: ExceptionKind,
        severity: Severity,
        title: str,
        description: Optional[str] = None,
        step_id: Optional[str] = None,
        actor: str = SYSTEM_ACTOR,
        assignee: Optional[str] = None,
    ) -> WorkflowException:
        """
        Open a new exception against an instance.

        Args:
            instance_id: Owning workflow instance
            kind: Exception category
            severity: How urgent the exception is
            title: Short summary
            description: Details for the person resolving it
            step_id: Optional step the exception concerns
            actor: Who raised it
            assignee: Who should handle it

        Returns:
            The new exception, status open
        """
        events: List[WorkflowEvent] = []
        with self.repository.transaction(instance_id) as record:
            exception = self.open_in(
                record, kind, severity, title, description, step_id, actor, assignee, events
            )
            employee_id = record.instance.employee_id

        self._audit("exception.open", actor, exception, employee_id, {"kind": kind.value, "severity": severity.value})
        self.event_bus.publish_all(events)
        return exception.model_copy()

    def open_in(
        self,
        record: InstanceRecord,
        kind: ExceptionKind,
        severity: Severity,
        title: str,
        description: Optional[str] = None,
        step_id: Optional[str] = None,
        actor: str = SYSTEM_ACTOR,
        assignee: Optional[str] = None,
        events: Optional[List[WorkflowEvent]] = None,
    ) -> WorkflowException:
        """Open an exception inside an already open transaction."""
        if step_id and record.get_step(step_id) is None:
            raise StepNotFound(record.instance.id, step_id)

        exception = WorkflowException(
            instance_id=record.instance.id,
            step_id=step_id,
            kind=kind,
            severity=severity,
            title=title,
            description=description,
            assignee=assignee,
            opened_by=actor,
        )
        record.exceptions.append(exception)

        if events is not None:
            events.append(WorkflowEvent(EXCEPTION_OPENED, record.instance.id, {
                "exception_id": exception.id,
                "step_id": step_id,
                "kind": kind.value,
                "severity": severity.value,
                "title": title,
            }))

        logger.warning(
            f"Opened {severity.value} {kind.value} exception {exception.id} on instance "
            f"{record.instance.id}: {title}"
        )
        return exception

    def acknowledge(self, exception_id: str, actor: str) -> WorkflowException:
        """Move an open exception to in_progress; acknowledging twice is a no-op."""
        instance_id = self.repository.instance_id_for_exception(exception_id)
        with self.repository.transaction(instance_id) as record:
            exception = record.get_exception(exception_id)
            if not exception.is_open:
                raise AlreadyResolved(exception_id, exception.resolution_status.value)
            exception.resolution_status = ResolutionStatus.IN_PROGRESS
            exception.assignee = exception.assignee or actor
            exception.updated_at = utcnow()
            employee_id = record.instance.employee_id

        self._audit("exception.acknowledge", actor, exception, employee_id)
        return exception.model_copy()

    def assign(self, exception_id: str, assignee: str, actor: str) -> WorkflowException:
        """Assign an unresolved exception to a person."""
        instance_id = self.repository.instance_id_for_exception(exception_id)
        with self.repository.transaction(instance_id) as record:
            exception = record.get_exception(exception_id)
            if not exception.is_open:
                raise AlreadyResolved(exception_id, exception.resolution_status.value)
            exception.assignee = assignee
            exception.updated_at = utcnow()
            employee_id = record.instance.employee_id

        self._audit("exception.assign", actor, exception, employee_id, {"assignee": assignee})
        return exception.model_copy()

    def resolve(self, exception_id: str, actor: str, notes: Optional[str] = None) -> WorkflowException:
        """Resolve an exception. Raises AlreadyResolved if it is closed."""
        return self._close(exception_id, actor, notes, ResolutionStatus.RESOLVED, EXCEPTION_RESOLVED)

    def dismiss(self, exception_id: str, actor: str, notes: Optional[str] = None) -> WorkflowException:
        """Dismiss an exception. Raises AlreadyResolved if it is closed."""
        return self._close(exception_id, actor, notes, ResolutionStatus.DISMISSED, EXCEPTION_DISMISSED)

    def get(self, exception_id: str) -> WorkflowException:
        instance_id = self.repository.instance_id_for_exception(exception_id)
        exception = self.repository.get(instance_id).get_exception(exception_id)
        if exception is None:
            raise ExceptionNotFound(exception_id)
        return exception

    def list_exceptions(
        self,
        instance_id: Optional[str] = None,
        status: Optional[ResolutionStatus] = None,
        severity: Optional[Severity] = None,
        kind: Optional[ExceptionKind] = None,
    ) -> List[WorkflowException]:
        """List exceptions, newest first, with optional filtering."""
        records = [self.repository.get(instance_id)] if instance_id else self.repository.list()

        exceptions = [e for record in records for e in record.exceptions]
        if status:
            exceptions = [e for e in exceptions if e.resolution_status == status]
        if severity:
            exceptions = [e for e in exceptions if e.severity == severity]
        if kind:
            exceptions = [e for e in exceptions if e.kind == kind]

        return sorted(exceptions, key=lambda e: e.created_at, reverse=True)

    def _close(self, exception_id: str, actor: str, notes: Optional[str],
               outcome: ResolutionStatus, event_type: str) -> WorkflowException:
        instance_id = self.repository.instance_id_for_exception(exception_id)
        with self.repository.transaction(instance_id) as record:
            exception = record.get_exception(exception_id)
            if not exception.is_open:
                raise AlreadyResolved(exception_id, exception.resolution_status.value)
            now = utcnow()
            exception.resolution_status = outcome
            exception.resolved_by = actor
            exception.resolved_at = now
            exception.resolution_notes = notes
            exception.updated_at = now
            employee_id = record.instance.employee_id

        logger.info(f"Exception {exception_id} {outcome.value} by {actor}")
        self._audit(f"exception.{outcome.value}", actor, exception, employee_id, {"notes": notes})
        self.event_bus.publish(WorkflowEvent(event_type, instance_id, {
            "exception_id": exception_id,
            "actor": actor,
            "notes": notes,
        }))
        return exception.model_copy()

    def _audit(self, action: str, actor: str, exception: WorkflowException,
               employee_id: Optional[str], details: Optional[dict] = None):
        self.audit_logger.record(
            actor=actor,
            action=action,
            instance_id=exception.instance_id,
            step_id=exception.step_id,
            exception_id=exception.id,
            employee_id=employee_id,
            details=details,
        )
