"""
Integration Dispatcher for the Lifecycle Workflow Engine.

Calls the external provider behind an integration step and records the
outcome. Each dispatch runs in three phases so no provider call ever holds
an instance lock:

1. claim the attempt in a transaction (increment attempt_count, mark in flight)
2. call the provider outside any transaction
3. apply the outcome in a new transaction

Failed calls are retried with exponential backoff by the sweeper until
max_attempts is reached; exhaustion fails the step and opens exactly one
integration_failure exception. An attempt whose outcome could not be
recorded goes back to the retry queue, or is sent again once its claim is
older than claim_timeout_seconds.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..audit import AuditLogger
from ..config import IntegrationSettings
from ..engine.exception_tracker import ExceptionTracker
from ..engine.repository import WorkflowRepository
from ..errors import TransactionConflict
from ..events import INTEGRATION_EXHAUSTED, EventBus, WorkflowEvent
from ..models import (
    SYSTEM_ACTOR,
    AttemptStatus,
    ExceptionKind,
    InstanceStatus,
    IntegrationAttempt,
    IntegrationKind,
    Severity,
    StepStatus,
    utcnow,
)
from .base_provider import BaseProvider, ProviderResult

logger = logging.getLogger(__name__)

_SEND = "send"
_SKIP = "skip"
_EXPIRE = "expire"


class IntegrationDispatcher:
    """
    Fire-and-record dispatcher for integration steps.

    Delivery is at-least-once with a bounded number of attempts; a
    re-dispatch never increments attempt_count for an attempt that is
    completed, exhausted or in flight within its claim timeout.
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        providers: Dict[IntegrationKind, BaseProvider],
        exception_tracker: ExceptionTracker,
        settings: Optional[IntegrationSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
        event_bus: Optional[EventBus] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize the dispatcher.

        Args:
            repository: Transactional store of instance records
            providers: Provider per integration kind
            exception_tracker: Tracker used to open exhaustion exceptions
            settings: Retry and transport settings
            audit_logger: Receives one record per provider call
            event_bus: Receives events after each commit
            clock: Source of the current time
        """
        self.repository = repository
        self.providers = providers
        self.exception_tracker = exception_tracker
        self.settings = settings or IntegrationSettings()
        self.audit_logger = audit_logger or AuditLogger()
        self.event_bus = event_bus or EventBus()
        self.clock = clock
        self.manager = None

    def attach(self, manager) -> None:
        """Bind the instance manager that applies step completions."""
        self.manager = manager

    def compute_backoff(self, attempt_count: int) -> float:
        """Seconds to wait before the next attempt: base ** n, capped."""
        return min(self.settings.backoff_base_seconds ** attempt_count, self.settings.backoff_max_seconds)

    def dispatch(self, instance_id: str, step_id: str, now: Optional[datetime] = None) -> Optional[IntegrationAttempt]:
        """
        Make one provider call for a step's current attempt, if one is due.

        Returns:
            The attempt after the outcome was recorded, the unchanged attempt
            when nothing was due, or None when the step has no attempt
        """
        attempt, _ = self.try_dispatch(instance_id, step_id, now)
        return attempt

    def try_dispatch(self, instance_id: str, step_id: str,
                     now: Optional[datetime] = None) -> Tuple[Optional[IntegrationAttempt], bool]:
        """
        Like dispatch, but also report whether an outcome was recorded.

        An attempt that already used all of its tries, which happens when an
        earlier outcome could not be recorded, is failed without another
        provider call.

        Raises:
            TransactionConflict: if the outcome could not be recorded; the
                attempt is released for a later retry
        """
        now = now or self.clock()

        claimed, action = self._claim(instance_id, step_id, now)
        if action == _SKIP:
            return claimed, False

        if action == _EXPIRE:
            result = ProviderResult.failure(claimed.error_message or "No outcome recorded for the last try")
        else:
            result = self._send(claimed)

        try:
            return self._record_outcome(instance_id, step_id, claimed.id, result), True
        except TransactionConflict:
            logger.error(f"Could not record the outcome of attempt {claimed.id}, releasing it for retry")
            self._release(instance_id, claimed.id, result)
            raise

    def due_attempts(self, now: Optional[datetime] = None) -> List[IntegrationAttempt]:
        """
        Attempts ready for another provider call: pending attempts whose
        retry time has passed and in-flight attempts whose outcome never
        arrived. Only attempts of in-progress steps on open instances count.
        """
        now = now or self.clock()
        due = []
        for record in self.repository.list():
            if record.instance.is_closed:
                continue
            for step in record.steps:
                attempt = record.latest_attempt(step.id)
                if attempt is None or step.status != StepStatus.IN_PROGRESS:
                    continue
                if attempt.status == AttemptStatus.PENDING and _is_due(attempt, now):
                    due.append(attempt)
                elif attempt.status == AttemptStatus.IN_PROGRESS and self._is_stale(attempt, now):
                    due.append(attempt)
        return sorted(due, key=lambda a: a.next_attempt_at or a.last_attempt_at or a.created_at)

    def retry_due(self, now: Optional[datetime] = None) -> List[IntegrationAttempt]:
        """Dispatch every due attempt once, returning the attempts with a recorded outcome."""
        now = now or self.clock()
        dispatched = []
        for due in self.due_attempts(now):
            attempt, sent = self.try_dispatch(due.instance_id, due.step_id, now)
            if sent:
                dispatched.append(attempt)
        return dispatched

    def _send(self, attempt: IntegrationAttempt) -> ProviderResult:
        provider = self.providers.get(attempt.kind)
        if provider is None:
            return ProviderResult.failure(f"No provider configured for {attempt.kind.value}")
        try:
            return provider.send(attempt.request_payload)
        except Exception as e:
            logger.exception(f"Provider {provider.get_name()} raised during attempt {attempt.id}")
            return ProviderResult.failure(f"{type(e).__name__}: {e}")

    def _is_stale(self, attempt: IntegrationAttempt, now: datetime) -> bool:
        if attempt.last_attempt_at is None:
            return True
        return attempt.last_attempt_at + timedelta(seconds=self.settings.claim_timeout_seconds) <= now

    def _claim(self, instance_id: str, step_id: str, now: datetime) -> Tuple[Optional[IntegrationAttempt], str]:
        with self.repository.transaction(instance_id) as record:
            attempt = record.latest_attempt(step_id)
            if attempt is None:
                logger.warning(f"No integration attempt for step {step_id} of instance {instance_id}")
                return None, _SKIP

            step = record.get_step(step_id)
            stale = attempt.status == AttemptStatus.IN_PROGRESS and self._is_stale(attempt, now)
            skip_reason = None
            if record.instance.is_closed:
                skip_reason = f"instance is {record.instance.status.value}"
            elif step is None or step.status != StepStatus.IN_PROGRESS:
                skip_reason = f"step is {step.status.value if step else 'missing'}"
            elif attempt.status != AttemptStatus.PENDING and not stale:
                skip_reason = f"attempt is {attempt.status.value}"
            elif attempt.attempt_count >= attempt.max_attempts:
                logger.warning(f"Attempt {attempt.id} has no tries left, failing it")
                return attempt, _EXPIRE
            elif not stale and not _is_due(attempt, now):
                skip_reason = f"retry not due until {attempt.next_attempt_at.isoformat()}"

            if skip_reason:
                logger.info(f"Skipping dispatch of attempt {attempt.id}: {skip_reason}")
                return attempt, _SKIP

            if stale:
                logger.warning(
                    f"Attempt {attempt.id} has had no outcome since {attempt.last_attempt_at}, sending again"
                )
            attempt.attempt_count += 1
            attempt.status = AttemptStatus.IN_PROGRESS
            attempt.last_attempt_at = now
            attempt.next_attempt_at = None
            attempt.updated_at = now

        logger.info(
            f"Dispatching {attempt.kind.value} attempt {attempt.id} "
            f"({attempt.attempt_count}/{attempt.max_attempts}) for step {step_id}"
        )
        return attempt, _SEND

    def _release(self, instance_id: str, attempt_id: str, result: ProviderResult) -> None:
        """Return an in-flight attempt to the retry queue after its outcome was lost."""
        now = self.clock()
        try:
            with self.repository.transaction(instance_id) as record:
                attempt = next(a for a in record.attempts if a.id == attempt_id)
                if attempt.status != AttemptStatus.IN_PROGRESS:
                    return
                attempt.status = AttemptStatus.PENDING
                attempt.error_message = result.error or "Outcome could not be recorded"
                attempt.next_attempt_at = now + timedelta(seconds=self.compute_backoff(attempt.attempt_count))
                attempt.updated_at = now
        except TransactionConflict:
            logger.error(
                f"Attempt {attempt_id} is still marked in flight; it is sent again after "
                f"{self.settings.claim_timeout_seconds}s"
            )

    def _record_outcome(self, instance_id: str, step_id: str, attempt_id: str,
                        result: ProviderResult) -> IntegrationAttempt:
        now = self.clock()
        events: List[WorkflowEvent] = []
        exhausted = False

        with self.repository.transaction(instance_id) as record:
            attempt = next(a for a in record.attempts if a.id == attempt_id)
            step = record.get_step(step_id)
            cancelled = record.instance.status == InstanceStatus.CANCELLED
            stopped = cancelled or step is None or step.is_terminal
            attempt.updated_at = now
            attempt.response_payload = dict(result.response)

            if result.success:
                attempt.status = AttemptStatus.COMPLETED
                attempt.external_id = result.correlation_id
                attempt.error_message = None
                if not cancelled and step is not None and step.status == StepStatus.IN_PROGRESS:
                    self.manager.apply_transition(
                        record, step_id, StepStatus.COMPLETED, SYSTEM_ACTOR,
                        f"{attempt.kind.value} completed ({result.correlation_id})", events,
                    )
            elif stopped or attempt.attempt_count >= attempt.max_attempts:
                attempt.status = AttemptStatus.FAILED
                attempt.error_message = result.error
                if not stopped and attempt.exception_id is None:
                    exhausted = True
                    self._exhaust(record, step, attempt, events)
            else:
                attempt.status = AttemptStatus.PENDING
                attempt.error_message = result.error
                attempt.next_attempt_at = now + timedelta(seconds=self.compute_backoff(attempt.attempt_count))

            employee_id = record.instance.employee_id

        self.audit_logger.record(
            actor=SYSTEM_ACTOR,
            action="integration.attempt",
            instance_id=instance_id,
            step_id=step_id,
            exception_id=attempt.exception_id,
            employee_id=employee_id,
            details={
                "kind": attempt.kind.value,
                "attempt": attempt.attempt_count,
                "status": attempt.status.value,
                "external_id": attempt.external_id,
                "error": attempt.error_message,
            },
        )
        self.event_bus.publish_all(events)

        if result.success:
            logger.info(f"Attempt {attempt_id} succeeded with correlation id {result.correlation_id}")
        elif exhausted:
            logger.error(f"Attempt {attempt_id} exhausted after {attempt.attempt_count} tries: {result.error}")
        else:
            logger.warning(f"Attempt {attempt_id} failed ({attempt.attempt_count}/{attempt.max_attempts}): {result.error}")
        return attempt

    def _exhaust(self, record, step, attempt: IntegrationAttempt, events: List[WorkflowEvent]):
        """Fail the step and open the single integration_failure exception."""
        mandatory = step.mandatory if step is not None else True
        if step is not None and step.status == StepStatus.IN_PROGRESS:
            self.manager.apply_transition(
                record, step.id, StepStatus.FAILED, SYSTEM_ACTOR, attempt.error_message, events
            )

        title = step.title if step is not None else attempt.step_id
        exception = self.exception_tracker.open_in(
            record,
            ExceptionKind.INTEGRATION_FAILURE,
            Severity.CRITICAL if mandatory else Severity.MEDIUM,
            f"{attempt.kind.value} integration failed for '{title}'",
            f"Gave up after {attempt.attempt_count} attempts: {attempt.error_message}",
            step_id=step.id if step is not None else None,
            assignee=step.assignee if step is not None else None,
            events=events,
        )
        attempt.exception_id = exception.id
        events.append(WorkflowEvent(INTEGRATION_EXHAUSTED, record.instance.id, {
            "step_id": attempt.step_id,
            "attempt_id": attempt.id,
            "kind": attempt.kind.value,
            "exception_id": exception.id,
            "error": attempt.error_message,
        }))


def _is_due(attempt: IntegrationAttempt, now: datetime) -> bool:
    return attempt.next_attempt_at is None or attempt.next_attempt_at <= now


def summarize_attempt(attempt: IntegrationAttempt) -> Dict[str, Any]:
    """Compact view of an attempt for API and CLI output."""
    return {
        "id": attempt.id,
        "kind": attempt.kind.value,
        "status": attempt.status.value,
        "attempt_count": attempt.attempt_count,
        "max_attempts": attempt.max_attempts,
        "external_id": attempt.external_id,
        "error": attempt.error_message,
        "next_attempt_at": attempt.next_attempt_at.isoformat() if attempt.next_attempt_at else None,
    }
