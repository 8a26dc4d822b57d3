"""
Background sweeper for the Lifecycle Workflow Engine.

Periodically re-dispatches integration attempts whose backoff has elapsed
and checks open instances for missed deadlines.
"""

import logging
import threading
from datetime import datetime
from typing import Any, Dict, Optional

from ..errors import TransactionConflict, WorkflowEngineError
from ..models import utcnow

logger = logging.getLogger(__name__)


class WorkflowSweeper:
    """Runs retry and deadline passes over all open workflow instances."""

    def __init__(self, manager, dispatcher=None):
        self.manager = manager
        self.dispatcher = dispatcher

    def run_once(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Perform a single sweep.

        A conflict or engine error on one instance is logged and the sweep
        moves on to the next.

        Returns:
            Report with the number of attempts dispatched, timeout
            exceptions opened and instances skipped
        """
        now = now or utcnow()
        report = {"attempts_dispatched": 0, "timeouts_opened": 0, "instances_checked": 0, "errors": 0}

        if self.dispatcher is not None:
            for attempt in self.dispatcher.due_attempts(now):
                try:
                    _, sent = self.dispatcher.try_dispatch(attempt.instance_id, attempt.step_id, now)
                    if sent:
                        report["attempts_dispatched"] += 1
                except (TransactionConflict, WorkflowEngineError) as e:
                    report["errors"] += 1
                    logger.warning(f"Retry of attempt {attempt.id} skipped: {e}")

        today = now.date()
        for instance in self.manager.list_instances():
            if instance.is_closed:
                continue
            try:
                opened = self.manager.check_deadlines(instance.id, today)
            except (TransactionConflict, WorkflowEngineError) as e:
                report["errors"] += 1
                logger.warning(f"Deadline check for instance {instance.id} skipped: {e}")
                continue
            report["instances_checked"] += 1
            report["timeouts_opened"] += len(opened)

        logger.info(
            f"Sweep finished: {report['attempts_dispatched']} attempts dispatched, "
            f"{report['timeouts_opened']} timeouts opened across {report['instances_checked']} instances"
        )
        return report

    def run_forever(self, interval: float = 60.0, stop_event: Optional[threading.Event] = None) -> None:
        """Sweep every `interval` seconds until stop_event is set."""
        stop_event = stop_event or threading.Event()
        logger.info(f"Starting workflow sweeper (interval={interval}s)")
        while not stop_event.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("Workflow sweep failed")
            stop_event.wait(interval)
        logger.info("Workflow sweeper stopped")
