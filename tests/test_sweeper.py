"""
Tests for the background Workflow Sweeper.
"""

import threading
from datetime import timedelta
from unittest.mock import Mock

import pytest

from lifecycle_engine.engine.sweeper import WorkflowSweeper
from lifecycle_engine.errors import TransactionConflict
from lifecycle_engine.integrations import ESignatureMockProvider
from lifecycle_engine.models import ExceptionKind, IntegrationKind, InstanceStatus, StepStatus, utcnow


@pytest.fixture
def late_record(engine, two_step_template, today):
    return engine.manager.instantiate(
        "EMP001", today - timedelta(days=10), template_id=two_step_template.id, actor="hr"
    )


class TestRunOnce:

    def test_opens_timeouts_once(self, engine, late_record):
        report = engine.sweeper.run_once()

        assert report["instances_checked"] == 1
        assert report["timeouts_opened"] == 2
        assert report["errors"] == 0
        timeouts = engine.exceptions.list_exceptions(late_record.instance.id, kind=ExceptionKind.TIMEOUT)
        assert len(timeouts) == 2
        assert engine.manager.get_instance(late_record.instance.id).status == InstanceStatus.OVERDUE

        assert engine.sweeper.run_once()["timeouts_opened"] == 0

    def test_closed_instances_are_skipped(self, engine, late_record):
        engine.manager.cancel(late_record.instance.id, "hr", "withdrawn")
        report = engine.sweeper.run_once()
        assert report["instances_checked"] == 0
        assert engine.exceptions.list_exceptions(late_record.instance.id) == []

    def test_retries_due_attempts(self, engine, integration_steps, today):
        provider = ESignatureMockProvider(fail_times=1)
        engine.dispatcher.providers[IntegrationKind.ESIGNATURE] = provider
        record = engine.manager.instantiate("EMP001", today, steps=integration_steps)
        offer = next(s.id for s in record.steps if s.blueprint_id == "offer")
        engine.manager.transition_step(record.instance.id, offer, StepStatus.IN_PROGRESS, "hr")

        report = engine.sweeper.run_once(utcnow() + timedelta(minutes=5))

        assert report["attempts_dispatched"] == 1
        assert provider.call_count == 2
        assert engine.manager.get_step(record.instance.id, offer).status == StepStatus.COMPLETED

    def test_conflicts_are_counted_and_skipped(self):
        instance = Mock(id="wf-1", is_closed=False)
        manager = Mock()
        manager.list_instances.return_value = [instance, Mock(id="wf-2", is_closed=False)]
        manager.check_deadlines.side_effect = [TransactionConflict("wf-1"), []]

        report = WorkflowSweeper(manager).run_once()

        assert report["errors"] == 1
        assert report["instances_checked"] == 1


class TestRunForever:

    def test_stops_when_event_set(self, engine):
        stop = threading.Event()
        calls = []

        def sweep():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("storage unavailable")
            stop.set()
            return {}

        engine.sweeper.run_once = Mock(side_effect=sweep)
        engine.sweeper.run_forever(interval=0.01, stop_event=stop)

        assert len(calls) == 2

    def test_runs_in_background_thread(self, engine):
        stop = threading.Event()
        thread = threading.Thread(target=engine.sweeper.run_forever, args=(0.01, stop), daemon=True)
        thread.start()
        stop.set()
        thread.join(timeout=5)
        assert not thread.is_alive()
