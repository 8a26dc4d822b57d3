"""
Tests for the Workflow Repository and concurrent access to instances.
"""

import tempfile
import threading
from datetime import date
from pathlib import Path

import pytest

from lifecycle_engine.engine.repository import WorkflowRepository
from lifecycle_engine.errors import DependencyNotMet, InstanceNotFound, TransactionConflict
from lifecycle_engine.models import (
    InstanceRecord,
    InstanceStatus,
    LifecycleType,
    StepStatus,
    WorkflowInstance,
    WorkflowStep,
)


def make_record(employee_id="EMP001"):
    instance = WorkflowInstance(
        employee_id=employee_id,
        lifecycle_type=LifecycleType.ONBOARDING,
        start_date=date(2024, 1, 1),
    )
    return InstanceRecord(
        instance=instance,
        steps=[WorkflowStep(instance_id=instance.id, order=0, title="Paperwork")],
    )


@pytest.fixture
def repository():
    return WorkflowRepository(lock_timeout=0.2)


class TestTransactions:

    def test_add_and_get(self, repository):
        record = repository.add(make_record())
        fetched = repository.get(record.instance.id)
        assert fetched.instance.employee_id == "EMP001"
        assert fetched.version == 0

    def test_add_duplicate_rejected(self, repository):
        record = repository.add(make_record())
        with pytest.raises(ValueError):
            repository.add(record)

    def test_get_returns_copies(self, repository):
        record = repository.add(make_record())
        snapshot = repository.get(record.instance.id)
        snapshot.steps[0].status = StepStatus.COMPLETED
        assert repository.get(record.instance.id).steps[0].status == StepStatus.PENDING

    def test_commit_bumps_version(self, repository):
        record = repository.add(make_record())
        with repository.transaction(record.instance.id) as working:
            working.steps[0].status = StepStatus.IN_PROGRESS

        stored = repository.get(record.instance.id)
        assert stored.version == 1
        assert stored.steps[0].status == StepStatus.IN_PROGRESS

    def test_error_rolls_back(self, repository):
        record = repository.add(make_record())
        with pytest.raises(KeyError):
            with repository.transaction(record.instance.id) as working:
                working.steps[0].status = StepStatus.IN_PROGRESS
                raise KeyError("boom")

        stored = repository.get(record.instance.id)
        assert stored.version == 0
        assert stored.steps[0].status == StepStatus.PENDING

    def test_mutating_after_commit_does_not_leak(self, repository):
        record = repository.add(make_record())
        with repository.transaction(record.instance.id) as working:
            working.steps[0].status = StepStatus.IN_PROGRESS
        working.steps[0].status = StepStatus.FAILED
        assert repository.get(record.instance.id).steps[0].status == StepStatus.IN_PROGRESS

    def test_unknown_instance(self, repository):
        with pytest.raises(InstanceNotFound):
            with repository.transaction("missing"):
                pass

    def test_nested_transaction_rejected(self, repository):
        record = repository.add(make_record())
        with pytest.raises(RuntimeError, match="Nested"):
            with repository.transaction(record.instance.id):
                with repository.transaction(record.instance.id):
                    pass

    def test_lock_timeout_raises_conflict(self, repository):
        record = repository.add(make_record())
        holding = threading.Event()
        release = threading.Event()

        def hold_lock():
            with repository.transaction(record.instance.id):
                holding.set()
                release.wait(5)

        holder = threading.Thread(target=hold_lock)
        holder.start()
        try:
            assert holding.wait(5)
            with pytest.raises(TransactionConflict):
                with repository.transaction(record.instance.id):
                    pass
        finally:
            release.set()
            holder.join()

    def test_other_instances_are_not_blocked(self, repository):
        first = repository.add(make_record("EMP001"))
        second = repository.add(make_record("EMP002"))
        with repository.transaction(first.instance.id):
            with repository.transaction(second.instance.id) as working:
                working.instance.name = "independent"
        assert repository.get(second.instance.id).instance.name == "independent"

    def test_delete(self, repository):
        record = repository.add(make_record())
        assert repository.delete(record.instance.id)
        assert not repository.exists(record.instance.id)
        assert not repository.delete(record.instance.id)


class TestPersistence:

    @pytest.fixture
    def storage(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            yield Path(temp_dir) / "state.json"

    def test_state_survives_restart(self, storage):
        repository = WorkflowRepository(storage)
        record = repository.add(make_record())
        with repository.transaction(record.instance.id) as working:
            working.steps[0].status = StepStatus.IN_PROGRESS

        reloaded = WorkflowRepository(storage)
        stored = reloaded.get(record.instance.id)
        assert stored.version == 1
        assert stored.steps[0].status == StepStatus.IN_PROGRESS

    def test_exception_index_rebuilt_on_load(self, storage, today):
        from lifecycle_engine import build_engine
        from lifecycle_engine.config import EngineSettings
        from lifecycle_engine.models import ExceptionKind, Severity

        engine = build_engine(EngineSettings(storage_path=str(storage)))
        created = engine.manager.instantiate("EMP001", today, steps=[{"title": "Paperwork"}])
        exception = engine.exceptions.open(
            created.instance.id, ExceptionKind.MANUAL_INTERVENTION, Severity.LOW, "Check"
        )

        restarted = build_engine(EngineSettings(storage_path=str(storage)))
        assert restarted.exceptions.get(exception.id).title == "Check"


class TestConcurrentTransitions:

    def test_parallel_completions_keep_progress_consistent(self, engine, today):
        steps = [{"id": f"task-{i}", "title": f"Task {i}"} for i in range(8)]
        record = engine.manager.instantiate("EMP001", today, steps=steps)
        instance_id = record.instance.id
        errors = []

        def complete(step_id):
            try:
                for status in (StepStatus.IN_PROGRESS, StepStatus.COMPLETED):
                    engine.manager.with_conflict_retry(
                        engine.manager.transition_step, instance_id, step_id, status, "worker"
                    )
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=complete, args=(s.id,)) for s in record.steps]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        stored = engine.manager.get_record(instance_id)
        assert stored.instance.completion_percentage == 100
        assert stored.instance.status == InstanceStatus.COMPLETED
        assert all(s.status == StepStatus.COMPLETED for s in stored.steps)

    def test_dependent_step_never_completes_before_prerequisite(self, engine, today):
        record = engine.manager.instantiate("EMP001", today, steps=[
            {"id": "a", "title": "A"},
            {"id": "b", "title": "B", "prerequisites": ["a"]},
        ])
        instance_id = record.instance.id
        a = next(s.id for s in record.steps if s.blueprint_id == "a")
        b = next(s.id for s in record.steps if s.blueprint_id == "b")
        outcomes = []

        def start_b():
            try:
                engine.manager.transition_step(instance_id, b, StepStatus.IN_PROGRESS, "worker")
                outcomes.append("started")
            except DependencyNotMet:
                outcomes.append("blocked")

        engine.manager.transition_step(instance_id, a, StepStatus.IN_PROGRESS, "worker")
        racer = threading.Thread(target=start_b)
        racer.start()
        engine.manager.transition_step(instance_id, a, StepStatus.COMPLETED, "worker")
        racer.join()

        stored = engine.manager.get_record(instance_id)
        if outcomes == ["started"]:
            assert stored.get_step(a).status == StepStatus.COMPLETED
            assert stored.get_step(b).completed_at is None
        else:
            assert stored.get_step(b).status == StepStatus.PENDING
