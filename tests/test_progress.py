"""
Tests for the Progress Aggregator.
"""

from datetime import date, timedelta

import pytest

from lifecycle_engine.engine.progress import aggregate, completion_percentage, current_stage, summarize
from lifecycle_engine.models import (
    ExceptionKind,
    InstanceStatus,
    LifecycleType,
    ResolutionStatus,
    Severity,
    StepStatus,
    WorkflowException,
    WorkflowInstance,
    WorkflowStep,
)


def steps_with(*statuses, category="general"):
    return [
        WorkflowStep(instance_id="wf-1", order=i, title=f"step {i}", status=status, category=category)
        for i, status in enumerate(statuses)
    ]


class TestCompletionPercentage:

    @pytest.mark.parametrize("completed,total,expected", [
        (0, 0, 0),
        (0, 3, 0),
        (1, 2, 50),
        (1, 3, 33),
        (2, 3, 67),
        (1, 8, 13),
        (3, 8, 38),
        (3, 3, 100),
    ])
    def test_rounding(self, completed, total, expected):
        assert completion_percentage(completed, total) == expected

    def test_half_rounds_up(self):
        # 1/8 = 12.5%, 5/8 = 62.5%
        assert completion_percentage(1, 8) == 13
        assert completion_percentage(5, 8) == 63


class TestAggregate:

    def test_no_steps_is_not_started(self):
        progress = aggregate([])
        assert progress.percentage == 0
        assert progress.status == InstanceStatus.NOT_STARTED

    def test_all_pending_is_not_started(self):
        assert aggregate(steps_with(StepStatus.PENDING, StepStatus.PENDING)).status == InstanceStatus.NOT_STARTED

    @pytest.mark.parametrize("status", [StepStatus.IN_PROGRESS, StepStatus.BLOCKED, StepStatus.FAILED])
    def test_active_step_means_in_progress(self, status):
        progress = aggregate(steps_with(status, StepStatus.PENDING))
        assert progress.status == InstanceStatus.IN_PROGRESS
        assert progress.percentage == 0

    def test_partial_completion(self):
        progress = aggregate(steps_with(StepStatus.COMPLETED, StepStatus.PENDING))
        assert progress.percentage == 50
        assert progress.status == InstanceStatus.IN_PROGRESS

    def test_all_completed(self):
        progress = aggregate(steps_with(StepStatus.COMPLETED, StepStatus.COMPLETED))
        assert progress.percentage == 100
        assert progress.status == InstanceStatus.COMPLETED

    def test_skipped_steps_do_not_count_as_completed(self):
        progress = aggregate(steps_with(StepStatus.COMPLETED, StepStatus.SKIPPED))
        assert progress.percentage == 50
        assert progress.status == InstanceStatus.IN_PROGRESS


class TestCurrentStage:

    def test_first_outstanding_category(self):
        steps = steps_with(StepStatus.COMPLETED, StepStatus.PENDING)
        steps[0].category = "pre-boarding"
        steps[1].category = "day-1"
        assert current_stage(steps) == "day-1"

    def test_all_done(self):
        assert current_stage(steps_with(StepStatus.COMPLETED, StepStatus.SKIPPED)) == "completed"


class TestSummarize:

    @pytest.fixture
    def instance(self):
        return WorkflowInstance(
            employee_id="EMP001",
            lifecycle_type=LifecycleType.ONBOARDING,
            start_date=date(2024, 1, 1),
            expected_completion=date(2024, 1, 11),
        )

    def test_counts_and_overdue_steps(self, instance):
        steps = steps_with(StepStatus.COMPLETED, StepStatus.PENDING, StepStatus.IN_PROGRESS)
        steps[1].due_date = date(2024, 1, 3)
        steps[2].due_date = date(2024, 1, 20)
        exceptions = [
            WorkflowException(instance_id=instance.id, kind=ExceptionKind.TIMEOUT,
                              severity=Severity.LOW, title="late"),
            WorkflowException(instance_id=instance.id, kind=ExceptionKind.TIMEOUT,
                              severity=Severity.LOW, title="old", resolution_status=ResolutionStatus.RESOLVED),
        ]

        summary = summarize(instance, steps, exceptions, today=date(2024, 1, 6))

        assert summary["completion_percentage"] == 33
        assert summary["steps_by_status"]["completed"] == 1
        assert summary["steps_by_status"]["pending"] == 1
        assert summary["overdue_steps"] == [steps[1].id]
        assert summary["open_exceptions"] == 1
        assert summary["days_elapsed"] == 5
        assert summary["expected_days"] == 10

    def test_on_track_compares_elapsed_time(self, instance):
        steps = steps_with(StepStatus.COMPLETED, StepStatus.PENDING)
        assert summarize(instance, steps, today=instance.start_date + timedelta(days=4))["is_on_track"]
        assert not summarize(instance, steps, today=instance.start_date + timedelta(days=8))["is_on_track"]
