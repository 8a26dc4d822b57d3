"""
Shared fixtures for the Lifecycle Workflow Engine tests.
"""

import pytest

from lifecycle_engine import build_engine
from lifecycle_engine.config import EngineSettings, IntegrationSettings
from lifecycle_engine.integrations import (
    BackgroundCheckMockProvider,
    DocumentSearchMockProvider,
    ESignatureMockProvider,
)
from lifecycle_engine.models import IntegrationKind, LifecycleType, StepType, WorkflowTemplate, utctoday


@pytest.fixture
def today():
    return utctoday()


@pytest.fixture
def settings():
    """In-memory settings with the bundled templates."""
    return EngineSettings(integrations=IntegrationSettings(max_attempts=3, backoff_base_seconds=2))


@pytest.fixture
def providers():
    """One scripted mock provider per integration kind."""
    return {
        IntegrationKind.ESIGNATURE: ESignatureMockProvider(),
        IntegrationKind.BACKGROUND_CHECK: BackgroundCheckMockProvider(),
        IntegrationKind.DOCUMENT_SEARCH: DocumentSearchMockProvider(),
    }


@pytest.fixture
def engine(settings, providers):
    """Fully wired engine using the mock providers."""
    return build_engine(settings, providers=providers)


@pytest.fixture
def two_step_template(engine):
    """Published template: S1, then S2 which depends on S1."""
    template = engine.templates.create(WorkflowTemplate(
        name="Two Step Onboarding",
        lifecycle_type=LifecycleType.ONBOARDING,
        steps=[
            {"id": "s1", "title": "Collect documents", "due_day_offset": 1, "default_assignee_role": "hr"},
            {"id": "s2", "title": "Provision laptop", "prerequisites": ["s1"], "due_day_offset": 3},
        ],
    ), actor="hr-admin")
    return engine.templates.publish(template.id, actor="hr-admin")


@pytest.fixture
def integration_steps():
    """Freeform step list with one mandatory and one optional e-signature step."""
    return [
        {
            "id": "offer",
            "title": "Sign offer letter",
            "step_type": StepType.INTEGRATION,
            "integration_kind": IntegrationKind.ESIGNATURE,
            "integration_config": {"document_type": "offer_letter"},
            "due_day_offset": 2,
        },
        {
            "id": "nda",
            "title": "Sign NDA",
            "step_type": StepType.INTEGRATION,
            "integration_kind": IntegrationKind.ESIGNATURE,
            "mandatory": False,
            "due_day_offset": 2,
        },
    ]
