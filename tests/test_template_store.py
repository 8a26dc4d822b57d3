"""
Tests for the Template Store.
"""

import tempfile
from pathlib import Path

import pytest
import yaml

from lifecycle_engine.engine.template_store import TemplateStore
from lifecycle_engine.errors import (
    IllegalTransition,
    InvalidWorkflowDefinition,
    TemplateLocked,
    TemplateNotFound,
)
from lifecycle_engine.models import LifecycleType, StepType, TemplateStatus, WorkflowTemplate


def make_template(name="Engineering Onboarding", department=None, role=None, steps=None):
    return WorkflowTemplate(
        name=name,
        lifecycle_type=LifecycleType.ONBOARDING,
        department=department,
        role=role,
        steps=steps if steps is not None else [
            {"id": "a", "title": "Paperwork"},
            {"id": "b", "title": "Laptop", "prerequisites": ["a"]},
        ],
    )


class TestDefaultTemplates:

    def test_bundled_templates_loaded(self):
        store = TemplateStore()
        onboarding = store.get("default-onboarding")
        assert onboarding.status == TemplateStatus.PUBLISHED
        assert onboarding.lifecycle_type == LifecycleType.ONBOARDING
        kinds = {b.integration_kind.value for b in onboarding.steps if b.step_type == StepType.INTEGRATION}
        assert kinds == {"esignature", "background_check", "document_search"}
        assert store.get("default-offboarding").lifecycle_type == LifecycleType.OFFBOARDING

    def test_defaults_can_be_disabled(self):
        assert TemplateStore(load_defaults=False).list() == []


class TestTemplateLifecycle:

    @pytest.fixture
    def store(self):
        return TemplateStore(load_defaults=False)

    def test_create_forces_draft(self, store):
        template = make_template()
        template.status = TemplateStatus.PUBLISHED
        created = store.create(template, actor="admin")
        assert created.status == TemplateStatus.DRAFT
        assert created.created_by == "admin"

    def test_create_rejects_bad_dependencies(self, store):
        with pytest.raises(InvalidWorkflowDefinition):
            store.create(make_template(steps=[{"id": "a", "title": "A", "prerequisites": ["zzz"]}]))

    def test_create_rejects_duplicate_step_ids(self, store):
        with pytest.raises(InvalidWorkflowDefinition, match="duplicate"):
            store.create(make_template(steps=[{"id": "a", "title": "A"}, {"id": "a", "title": "B"}]))

    def test_update_draft(self, store):
        created = store.create(make_template())
        updated = store.update(created.id, {"description": "New hires in engineering", "version": 9})
        assert updated.description == "New hires in engineering"
        assert updated.version == 1

    def test_publish_then_locked(self, store):
        created = store.create(make_template())
        published = store.publish(created.id, actor="admin")
        assert published.status == TemplateStatus.PUBLISHED
        assert published.published_at is not None

        with pytest.raises(TemplateLocked):
            store.update(created.id, {"name": "Changed"})

    def test_publish_is_idempotent(self, store):
        created = store.create(make_template())
        first = store.publish(created.id)
        assert store.publish(created.id).published_at == first.published_at

    def test_publish_without_steps_rejected(self, store):
        created = store.create(make_template(steps=[]))
        with pytest.raises(InvalidWorkflowDefinition, match="no steps"):
            store.publish(created.id)

    def test_retired_cannot_be_published(self, store):
        created = store.create(make_template())
        store.retire(created.id)
        with pytest.raises(IllegalTransition):
            store.publish(created.id)

    def test_duplicate_creates_next_version(self, store):
        created = store.create(make_template())
        store.publish(created.id)

        copy = store.duplicate(created.id, actor="admin")
        assert copy.id != created.id
        assert copy.version == 2
        assert copy.status == TemplateStatus.DRAFT
        assert [b.id for b in copy.steps] == ["a", "b"]

    def test_duplicate_with_new_name_starts_at_version_one(self, store):
        created = store.create(make_template())
        assert store.duplicate(created.id, name="Sales Onboarding").version == 1

    def test_get_unknown_template(self, store):
        with pytest.raises(TemplateNotFound):
            store.get("missing")

    def test_returned_templates_are_copies(self, store):
        created = store.create(make_template())
        fetched = store.get(created.id)
        fetched.name = "mutated"
        assert store.get(created.id).name == "Engineering Onboarding"


class TestFindTemplate:

    @pytest.fixture
    def store(self):
        store = TemplateStore(load_defaults=False)
        for template in [
            make_template("Generic"),
            make_template("Engineering", department="Engineering"),
            make_template("Engineering Managers", department="Engineering", role="Manager"),
        ]:
            store.publish(store.create(template).id)
        return store

    def test_most_specific_match_wins(self, store):
        assert store.find_template(LifecycleType.ONBOARDING, "Engineering", "Manager").name == "Engineering Managers"
        assert store.find_template(LifecycleType.ONBOARDING, "engineering", "Engineer").name == "Engineering"
        assert store.find_template(LifecycleType.ONBOARDING, "Sales").name == "Generic"

    def test_drafts_and_retired_are_ignored(self, store):
        generic = store.find_template(LifecycleType.ONBOARDING)
        store.retire(generic.id)
        store.create(make_template("Draft only"))
        with pytest.raises(TemplateNotFound):
            store.find_template(LifecycleType.ONBOARDING, "Sales")

    def test_newest_version_preferred(self, store):
        generic = store.find_template(LifecycleType.ONBOARDING)
        v2 = store.duplicate(generic.id)
        store.publish(v2.id)
        assert store.find_template(LifecycleType.ONBOARDING).version == 2

    def test_no_match_for_lifecycle_type(self, store):
        with pytest.raises(TemplateNotFound):
            store.find_template(LifecycleType.LEAVE)


class TestTemplatePersistence:

    @pytest.fixture
    def temp_dir(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            yield Path(temp_dir)

    def test_load_yaml(self, temp_dir):
        path = temp_dir / "leave.yaml"
        path.write_text(yaml.safe_dump({"templates": [{
            "id": "parental-leave",
            "name": "Parental Leave",
            "lifecycle_type": "leave",
            "status": "published",
            "steps": [
                {"id": "request", "title": "Submit request"},
                {"id": "approve", "title": "Manager approval", "step_type": "approval",
                 "prerequisites": ["request"]},
            ],
        }]}))

        store = TemplateStore(load_defaults=False)
        loaded = store.load_yaml(path)
        assert [t.id for t in loaded] == ["parental-leave"]
        assert store.get("parental-leave").published_at is not None
        assert store.load_yaml(path) == []

    def test_template_dirs_loaded_on_start(self, temp_dir):
        (temp_dir / "vendor.yaml").write_text(yaml.safe_dump({"templates": [{
            "id": "vendor-change",
            "name": "Vendor change",
            "lifecycle_type": "vendor",
            "steps": [{"id": "notify", "title": "Notify finance"}],
        }]}))
        store = TemplateStore(load_defaults=False, template_dirs=[temp_dir])
        assert store.get("vendor-change").status == TemplateStatus.DRAFT

    def test_state_survives_restart(self, temp_dir):
        storage = temp_dir / "templates.json"
        store = TemplateStore(storage, load_defaults=False)
        created = store.create(make_template())
        store.publish(created.id)

        reloaded = TemplateStore(storage, load_defaults=False)
        assert reloaded.get(created.id).status == TemplateStatus.PUBLISHED
