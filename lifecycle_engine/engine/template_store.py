"""
Template Store for the Lifecycle Workflow Engine.

Holds reusable workflow templates grouped by lifecycle type and optionally
scoped by department and role. Templates are loaded from YAML files and
managed through a draft -> published -> retired lifecycle; a published
template is never modified again, edits go into a duplicated new version.
"""

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml

from ..errors import IllegalTransition, InvalidWorkflowDefinition, TemplateLocked, TemplateNotFound
from ..models import LifecycleType, StepBlueprint, TemplateStatus, WorkflowTemplate, new_id, utcnow
from .resolver import validate_dependencies

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATES_FILE = Path(__file__).parent / "default_templates.yaml"


def validate_blueprints(blueprints: List[StepBlueprint], name: str) -> None:
    """
    Validate a list of step blueprints.

    Raises:
        InvalidWorkflowDefinition: on duplicate ids or bad dependencies
    """
    ids = [blueprint.id for blueprint in blueprints]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise InvalidWorkflowDefinition(
            f"Workflow '{name}' has duplicate step ids", [f"duplicate id '{i}'" for i in duplicates]
        )
    validate_dependencies({b.id: b.prerequisites for b in blueprints})


def validate_template(template: WorkflowTemplate) -> None:
    validate_blueprints(template.steps, template.name)


class TemplateStore:
    """
    Read-mostly store of workflow templates.

    Provides lookup of the most specific published template for a
    lifecycle event and the administrative operations used by tooling.
    """

    def __init__(
        self,
        storage_path: Optional[Union[str, Path]] = None,
        template_dirs: Optional[Iterable[Union[str, Path]]] = None,
        load_defaults: bool = True,
    ):
        """
        Initialize the template store.

        Args:
            storage_path: JSON file persisting templates; in-memory when None
            template_dirs: Directories of *.yaml template files to load
            load_defaults: Load the bundled default templates
        """
        self.storage_path = Path(storage_path) if storage_path else None
        self.templates: Dict[str, WorkflowTemplate] = {}
        self._lock = threading.RLock()

        if self.storage_path:
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_state()

        if load_defaults:
            self.load_yaml(DEFAULT_TEMPLATES_FILE)

        for template_dir in template_dirs or []:
            for path in sorted(Path(template_dir).glob("*.yaml")):
                self.load_yaml(path)

        logger.info(f"Initialized TemplateStore with {len(self.templates)} templates")

    def load_yaml(self, path: Union[str, Path]) -> List[WorkflowTemplate]:
        """
        Load templates from a YAML file.

        Templates whose id is already present are left untouched, so
        reloading the same file is harmless.

        Args:
            path: YAML file with a top-level 'templates' list

        Returns:
            Newly added templates
        """
        path = Path(path)
        if not path.exists():
            logger.warning(f"Template file not found: {path}")
            return []

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        loaded = []
        for entry in data.get("templates", []):
            template = WorkflowTemplate.model_validate(entry)
            validate_template(template)
            with self._lock:
                if template.id in self.templates:
                    continue
                if template.status == TemplateStatus.PUBLISHED and template.published_at is None:
                    template.published_at = utcnow()
                self.templates[template.id] = template
            loaded.append(template)

        if loaded:
            self._save_state()
        logger.info(f"Loaded {len(loaded)} templates from {path}")
        return loaded

    def create(self, template: Union[WorkflowTemplate, Dict[str, Any]], actor: Optional[str] = None) -> WorkflowTemplate:
        """Create a new draft template."""
        if isinstance(template, dict):
            template = WorkflowTemplate.model_validate(template)
        template = template.model_copy(deep=True)
        validate_template(template)

        with self._lock:
            if template.id in self.templates:
                raise InvalidWorkflowDefinition(f"Template {template.id} already exists")
            template.status = TemplateStatus.DRAFT
            template.created_by = actor or template.created_by
            template.created_at = utcnow()
            template.published_at = None
            template.retired_at = None
            self.templates[template.id] = template
            self._save_state()

        logger.info(f"Created template {template.id} '{template.name}' v{template.version}")
        return template.model_copy(deep=True)

    def update(self, template_id: str, changes: Dict[str, Any], actor: Optional[str] = None) -> WorkflowTemplate:
        """Apply changes to a draft template."""
        with self._lock:
            current = self._require(template_id)
            if current.status != TemplateStatus.DRAFT:
                raise TemplateLocked(template_id, current.status.value)

            protected = {"id", "status", "version", "created_at", "created_by", "published_at", "retired_at"}
            data = current.model_dump()
            data.update({k: v for k, v in changes.items() if k not in protected})
            updated = WorkflowTemplate.model_validate(data)
            validate_template(updated)
            self.templates[template_id] = updated
            self._save_state()

        logger.info(f"Updated draft template {template_id} (by {actor})")
        return updated.model_copy(deep=True)

    def publish(self, template_id: str, actor: Optional[str] = None) -> WorkflowTemplate:
        """Publish a draft template, freezing it."""
        with self._lock:
            template = self._require(template_id)
            if template.status == TemplateStatus.PUBLISHED:
                return template.model_copy(deep=True)
            if template.status != TemplateStatus.DRAFT:
                raise IllegalTransition("template", template_id, template.status.value, TemplateStatus.PUBLISHED.value)
            if not template.steps:
                raise InvalidWorkflowDefinition(f"Template '{template.name}' has no steps")
            validate_template(template)

            template.status = TemplateStatus.PUBLISHED
            template.published_at = utcnow()
            self._save_state()

        logger.info(f"Published template {template_id} '{template.name}' v{template.version} (by {actor})")
        return template.model_copy(deep=True)

    def retire(self, template_id: str, actor: Optional[str] = None) -> WorkflowTemplate:
        """Retire a template so it can no longer be instantiated."""
        with self._lock:
            template = self._require(template_id)
            if template.status == TemplateStatus.RETIRED:
                return template.model_copy(deep=True)
            template.status = TemplateStatus.RETIRED
            template.retired_at = utcnow()
            self._save_state()

        logger.info(f"Retired template {template_id} '{template.name}' (by {actor})")
        return template.model_copy(deep=True)

    def duplicate(self, template_id: str, actor: Optional[str] = None, name: Optional[str] = None) -> WorkflowTemplate:
        """
        Copy a template into a new draft.

        Without a new name the copy becomes the next version of the same
        template name.
        """
        with self._lock:
            source = self._require(template_id)
            copy = source.model_copy(deep=True)
            copy.id = new_id()
            copy.name = name or source.name
            if name and name != source.name:
                copy.version = 1
            else:
                copy.version = max(t.version for t in self.templates.values() if t.name == source.name) + 1
            copy.status = TemplateStatus.DRAFT
            copy.created_by = actor
            copy.created_at = utcnow()
            copy.published_at = None
            copy.retired_at = None
            self.templates[copy.id] = copy
            self._save_state()

        logger.info(f"Duplicated template {template_id} into {copy.id} '{copy.name}' v{copy.version}")
        return copy.model_copy(deep=True)

    def get(self, template_id: str) -> WorkflowTemplate:
        with self._lock:
            return self._require(template_id).model_copy(deep=True)

    def list(
        self,
        lifecycle_type: Optional[LifecycleType] = None,
        status: Optional[TemplateStatus] = None,
    ) -> List[WorkflowTemplate]:
        """List templates with optional filtering."""
        with self._lock:
            templates = list(self.templates.values())

        if lifecycle_type:
            templates = [t for t in templates if t.lifecycle_type == lifecycle_type]
        if status:
            templates = [t for t in templates if t.status == status]

        return [t.model_copy(deep=True) for t in sorted(templates, key=lambda t: (t.name, t.version))]

    def find_template(
        self,
        lifecycle_type: LifecycleType,
        department: Optional[str] = None,
        role: Optional[str] = None,
    ) -> WorkflowTemplate:
        """
        Find the most specific published template for a lifecycle event.

        A template scoped to a department or role only matches when that
        scope equals the requested one; unscoped templates match anything.
        Role matches outrank department matches; ties go to the newest
        version.

        Raises:
            TemplateNotFound: if no published template matches
        """
        def matches(scope: Optional[str], wanted: Optional[str]) -> bool:
            return scope is None or (wanted is not None and scope.lower() == wanted.lower())

        candidates = [
            t for t in self.list(lifecycle_type=lifecycle_type, status=TemplateStatus.PUBLISHED)
            if matches(t.department, department) and matches(t.role, role)
        ]
        if not candidates:
            scope = "/".join(filter(None, [lifecycle_type.value, department, role]))
            raise TemplateNotFound(scope)

        def specificity(t: WorkflowTemplate):
            return (t.role is not None, t.department is not None, t.version)

        template = max(candidates, key=specificity)
        logger.debug(f"Resolved template {template.id} '{template.name}' for {lifecycle_type.value}")
        return template

    def _require(self, template_id: str) -> WorkflowTemplate:
        template = self.templates.get(template_id)
        if template is None:
            raise TemplateNotFound(template_id)
        return template

    def _save_state(self):
        """Save templates to persistent storage."""
        if not self.storage_path:
            return

        with self._lock:
            state_data = {
                "templates": {tid: t.model_dump(mode="json") for tid, t in self.templates.items()},
                "last_updated": datetime.now(timezone.utc).isoformat(),
            }
        with open(self.storage_path, "w", encoding="utf-8") as f:
            json.dump(state_data, f, indent=2)

    def _load_state(self):
        """Load templates from persistent storage."""
        if not self.storage_path or not self.storage_path.exists():
            return

        with open(self.storage_path, encoding="utf-8") as f:
            state_data = json.load(f)

        for template_id, data in state_data.get("templates", {}).items():
            self.templates[template_id] = WorkflowTemplate.model_validate(data)

        logger.info(f"Loaded {len(self.templates)} templates from {self.storage_path}")
