"""
Engine assembly for the Lifecycle Workflow Engine.

Wires the repository, template store, exception tracker, instance manager,
dispatcher and sweeper together from one EngineSettings object.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from ..audit import AuditLogger
from ..config import EngineSettings
from ..events import EventBus
from ..integrations import BaseProvider, build_providers
from ..integrations.dispatcher import IntegrationDispatcher
from ..models import IntegrationKind
from .exception_tracker import ExceptionTracker
from .instance_manager import WorkflowInstanceManager
from .repository import WorkflowRepository
from .sweeper import WorkflowSweeper
from .template_store import TemplateStore

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    """All collaborating components of one engine."""
    settings: EngineSettings
    repository: WorkflowRepository
    templates: TemplateStore
    exceptions: ExceptionTracker
    manager: WorkflowInstanceManager
    dispatcher: IntegrationDispatcher
    sweeper: WorkflowSweeper
    audit: AuditLogger
    events: EventBus


def build_engine(
    settings: Optional[EngineSettings] = None,
    providers: Optional[Dict[IntegrationKind, BaseProvider]] = None,
) -> Engine:
    """
    Build a fully wired engine.

    Args:
        settings: Engine settings; defaults are in-memory with mock providers
        providers: Override the providers built from settings

    Returns:
        Engine container
    """
    settings = settings or EngineSettings()

    template_storage = None
    if settings.storage_path:
        storage = Path(settings.storage_path)
        template_storage = storage.with_name(storage.stem + ".templates.json")

    audit_logger = AuditLogger(settings.audit_dir)
    event_bus = EventBus()
    repository = WorkflowRepository(settings.storage_path, lock_timeout=settings.lock_timeout_seconds)
    templates = TemplateStore(
        template_storage,
        template_dirs=settings.template_dirs,
        load_defaults=settings.load_default_templates,
    )
    tracker = ExceptionTracker(repository, audit_logger, event_bus)
    dispatcher = IntegrationDispatcher(
        repository,
        providers if providers is not None else build_providers(settings.integrations),
        tracker,
        settings.integrations,
        audit_logger,
        event_bus,
    )
    manager = WorkflowInstanceManager(
        repository,
        templates,
        tracker,
        audit_logger,
        event_bus,
        settings,
        dispatcher=dispatcher,
    )
    sweeper = WorkflowSweeper(manager, dispatcher)

    logger.info("Lifecycle workflow engine ready")
    return Engine(
        settings=settings,
        repository=repository,
        templates=templates,
        exceptions=tracker,
        manager=manager,
        dispatcher=dispatcher,
        sweeper=sweeper,
        audit=audit_logger,
        events=event_bus,
    )
