"""
Lifecycle Workflow Engine

Template-driven HR lifecycle workflows (onboarding, offboarding,
performance, leave, vendor changes) with step dependencies, progress
tracking, external integrations with bounded retries, and exception
management.
"""

__version__ = "1.0.0"
__author__ = "Lifecycle Engine Team"
__email__ = "team@example.com"

from .config import EngineSettings, load_settings
from .engine.exception_tracker import ExceptionTracker
from .engine.factory import Engine, build_engine
from .engine.instance_manager import WorkflowInstanceManager
from .engine.repository import WorkflowRepository
from .engine.template_store import TemplateStore
from .integrations.dispatcher import IntegrationDispatcher

__all__ = [
    "Engine",
    "EngineSettings",
    "ExceptionTracker",
    "IntegrationDispatcher",
    "TemplateStore",
    "WorkflowInstanceManager",
    "WorkflowRepository",
    "build_engine",
    "load_settings",
]
